from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Integer, ForeignKey, Numeric, Text, JSON, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from aquarent.database import Base, UTCDateTime, utcnow


class PaymentStatus(str, Enum):
    """Payment status enumeration."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentType(str, Enum):
    """What the payment settles."""
    INITIAL = "initial"   # Deposit + installation + first month, owned by an order
    MONTHLY = "monthly"   # Recurring rent, owned by a subscription


class Payment(Base):
    """
    A charge against exactly one order (initial) or one subscription (monthly).
    """
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint(
            "(order_id IS NULL) <> (subscription_id IS NULL)",
            name="ck_payment_single_owner"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    customer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    order_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=True,
        index=True
    )
    subscription_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("subscriptions.id", ondelete="RESTRICT"),
        nullable=True,
        index=True
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_type: Mapped[str] = mapped_column(String(20), nullable=False, comment="initial, monthly")
    status: Mapped[str] = mapped_column(
        String(20),
        default=PaymentStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="pending, success, failed, refunded"
    )
    invoice_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)

    # Razorpay Integration
    payment_method: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    transaction_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Gateway order id while pending, gateway payment id once settled"
    )
    gateway_order_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    gateway_payment_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        unique=True,
        nullable=True,
        comment="Set on settlement; one gateway charge settles at most one payment"
    )
    payment_details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    notes: Mapped[str] = mapped_column(Text, default="", nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Payment(invoice='{self.invoice_number}', status='{self.status}')>"
