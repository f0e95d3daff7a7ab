from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Integer, ForeignKey, Numeric, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from aquarent.database import Base, UTCDateTime, utcnow


class OrderStatus(str, Enum):
    """Order status enumeration."""
    PENDING = "pending"               # Awaiting initial payment / approval
    APPROVED = "approved"             # Paid and subscribed
    REJECTED = "rejected"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    INSTALLED = "installed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Order(Base):
    """
    Rental order for a single purifier.

    Prices are snapshotted from the product at creation time so later
    price-card changes never touch an existing order.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index('ix_rental_order_status_created', 'status', 'created_at'),
        Index('ix_rental_order_customer_created', 'customer_id', 'created_at'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    customer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False
    )
    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False
    )
    franchise_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("franchises.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    service_agent_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )

    order_type: Mapped[str] = mapped_column(String(20), default="rental", nullable=False)
    status: Mapped[str] = mapped_column(
        String(30),
        default=OrderStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="pending, approved, rejected, in_transit, delivered, installed, cancelled, completed"
    )

    shipping_address: Mapped[str] = mapped_column(Text, nullable=False)
    billing_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Rental terms
    rental_start_date: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        comment="Provisional at creation, finalized at approval"
    )
    rental_duration: Mapped[int] = mapped_column(Integer, nullable=False, comment="Months")
    delivery_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Price snapshot (all in INR)
    monthly_rent: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    security_deposit: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    installation_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_initial_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="security_deposit + installation_fee + monthly_rent"
    )

    notes: Mapped[str] = mapped_column(Text, default="", nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, status='{self.status}')>"
