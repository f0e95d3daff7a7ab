from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, Integer, ForeignKey, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column

from aquarent.database import Base, UTCDateTime, utcnow


class SubscriptionStatus(str, Enum):
    """Subscription status enumeration."""
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class Subscription(Base):
    """
    Recurring rental agreement, created only by approving an order.
    One subscription per order, enforced by a unique constraint.
    """
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("orders.id", ondelete="RESTRICT"),
        unique=True,
        nullable=False
    )
    customer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False
    )
    franchise_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("franchises.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    service_agent_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=SubscriptionStatus.ACTIVE.value,
        nullable=False,
        index=True,
        comment="active, paused, cancelled, expired"
    )

    start_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    next_billing_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    monthly_rent: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # Maintenance schedule
    last_maintenance: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    next_maintenance: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    maintenance_notes: Mapped[str] = mapped_column(Text, default="", nullable=False)

    # Pause window (cleared on resume)
    pause_started_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    pause_end_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    auto_renew: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[str] = mapped_column(Text, default="", nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Subscription(id={self.id}, order_id={self.order_id}, status='{self.status}')>"
