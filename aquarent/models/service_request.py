from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String, Integer, ForeignKey, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from aquarent.database import Base, UTCDateTime, utcnow


class ServiceRequestStatus(str, Enum):
    """Service request status enumeration."""
    PENDING = "pending"
    ASSIGNED = "assigned"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ServiceRequestType(str, Enum):
    """Kind of visit requested."""
    INSTALLATION = "installation"
    MAINTENANCE = "maintenance"
    REPAIR = "repair"
    FILTER_CHANGE = "filter_change"
    UNINSTALLATION = "uninstallation"
    OTHER = "other"


class ServiceRequest(Base):
    """Physical visit against an active subscription."""
    __tablename__ = "service_requests"
    __table_args__ = (
        CheckConstraint(
            "rating IS NULL OR (rating BETWEEN 1 AND 5 AND status = 'completed')",
            name="ck_service_request_rating"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    customer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    subscription_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("subscriptions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
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
        nullable=True,
        index=True
    )

    type: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=ServiceRequestStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="pending, assigned, scheduled, in_progress, completed, cancelled"
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)

    scheduled_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    completion_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    notes: Mapped[str] = mapped_column(Text, default="", nullable=False)

    # Customer feedback, only after completion
    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<ServiceRequest(id={self.id}, status='{self.status}')>"
