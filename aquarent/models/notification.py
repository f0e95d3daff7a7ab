from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, Integer, ForeignKey, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from aquarent.database import Base, UTCDateTime, utcnow


class NotificationType(str, Enum):
    """Notification categories."""
    ORDER = "order"
    PAYMENT = "payment"
    SUBSCRIPTION = "subscription"
    SERVICE_REQUEST = "service_request"
    SERVICE_FEEDBACK = "service_feedback"


class Notification(Base):
    """
    User-facing message derived from a state transition.
    Content is never edited after insert; only ``is_read`` changes.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        Index('ix_notification_user_read', 'user_id', 'is_read'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)

    # Related entity
    related_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    related_type: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Notification(user_id={self.user_id}, title='{self.title}')>"
