from datetime import datetime
from typing import Optional

from sqlalchemy import String, Boolean, Integer, ForeignKey, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from aquarent.database import Base, UTCDateTime, utcnow


class Franchise(Base):
    """Regional operating unit that owns orders, subscriptions and agents."""
    __tablename__ = "franchises"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    coverage_radius: Mapped[Optional[float]] = mapped_column(Numeric(8, 2), nullable=True)
    approval_state: Mapped[str] = mapped_column(
        String(20),
        default="approved",
        nullable=False,
        comment="pending, approved, rejected"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Franchise(name='{self.name}', owner_id={self.owner_id})>"
