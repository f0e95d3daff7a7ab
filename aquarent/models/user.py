from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, Integer
from sqlalchemy.orm import Mapped, mapped_column

from aquarent.database import Base, UTCDateTime, utcnow


class UserRole(str, Enum):
    """Roles resolved by the identity service."""
    ADMIN = "admin"
    FRANCHISE_OWNER = "franchise_owner"
    SERVICE_AGENT = "service_agent"
    CUSTOMER = "customer"


class User(Base):
    """
    Platform user. Rows are provisioned by the identity service;
    the rental core only reads them.
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    role: Mapped[str] = mapped_column(
        String(30),
        default=UserRole.CUSTOMER.value,
        nullable=False,
        index=True,
        comment="admin, franchise_owner, service_agent, customer"
    )

    # Service agents belong to exactly one franchise
    franchise_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        index=True,
        comment="Franchise the service agent works for"
    )

    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<User(email='{self.email}', role='{self.role}')>"
