from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Boolean, Integer, ForeignKey, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column

from aquarent.database import Base, UTCDateTime, utcnow


class Product(Base):
    """Rentable water purifier model with its current price card."""
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Pricing (all in INR)
    monthly_rent: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    security_deposit: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        default=Decimal("0.00"),
        nullable=False
    )
    installation_fee: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        default=Decimal("0.00"),
        nullable=False
    )

    available_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    maintenance_cycle: Mapped[int] = mapped_column(
        Integer,
        default=3,
        nullable=False,
        comment="Months between scheduled maintenance visits"
    )
    franchise_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("franchises.id", ondelete="SET NULL"),
        nullable=True
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
        return f"<Product(name='{self.name}', monthly_rent={self.monthly_rent})>"
