"""
Restaurant Models: Restaurant, RestaurantTable.

Owned by the restaurant-profile service; modelled here for the lookups
and the vendor id write the order engine needs.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK, TimestampMixin


class Restaurant(TimestampMixin, Base):
    """
    A tenant of the platform.

    ``cashfree_vendor_id`` is the restaurant's sub-account in the
    split-payment gateway, created lazily on first online payment.
    """

    __tablename__ = "restaurant"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    address: Mapped[Optional[str]] = mapped_column(Text)
    tax_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Split-payment gateway
    cashfree_vendor_id: Mapped[Optional[str]] = mapped_column(String(64))
    bank_account_number: Mapped[Optional[str]] = mapped_column(String(34))
    bank_ifsc: Mapped[Optional[str]] = mapped_column(String(11))
    bank_account_name: Mapped[Optional[str]] = mapped_column(String(255))

    def __repr__(self) -> str:
        return f"<Restaurant(id={self.id}, slug='{self.slug}', active={self.is_active})>"


class RestaurantTable(TimestampMixin, Base):
    """
    A physical table. ``table_code`` is the human code printed on the QR
    card (``T5``), unique within a restaurant.
    """

    __tablename__ = "restaurant_table"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        ForeignKey("restaurant.id"), nullable=False, index=True
    )
    table_code: Mapped[str] = mapped_column(String(32), nullable=False)
    table_name: Mapped[Optional[str]] = mapped_column(String(120))
    seats: Mapped[Optional[int]] = mapped_column(Integer)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("restaurant_id", "table_code", name="uq_table_restaurant_code"),
        Index("ix_table_restaurant_active", "restaurant_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<RestaurantTable(id={self.id}, code='{self.table_code}', restaurant_id={self.restaurant_id})>"
