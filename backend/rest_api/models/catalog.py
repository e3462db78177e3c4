"""
Catalog Models: MenuItem.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK, TimestampMixin


class MenuItem(TimestampMixin, Base):
    """
    A dish on a restaurant's menu.

    ``inventory_count`` is only ever decremented through the conditional
    reservation in the order store, never by read-modify-write.
    """

    __tablename__ = "menu_item"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        ForeignKey("restaurant.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(120))
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    inventory_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    track_inventory: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    low_stock_threshold: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (
        CheckConstraint("inventory_count >= 0", name="chk_menu_item_inventory_non_negative"),
        CheckConstraint("price >= 0", name="chk_menu_item_price_non_negative"),
        Index("ix_menu_item_restaurant_available", "restaurant_id", "available"),
    )

    def __repr__(self) -> str:
        return f"<MenuItem(id={self.id}, name='{self.name}', stock={self.inventory_count})>"
