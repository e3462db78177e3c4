"""
Promotion Models: PromoCode.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK, TimestampMixin, as_utc, utcnow


class PromoCode(TimestampMixin, Base):
    """
    Percentage discount code for one restaurant.

    Codes are stored upper-case. ``used_count`` is only incremented through
    the bounded claim in the order store.
    """

    __tablename__ = "promo_code"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        ForeignKey("restaurant.id"), nullable=False, index=True
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    discount_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    valid_from: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    valid_to: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    max_uses: Mapped[Optional[int]] = mapped_column(Integer)
    used_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    min_order_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)

    __table_args__ = (
        UniqueConstraint("restaurant_id", "code", name="uq_promo_code_restaurant_code"),
        CheckConstraint(
            "discount_percentage > 0 AND discount_percentage <= 100",
            name="chk_promo_discount_range",
        ),
        CheckConstraint("used_count >= 0", name="chk_promo_used_count_non_negative"),
    )

    def is_valid(self, now: datetime | None = None) -> bool:
        """Active, inside the validity window and under the usage cap."""
        now = now or utcnow()
        if not self.is_active:
            return False
        valid_from = as_utc(self.valid_from)
        valid_to = as_utc(self.valid_to)
        if valid_from is not None and now < valid_from:
            return False
        if valid_to is not None and now > valid_to:
            return False
        if self.max_uses is not None and (self.used_count or 0) >= self.max_uses:
            return False
        return True

    def __repr__(self) -> str:
        return f"<PromoCode(id={self.id}, code='{self.code}', used={self.used_count}/{self.max_uses})>"
