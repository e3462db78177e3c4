"""
Notification Models: Notification, PaymentEvent.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK, TimestampMixin


class Notification(TimestampMixin, Base):
    """Dashboard notification (low stock, revenue milestone, ...). Created here, read elsewhere."""

    __tablename__ = "notification"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        ForeignKey("restaurant.id"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)  # system, order, inventory, revenue
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    metadata_json: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSON)
    # One row per key; set for once-per-day notifications such as the revenue milestone
    dedupe_key: Mapped[Optional[str]] = mapped_column(String(128), unique=True)

    __table_args__ = (
        # Milestone de-duplication looks up (restaurant, type, created_at)
        Index("ix_notification_restaurant_type_created", "restaurant_id", "type", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, type='{self.type}', title='{self.title}')>"


class PaymentEvent(TimestampMixin, Base):
    """
    Informational gateway webhook (settlement processed, vendor payout)
    kept for settlement reconciliation reports.
    """

    __tablename__ = "payment_event"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    vendor_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    reference_id: Mapped[Optional[str]] = mapped_column(String(128))  # settlement_id or UTR
    amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    status: Mapped[Optional[str]] = mapped_column(String(32))
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<PaymentEvent(id={self.id}, type='{self.event_type}', vendor='{self.vendor_id}')>"
