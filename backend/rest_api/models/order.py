"""
Order Models: Order, OrderItem.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import OrderStatus, PaymentMethod, PaymentStatus
from .base import Base, BigIntPK, TimestampMixin


class Order(TimestampMixin, Base):
    """
    A customer order.

    Money fields are fixed at intake and never recomputed. ``status`` only
    moves along the order transition graph; ``payment_status`` moves
    independently (staff counter payments, gateway webhooks, refunds).
    Orders are never deleted.

    ``gateway_order_id`` is the payment gateway's order id written when a
    payment session is created, so webhooks find the order by lookup.
    ``refund_id`` is set when a refund is claimed and cleared again if the
    gateway rejects it.
    """

    __tablename__ = "customer_order"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        ForeignKey("restaurant.id"), nullable=False, index=True
    )
    order_number: Mapped[str] = mapped_column(String(64), nullable=False)

    # Placement
    table_id: Mapped[str] = mapped_column(String(32), nullable=False)
    table_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(32))
    customer_email: Mapped[Optional[str]] = mapped_column(String(255))
    ordered_by: Mapped[Optional[str]] = mapped_column(String(20))  # Role tag: customer, captain, reception
    captain_id: Mapped[Optional[str]] = mapped_column(String(64))

    # Money
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    promo_code: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)  # Snapshot of the applied code
    tax_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # Lifecycle
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=OrderStatus.PREPARING, index=True)

    # Payment
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentMethod.CASH)
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentStatus.PENDING)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(128))
    gateway_order_id: Mapped[Optional[str]] = mapped_column(String(128), unique=True, index=True)
    # Claimed before the gateway refund call; one refund per order
    refund_id: Mapped[Optional[str]] = mapped_column(String(128), unique=True)

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("restaurant_id", "order_number", name="uq_order_restaurant_number"),
        # Active/dashboard queries filter by restaurant + status, newest first
        Index("ix_order_restaurant_status", "restaurant_id", "status"),
        Index("ix_order_restaurant_created", "restaurant_id", "created_at"),
        Index("ix_order_restaurant_table", "restaurant_id", "table_id"),
        CheckConstraint(
            "status IN ('pending', 'preparing', 'ready', 'served', 'completed', 'cancelled')",
            name="chk_order_status",
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed', 'refunded')",
            name="chk_order_payment_status",
        ),
        CheckConstraint(
            "status <> 'completed' OR payment_status = 'paid'",
            name="chk_order_completed_is_paid",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, number='{self.order_number}', status='{self.status}', "
            f"payment='{self.payment_status}')>"
        )


class OrderItem(Base):
    """
    Line item snapshot: name and unit price as they were at order time,
    so later menu edits never change a placed order.
    """

    __tablename__ = "order_item"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("customer_order.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    menu_item_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    special_instructions: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_order_item_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="chk_order_item_price_non_negative"),
    )

    order: Mapped["Order"] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<OrderItem(order_id={self.order_id}, name='{self.name}', qty={self.quantity})>"
