"""
SQLAlchemy implementation of the order store.

Stock, promo usage and refund claims are changed with conditional UPDATE
statements so concurrent requests cannot oversell an item, over-use a code
or refund an order twice. Order rows changed by status updates and
webhooks are read with SELECT .. FOR UPDATE.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shared.config.constants import OrderStatus, PaymentStatus
from shared.config.logging import get_logger
from shared.infrastructure.db import safe_commit
from shared.infrastructure.retry import retry_db_lookup
from rest_api.models import (
    MenuItem,
    Notification,
    Order,
    PaymentEvent,
    PromoCode,
    Restaurant,
    RestaurantTable,
)
from .base import OrderFilters, OrderStore

logger = get_logger(__name__)


def _reset_session(store: "SqlOrderStore") -> None:
    # A connection error leaves the session's transaction unusable
    store.db.rollback()


class SqlOrderStore(OrderStore):
    """Order store backed by one SQLAlchemy session (one per request)."""

    def __init__(self, db: Session):
        self._db = db

    @property
    def db(self) -> Session:
        return self._db

    # -------------------------------------------------------------------------
    # Restaurants and tables
    # -------------------------------------------------------------------------

    @retry_db_lookup("restaurant lookup", reset=_reset_session)
    def get_restaurant(self, restaurant_id: int) -> Restaurant | None:
        return self._db.scalar(select(Restaurant).where(Restaurant.id == restaurant_id))

    @retry_db_lookup("restaurant lookup", reset=_reset_session)
    def get_restaurant_by_slug(self, slug: str) -> Restaurant | None:
        return self._db.scalar(select(Restaurant).where(Restaurant.slug == slug))

    def set_vendor_id(self, restaurant_id: int, vendor_id: str) -> None:
        self._db.execute(
            update(Restaurant)
            .where(Restaurant.id == restaurant_id)
            .values(cashfree_vendor_id=vendor_id)
            .execution_options(synchronize_session="fetch")
        )

    def get_table(self, restaurant_id: int, table_code: str) -> RestaurantTable | None:
        return self._db.scalar(
            select(RestaurantTable).where(
                RestaurantTable.restaurant_id == restaurant_id,
                RestaurantTable.table_code == table_code,
            )
        )

    # -------------------------------------------------------------------------
    # Menu and inventory
    # -------------------------------------------------------------------------

    def get_menu_item(self, restaurant_id: int, menu_item_id: int) -> MenuItem | None:
        return self._db.scalar(
            select(MenuItem).where(
                MenuItem.id == menu_item_id,
                MenuItem.restaurant_id == restaurant_id,
            )
        )

    def reserve_inventory(self, menu_item_id: int, quantity: int) -> int | None:
        result = self._db.execute(
            update(MenuItem)
            .where(
                MenuItem.id == menu_item_id,
                MenuItem.inventory_count >= quantity,
            )
            .values(inventory_count=MenuItem.inventory_count - quantity)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            return None
        return self._db.scalar(
            select(MenuItem.inventory_count).where(MenuItem.id == menu_item_id)
        )

    # -------------------------------------------------------------------------
    # Promo codes
    # -------------------------------------------------------------------------

    def get_promo(self, restaurant_id: int, code: str) -> PromoCode | None:
        return self._db.scalar(
            select(PromoCode).where(
                PromoCode.restaurant_id == restaurant_id,
                func.upper(PromoCode.code) == code.strip().upper(),
            )
        )

    def claim_promo(self, promo_id: int) -> bool:
        result = self._db.execute(
            update(PromoCode)
            .where(
                PromoCode.id == promo_id,
                or_(
                    PromoCode.max_uses.is_(None),
                    PromoCode.used_count < PromoCode.max_uses,
                ),
            )
            .values(used_count=PromoCode.used_count + 1)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    def add_order(self, order: Order) -> Order:
        self._db.add(order)
        self._db.flush()
        return order

    def order_number_exists(self, restaurant_id: int, order_number: str) -> bool:
        found = self._db.scalar(
            select(Order.id).where(
                Order.restaurant_id == restaurant_id,
                Order.order_number == order_number,
            )
        )
        return found is not None

    def get_order(self, order_id: int) -> Order | None:
        return self._db.scalar(select(Order).where(Order.id == order_id))

    def lock_order(self, order_id: int) -> Order | None:
        return self._db.scalar(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    def lock_order_by_gateway_id(self, gateway_order_id: str) -> Order | None:
        return self._db.scalar(
            select(Order)
            .where(Order.gateway_order_id == gateway_order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    def claim_refund(self, order_id: int, refund_id: str) -> bool:
        result = self._db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.payment_status == PaymentStatus.PAID,
                Order.refund_id.is_(None),
            )
            .values(refund_id=refund_id)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def list_orders(self, restaurant_id: int, filters: OrderFilters | None = None) -> list[Order]:
        filters = filters or OrderFilters()
        query = select(Order).where(Order.restaurant_id == restaurant_id)

        if filters.statuses:
            query = query.where(Order.status.in_(filters.statuses))
        if filters.table_id:
            query = query.where(Order.table_id == filters.table_id)
        if filters.created_from:
            query = query.where(Order.created_at >= filters.created_from)
        if filters.created_to:
            query = query.where(Order.created_at <= filters.created_to)

        query = (
            query.order_by(Order.created_at.desc(), Order.id.desc())
            .offset(filters.offset)
            .limit(filters.limit)
        )
        return list(self._db.execute(query).scalars().all())

    def revenue_between(self, restaurant_id: int, start: datetime, end: datetime) -> Decimal:
        total = self._db.scalar(
            select(func.coalesce(func.sum(Order.total_amount), 0)).where(
                Order.restaurant_id == restaurant_id,
                Order.status != OrderStatus.CANCELLED,
                Order.created_at >= start,
                Order.created_at < end,
            )
        )
        return Decimal(str(total or 0))

    # -------------------------------------------------------------------------
    # Notifications and gateway event log
    # -------------------------------------------------------------------------

    def add_notification(self, notification: Notification) -> Notification:
        self._db.add(notification)
        self._db.flush()
        return notification

    def add_notification_once(self, notification: Notification) -> Notification | None:
        self._db.add(notification)
        try:
            self._db.flush()
        except IntegrityError:
            self._db.rollback()
            return None
        return notification

    def notification_exists(
        self,
        restaurant_id: int,
        notification_type: str,
        title: str,
        since: datetime,
    ) -> bool:
        found = self._db.scalar(
            select(Notification.id)
            .where(
                Notification.restaurant_id == restaurant_id,
                Notification.type == notification_type,
                Notification.title == title,
                Notification.created_at >= since,
            )
            .limit(1)
        )
        return found is not None

    def add_payment_event(self, event: PaymentEvent) -> PaymentEvent:
        self._db.add(event)
        self._db.flush()
        return event

    # -------------------------------------------------------------------------
    # Unit of work
    # -------------------------------------------------------------------------

    def commit(self) -> None:
        safe_commit(self._db)

    def rollback(self) -> None:
        self._db.rollback()
