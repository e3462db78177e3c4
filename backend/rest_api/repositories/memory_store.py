"""
Process-local implementation of the order store.

``InMemoryDatabase`` holds the rows (plain, session-less ORM instances) and
one lock; each request gets its own ``InMemoryOrderStore`` carrying an undo
log, so ``rollback()`` compensates every write made since the last commit.
Conditional stock, promo and refund claims and the deduplicated
notification insert run under the lock, which gives the same guarantees
as the SQL store's conditional updates and unique keys.

Writes are visible to other stores before commit. That is acceptable for
tests and single-process demos, which is all this backend is for.
"""

from __future__ import annotations

import copy
import itertools
import threading
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, TypeVar

from sqlalchemy import inspect as sa_inspect

from shared.config.constants import OrderStatus, PaymentStatus
from rest_api.models import (
    MenuItem,
    Notification,
    Order,
    PaymentEvent,
    PromoCode,
    Restaurant,
    RestaurantTable,
    as_utc,
)
from .base import OrderFilters, OrderStore

ModelT = TypeVar("ModelT")


def _apply_defaults(obj: Any) -> None:
    """Fill unset columns from their Python-side defaults, as a flush would."""
    for prop in sa_inspect(type(obj)).column_attrs:
        if getattr(obj, prop.key) is not None:
            continue
        default = prop.columns[0].default
        if default is None:
            continue
        if default.is_callable:
            setattr(obj, prop.key, default.arg(None))
        elif default.is_scalar:
            setattr(obj, prop.key, default.arg)


def _column_state(obj: Any) -> dict[str, Any]:
    return {
        prop.key: copy.copy(getattr(obj, prop.key))
        for prop in sa_inspect(type(obj)).column_attrs
    }


class InMemoryDatabase:
    """Shared row storage for ``InMemoryOrderStore`` instances."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._ids = itertools.count(1)
        self.restaurants: dict[int, Restaurant] = {}
        self.tables: dict[int, RestaurantTable] = {}
        self.menu_items: dict[int, MenuItem] = {}
        self.promos: dict[int, PromoCode] = {}
        self.orders: dict[int, Order] = {}
        self.notifications: dict[int, Notification] = {}
        self.payment_events: dict[int, PaymentEvent] = {}

    def next_id(self) -> int:
        with self.lock:
            return next(self._ids)

    def _insert(self, table: dict[int, ModelT], obj: ModelT) -> ModelT:
        with self.lock:
            _apply_defaults(obj)
            if getattr(obj, "id", None) is None:
                obj.id = next(self._ids)
            table[obj.id] = obj
            return obj

    # Seeding helpers for consumed entities (schema owned by other services)

    def add_restaurant(self, restaurant: Restaurant) -> Restaurant:
        return self._insert(self.restaurants, restaurant)

    def add_table(self, table: RestaurantTable) -> RestaurantTable:
        return self._insert(self.tables, table)

    def add_menu_item(self, item: MenuItem) -> MenuItem:
        return self._insert(self.menu_items, item)

    def add_promo(self, promo: PromoCode) -> PromoCode:
        return self._insert(self.promos, promo)

    def clear(self) -> None:
        with self.lock:
            for table in (
                self.restaurants,
                self.tables,
                self.menu_items,
                self.promos,
                self.orders,
                self.notifications,
                self.payment_events,
            ):
                table.clear()


class InMemoryOrderStore(OrderStore):
    """Order store over an ``InMemoryDatabase``, with an undo log per unit of work."""

    def __init__(self, database: InMemoryDatabase):
        self._data = database
        self._undo: list[Callable[[], None]] = []
        self._snapshotted: set[int] = set()

    @property
    def data(self) -> InMemoryDatabase:
        return self._data

    def _remember(self, obj: Any) -> None:
        """Snapshot an object's columns once per unit of work so rollback can restore them."""
        if id(obj) in self._snapshotted:
            return
        self._snapshotted.add(id(obj))
        state = _column_state(obj)

        def restore() -> None:
            for key, value in state.items():
                setattr(obj, key, value)

        self._undo.append(restore)

    # -------------------------------------------------------------------------
    # Restaurants and tables
    # -------------------------------------------------------------------------

    def get_restaurant(self, restaurant_id: int) -> Restaurant | None:
        return self._data.restaurants.get(restaurant_id)

    def get_restaurant_by_slug(self, slug: str) -> Restaurant | None:
        with self._data.lock:
            return next(
                (r for r in self._data.restaurants.values() if r.slug == slug),
                None,
            )

    def set_vendor_id(self, restaurant_id: int, vendor_id: str) -> None:
        with self._data.lock:
            restaurant = self._data.restaurants.get(restaurant_id)
            if restaurant is None:
                return
            self._remember(restaurant)
            restaurant.cashfree_vendor_id = vendor_id
            restaurant.touch()

    def get_table(self, restaurant_id: int, table_code: str) -> RestaurantTable | None:
        with self._data.lock:
            return next(
                (
                    t
                    for t in self._data.tables.values()
                    if t.restaurant_id == restaurant_id and t.table_code == table_code
                ),
                None,
            )

    # -------------------------------------------------------------------------
    # Menu and inventory
    # -------------------------------------------------------------------------

    def get_menu_item(self, restaurant_id: int, menu_item_id: int) -> MenuItem | None:
        item = self._data.menu_items.get(menu_item_id)
        if item is None or item.restaurant_id != restaurant_id:
            return None
        return item

    def reserve_inventory(self, menu_item_id: int, quantity: int) -> int | None:
        with self._data.lock:
            item = self._data.menu_items.get(menu_item_id)
            if item is None or item.inventory_count < quantity:
                return None
            item.inventory_count -= quantity

            def release() -> None:
                with self._data.lock:
                    item.inventory_count += quantity

            self._undo.append(release)
            return item.inventory_count

    # -------------------------------------------------------------------------
    # Promo codes
    # -------------------------------------------------------------------------

    def get_promo(self, restaurant_id: int, code: str) -> PromoCode | None:
        wanted = code.strip().upper()
        with self._data.lock:
            return next(
                (
                    p
                    for p in self._data.promos.values()
                    if p.restaurant_id == restaurant_id and p.code.upper() == wanted
                ),
                None,
            )

    def claim_promo(self, promo_id: int) -> bool:
        with self._data.lock:
            promo = self._data.promos.get(promo_id)
            if promo is None:
                return False
            if promo.max_uses is not None and promo.used_count >= promo.max_uses:
                return False
            promo.used_count += 1

            def unclaim() -> None:
                with self._data.lock:
                    promo.used_count -= 1

            self._undo.append(unclaim)
            return True

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    def add_order(self, order: Order) -> Order:
        with self._data.lock:
            self._data._insert(self._data.orders, order)
            for position, item in enumerate(order.items):
                _apply_defaults(item)
                item.id = self._data.next_id()
                item.order_id = order.id
                item.position = position

            def discard() -> None:
                with self._data.lock:
                    self._data.orders.pop(order.id, None)

            self._undo.append(discard)
            self._snapshotted.add(id(order))
            return order

    def order_number_exists(self, restaurant_id: int, order_number: str) -> bool:
        with self._data.lock:
            return any(
                o.restaurant_id == restaurant_id and o.order_number == order_number
                for o in self._data.orders.values()
            )

    def get_order(self, order_id: int) -> Order | None:
        return self._data.orders.get(order_id)

    def lock_order(self, order_id: int) -> Order | None:
        with self._data.lock:
            order = self._data.orders.get(order_id)
            if order is not None:
                self._remember(order)
            return order

    def lock_order_by_gateway_id(self, gateway_order_id: str) -> Order | None:
        with self._data.lock:
            order = next(
                (o for o in self._data.orders.values() if o.gateway_order_id == gateway_order_id),
                None,
            )
            if order is not None:
                self._remember(order)
            return order

    def claim_refund(self, order_id: int, refund_id: str) -> bool:
        with self._data.lock:
            order = self._data.orders.get(order_id)
            if order is None or order.payment_status != PaymentStatus.PAID or order.refund_id:
                return False
            self._remember(order)
            order.refund_id = refund_id
            return True

    def list_orders(self, restaurant_id: int, filters: OrderFilters | None = None) -> list[Order]:
        filters = filters or OrderFilters()
        with self._data.lock:
            orders = [o for o in self._data.orders.values() if o.restaurant_id == restaurant_id]

        if filters.statuses:
            orders = [o for o in orders if o.status in filters.statuses]
        if filters.table_id:
            orders = [o for o in orders if o.table_id == filters.table_id]
        if filters.created_from:
            orders = [o for o in orders if as_utc(o.created_at) >= as_utc(filters.created_from)]
        if filters.created_to:
            orders = [o for o in orders if as_utc(o.created_at) <= as_utc(filters.created_to)]

        orders.sort(key=lambda o: (as_utc(o.created_at), o.id), reverse=True)
        return orders[filters.offset:filters.offset + filters.limit]

    def revenue_between(self, restaurant_id: int, start: datetime, end: datetime) -> Decimal:
        start, end = as_utc(start), as_utc(end)
        with self._data.lock:
            return sum(
                (
                    o.total_amount
                    for o in self._data.orders.values()
                    if o.restaurant_id == restaurant_id
                    and o.status != OrderStatus.CANCELLED
                    and start <= as_utc(o.created_at) < end
                ),
                Decimal("0"),
            )

    # -------------------------------------------------------------------------
    # Notifications and gateway event log
    # -------------------------------------------------------------------------

    def add_notification(self, notification: Notification) -> Notification:
        self._data._insert(self._data.notifications, notification)
        self._undo.append(lambda: self._data.notifications.pop(notification.id, None))
        return notification

    def add_notification_once(self, notification: Notification) -> Notification | None:
        with self._data.lock:
            if notification.dedupe_key and any(
                n.dedupe_key == notification.dedupe_key for n in self._data.notifications.values()
            ):
                return None
            return self.add_notification(notification)

    def notification_exists(
        self,
        restaurant_id: int,
        notification_type: str,
        title: str,
        since: datetime,
    ) -> bool:
        since = as_utc(since)
        with self._data.lock:
            return any(
                n.restaurant_id == restaurant_id
                and n.type == notification_type
                and n.title == title
                and as_utc(n.created_at) >= since
                for n in self._data.notifications.values()
            )

    def add_payment_event(self, event: PaymentEvent) -> PaymentEvent:
        self._data._insert(self._data.payment_events, event)
        self._undo.append(lambda: self._data.payment_events.pop(event.id, None))
        return event

    # -------------------------------------------------------------------------
    # Unit of work
    # -------------------------------------------------------------------------

    def commit(self) -> None:
        self._undo.clear()
        self._snapshotted.clear()

    def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()
        self._snapshotted.clear()
