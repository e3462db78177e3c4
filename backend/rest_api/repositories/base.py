"""
Order store: the unit of work the order engine runs against.

Every engine component (intake, status updates, payment reconciliation)
talks to storage only through ``OrderStore``. Two implementations exist:
``SqlOrderStore`` (SQLAlchemy session) and ``InMemoryOrderStore``
(process-local, for tests and ``persistence_backend=memory``).

Writes made through a store become durable only on ``commit()``;
``rollback()`` undoes every write since the last commit.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from shared.config.constants import Limits
from rest_api.models import (
    MenuItem,
    Notification,
    Order,
    PaymentEvent,
    PromoCode,
    Restaurant,
    RestaurantTable,
)


@dataclass
class OrderFilters:
    """Filters for order listings."""

    statuses: list[str] | None = None
    table_id: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None

    # Pagination
    limit: int = Limits.MAX_PAGE_SIZE
    offset: int = 0

    def __post_init__(self):
        """Validate and normalize filters."""
        self.limit = min(max(1, self.limit), Limits.MAX_PAGE_SIZE)
        self.offset = max(0, self.offset)
        if self.table_id is not None:
            self.table_id = self.table_id.strip() or None


class OrderStore(ABC):
    """Storage contract consumed by the order and payment engine."""

    # -------------------------------------------------------------------------
    # Restaurants and tables
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_restaurant(self, restaurant_id: int) -> Restaurant | None:
        ...

    @abstractmethod
    def get_restaurant_by_slug(self, slug: str) -> Restaurant | None:
        """Lookup by slug; callers pass it already lower-cased and trimmed."""
        ...

    @abstractmethod
    def set_vendor_id(self, restaurant_id: int, vendor_id: str) -> None:
        ...

    @abstractmethod
    def get_table(self, restaurant_id: int, table_code: str) -> RestaurantTable | None:
        ...

    # -------------------------------------------------------------------------
    # Menu and inventory
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_menu_item(self, restaurant_id: int, menu_item_id: int) -> MenuItem | None:
        ...

    @abstractmethod
    def reserve_inventory(self, menu_item_id: int, quantity: int) -> int | None:
        """
        Atomically decrement stock if at least ``quantity`` is left.

        Returns the remaining count, or None when stock was insufficient
        (nothing is written in that case).
        """
        ...

    # -------------------------------------------------------------------------
    # Promo codes
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_promo(self, restaurant_id: int, code: str) -> PromoCode | None:
        """Case-insensitive lookup of a restaurant's promo code."""
        ...

    @abstractmethod
    def claim_promo(self, promo_id: int) -> bool:
        """Atomically count one use; False when the usage cap is already reached."""
        ...

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    @abstractmethod
    def add_order(self, order: Order) -> Order:
        """Stage a new order (with items) and assign its id."""
        ...

    @abstractmethod
    def order_number_exists(self, restaurant_id: int, order_number: str) -> bool:
        ...

    @abstractmethod
    def get_order(self, order_id: int) -> Order | None:
        ...

    @abstractmethod
    def lock_order(self, order_id: int) -> Order | None:
        """Load an order for modification (row lock until commit/rollback)."""
        ...

    @abstractmethod
    def lock_order_by_gateway_id(self, gateway_order_id: str) -> Order | None:
        """Load an order for modification by its payment-gateway order id."""
        ...

    @abstractmethod
    def claim_refund(self, order_id: int, refund_id: str) -> bool:
        """
        Atomically set ``refund_id`` on a paid order that has none yet.

        False when the order is not paid or a refund was already claimed.
        """
        ...

    @abstractmethod
    def list_orders(self, restaurant_id: int, filters: OrderFilters | None = None) -> list[Order]:
        """Orders of one restaurant, newest first."""
        ...

    @abstractmethod
    def revenue_between(self, restaurant_id: int, start: datetime, end: datetime) -> Decimal:
        """Sum of ``total_amount`` of non-cancelled orders created in ``[start, end)``."""
        ...

    # -------------------------------------------------------------------------
    # Notifications and gateway event log
    # -------------------------------------------------------------------------

    @abstractmethod
    def add_notification(self, notification: Notification) -> Notification:
        ...

    @abstractmethod
    def add_notification_once(self, notification: Notification) -> Notification | None:
        """
        Stage a notification unless one with the same ``dedupe_key`` exists.

        Returns None for a duplicate. The SQL store detects it through the
        unique constraint and rolls back the unit of work, so callers commit
        earlier writes first.
        """
        ...

    @abstractmethod
    def notification_exists(
        self,
        restaurant_id: int,
        notification_type: str,
        title: str,
        since: datetime,
    ) -> bool:
        ...

    @abstractmethod
    def add_payment_event(self, event: PaymentEvent) -> PaymentEvent:
        ...

    # -------------------------------------------------------------------------
    # Unit of work
    # -------------------------------------------------------------------------

    @abstractmethod
    def commit(self) -> None:
        ...

    @abstractmethod
    def rollback(self) -> None:
        ...
