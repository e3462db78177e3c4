"""
Centralized constants for the backend application.
Avoid magic strings and repeated constants.

Usage:
    from shared.config.constants import OrderStatus, PaymentStatus, ORDER_TRANSITIONS

    if order.status == OrderStatus.PREPARING:
        ...
"""

from decimal import Decimal
from typing import Final


# =============================================================================
# Staff Roles (role tags carried by tokens and Order.ordered_by)
# =============================================================================


class Roles:
    """Staff role constants."""

    ADMIN: Final[str] = "admin"
    RECEPTION: Final[str] = "reception"
    KITCHEN: Final[str] = "kitchen"
    CAPTAIN: Final[str] = "captain"
    CUSTOMER: Final[str] = "customer"

    STAFF: Final[list[str]] = [ADMIN, RECEPTION, KITCHEN, CAPTAIN]


MANAGEMENT_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.RECEPTION})
ORDER_STATUS_ROLES: Final[frozenset[str]] = frozenset(
    {Roles.ADMIN, Roles.RECEPTION, Roles.KITCHEN, Roles.CAPTAIN}
)
# Staff allowed to record counter (cash/card) payments
PAYMENT_COLLECTION_ROLES: Final[frozenset[str]] = frozenset(
    {Roles.ADMIN, Roles.RECEPTION, Roles.CAPTAIN}
)


# =============================================================================
# Entity Status Constants
# =============================================================================


class OrderStatus:
    """Order status constants."""

    PENDING: Final[str] = "pending"
    PREPARING: Final[str] = "preparing"
    READY: Final[str] = "ready"
    SERVED: Final[str] = "served"
    COMPLETED: Final[str] = "completed"
    CANCELLED: Final[str] = "cancelled"

    ALL: Final[list[str]] = [PENDING, PREPARING, READY, SERVED, COMPLETED, CANCELLED]
    # Status groups
    ACTIVE: Final[list[str]] = [PENDING, PREPARING, READY, SERVED]
    ADMIN_VISIBLE: Final[list[str]] = [PENDING, PREPARING, READY, SERVED, COMPLETED]
    TERMINAL: Final[list[str]] = [COMPLETED, CANCELLED]


class PaymentStatus:
    """Order payment status constants."""

    PENDING: Final[str] = "pending"
    PAID: Final[str] = "paid"
    FAILED: Final[str] = "failed"
    REFUNDED: Final[str] = "refunded"

    ALL: Final[list[str]] = [PENDING, PAID, FAILED, REFUNDED]
    # Once money has moved, gateway callbacks must not downgrade the status
    SETTLED: Final[list[str]] = [PAID, REFUNDED]


class PaymentMethod:
    """Payment method constants."""

    CASH: Final[str] = "cash"
    CARD: Final[str] = "card"
    UPI: Final[str] = "upi"

    ALL: Final[list[str]] = [CASH, CARD, UPI]
    # Collected by staff at the counter/table, not through the gateway
    COUNTER: Final[list[str]] = [CASH, CARD]


class NotificationType:
    """Notification type constants."""

    SYSTEM: Final[str] = "system"
    ORDER: Final[str] = "order"
    INVENTORY: Final[str] = "inventory"
    REVENUE: Final[str] = "revenue"


class WebhookEventType:
    """Split-payment gateway webhook event types."""

    PAYMENT_SUCCESS: Final[str] = "PAYMENT_SUCCESS_WEBHOOK"
    PAYMENT_FAILED: Final[str] = "PAYMENT_FAILED_WEBHOOK"
    SETTLEMENT_PROCESSED: Final[str] = "SETTLEMENT_PROCESSED"
    VENDOR_PAYOUT_UPDATE: Final[str] = "VENDOR_PAYOUT_UPDATE"

    INFORMATIONAL: Final[list[str]] = [SETTLEMENT_PROCESSED, VENDOR_PAYOUT_UPDATE]


# =============================================================================
# Status Transitions
# =============================================================================

# Valid order status transitions (from -> [allowed to states])
# Flow: pending → preparing → ready → served → completed, cancel from any non-terminal
ORDER_TRANSITIONS: Final[dict[str, list[str]]] = {
    OrderStatus.PENDING: [OrderStatus.PREPARING, OrderStatus.CANCELLED],
    OrderStatus.PREPARING: [OrderStatus.READY, OrderStatus.CANCELLED],
    OrderStatus.READY: [OrderStatus.SERVED, OrderStatus.CANCELLED],
    OrderStatus.SERVED: [OrderStatus.COMPLETED, OrderStatus.CANCELLED],
    OrderStatus.COMPLETED: [],  # Terminal state
    OrderStatus.CANCELLED: [],  # Terminal state
}

ORDER_STATUS_DESCRIPTIONS: Final[dict[str, str]] = {
    OrderStatus.PENDING: "Order received, waiting to start",
    OrderStatus.PREPARING: "Kitchen is preparing your order",
    OrderStatus.READY: "Order is ready for pickup/serving",
    OrderStatus.SERVED: "Order delivered to table",
    OrderStatus.COMPLETED: "Order completed and paid",
    OrderStatus.CANCELLED: "Order cancelled",
}


# =============================================================================
# Real-time channels and events
# =============================================================================


class ChannelPrefix:
    """Prefixes of the role-scoped real-time channels."""

    RESTAURANT: Final[str] = "restaurant"
    KITCHEN: Final[str] = "kitchen"
    CAPTAIN: Final[str] = "captain"
    ORDER: Final[str] = "order"

    ALL: Final[list[str]] = [RESTAURANT, KITCHEN, CAPTAIN, ORDER]


class OrderEvents:
    """Event names emitted on the real-time channels."""

    NEW_ORDER: Final[str] = "new-order"
    ORDER_UPDATED: Final[str] = "order-updated"
    NOTIFICATION_NEW: Final[str] = "notification:new"


# =============================================================================
# Money / Limits
# =============================================================================


TWO_PLACES: Final[Decimal] = Decimal("0.01")


class Limits:
    """Validation limits."""

    MIN_QUANTITY: Final[int] = 1
    MAX_QUANTITY: Final[int] = 99
    MAX_ITEMS_PER_ORDER: Final[int] = 100

    MAX_INSTRUCTIONS_LENGTH: Final[int] = 500
    MAX_PROMO_CODE_LENGTH: Final[int] = 50

    DEFAULT_PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 200

    DEFAULT_SETTLEMENTS_LIMIT: Final[int] = 10
    MAX_SETTLEMENTS_LIMIT: Final[int] = 100

    # Reception view looks back this many days
    ADMIN_ACTIVE_WINDOW_DAYS: Final[int] = 10


REVENUE_MILESTONE_TITLE: Final[str] = "Revenue Milestone Reached"
LOW_STOCK_TITLE: Final[str] = "Low Stock Alert"
