"""
SQLAlchemy ORM Models Package.

- base: Base class and TimestampMixin
- restaurant: Restaurant, RestaurantTable
- catalog: MenuItem
- promotion: PromoCode
- order: Order, OrderItem
- notification: Notification, PaymentEvent
"""

# Base classes
from .base import Base, TimestampMixin, utcnow, as_utc

# Restaurant and tables
from .restaurant import Restaurant, RestaurantTable

# Menu
from .catalog import MenuItem

# Promo codes
from .promotion import PromoCode

# Orders
from .order import Order, OrderItem

# Notifications and gateway event log
from .notification import Notification, PaymentEvent

__all__ = [
    "Base",
    "TimestampMixin",
    "utcnow",
    "as_utc",
    "Restaurant",
    "RestaurantTable",
    "MenuItem",
    "PromoCode",
    "Order",
    "OrderItem",
    "Notification",
    "PaymentEvent",
]
