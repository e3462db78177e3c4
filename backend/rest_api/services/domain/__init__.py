"""
Domain Services - application layer.

Structure:
    Router (thin controller)
        ↓
    Service (business logic)  ← YOU ARE HERE
        ↓
    OrderStore (unit of work)
        ↓
    Model (entity)

Usage:
    from rest_api.services.domain import OrderService

    service = OrderService(store, events)
    order = await service.update_status(order_id, "ready", staff)
"""

from .order_lifecycle import StatusTransitionValidator, status_validator
from .order_intake import IntakeResult, LowStockAlert, OrderIntakeProcessor
from .notification_service import NotificationService
from .order_service import OrderService
from .restaurant_service import RestaurantService, public_restaurant_cache

__all__ = [
    "StatusTransitionValidator",
    "status_validator",
    "IntakeResult",
    "LowStockAlert",
    "OrderIntakeProcessor",
    "NotificationService",
    "OrderService",
    "RestaurantService",
    "public_restaurant_cache",
]
