"""
Notification Domain Service.

Turns intake signals (low stock, revenue milestone) into dashboard
notifications. Notifications are only created here; reading and marking
them as read belongs to the dashboard service.
"""

from datetime import date
from decimal import Decimal

from shared.config.constants import LOW_STOCK_TITLE, REVENUE_MILESTONE_TITLE, NotificationType
from shared.config.logging import get_logger
from shared.config.settings import settings
from rest_api.models import Notification
from rest_api.repositories import OrderStore
from .order_intake import IntakeResult, LowStockAlert, business_date

logger = get_logger(__name__)


class NotificationService:
    """Create notifications in the caller's unit of work."""

    def __init__(self, store: OrderStore):
        self._store = store

    def low_stock(self, restaurant_id: int, alert: LowStockAlert) -> Notification:
        return self._store.add_notification(
            Notification(
                restaurant_id=restaurant_id,
                type=NotificationType.INVENTORY,
                title=LOW_STOCK_TITLE,
                message=f"Low stock alert: {alert.name} has only {alert.inventory_count} left.",
                metadata_json={
                    "menuItemId": alert.menu_item_id,
                    "inventoryCount": alert.inventory_count,
                },
            )
        )

    def revenue_milestone(
        self, restaurant_id: int, revenue: Decimal, business_day: date | None = None
    ) -> Notification | None:
        """Stage the milestone notification; None if the day's milestone already exists."""
        business_day = business_day or business_date()
        return self._store.add_notification_once(
            Notification(
                restaurant_id=restaurant_id,
                type=NotificationType.REVENUE,
                title=REVENUE_MILESTONE_TITLE,
                message=(
                    f"Congratulations! Your daily revenue has crossed ₹{settings.revenue_milestone_amount:,.0f}. "
                    f"Current total: ₹{revenue:.2f}"
                ),
                metadata_json={"revenue": float(revenue)},
                dedupe_key=revenue_milestone_key(restaurant_id, business_day),
            )
        )

    def from_intake(self, result: IntakeResult) -> list[Notification]:
        """
        Create and commit every notification an intake asked for.

        Low-stock notifications commit first; the milestone follows in its
        own commit so losing the once-per-day race discards only itself. The
        loser's ``result.revenue_milestone`` is cleared.
        """
        restaurant_id = result.order.restaurant_id
        created = [self.low_stock(restaurant_id, alert) for alert in result.low_stock_alerts]
        self._commit(created)

        if result.revenue_milestone is not None:
            milestone = self.revenue_milestone(restaurant_id, result.revenue_milestone, result.business_day)
            if milestone is None:
                logger.info("Revenue milestone already announced today", restaurant_id=restaurant_id)
                result.revenue_milestone = None
            else:
                self._commit([milestone])
                created.append(milestone)

        if created:
            logger.info(
                "Notifications created",
                restaurant_id=restaurant_id,
                order_id=result.order.id,
                count=len(created),
            )
        return created

    def _commit(self, notifications: list[Notification]) -> None:
        if not notifications:
            return
        try:
            self._store.commit()
        except Exception:
            self._store.rollback()
            raise


def revenue_milestone_key(restaurant_id: int, business_day: date) -> str:
    return f"revenue-milestone:{restaurant_id}:{business_day.isoformat()}"
