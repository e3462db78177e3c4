"""
Order intake.

Builds a new order against live menu, stock, promo and tax state and
commits it in one unit of work: every line is validated before any stock
is touched, stock and promo usage are claimed with atomic conditional
updates, and any failure rolls back every write made so far.

After the commit the processor reports two signals for the notification
layer: low-stock alerts and a same-day revenue milestone.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time as dt_time, timedelta, timezone
from decimal import Decimal
from typing import Callable
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError

from shared.config.constants import (
    REVENUE_MILESTONE_TITLE,
    NotificationType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Roles,
)
from shared.config.logging import mask_phone, orders_logger as logger
from shared.config.settings import settings
from shared.utils.exceptions import (
    InternalError,
    InvalidPromoCodeError,
    NotFoundError,
    RestaurantNotFoundError,
    ValidationError,
)
from shared.utils.money import order_total, round2, to_decimal
from shared.utils.schemas import CreateOrderRequest, OrderItemInput
from rest_api.models import MenuItem, Order, OrderItem, Restaurant, utcnow
from rest_api.repositories import OrderStore

MAX_ORDER_NUMBER_ATTEMPTS = 5


@dataclass(frozen=True)
class LowStockAlert:
    menu_item_id: int
    name: str
    inventory_count: int


@dataclass
class IntakeResult:
    order: Order
    low_stock_alerts: list[LowStockAlert] = field(default_factory=list)
    # Today's revenue when the milestone was crossed and not yet announced
    revenue_milestone: Decimal | None = None
    # Local business date the order was placed on
    business_day: date | None = None


def business_date(now: datetime | None = None) -> date:
    return (now or utcnow()).astimezone(ZoneInfo(settings.business_timezone)).date()


def business_day_bounds(now: datetime | None = None) -> tuple[datetime, datetime]:
    """UTC ``[start, end)`` of the business day containing ``now``."""
    tz = ZoneInfo(settings.business_timezone)
    start = datetime.combine(business_date(now), dt_time.min, tzinfo=tz)
    end = start + timedelta(days=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def _display_amount(amount: Decimal) -> str:
    if amount == amount.to_integral_value():
        return str(amount.quantize(Decimal(1)))
    return f"{amount:.2f}"


def _table_number_from(table_id: str, fallback: int | None) -> int:
    digits = re.sub(r"\D", "", table_id)
    if digits and int(digits) > 0:
        return int(digits)
    return fallback or 1


class OrderIntakeProcessor:
    """Validate and commit one new order."""

    def __init__(
        self,
        store: OrderStore,
        clock: Callable[[], datetime] = utcnow,
        rng: random.Random | None = None,
    ):
        self._store = store
        self._clock = clock
        self._rng = rng or random.Random()

    def create_order(self, request: CreateOrderRequest) -> IntakeResult:
        """
        Create and commit an order.

        Raises:
            NotFoundError: Restaurant (or a menu item) missing
            ValidationError: Empty order, inactive table, stock, promo rules
        """
        try:
            order, alerts = self._stage_order(request)
            self._store.commit()
        except Exception:
            self._store.rollback()
            raise

        logger.info(
            "Order created",
            order_id=order.id,
            order_number=order.order_number,
            restaurant_id=order.restaurant_id,
            table_id=order.table_id,
            items=len(order.items),
            total_amount=str(order.total_amount),
            customer_phone=mask_phone(order.customer_phone),
        )

        milestone = self._check_revenue_milestone(order.restaurant_id)
        return IntakeResult(
            order=order,
            low_stock_alerts=alerts,
            revenue_milestone=milestone,
            business_day=business_date(self._clock()),
        )

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _stage_order(self, request: CreateOrderRequest) -> tuple[Order, list[LowStockAlert]]:
        restaurant = self._resolve_restaurant(request)

        if not request.items:
            raise ValidationError("Order must contain at least one item", restaurant_id=restaurant.id)

        table_id, table_number = self._resolve_table(restaurant.id, request)

        menu_items = self._validate_items(restaurant.id, request.items)
        lines, subtotal, alerts = self._reserve_items(request.items, menu_items)

        discount = Decimal("0.00")
        promo_snapshot = None
        if request.promo_code and request.promo_code.strip():
            discount, promo_snapshot = self._apply_promo(restaurant.id, request.promo_code, subtotal)

        tax_percentage = to_decimal(
            restaurant.tax_percentage
            if restaurant.tax_percentage is not None
            else settings.default_tax_percentage
        )
        tax_amount, total_amount = order_total(subtotal, discount, tax_percentage)

        now = self._clock()
        order = Order(
            restaurant_id=restaurant.id,
            order_number=self._new_order_number(restaurant.id),
            table_id=table_id,
            table_number=table_number,
            customer_phone=request.customer_phone,
            customer_email=request.customer_email,
            ordered_by=request.ordered_by or Roles.CUSTOMER,
            captain_id=request.captain_id,
            subtotal=subtotal,
            discount=discount,
            promo_code=promo_snapshot,
            tax_percentage=round2(tax_percentage),
            tax_amount=tax_amount,
            total_amount=total_amount,
            # Orders count as accepted by the kitchen on creation
            status=OrderStatus.PREPARING,
            payment_method=request.payment_method or PaymentMethod.CASH,
            payment_status=PaymentStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        order.items = lines
        self._store.add_order(order)
        return order, alerts

    def _resolve_restaurant(self, request: CreateOrderRequest) -> Restaurant:
        restaurant = None
        identifier: int | str | None = request.restaurant_id
        if request.restaurant_id is not None:
            restaurant = self._store.get_restaurant(request.restaurant_id)
        elif request.restaurant_slug and request.restaurant_slug.strip():
            identifier = request.restaurant_slug.strip().lower()
            restaurant = self._store.get_restaurant_by_slug(identifier)
        else:
            raise ValidationError("Restaurant ID or slug is required")

        if restaurant is None or not restaurant.is_active:
            raise RestaurantNotFoundError(identifier)
        return restaurant

    def _resolve_table(self, restaurant_id: int, request: CreateOrderRequest) -> tuple[str, int]:
        if request.table_id and request.table_id.strip():
            table_id = request.table_id.strip()
            table = self._store.get_table(restaurant_id, table_id)
            if table is not None and not table.is_active:
                raise ValidationError(f"Table {table_id} is not active", restaurant_id=restaurant_id)
            # Unknown codes are kept as given; the number comes from their digits
            return table_id, _table_number_from(table_id, request.table_number)

        table_number = request.table_number or 1
        return f"T{table_number}", table_number

    def _validate_items(
        self, restaurant_id: int, items: list[OrderItemInput]
    ) -> dict[int, MenuItem]:
        """Load and check every line before any stock is reserved."""
        menu_items: dict[int, MenuItem] = {}
        requested: dict[int, int] = {}
        for line in items:
            menu_item = menu_items.get(line.menu_item_id)
            if menu_item is None:
                menu_item = self._store.get_menu_item(restaurant_id, line.menu_item_id)
                if menu_item is None:
                    raise NotFoundError("Menu item", line.menu_item_id, restaurant_id=restaurant_id)
                menu_items[line.menu_item_id] = menu_item

            requested[line.menu_item_id] = requested.get(line.menu_item_id, 0) + line.quantity
            if not menu_item.available or menu_item.inventory_count < requested[line.menu_item_id]:
                raise ValidationError(
                    f"{menu_item.name} is not available or insufficient stock",
                    menu_item_id=menu_item.id,
                    requested=requested[line.menu_item_id],
                    inventory_count=menu_item.inventory_count,
                )
        return menu_items

    def _reserve_items(
        self,
        items: list[OrderItemInput],
        menu_items: dict[int, MenuItem],
    ) -> tuple[list[OrderItem], Decimal, list[LowStockAlert]]:
        lines: list[OrderItem] = []
        alerts: dict[int, LowStockAlert] = {}
        subtotal = Decimal("0")

        for position, line in enumerate(items):
            menu_item = menu_items[line.menu_item_id]
            remaining = self._store.reserve_inventory(menu_item.id, line.quantity)
            if remaining is None:
                # Another order took the stock after validation
                raise ValidationError(
                    f"{menu_item.name} is not available or insufficient stock",
                    menu_item_id=menu_item.id,
                    requested=line.quantity,
                )

            unit_price = round2(menu_item.price)
            subtotal += unit_price * line.quantity
            lines.append(
                OrderItem(
                    position=position,
                    menu_item_id=menu_item.id,
                    name=menu_item.name,
                    quantity=line.quantity,
                    unit_price=unit_price,
                    special_instructions=line.special_instructions or "",
                )
            )

            threshold = (
                menu_item.low_stock_threshold
                if menu_item.low_stock_threshold is not None
                else settings.low_stock_threshold_default
            )
            if menu_item.track_inventory and remaining < threshold:
                alerts[menu_item.id] = LowStockAlert(menu_item.id, menu_item.name, remaining)

        return lines, round2(subtotal), list(alerts.values())

    def _apply_promo(
        self, restaurant_id: int, raw_code: str, subtotal: Decimal
    ) -> tuple[Decimal, dict]:
        code = raw_code.strip().upper()
        promo = self._store.get_promo(restaurant_id, code)
        if promo is None or not promo.is_valid(self._clock()):
            raise InvalidPromoCodeError(code, restaurant_id=restaurant_id)

        min_amount = round2(promo.min_order_amount or 0)
        if subtotal < min_amount:
            raise ValidationError(
                f"Minimum order amount of ₹{_display_amount(min_amount)} required for this promo code",
                code=code,
                subtotal=str(subtotal),
            )

        percentage = to_decimal(promo.discount_percentage)
        discount = round2(subtotal * percentage / Decimal(100))

        # Bounded claim; loses to a concurrent order taking the last use
        if not self._store.claim_promo(promo.id):
            raise InvalidPromoCodeError(code, restaurant_id=restaurant_id, reason="usage cap reached")

        snapshot = {
            "code": promo.code,
            "discountPercentage": float(percentage),
            "discountAmount": float(discount),
        }
        return discount, snapshot

    def _new_order_number(self, restaurant_id: int) -> str:
        millis = int(self._clock().timestamp() * 1000)
        for _ in range(MAX_ORDER_NUMBER_ATTEMPTS):
            candidate = f"R{restaurant_id}_{millis}_{self._rng.randint(0, 999):03d}"
            if not self._store.order_number_exists(restaurant_id, candidate):
                return candidate
        raise InternalError("Could not allocate a unique order number", restaurant_id=restaurant_id)

    def _check_revenue_milestone(self, restaurant_id: int) -> Decimal | None:
        """Today's revenue if it reached the milestone and nobody announced it yet today."""
        start, end = business_day_bounds(self._clock())
        try:
            revenue = round2(self._store.revenue_between(restaurant_id, start, end))
            if revenue < to_decimal(settings.revenue_milestone_amount):
                return None
            if self._store.notification_exists(
                restaurant_id, NotificationType.REVENUE, REVENUE_MILESTONE_TITLE, start
            ):
                return None
        except SQLAlchemyError as e:
            # The order is committed; a missed milestone is only a missed notification
            logger.error("Revenue milestone check failed", restaurant_id=restaurant_id, error=str(e))
            return None
        return revenue
