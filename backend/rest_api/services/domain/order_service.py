"""
Order Domain Service.

Thin-controller entry point for everything the order routes do: intake
plus its notifications and fan-out, status updates through the transition
validator, counter payments and the staff/customer read views.

Every write commits before its events are published, so subscribers that
refetch on an event always see the new state. Store work in the async
methods runs in a worker thread (``asyncio.to_thread``); the event loop
only publishes.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from shared.config.constants import (
    Limits,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from shared.config.logging import orders_logger as logger
from shared.utils.exceptions import (
    ForbiddenError,
    OrderNotFoundError,
    StateConflictError,
)
from shared.utils.schemas import CreateOrderRequest, NextStatusesOutput
from rest_api.models import Notification, Order, utcnow
from rest_api.repositories import OrderFilters, OrderStore
from rest_api.services.events.order_events import OrderEventBroadcaster
from .notification_service import NotificationService
from .order_intake import IntakeResult, OrderIntakeProcessor
from .order_lifecycle import StatusTransitionValidator, status_validator


class OrderService:
    """Domain service for order operations."""

    def __init__(
        self,
        store: OrderStore,
        events: OrderEventBroadcaster,
        validator: StatusTransitionValidator = status_validator,
    ):
        self._store = store
        self._events = events
        self._validator = validator

    # -------------------------------------------------------------------------
    # Intake
    # -------------------------------------------------------------------------

    async def create_order(self, request: CreateOrderRequest) -> IntakeResult:
        """Run intake, create its notifications, then announce the order."""
        result, notifications = await asyncio.to_thread(self._intake, request)

        for notification in notifications:
            await self._events.notification_created(notification)
        await self._events.order_created(result.order)
        return result

    def _intake(self, request: CreateOrderRequest) -> tuple[IntakeResult, list[Notification]]:
        result = OrderIntakeProcessor(self._store).create_order(request)

        try:
            notifications = NotificationService(self._store).from_intake(result)
        except SQLAlchemyError as e:
            # The order is committed; losing a dashboard notification must not fail checkout
            logger.error(
                "Failed to create intake notifications",
                order_id=result.order.id,
                restaurant_id=result.order.restaurant_id,
                error=str(e),
            )
            notifications = []
        return result, notifications

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    async def update_status(self, order_id: int, new_status: str, staff: dict) -> Order:
        """
        Move an order along the transition graph.

        Raises:
            OrderNotFoundError: Unknown order
            ForbiddenError: Order belongs to another restaurant
            StateConflictError: Transition not allowed, or completing an unpaid order
        """
        order, previous = await asyncio.to_thread(self._apply_status, order_id, new_status, staff)
        if previous is None:
            return order

        logger.info(
            "Order status updated",
            order_id=order.id,
            restaurant_id=order.restaurant_id,
            from_status=previous,
            to_status=new_status,
            user_id=staff.get("sub"),
            role=staff.get("role"),
        )
        await self._events.order_updated(order)
        return order

    def _apply_status(self, order_id: int, new_status: str, staff: dict) -> tuple[Order, str | None]:
        """Returns the order and its previous status, None when nothing changed."""
        try:
            order = self._store.lock_order(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            self._check_tenant(order, staff)

            self._validator.validate(order.status, new_status, order_id=order_id)
            if new_status == order.status:
                self._store.rollback()
                return order, None

            if new_status == OrderStatus.COMPLETED and order.payment_status != PaymentStatus.PAID:
                raise StateConflictError(
                    "Order payment must be completed before the order can be completed",
                    order_id=order_id,
                    payment_status=order.payment_status,
                )

            previous = order.status
            order.status = new_status
            order.touch()
            self._store.commit()
        except Exception:
            self._store.rollback()
            raise
        return order, previous

    def next_statuses(self, order_id: int) -> NextStatusesOutput:
        order = self.get_order(order_id)
        return NextStatusesOutput(
            order_id=order.id,
            status=order.status,
            description=self._validator.describe(order.status),
            allowed_next=self._validator.allowed_next(order.status),
            is_terminal=self._validator.is_terminal(order.status),
        )

    # -------------------------------------------------------------------------
    # Counter payments
    # -------------------------------------------------------------------------

    async def record_payment(
        self,
        order_id: int,
        payment_method: str,
        staff: dict,
        transaction_id: str | None = None,
    ) -> Order:
        """Staff marks a cash/card order as paid. Gateway (upi) orders settle by webhook."""
        order, changed = await asyncio.to_thread(
            self._apply_payment, order_id, payment_method, staff, transaction_id
        )
        if not changed:
            return order

        logger.info(
            "Counter payment recorded",
            order_id=order.id,
            restaurant_id=order.restaurant_id,
            payment_method=payment_method,
            user_id=staff.get("sub"),
        )
        await self._events.order_updated(order)
        return order

    def _apply_payment(
        self,
        order_id: int,
        payment_method: str,
        staff: dict,
        transaction_id: str | None,
    ) -> tuple[Order, bool]:
        try:
            order = self._store.lock_order(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            self._check_tenant(order, staff)

            if order.payment_method == PaymentMethod.UPI:
                raise StateConflictError(
                    "Online payments are confirmed by the payment gateway",
                    order_id=order_id,
                )
            if order.payment_status == PaymentStatus.PAID:
                self._store.rollback()
                return order, False
            if order.payment_status == PaymentStatus.REFUNDED:
                raise StateConflictError("Order payment was refunded", order_id=order_id)
            if order.status == OrderStatus.CANCELLED:
                raise StateConflictError("Cannot record payment for a cancelled order", order_id=order_id)

            order.payment_method = payment_method
            order.payment_status = PaymentStatus.PAID
            if transaction_id:
                order.transaction_id = transaction_id
            order.touch()
            self._store.commit()
        except Exception:
            self._store.rollback()
            raise
        return order, True

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_order(self, order_id: int) -> Order:
        order = self._store.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def list_active(self, restaurant_id: int) -> list[Order]:
        """Kitchen/captain board: every order still in service."""
        return self._store.list_orders(
            restaurant_id, OrderFilters(statuses=list(OrderStatus.ACTIVE))
        )

    def list_admin_active(self, restaurant_id: int) -> list[Order]:
        """Reception view: in-service and completed orders of the last days."""
        since = utcnow() - timedelta(days=Limits.ADMIN_ACTIVE_WINDOW_DAYS)
        return self._store.list_orders(
            restaurant_id,
            OrderFilters(statuses=list(OrderStatus.ADMIN_VISIBLE), created_from=since),
        )

    def list_orders(self, restaurant_id: int, filters: OrderFilters | None = None) -> list[Order]:
        return self._store.list_orders(restaurant_id, filters)

    def list_by_table(self, restaurant_id: int, table_id: str) -> list[Order]:
        return self._store.list_orders(restaurant_id, OrderFilters(table_id=table_id))

    @staticmethod
    def _check_tenant(order: Order, staff: dict) -> None:
        if order.restaurant_id != staff.get("restaurant_id"):
            raise ForbiddenError(
                "modify orders of another restaurant",
                order_id=order.id,
                caller_restaurant_id=staff.get("restaurant_id"),
            )
