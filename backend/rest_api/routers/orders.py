"""
Order router.

Customers create and track orders without authentication; every staff
view is scoped to the restaurant in the caller's token.

Reads are plain ``def`` routes and run in the threadpool. Writes are
async because they publish events; their store work runs in a worker
thread inside ``OrderService``.
"""

from datetime import date, datetime, time, timedelta, timezone

from fastapi import APIRouter, Depends, Query, status

from shared.config.constants import (
    MANAGEMENT_ROLES,
    ORDER_STATUS_ROLES,
    PAYMENT_COLLECTION_ROLES,
    Limits,
)
from shared.security.auth import current_staff_context, require_roles
from shared.utils.exceptions import ValidationError
from shared.utils.schemas import (
    CreateOrderRequest,
    CreateOrderResponse,
    LowStockAlertOutput,
    NextStatusesOutput,
    OrderOutput,
    OrderStatusName,
    RecordPaymentRequest,
    StatusUpdateRequest,
)
from rest_api.repositories import OrderFilters, OrderStore, get_order_store
from rest_api.services.domain.order_service import OrderService
from rest_api.services.events.order_events import OrderEventBroadcaster, get_order_events

router = APIRouter(prefix="/api/orders", tags=["orders"])


def get_order_service(
    store: OrderStore = Depends(get_order_store),
    events: OrderEventBroadcaster = Depends(get_order_events),
) -> OrderService:
    return OrderService(store, events)


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


@router.post("", response_model=CreateOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    body: CreateOrderRequest,
    service: OrderService = Depends(get_order_service),
) -> CreateOrderResponse:
    """
    Place an order (customer QR page, captain or reception).

    Stock, promo usage and the order row are committed together; any
    validation failure leaves nothing behind.
    """
    result = await service.create_order(body)
    response = CreateOrderResponse.model_validate(result.order)
    response.low_stock_alerts = [
        LowStockAlertOutput(
            menu_item_id=alert.menu_item_id,
            name=alert.name,
            inventory_count=alert.inventory_count,
        )
        for alert in result.low_stock_alerts
    ]
    response.revenue_milestone = result.revenue_milestone
    return response


@router.get("", response_model=list[OrderOutput])
def list_orders(
    status_filter: OrderStatusName | None = Query(default=None, alias="status"),
    table_id: str | None = Query(default=None, alias="tableId", max_length=32),
    start_date: date | None = Query(default=None, alias="startDate"),
    end_date: date | None = Query(default=None, alias="endDate"),
    limit: int = Query(default=Limits.MAX_PAGE_SIZE, ge=1, le=Limits.MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    ctx: dict = Depends(current_staff_context),
    service: OrderService = Depends(get_order_service),
):
    """All orders of the caller's restaurant, newest first. Dates are inclusive (UTC days)."""
    if start_date and end_date and start_date > end_date:
        raise ValidationError("startDate must not be after endDate")

    filters = OrderFilters(
        statuses=[status_filter] if status_filter else None,
        table_id=table_id,
        created_from=_day_start(start_date) if start_date else None,
        created_to=_day_start(end_date + timedelta(days=1)) - timedelta(microseconds=1) if end_date else None,
        limit=limit,
        offset=offset,
    )
    return service.list_orders(ctx["restaurant_id"], filters)


@router.get("/active", response_model=list[OrderOutput])
def list_active_orders(
    ctx: dict = Depends(current_staff_context),
    service: OrderService = Depends(get_order_service),
):
    """Kitchen and captain board: pending, preparing, ready and served orders."""
    return service.list_active(ctx["restaurant_id"])


@router.get("/admin/active", response_model=list[OrderOutput])
def list_admin_active_orders(
    ctx: dict = Depends(current_staff_context),
    service: OrderService = Depends(get_order_service),
):
    """Reception view: in-service plus completed orders of the last days."""
    require_roles(ctx, MANAGEMENT_ROLES)
    return service.list_admin_active(ctx["restaurant_id"])


@router.get("/by-table/{table_id}", response_model=list[OrderOutput])
def list_table_orders(
    table_id: str,
    ctx: dict = Depends(current_staff_context),
    service: OrderService = Depends(get_order_service),
):
    return service.list_by_table(ctx["restaurant_id"], table_id)


@router.get("/{order_id}", response_model=OrderOutput)
def get_order(
    order_id: int,
    service: OrderService = Depends(get_order_service),
):
    """Public order read; the customer tracking page polls this as a fallback to events."""
    return service.get_order(order_id)


@router.get("/{order_id}/next-statuses", response_model=NextStatusesOutput)
def get_next_statuses(
    order_id: int,
    ctx: dict = Depends(current_staff_context),
    service: OrderService = Depends(get_order_service),
):
    return service.next_statuses(order_id)


@router.put("/{order_id}/status", response_model=OrderOutput)
async def update_order_status(
    order_id: int,
    body: StatusUpdateRequest,
    ctx: dict = Depends(current_staff_context),
    service: OrderService = Depends(get_order_service),
):
    """Move an order along pending → preparing → ready → served → completed (or cancel it)."""
    require_roles(ctx, ORDER_STATUS_ROLES)
    return await service.update_status(order_id, body.status.strip().lower(), ctx)


@router.put("/{order_id}/payment", response_model=OrderOutput)
async def record_counter_payment(
    order_id: int,
    body: RecordPaymentRequest,
    ctx: dict = Depends(current_staff_context),
    service: OrderService = Depends(get_order_service),
):
    """Staff records a cash or card payment taken at the table or counter."""
    require_roles(ctx, PAYMENT_COLLECTION_ROLES)
    return await service.record_payment(order_id, body.payment_method, ctx, body.transaction_id)
