"""
Shared Pydantic schemas used across the application.

Request and response bodies use camelCase on the wire (``orderId``,
``restaurantId``) while Python code uses snake_case; both spellings are
accepted on input.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from shared.config.constants import Limits


# =============================================================================
# Common Types
# =============================================================================

OrderStatusName = Literal["pending", "preparing", "ready", "served", "completed", "cancelled"]
PaymentStatusName = Literal["pending", "paid", "failed", "refunded"]
PaymentMethodName = Literal["cash", "card", "upi"]
CounterPaymentMethod = Literal["cash", "card"]

# 2-place amounts travel as JSON numbers
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class ApiModel(BaseModel):
    """Base for every request/response body."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# Order Schemas
# =============================================================================


class OrderItemInput(ApiModel):
    """One requested line."""

    menu_item_id: int = Field(gt=0)
    quantity: int = Field(ge=Limits.MIN_QUANTITY, le=Limits.MAX_QUANTITY)
    special_instructions: str = Field(default="", max_length=Limits.MAX_INSTRUCTIONS_LENGTH)


class CreateOrderRequest(ApiModel):
    """
    Order intake body. The restaurant is given by id or slug; the table by
    id (e.g. ``T4``) or number.
    """

    restaurant_id: int | None = Field(default=None, gt=0)
    restaurant_slug: str | None = Field(default=None, max_length=100)
    table_id: str | None = Field(default=None, max_length=32)
    table_number: int | None = Field(default=None, ge=1)
    # Emptiness is a business rule checked by intake (400, not 422)
    items: list[OrderItemInput] = Field(default_factory=list, max_length=Limits.MAX_ITEMS_PER_ORDER)
    customer_phone: str | None = Field(default=None, max_length=32)
    customer_email: EmailStr | None = None
    payment_method: PaymentMethodName | None = None
    promo_code: str | None = Field(default=None, max_length=Limits.MAX_PROMO_CODE_LENGTH)
    ordered_by: str | None = Field(default=None, max_length=20)
    captain_id: str | None = Field(default=None, max_length=64)


class OrderItemOutput(ApiModel):
    menu_item_id: int
    name: str
    quantity: int
    unit_price: Money
    special_instructions: str = ""


class OrderOutput(ApiModel):
    """Full order as seen by staff and by the customer tracking page."""

    id: int
    restaurant_id: int
    order_number: str
    table_id: str
    table_number: int
    customer_phone: str | None = None
    customer_email: str | None = None
    ordered_by: str | None = None
    captain_id: str | None = None
    items: list[OrderItemOutput]
    subtotal: Money
    discount: Money
    promo_code: dict[str, Any] | None = None
    tax_percentage: Money
    tax_amount: Money
    total_amount: Money
    status: OrderStatusName
    payment_method: PaymentMethodName
    payment_status: PaymentStatusName
    transaction_id: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class LowStockAlertOutput(ApiModel):
    menu_item_id: int
    name: str
    inventory_count: int


class CreateOrderResponse(OrderOutput):
    """Created order plus the intake signals surfaced to staff."""

    low_stock_alerts: list[LowStockAlertOutput] = Field(default_factory=list)
    revenue_milestone: Money | None = None


class StatusUpdateRequest(ApiModel):
    # Checked against the transition graph by the service (400 on unknown)
    status: str = Field(min_length=1, max_length=20)


class RecordPaymentRequest(ApiModel):
    """Counter payment recorded by staff."""

    payment_method: CounterPaymentMethod
    transaction_id: str | None = Field(default=None, max_length=128)


class NextStatusesOutput(ApiModel):
    order_id: int
    status: OrderStatusName
    description: str
    allowed_next: list[str]
    is_terminal: bool


# =============================================================================
# Notification Schemas
# =============================================================================


class NotificationOutput(ApiModel):
    id: int
    restaurant_id: int
    type: str
    title: str
    message: str
    is_read: bool = False
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime


# =============================================================================
# Payment Schemas
# =============================================================================


class VendorRequest(ApiModel):
    restaurant_id: int = Field(gt=0)


class VendorResponse(ApiModel):
    success: bool = True
    vendor_id: str
    message: str


class InitiatePaymentRequest(ApiModel):
    """Required fields are checked by the service so the error names all of them."""

    order_id: int | None = Field(default=None, gt=0)
    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    restaurant_id: int | None = Field(default=None, gt=0)
    customer_phone: str | None = Field(default=None, max_length=32)
    customer_name: str | None = Field(default=None, max_length=100)
    customer_email: EmailStr | None = None


class InitiatePaymentResponse(ApiModel):
    success: bool = True
    order_id: int
    gateway_order_id: str
    session_id: str
    payment_link: str
    platform_commission: Money
    vendor_amount: Money


class PaymentStatusResponse(ApiModel):
    success: bool = True
    order_id: int
    gateway_order_id: str
    order_status: str | None = None
    order_amount: Money | None = None
    payment_method: Any = None
    cf_order_id: str | None = None
    payment_status: PaymentStatusName


class RefundRequest(ApiModel):
    order_id: int = Field(gt=0)
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    reason: str | None = Field(default=None, max_length=255)


class RefundResponse(ApiModel):
    success: bool = True
    order_id: int
    refund_id: str | None = None
    refund_status: str | None = None
    payment_status: PaymentStatusName


class SettlementsResponse(ApiModel):
    success: bool = True
    vendor_id: str
    settlements: list[dict[str, Any]]


class WebhookAck(ApiModel):
    success: bool = True


# =============================================================================
# Public Restaurant Schemas
# =============================================================================


class RestaurantPublicOutput(ApiModel):
    """Public restaurant profile used by the ordering page."""

    id: int
    name: str
    slug: str
    phone: str | None = None
    address: str | None = None
    tax_percentage: Money
    accepts_online_payment: bool
