"""
Payment router.

Split-payment endpoints: vendor provisioning, payment sessions, gateway
webhooks, refunds and settlement reads. Gateway failures surface as
``ExternalGatewayError`` from the reconciler; nothing here retries.
"""

from fastapi import APIRouter, Depends, Header, Query, Request

from shared.config.constants import MANAGEMENT_ROLES, Limits
from shared.security.auth import current_staff_context, require_restaurant, require_roles
from shared.utils.schemas import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    PaymentStatusResponse,
    RefundRequest,
    RefundResponse,
    SettlementsResponse,
    VendorRequest,
    VendorResponse,
    WebhookAck,
)
from rest_api.repositories import OrderStore, get_order_store
from rest_api.services.events.order_events import OrderEventBroadcaster, get_order_events
from rest_api.services.payments.gateway import PaymentGateway, get_payment_gateway
from rest_api.services.payments.settlement import PaymentSettlementReconciler

router = APIRouter(prefix="/api/payment", tags=["payment"])


def get_reconciler(
    store: OrderStore = Depends(get_order_store),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    events: OrderEventBroadcaster = Depends(get_order_events),
) -> PaymentSettlementReconciler:
    return PaymentSettlementReconciler(store, gateway, events)


@router.post("/vendor", response_model=VendorResponse)
async def create_vendor(
    body: VendorRequest,
    ctx: dict = Depends(current_staff_context),
    reconciler: PaymentSettlementReconciler = Depends(get_reconciler),
):
    """Provision the restaurant's gateway sub-account (idempotent)."""
    require_roles(ctx, MANAGEMENT_ROLES)
    require_restaurant(ctx, body.restaurant_id)

    vendor_id, created = await reconciler.provision_vendor(body.restaurant_id)
    return VendorResponse(
        vendor_id=vendor_id,
        message="Vendor account created successfully" if created else "Vendor account already exists",
    )


@router.post("/initiate", response_model=InitiatePaymentResponse)
async def initiate_payment(
    body: InitiatePaymentRequest,
    reconciler: PaymentSettlementReconciler = Depends(get_reconciler),
):
    """Customer starts an online (UPI) payment for an order."""
    return await reconciler.initiate_payment(body)


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    x_webhook_signature: str | None = Header(default=None),
    x_webhook_timestamp: str | None = Header(default=None),
    reconciler: PaymentSettlementReconciler = Depends(get_reconciler),
):
    """
    Gateway callback.

    The signature covers the raw bytes, so the body is read before any
    parsing. Only a bad signature is answered with an error.
    """
    raw_body = await request.body()
    await reconciler.handle_webhook(
        raw_body,
        x_webhook_signature,
        x_webhook_timestamp,
        ip_address=request.client.host if request.client else None,
    )
    return WebhookAck()


@router.get("/status/{order_id}", response_model=PaymentStatusResponse)
async def get_payment_status(
    order_id: int,
    reconciler: PaymentSettlementReconciler = Depends(get_reconciler),
):
    return await reconciler.payment_status(order_id)


@router.post("/refund", response_model=RefundResponse)
async def refund_payment(
    body: RefundRequest,
    ctx: dict = Depends(current_staff_context),
    reconciler: PaymentSettlementReconciler = Depends(get_reconciler),
):
    require_roles(ctx, MANAGEMENT_ROLES)
    return await reconciler.refund(body, ctx)


@router.get("/vendor/{restaurant_id}/settlements", response_model=SettlementsResponse)
async def list_settlements(
    restaurant_id: int,
    limit: int = Query(default=Limits.DEFAULT_SETTLEMENTS_LIMIT, ge=1, le=Limits.MAX_SETTLEMENTS_LIMIT),
    ctx: dict = Depends(current_staff_context),
    reconciler: PaymentSettlementReconciler = Depends(get_reconciler),
):
    """Settlement history of the restaurant's vendor account, straight from the gateway."""
    require_roles(ctx, MANAGEMENT_ROLES)
    require_restaurant(ctx, restaurant_id)

    vendor_id, settlements = await reconciler.settlements(restaurant_id, limit)
    return SettlementsResponse(vendor_id=vendor_id, settlements=settlements)
