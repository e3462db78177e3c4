"""
Payment settlement reconciler.

Owns every interaction between orders and the split-payment gateway:

- vendor provisioning (restaurant → ``VENDOR_{id}`` sub-account)
- payment-session creation with a vendor split leg
- webhook ingestion as an idempotent merge into order state
- refunds, status and settlement passthrough reads

Webhooks can arrive twice, late, or after staff already moved the order,
so each handler reads the current state under a row lock and only moves
payment status forward (pending/failed → paid → refunded) and order status
forward (pending → preparing).
"""

from __future__ import annotations

import asyncio
import json
import re
import time
from typing import Any

from shared.config.constants import (
    Limits,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    WebhookEventType,
)
from shared.config.logging import audit_webhook_event, mask_phone, payment_logger as logger
from shared.config.settings import settings
from shared.security.webhook_signature import verify_webhook_signature
from shared.utils.exceptions import (
    ForbiddenError,
    NotFoundError,
    OrderNotFoundError,
    RestaurantNotFoundError,
    StateConflictError,
    UnauthorizedError,
    ValidationError,
)
from shared.utils.money import round2, split_amount, to_decimal
from shared.utils.schemas import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    PaymentStatusResponse,
    RefundRequest,
    RefundResponse,
)
from rest_api.models import Order, PaymentEvent, Restaurant
from rest_api.repositories import OrderStore
from rest_api.services.domain.restaurant_service import RestaurantService
from rest_api.services.events.order_events import OrderEventBroadcaster
from .gateway import GatewayOrderRequest, PaymentGateway, VendorDetails, vendor_id_for

# Legacy gateway order ids embed the internal id: CF_ORD_{orderId}_{epochMs}
LEGACY_GATEWAY_ORDER_ID = re.compile(r"^CF_ORD_(\d+)_")


def _now_ms() -> int:
    return int(time.time() * 1000)


def gateway_order_id_for(order_id: int) -> str:
    return f"CF_ORD_{order_id}_{_now_ms()}"


def refund_id_for(order_id: int) -> str:
    # Stable per order so a retried refund is deduplicated by the gateway
    return f"REFUND_{order_id}"


class PaymentSettlementReconciler:
    """Gateway-facing payment operations over one unit of work."""

    def __init__(
        self,
        store: OrderStore,
        gateway: PaymentGateway,
        events: OrderEventBroadcaster,
        webhook_secret: str | None = None,
    ):
        self._store = store
        self._gateway = gateway
        self._events = events
        self._webhook_secret = settings.cashfree_client_secret if webhook_secret is None else webhook_secret

    # -------------------------------------------------------------------------
    # Vendor provisioning
    # -------------------------------------------------------------------------

    async def provision_vendor(self, restaurant_id: int) -> tuple[str, bool]:
        """
        Return ``(vendor_id, created)`` for a restaurant, creating the
        gateway sub-account on first use.
        """
        restaurant = await asyncio.to_thread(self._store.get_restaurant, restaurant_id)
        if restaurant is None:
            raise RestaurantNotFoundError(restaurant_id)
        if restaurant.cashfree_vendor_id:
            return restaurant.cashfree_vendor_id, False

        vendor_id = await self._gateway.create_vendor(
            VendorDetails(
                restaurant_id=restaurant.id,
                name=restaurant.name,
                email=restaurant.email,
                phone=restaurant.phone,
                bank_account_number=restaurant.bank_account_number,
                bank_ifsc=restaurant.bank_ifsc,
                bank_account_name=restaurant.bank_account_name,
            )
        )

        await asyncio.to_thread(self._save_vendor_id, restaurant, vendor_id)

        logger.info("Vendor account provisioned", restaurant_id=restaurant.id, vendor_id=vendor_id)
        return vendor_id, True

    def _save_vendor_id(self, restaurant: Restaurant, vendor_id: str) -> None:
        try:
            self._store.set_vendor_id(restaurant.id, vendor_id)
            self._store.commit()
        except Exception:
            self._store.rollback()
            raise
        RestaurantService(self._store).invalidate(restaurant)

    # -------------------------------------------------------------------------
    # Payment sessions
    # -------------------------------------------------------------------------

    async def initiate_payment(self, request: InitiatePaymentRequest) -> InitiatePaymentResponse:
        """
        Create a gateway order that routes the vendor share to the restaurant.

        Raises:
            ValidationError: Missing fields, amount not matching the order
            NotFoundError: Restaurant or order missing
            StateConflictError: Order already paid, refunded or cancelled
            ExternalGatewayError: Gateway failure
        """
        if not (request.order_id and request.amount and request.restaurant_id and request.customer_phone):
            raise ValidationError("Missing required fields: orderId, amount, restaurantId, customerPhone")

        restaurant, order = await asyncio.to_thread(self._load_payable, request)
        amount = round2(request.amount)

        vendor_id, _ = await self.provision_vendor(restaurant.id)
        commission, vendor_amount = split_amount(amount, settings.platform_commission_rate)

        # No row lock across the gateway round trip; re-read under lock afterwards
        session = await self._gateway.create_order(
            GatewayOrderRequest(
                gateway_order_id=gateway_order_id_for(order.id),
                amount=amount,
                vendor_id=vendor_id,
                vendor_amount=vendor_amount,
                customer_phone=request.customer_phone,
                restaurant_name=restaurant.name,
                customer_name=request.customer_name,
                customer_email=request.customer_email,
            )
        )

        order = await asyncio.to_thread(self._record_session, order.id, session.gateway_order_id)

        logger.info(
            "Payment session created",
            order_id=order.id,
            restaurant_id=restaurant.id,
            gateway_order_id=session.gateway_order_id,
            amount=str(amount),
            platform_commission=str(commission),
            vendor_amount=str(vendor_amount),
            customer_phone=mask_phone(request.customer_phone),
        )
        await self._events.order_updated(order)

        return InitiatePaymentResponse(
            order_id=order.id,
            gateway_order_id=session.gateway_order_id,
            session_id=session.payment_session_id,
            payment_link=session.payment_link,
            platform_commission=commission,
            vendor_amount=vendor_amount,
        )

    def _load_payable(self, request: InitiatePaymentRequest) -> tuple[Restaurant, Order]:
        restaurant = self._store.get_restaurant(request.restaurant_id)
        if restaurant is None or not restaurant.is_active:
            raise RestaurantNotFoundError(request.restaurant_id)

        order = self._store.get_order(request.order_id)
        if order is None or order.restaurant_id != restaurant.id:
            raise OrderNotFoundError(request.order_id, restaurant_id=restaurant.id)
        self._check_payable(order)

        amount = round2(request.amount)
        if amount != round2(order.total_amount):
            raise ValidationError(
                "Payment amount does not match the order total",
                order_id=order.id,
                amount=str(amount),
                total_amount=str(order.total_amount),
            )
        return restaurant, order

    def _record_session(self, order_id: int, gateway_order_id: str) -> Order:
        try:
            order = self._store.lock_order(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            self._check_payable(order)
            order.gateway_order_id = gateway_order_id
            order.transaction_id = gateway_order_id
            order.payment_method = PaymentMethod.UPI
            order.payment_status = PaymentStatus.PENDING
            order.touch()
            self._store.commit()
        except Exception:
            self._store.rollback()
            raise
        return order

    @staticmethod
    def _check_payable(order: Order) -> None:
        if order.payment_status in PaymentStatus.SETTLED:
            raise StateConflictError(
                f"Order payment is already {order.payment_status}",
                order_id=order.id,
            )
        if order.status == OrderStatus.CANCELLED:
            raise StateConflictError("Cannot take payment for a cancelled order", order_id=order.id)

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------

    async def handle_webhook(
        self,
        raw_body: bytes,
        signature: str | None,
        timestamp: str | None = None,
        ip_address: str | None = None,
    ) -> None:
        """
        Verify and apply one gateway callback.

        Only a bad signature raises (401). Everything else, including
        internal errors, is logged and acknowledged so the gateway does
        not retry conditions that retrying cannot fix.
        """
        if not verify_webhook_signature(self._webhook_secret, signature, raw_body, timestamp):
            audit_webhook_event(
                "SIGNATURE_INVALID",
                reason="signature mismatch or missing",
                ip_address=ip_address,
            )
            raise UnauthorizedError("Invalid webhook signature")

        try:
            payload = json.loads(raw_body or b"{}")
        except ValueError:
            logger.warning("Webhook body is not valid JSON", size=len(raw_body or b""))
            return
        if not isinstance(payload, dict):
            logger.warning("Webhook body is not an object")
            return

        event_type = payload.get("type")
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        audit_webhook_event("ACCEPTED", webhook_type=event_type, ip_address=ip_address)

        try:
            changed: Order | None = None
            if event_type == WebhookEventType.PAYMENT_SUCCESS:
                changed = await asyncio.to_thread(self._apply_payment_success, data)
            elif event_type == WebhookEventType.PAYMENT_FAILED:
                changed = await asyncio.to_thread(self._apply_payment_failed, data)
            elif event_type in WebhookEventType.INFORMATIONAL:
                await asyncio.to_thread(self._record_informational, event_type, data)
            else:
                logger.info("Unhandled webhook type ignored", webhook_type=event_type)
            if changed is not None:
                await self._events.order_updated(changed)
        except Exception as e:
            await asyncio.to_thread(self._store.rollback)
            logger.error(
                "Webhook processing failed",
                webhook_type=event_type,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    def _lock_webhook_order(self, data: dict[str, Any]) -> tuple[Order | None, str | None]:
        """Find the order a callback refers to: correlation column first, legacy id pattern second."""
        order_data = data.get("order") if isinstance(data.get("order"), dict) else {}
        gateway_order_id = order_data.get("order_id")
        if not gateway_order_id:
            logger.warning("Webhook without gateway order id")
            return None, None

        gateway_order_id = str(gateway_order_id)
        order = self._store.lock_order_by_gateway_id(gateway_order_id)
        if order is None:
            match = LEGACY_GATEWAY_ORDER_ID.match(gateway_order_id)
            if match:
                order = self._store.lock_order(int(match.group(1)))

        if order is None:
            logger.warning("Webhook for unknown order ignored", gateway_order_id=gateway_order_id)
        return order, gateway_order_id

    def _apply_payment_success(self, data: dict[str, Any]) -> Order | None:
        """Returns the order when its state changed."""
        order, gateway_order_id = self._lock_webhook_order(data)
        if order is None:
            return None

        if order.payment_status in PaymentStatus.SETTLED:
            self._store.rollback()
            logger.info(
                "Duplicate payment success webhook ignored",
                order_id=order.id,
                payment_status=order.payment_status,
            )
            return None

        payment = data.get("payment") if isinstance(data.get("payment"), dict) else {}
        order_data = data.get("order") or {}
        payment_id = payment.get("cf_payment_id") or order_data.get("cf_payment_id")
        method = _payment_method_name(payment.get("payment_group") or order_data.get("payment_method"))

        order.payment_status = PaymentStatus.PAID
        if payment_id:
            order.transaction_id = str(payment_id)
        if method:
            order.payment_method = method
        if order.gateway_order_id is None:
            order.gateway_order_id = gateway_order_id

        if order.status == OrderStatus.PENDING:
            order.status = OrderStatus.PREPARING
        elif order.status == OrderStatus.CANCELLED:
            logger.warning(
                "Payment received for a cancelled order; refund may be required",
                order_id=order.id,
                gateway_order_id=gateway_order_id,
            )

        order.touch()
        self._store.commit()
        logger.info(
            "Payment confirmed by gateway",
            order_id=order.id,
            gateway_order_id=gateway_order_id,
            transaction_id=order.transaction_id,
            status=order.status,
        )
        return order

    def _apply_payment_failed(self, data: dict[str, Any]) -> Order | None:
        order, gateway_order_id = self._lock_webhook_order(data)
        if order is None:
            return None

        if order.payment_status in PaymentStatus.SETTLED or order.payment_status == PaymentStatus.FAILED:
            self._store.rollback()
            logger.info(
                "Payment failed webhook ignored",
                order_id=order.id,
                payment_status=order.payment_status,
            )
            return None

        order.payment_status = PaymentStatus.FAILED
        order.touch()
        self._store.commit()

        payment = data.get("payment") if isinstance(data.get("payment"), dict) else {}
        logger.warning(
            "Payment failed at gateway",
            order_id=order.id,
            gateway_order_id=gateway_order_id,
            reason=payment.get("payment_message") or (data.get("order") or {}).get("payment_message"),
        )
        return order

    def _record_informational(self, event_type: str, data: dict[str, Any]) -> None:
        if event_type == WebhookEventType.SETTLEMENT_PROCESSED:
            reference, amount, status = data.get("settlement_id"), data.get("amount"), "PROCESSED"
        else:
            reference, amount, status = data.get("utr"), data.get("payout_amount"), data.get("payout_status")

        self._store.add_payment_event(
            PaymentEvent(
                event_type=event_type,
                vendor_id=data.get("vendor_id"),
                reference_id=str(reference) if reference is not None else None,
                amount=round2(amount) if amount is not None else None,
                status=str(status) if status is not None else None,
                payload=data,
            )
        )
        self._store.commit()
        logger.info(
            "Gateway settlement event recorded",
            webhook_type=event_type,
            vendor_id=data.get("vendor_id"),
            reference_id=reference,
            amount=str(amount) if amount is not None else None,
        )

    # -------------------------------------------------------------------------
    # Refunds and reads
    # -------------------------------------------------------------------------

    async def refund(self, request: RefundRequest, staff: dict) -> RefundResponse:
        """
        Refund a paid order through the gateway.

        The refund is claimed on the order (``refund_id``) and committed
        before the gateway is called, so concurrent requests for the same
        order reach the gateway once. A gateway failure releases the claim.

        Raises:
            OrderNotFoundError: Unknown order
            StateConflictError: Payment not completed, or a refund already claimed
            ValidationError: Amount above the order total
        """
        gateway_order_id, refund_id = await asyncio.to_thread(self._claim_refund, request, staff)
        amount = round2(request.amount)

        try:
            result = await self._gateway.create_refund(
                gateway_order_id,
                amount,
                refund_id=refund_id,
                note=request.reason or "Customer refund request",
            )
        except Exception:
            await asyncio.to_thread(self._release_refund, request.order_id, refund_id)
            raise

        order = await asyncio.to_thread(self._mark_refunded, request.order_id)

        logger.info(
            "Order refunded",
            order_id=order.id,
            amount=str(amount),
            refund_id=result.get("refund_id") or refund_id,
            user_id=staff.get("sub"),
        )
        await self._events.order_updated(order)
        return RefundResponse(
            order_id=order.id,
            refund_id=result.get("refund_id") or refund_id,
            refund_status=result.get("refund_status"),
            payment_status=order.payment_status,
        )

    def _claim_refund(self, request: RefundRequest, staff: dict) -> tuple[str, str]:
        order = self._store.get_order(request.order_id)
        if order is None:
            raise OrderNotFoundError(request.order_id)
        self._check_tenant(order, staff)

        if order.payment_status != PaymentStatus.PAID:
            raise StateConflictError(
                "Order payment is not completed",
                order_id=order.id,
                payment_status=order.payment_status,
            )
        gateway_order_id = order.gateway_order_id or order.transaction_id
        if not gateway_order_id:
            raise StateConflictError("Order was not paid through the payment gateway", order_id=order.id)

        if round2(request.amount) > round2(order.total_amount):
            raise ValidationError("Refund amount exceeds the order total", order_id=order.id)

        refund_id = refund_id_for(order.id)
        try:
            if not self._store.claim_refund(order.id, refund_id):
                raise StateConflictError("A refund was already requested for this order", order_id=order.id)
            self._store.commit()
        except Exception:
            self._store.rollback()
            raise
        return gateway_order_id, refund_id

    def _mark_refunded(self, order_id: int) -> Order:
        try:
            order = self._store.lock_order(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            order.payment_status = PaymentStatus.REFUNDED
            order.touch()
            self._store.commit()
        except Exception:
            self._store.rollback()
            raise
        return order

    def _release_refund(self, order_id: int, refund_id: str) -> None:
        try:
            order = self._store.lock_order(order_id)
            if order is not None and order.refund_id == refund_id and order.payment_status == PaymentStatus.PAID:
                order.refund_id = None
                order.touch()
            self._store.commit()
        except Exception:
            self._store.rollback()
            raise
        logger.warning("Refund claim released after gateway failure", order_id=order_id, refund_id=refund_id)

    async def payment_status(self, order_id: int) -> PaymentStatusResponse:
        """Gateway view of an order's payment, read through without caching."""
        order = await asyncio.to_thread(self._store.get_order, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        gateway_order_id = order.gateway_order_id or order.transaction_id
        if not gateway_order_id:
            raise StateConflictError("Payment has not been initiated for this order", order_id=order_id)

        remote = await self._gateway.get_order(gateway_order_id)
        amount = remote.get("order_amount")
        return PaymentStatusResponse(
            order_id=order.id,
            gateway_order_id=gateway_order_id,
            order_status=remote.get("order_status"),
            order_amount=to_decimal(amount) if amount is not None else None,
            payment_method=remote.get("payment_method"),
            cf_order_id=str(remote["cf_order_id"]) if remote.get("cf_order_id") is not None else None,
            payment_status=order.payment_status,
        )

    async def settlements(self, restaurant_id: int, limit: int = Limits.DEFAULT_SETTLEMENTS_LIMIT) -> tuple[str, list[dict]]:
        restaurant: Restaurant | None = await asyncio.to_thread(self._store.get_restaurant, restaurant_id)
        if restaurant is None or not restaurant.cashfree_vendor_id:
            raise NotFoundError("Vendor account", restaurant_id=restaurant_id)
        limit = min(max(1, limit), Limits.MAX_SETTLEMENTS_LIMIT)
        return restaurant.cashfree_vendor_id, await self._gateway.list_settlements(
            restaurant.cashfree_vendor_id, limit
        )

    @staticmethod
    def _check_tenant(order: Order, staff: dict) -> None:
        if order.restaurant_id != staff.get("restaurant_id"):
            raise ForbiddenError(
                "refund orders of another restaurant",
                order_id=order.id,
                caller_restaurant_id=staff.get("restaurant_id"),
            )


def _payment_method_name(raw: Any) -> str | None:
    """Gateway payment group/method → local method tag (upi, card, ...)."""
    if isinstance(raw, dict):
        raw = next(iter(raw), None)
    if not raw:
        return None
    name = str(raw).lower()
    if "upi" in name:
        return PaymentMethod.UPI
    if "card" in name:
        return PaymentMethod.CARD
    # Net banking, wallets and the rest settle online like UPI
    return PaymentMethod.UPI


__all__ = [
    "PaymentSettlementReconciler",
    "LEGACY_GATEWAY_ORDER_ID",
    "gateway_order_id_for",
    "refund_id_for",
    "vendor_id_for",
]
