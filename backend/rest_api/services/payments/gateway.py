"""
Split-payment gateway client (Cashfree PG, Easy Split).

Every call goes through ``cashfree_breaker`` with a bounded timeout and is
never retried inside the request. Transport failures, timeouts, 5xx answers
and an open circuit all surface as ``ExternalGatewayError``; 4xx answers are
business rejections and surface as ``GatewayRejectedError`` without counting
against the breaker.

Usage:
    gateway = get_payment_gateway()
    session = await gateway.create_order(GatewayOrderRequest(...))
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import httpx

from shared.config.logging import get_logger, mask_email, mask_phone
from shared.config.settings import settings
from shared.utils.exceptions import ExternalGatewayError
from .circuit_breaker import CircuitBreaker, CircuitBreakerError, cashfree_breaker

logger = get_logger(__name__)


def digits_only(value: str | None) -> str:
    return re.sub(r"\D", "", value or "")


def vendor_id_for(restaurant_id: int) -> str:
    """Deterministic gateway vendor id of a restaurant."""
    return f"VENDOR_{restaurant_id}"


class GatewayRejectedError(ExternalGatewayError):
    """The gateway answered with a 4xx (bad request, duplicate, unknown id, ...)."""

    def __init__(self, operation: str, gateway_message: str | None, gateway_status: int, **log_context: Any):
        self.gateway_status = gateway_status
        super().__init__(operation, gateway_message, gateway_status=gateway_status, **log_context)


@dataclass(frozen=True)
class VendorDetails:
    restaurant_id: int
    name: str
    email: str | None = None
    phone: str | None = None
    bank_account_number: str | None = None
    bank_ifsc: str | None = None
    bank_account_name: str | None = None


@dataclass(frozen=True)
class GatewayOrderRequest:
    gateway_order_id: str
    amount: Decimal
    vendor_id: str
    vendor_amount: Decimal
    customer_phone: str
    restaurant_name: str
    customer_name: str | None = None
    customer_email: str | None = None


@dataclass(frozen=True)
class GatewaySession:
    gateway_order_id: str
    payment_session_id: str
    payment_link: str


class PaymentGateway(ABC):
    """Operations the settlement reconciler needs from the gateway."""

    @abstractmethod
    async def create_vendor(self, vendor: VendorDetails) -> str:
        """Create the vendor sub-account; returns its id (also when it already existed)."""

    @abstractmethod
    async def create_order(self, request: GatewayOrderRequest) -> GatewaySession:
        ...

    @abstractmethod
    async def get_order(self, gateway_order_id: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def create_refund(
        self, gateway_order_id: str, amount: Decimal, refund_id: str, note: str
    ) -> dict[str, Any]:
        ...

    @abstractmethod
    async def list_settlements(self, vendor_id: str, limit: int) -> list[dict[str, Any]]:
        ...


class CashfreeGateway(PaymentGateway):
    """httpx client for the Cashfree PG REST API."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str,
        api_version: str,
        timeout: float,
        return_url: str = "",
        notify_url: str = "",
        schedule_option: int = 1,
        transport: httpx.AsyncBaseTransport | None = None,
        breaker: CircuitBreaker = cashfree_breaker,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._base_url = base_url.rstrip("/")
        self._api_version = api_version
        self._timeout = timeout
        self._return_url = return_url
        self._notify_url = notify_url
        self._schedule_option = schedule_option
        self._transport = transport
        self._breaker = breaker

    @classmethod
    def from_settings(cls, transport: httpx.AsyncBaseTransport | None = None) -> "CashfreeGateway":
        return cls(
            client_id=settings.cashfree_client_id,
            client_secret=settings.cashfree_client_secret,
            base_url=settings.cashfree_base_url,
            api_version=settings.cashfree_api_version,
            timeout=settings.payment_gateway_timeout,
            return_url=settings.cashfree_return_url
            or f"{settings.base_url}/payment/success?order_id={{order_id}}",
            notify_url=settings.cashfree_notify_url
            or f"{settings.backend_url}/api/payment/webhook",
            schedule_option=settings.vendor_schedule_option,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self) -> dict[str, str]:
        return {
            "x-client-id": self._client_id,
            "x-client-secret": self._client_secret,
            "x-api-version": self._api_version,
            "Content-Type": "application/json",
        }

    async def _send(
        self,
        operation: str,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """One protected round trip. 5xx answers count as breaker failures."""
        if not self._client_id or not self._client_secret:
            raise ExternalGatewayError(operation, "Payment gateway is not configured")

        try:
            async with self._breaker.call():
                async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                    response = await client.request(
                        method,
                        f"{self._base_url}{path}",
                        headers=self._headers(),
                        json=json,
                        params=params,
                    )
                if response.status_code >= 500:
                    response.raise_for_status()
        except CircuitBreakerError as e:
            logger.warning("Cashfree circuit breaker open", operation=operation, retry_after=e.retry_after)
            raise ExternalGatewayError(
                operation,
                "Payment service temporarily unavailable. Please try again shortly.",
                retry_after=int(e.retry_after) + 1,
            ) from e
        except httpx.TimeoutException as e:
            raise ExternalGatewayError(operation, "Payment gateway timed out", error=str(e)) from e
        except httpx.HTTPStatusError as e:
            raise ExternalGatewayError(
                operation,
                _gateway_message(e.response),
                gateway_status=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ExternalGatewayError(operation, "Payment gateway unreachable", error=str(e)) from e
        return response

    @staticmethod
    def _body_or_raise(operation: str, response: httpx.Response) -> Any:
        if response.status_code >= 400:
            raise GatewayRejectedError(operation, _gateway_message(response), response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise ExternalGatewayError(operation, "Invalid response from payment gateway") from e

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def create_vendor(self, vendor: VendorDetails) -> str:
        vendor_id = vendor_id_for(vendor.restaurant_id)
        payload: dict[str, Any] = {
            "vendor_id": vendor_id,
            "status": "ACTIVE",
            "name": vendor.name,
            "email": vendor.email,
            "phone": digits_only(vendor.phone),
            "verify_account": False,
            "dashboard_access": True,
            "schedule_option": self._schedule_option,
        }
        if vendor.bank_account_number:
            payload["bank_account_number"] = vendor.bank_account_number
        if vendor.bank_ifsc:
            payload["bank_ifsc"] = vendor.bank_ifsc
        if vendor.bank_account_name:
            payload["bank_account_name"] = vendor.bank_account_name

        response = await self._send("vendor creation", "POST", "/easy-split/vendors", json=payload)
        if response.status_code >= 400 and "already exists" in (_gateway_message(response) or "").lower():
            logger.info("Cashfree vendor already exists, adopting id", vendor_id=vendor_id)
            return vendor_id

        body = self._body_or_raise("vendor creation", response)
        logger.info(
            "Cashfree vendor created",
            vendor_id=vendor_id,
            restaurant_id=vendor.restaurant_id,
            email=mask_email(vendor.email),
        )
        return body.get("vendor_id") or vendor_id

    async def create_order(self, request: GatewayOrderRequest) -> GatewaySession:
        phone = digits_only(request.customer_phone)
        payload = {
            "order_id": request.gateway_order_id,
            "order_amount": float(request.amount),
            "order_currency": "INR",
            "customer_details": {
                "customer_id": f"CUST_{phone}",
                "customer_name": request.customer_name or "Customer",
                "customer_email": request.customer_email or f"customer{phone}@quickserve.app",
                "customer_phone": phone,
            },
            "order_meta": {
                "return_url": self._return_url.replace("{order_id}", request.gateway_order_id),
                "notify_url": self._notify_url,
            },
            "order_note": f"Payment for {request.restaurant_name}",
            # Only the vendor leg is explicit; the platform keeps the remainder
            "order_splits": [
                {"vendor_id": request.vendor_id, "amount": float(request.vendor_amount)},
            ],
        }

        response = await self._send("payment session creation", "POST", "/orders", json=payload)
        body = self._body_or_raise("payment session creation", response)
        gateway_order_id = body.get("order_id") or request.gateway_order_id
        session_id = body.get("payment_session_id")
        if not session_id:
            raise ExternalGatewayError("payment session creation", "Gateway returned no payment session")

        logger.info(
            "Cashfree order created",
            gateway_order_id=gateway_order_id,
            amount=str(request.amount),
            vendor_id=request.vendor_id,
            customer_phone=mask_phone(phone),
        )
        return GatewaySession(
            gateway_order_id=gateway_order_id,
            payment_session_id=session_id,
            payment_link=f"{self._base_url}/orders/{gateway_order_id}/pay",
        )

    async def get_order(self, gateway_order_id: str) -> dict[str, Any]:
        response = await self._send("payment status lookup", "GET", f"/orders/{gateway_order_id}")
        return self._body_or_raise("payment status lookup", response)

    async def create_refund(
        self, gateway_order_id: str, amount: Decimal, refund_id: str, note: str
    ) -> dict[str, Any]:
        response = await self._send(
            "refund",
            "POST",
            f"/orders/{gateway_order_id}/refunds",
            json={
                "refund_amount": float(amount),
                "refund_id": refund_id,
                "refund_note": note,
            },
        )
        body = self._body_or_raise("refund", response)
        logger.info(
            "Cashfree refund created",
            gateway_order_id=gateway_order_id,
            refund_id=body.get("refund_id", refund_id),
            refund_status=body.get("refund_status"),
        )
        return body

    async def list_settlements(self, vendor_id: str, limit: int) -> list[dict[str, Any]]:
        response = await self._send(
            "settlement listing",
            "GET",
            f"/easy-split/vendors/{vendor_id}/settlements",
            params={"limit": limit},
        )
        body = self._body_or_raise("settlement listing", response)
        if isinstance(body, list):
            return body
        if isinstance(body, dict):
            return list(body.get("data") or body.get("settlements") or [])
        return []


def _gateway_message(response: httpx.Response) -> str | None:
    """The gateway's plain-text ``message`` field, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    return None


_gateway: PaymentGateway | None = None


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency (overridden in tests)."""
    global _gateway
    if _gateway is None:
        _gateway = CashfreeGateway.from_settings()
    return _gateway
