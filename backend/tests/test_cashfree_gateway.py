"""
Tests for the Cashfree client over a mocked HTTP transport.
"""

import json
from decimal import Decimal

import httpx
import pytest

from rest_api.services.payments.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from rest_api.services.payments.gateway import (
    CashfreeGateway,
    GatewayOrderRequest,
    GatewayRejectedError,
    VendorDetails,
)
from shared.utils.exceptions import ExternalGatewayError

BASE_URL = "https://sandbox.cashfree.com/pg"


def make_gateway(handler, breaker=None) -> CashfreeGateway:
    return CashfreeGateway(
        client_id="app-id",
        client_secret="app-secret",
        base_url=BASE_URL,
        api_version="2023-08-01",
        timeout=1.0,
        return_url="https://quickserve.app/payment/success?order_id={order_id}",
        notify_url="https://api.quickserve.app/api/payment/webhook",
        transport=httpx.MockTransport(handler),
        breaker=breaker or CircuitBreaker(CircuitBreakerConfig(name="test", failure_threshold=2)),
    )


def order_request() -> GatewayOrderRequest:
    return GatewayOrderRequest(
        gateway_order_id="CF_ORD_42_1699999999",
        amount=Decimal("262.50"),
        vendor_id="VENDOR_1",
        vendor_amount=Decimal("259.87"),
        customer_phone="+91 98765-43210",
        restaurant_name="Spice Route",
    )


class TestCreateOrder:
    @pytest.mark.asyncio
    async def test_payload_and_split(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"order_id": "CF_ORD_42_1699999999", "payment_session_id": "sess_1"})

        session = await make_gateway(handler).create_order(order_request())

        assert seen["url"] == f"{BASE_URL}/orders"
        assert seen["headers"]["x-client-id"] == "app-id"
        assert seen["headers"]["x-api-version"] == "2023-08-01"
        body = seen["body"]
        assert body["order_amount"] == 262.5
        assert body["order_currency"] == "INR"
        assert body["customer_details"]["customer_phone"] == "919876543210"
        assert body["order_splits"] == [{"vendor_id": "VENDOR_1", "amount": 259.87}]
        assert body["order_meta"]["return_url"].endswith("order_id=CF_ORD_42_1699999999")
        assert session.payment_session_id == "sess_1"
        assert session.payment_link == f"{BASE_URL}/orders/CF_ORD_42_1699999999/pay"

    @pytest.mark.asyncio
    async def test_missing_session_is_an_error(self):
        gateway = make_gateway(lambda request: httpx.Response(200, json={"order_id": "x"}))

        with pytest.raises(ExternalGatewayError):
            await gateway.create_order(order_request())

    @pytest.mark.asyncio
    async def test_rejection_passes_gateway_message(self):
        gateway = make_gateway(
            lambda request: httpx.Response(400, json={"message": "order_amount : invalid value"})
        )

        with pytest.raises(GatewayRejectedError) as exc:
            await gateway.create_order(order_request())

        assert exc.value.gateway_status == 400
        assert exc.value.detail.endswith("order_amount : invalid value")

    @pytest.mark.asyncio
    async def test_unconfigured_credentials(self):
        gateway = CashfreeGateway(
            client_id="",
            client_secret="",
            base_url=BASE_URL,
            api_version="2023-08-01",
            timeout=1.0,
        )

        with pytest.raises(ExternalGatewayError):
            await gateway.create_order(order_request())


class TestVendors:
    @pytest.mark.asyncio
    async def test_create_vendor(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"vendor_id": "VENDOR_7"})

        vendor_id = await make_gateway(handler).create_vendor(
            VendorDetails(restaurant_id=7, name="Spice Route", phone="+91 98765 43210", bank_ifsc="YESB0000262")
        )

        assert vendor_id == "VENDOR_7"
        assert seen["body"]["vendor_id"] == "VENDOR_7"
        assert seen["body"]["phone"] == "919876543210"
        assert seen["body"]["bank_ifsc"] == "YESB0000262"
        assert "bank_account_number" not in seen["body"]

    @pytest.mark.asyncio
    async def test_existing_vendor_is_adopted(self):
        gateway = make_gateway(
            lambda request: httpx.Response(409, json={"message": "Vendor with id VENDOR_7 already exists"})
        )

        assert await gateway.create_vendor(VendorDetails(restaurant_id=7, name="Spice Route")) == "VENDOR_7"

    @pytest.mark.asyncio
    async def test_settlements_from_data_field(self):
        gateway = make_gateway(lambda request: httpx.Response(200, json={"data": [{"settlement_id": 1}]}))

        assert await gateway.list_settlements("VENDOR_7", 10) == [{"settlement_id": 1}]


class TestFailures:
    @pytest.mark.asyncio
    async def test_server_error(self):
        gateway = make_gateway(lambda request: httpx.Response(502, json={"message": "Bad gateway"}))

        with pytest.raises(ExternalGatewayError) as exc:
            await gateway.get_order("CF_ORD_1_1")

        assert exc.value.status_code == 500
        assert not isinstance(exc.value, GatewayRejectedError)

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ExternalGatewayError) as exc:
            await make_gateway(handler).get_order("CF_ORD_1_1")
        assert "timed out" in exc.value.detail

    @pytest.mark.asyncio
    async def test_breaker_opens_and_short_circuits(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        breaker = CircuitBreaker(CircuitBreakerConfig(name="test", failure_threshold=2, timeout_seconds=60))
        gateway = make_gateway(handler, breaker)

        for _ in range(2):
            with pytest.raises(ExternalGatewayError):
                await gateway.get_order("CF_ORD_1_1")
        assert breaker.state == CircuitState.OPEN

        with pytest.raises(ExternalGatewayError) as exc:
            await gateway.get_order("CF_ORD_1_1")

        assert len(calls) == 2
        assert "Retry-After" in exc.value.headers

    @pytest.mark.asyncio
    async def test_rejections_do_not_trip_the_breaker(self):
        breaker = CircuitBreaker(CircuitBreakerConfig(name="test", failure_threshold=1))
        gateway = make_gateway(lambda request: httpx.Response(404, json={"message": "order not found"}), breaker)

        for _ in range(3):
            with pytest.raises(GatewayRejectedError):
                await gateway.get_order("CF_ORD_1_1")

        assert breaker.state == CircuitState.CLOSED
