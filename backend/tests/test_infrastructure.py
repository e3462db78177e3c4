"""
Tests for the shared infrastructure: TTL cache, DB retry, circuit breaker,
staff tokens and structured logging.
"""

import asyncio
import json
import logging

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from shared.config.logging import JsonFormatter, get_logger, mask_email, mask_phone
from shared.infrastructure.cache import TTLCache
from shared.infrastructure.retry import retry_db_lookup
from shared.security.auth import require_restaurant, require_roles, sign_jwt, verify_jwt
from shared.utils.exceptions import DatabaseError, ForbiddenError, UnauthorizedError
from rest_api.services.payments.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerError,
    CircuitState,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestTTLCache:
    def test_entries_expire(self):
        clock = FakeClock()
        cache = TTLCache(default_ttl=60, clock=clock)
        cache.set("restaurant:slug:spice-route", {"id": 1})

        assert cache.get("restaurant:slug:spice-route") == {"id": 1}
        clock.now += 61
        assert cache.get("restaurant:slug:spice-route") is None
        assert cache.stats() == {"keys": 0, "hits": 1, "misses": 1}

    def test_get_or_load_caches_found_values_only(self):
        cache = TTLCache(default_ttl=60)
        loads = []

        def loader():
            loads.append(1)
            return None

        assert cache.get_or_load("missing", loader) is None
        assert cache.get_or_load("missing", loader) is None
        assert len(loads) == 2

        assert cache.get_or_load("found", lambda: "value") == "value"
        assert cache.get_or_load("found", lambda: "other") == "value"

    def test_invalidate(self):
        cache = TTLCache(default_ttl=60)
        cache.set("a", 1)
        cache.set("b", 2)

        cache.invalidate("a")

        assert cache.get("a") is None
        assert cache.get("b") == 2


def transient_error():
    return OperationalError("SELECT 1", {}, Exception("server closed the connection unexpectedly"))


class TestRetryDbLookup:
    def test_retries_transient_errors(self):
        attempts = []

        @retry_db_lookup("restaurant lookup", max_retries=3, sleep=lambda s: None)
        def lookup():
            attempts.append(1)
            if len(attempts) < 3:
                raise transient_error()
            return "restaurant"

        assert lookup() == "restaurant"
        assert len(attempts) == 3

    def test_gives_up_with_database_error(self):
        @retry_db_lookup("restaurant lookup", max_retries=2, sleep=lambda s: None)
        def lookup():
            raise transient_error()

        with pytest.raises(DatabaseError) as exc:
            lookup()
        assert exc.value.status_code == 500

    def test_other_errors_are_not_retried(self):
        attempts = []

        @retry_db_lookup("restaurant lookup", max_retries=3, sleep=lambda s: None)
        def lookup():
            attempts.append(1)
            raise IntegrityError("INSERT", {}, Exception("duplicate key"))

        with pytest.raises(IntegrityError):
            lookup()
        assert len(attempts) == 1

    def test_reset_called_between_attempts(self):
        resets = []

        class Store:
            @retry_db_lookup("restaurant lookup", max_retries=2, sleep=lambda s: None, reset=resets.append)
            def get(self):
                if not resets:
                    raise transient_error()
                return "ok"

        store = Store()
        assert store.get() == "ok"
        assert resets == [store]

    @pytest.mark.asyncio
    async def test_async_lookup_waits_without_blocking_the_loop(self):
        attempts = []
        ticks = []

        @retry_db_lookup("restaurant lookup", max_retries=2, delay=0.2)
        async def lookup():
            attempts.append(1)
            if len(attempts) < 2:
                raise transient_error()
            return "restaurant"

        async def ticker():
            while True:
                ticks.append(1)
                await asyncio.sleep(0.01)

        task = asyncio.create_task(ticker())
        try:
            assert await lookup() == "restaurant"
        finally:
            task.cancel()

        assert len(attempts) == 2
        assert len(ticks) >= 5

    @pytest.mark.asyncio
    async def test_async_lookup_gives_up_with_database_error(self):
        waits = []

        async def record_wait(seconds):
            waits.append(seconds)

        @retry_db_lookup("restaurant lookup", max_retries=3, delay=0.5, sleep=record_wait)
        async def lookup():
            raise transient_error()

        with pytest.raises(DatabaseError):
            await lookup()
        assert waits == [0.5, 0.5]


class TestCircuitBreaker:
    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker(CircuitBreakerConfig(name="t", failure_threshold=2, timeout_seconds=60))

        for _ in range(2):
            with pytest.raises(RuntimeError):
                async with breaker.call():
                    raise RuntimeError("down")

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitBreakerError):
            async with breaker.call():
                pass
        assert breaker.stats.rejected_calls == 1

    @pytest.mark.asyncio
    async def test_half_open_probe_closes(self):
        breaker = CircuitBreaker(
            CircuitBreakerConfig(name="t", failure_threshold=1, success_threshold=1, timeout_seconds=0)
        )
        with pytest.raises(RuntimeError):
            async with breaker.call():
                raise RuntimeError("down")
        assert breaker.state == CircuitState.OPEN

        async with breaker.call():
            pass

        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_reset(self):
        breaker = CircuitBreaker(CircuitBreakerConfig(name="t", failure_threshold=1, timeout_seconds=60))
        with pytest.raises(RuntimeError):
            async with breaker.call():
                raise RuntimeError("down")

        await breaker.reset()

        assert breaker.state == CircuitState.CLOSED


class TestStaffTokens:
    def test_round_trip(self):
        token = sign_jwt({"sub": "7", "restaurant_id": 3, "role": "kitchen"})
        claims = verify_jwt(token)
        assert (claims["restaurant_id"], claims["role"]) == (3, "kitchen")

    def test_expired(self):
        token = sign_jwt({"sub": "7", "restaurant_id": 3, "role": "kitchen"}, ttl_seconds=-10)
        with pytest.raises(UnauthorizedError) as exc:
            verify_jwt(token)
        assert exc.value.detail == "Token has expired"

    def test_missing_restaurant_claim(self):
        token = sign_jwt({"sub": "7", "role": "admin"})
        with pytest.raises(UnauthorizedError):
            verify_jwt(token)

    def test_non_staff_role(self):
        token = sign_jwt({"sub": "7", "restaurant_id": 3, "role": "customer"})
        with pytest.raises(ForbiddenError):
            verify_jwt(token)

    def test_role_and_tenant_guards(self):
        ctx = {"sub": "7", "restaurant_id": 3, "role": "captain"}
        require_roles(ctx, frozenset({"captain", "admin"}))
        require_restaurant(ctx, 3)

        with pytest.raises(ForbiddenError):
            require_roles(ctx, frozenset({"admin"}))
        with pytest.raises(ForbiddenError):
            require_restaurant(ctx, 4)


class RecordingHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestStructuredLogging:
    def test_keyword_fields_land_on_record(self):
        logger = get_logger("tests.structured")
        handler = RecordingHandler()
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        try:
            logger.info("Order placed", order_id=42, restaurant_id=7, total="262.50")
        finally:
            logger.removeHandler(handler)

        (record,) = handler.records
        assert record.getMessage() == "Order placed"
        assert record.fields == {"order_id": 42, "restaurant_id": 7, "total": "262.50"}
        assert record.funcName == "test_keyword_fields_land_on_record"

    def test_json_formatter_promotes_ids(self):
        record = logging.LogRecord("rest_api.orders", logging.INFO, __file__, 1, "Order placed", (), None)
        record.fields = {"order_id": 42, "restaurant_id": 7, "total": "262.50"}

        entry = json.loads(JsonFormatter().format(record))

        assert entry["order_id"] == 42
        assert entry["restaurant_id"] == 7
        assert entry["fields"] == {"total": "262.50"}

    def test_masking(self):
        assert mask_phone("+91 98765 43210") == "********3210"
        assert mask_email("owner@spiceroute.in") == "ow***@spiceroute.in"
        assert mask_phone(None) == "<no-phone>"
