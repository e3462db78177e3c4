"""
Circuit breaker for payment gateway calls.

    CLOSED ──(failure_threshold consecutive failures)──> OPEN
    OPEN ──(timeout_seconds elapsed)──> HALF_OPEN
    HALF_OPEN ──(success_threshold probe successes)──> CLOSED
    HALF_OPEN ──(any probe failure)──> OPEN

Only outages count as failures. The gateway client raises business
rejections (4xx) outside the protected block, or lists them in
``ignored_exceptions``.

Usage:
    async with cashfree_breaker.call():
        response = await client.post(...)
"""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import AsyncIterator, Callable

from shared.config.logging import get_logger
from shared.config.settings import settings

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    name: str
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 30.0
    # Probe calls allowed in flight while HALF_OPEN
    half_open_max_calls: int = 2
    ignored_exceptions: tuple[type[BaseException], ...] = field(default_factory=tuple)


@dataclass
class CircuitBreakerStats:
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0


class CircuitBreakerError(Exception):
    """The breaker refused the call; ``retry_after`` is in seconds."""

    def __init__(self, breaker_name: str, retry_after: float):
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        super().__init__(f"{breaker_name} circuit is open, retry in {retry_after:.1f}s")


class CircuitBreaker:
    def __init__(self, config: CircuitBreakerConfig, clock: Callable[[], float] = time.monotonic):
        self.config = config
        self._clock = clock
        self._lock = asyncio.Lock()
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._probe_successes = 0
        self._probes_in_flight = 0
        self._opened_at = 0.0
        self.stats = CircuitBreakerStats()

    @property
    def state(self) -> CircuitState:
        return self._state

    def _transition(self, target: CircuitState) -> None:
        if target is self._state:
            return
        logger.info(
            "Circuit breaker state change",
            breaker=self.config.name,
            from_state=self._state.value,
            to_state=target.value,
        )
        self._state = target
        self.stats.state_changes += 1
        self._probe_successes = 0
        self._probes_in_flight = 0
        if target is CircuitState.OPEN:
            self._opened_at = self._clock()
        elif target is CircuitState.CLOSED:
            self._consecutive_failures = 0

    async def _acquire(self) -> None:
        async with self._lock:
            if self._state is CircuitState.OPEN:
                remaining = self.config.timeout_seconds - (self._clock() - self._opened_at)
                if remaining > 0:
                    self.stats.rejected_calls += 1
                    raise CircuitBreakerError(self.config.name, remaining)
                self._transition(CircuitState.HALF_OPEN)

            if self._state is CircuitState.HALF_OPEN:
                if self._probes_in_flight >= self.config.half_open_max_calls:
                    self.stats.rejected_calls += 1
                    raise CircuitBreakerError(self.config.name, 1.0)
                self._probes_in_flight += 1

    async def _on_success(self) -> None:
        async with self._lock:
            self.stats.total_calls += 1
            self.stats.successful_calls += 1
            if self._state is CircuitState.HALF_OPEN:
                self._probes_in_flight = max(0, self._probes_in_flight - 1)
                self._probe_successes += 1
                if self._probe_successes >= self.config.success_threshold:
                    self._transition(CircuitState.CLOSED)
            else:
                self._consecutive_failures = 0

    async def _on_failure(self, error: BaseException) -> None:
        async with self._lock:
            self.stats.total_calls += 1
            self.stats.failed_calls += 1
            self._consecutive_failures += 1
            logger.warning(
                "Gateway call failed",
                breaker=self.config.name,
                error=str(error),
                consecutive_failures=self._consecutive_failures,
            )
            if (
                self._state is CircuitState.HALF_OPEN
                or self._consecutive_failures >= self.config.failure_threshold
            ):
                self._transition(CircuitState.OPEN)

    @asynccontextmanager
    async def call(self) -> AsyncIterator[None]:
        """
        Guard one outbound call.

        Raises:
            CircuitBreakerError: the circuit is open (or saturated with probes)
        """
        await self._acquire()
        try:
            yield
        except self.config.ignored_exceptions:
            await self._on_success()
            raise
        except Exception as e:
            await self._on_failure(e)
            raise
        await self._on_success()

    async def reset(self) -> None:
        async with self._lock:
            self._transition(CircuitState.CLOSED)
            self._consecutive_failures = 0

    def snapshot(self) -> dict:
        return {"state": self._state.value, **asdict(self.stats)}


cashfree_breaker = CircuitBreaker(
    CircuitBreakerConfig(
        name="cashfree",
        failure_threshold=settings.payment_breaker_failure_threshold,
        timeout_seconds=settings.payment_breaker_open_seconds,
    )
)

_BREAKERS: dict[str, CircuitBreaker] = {"cashfree": cashfree_breaker}


def get_all_breaker_stats() -> dict[str, dict]:
    """Per-breaker state and counters for the detailed health endpoint."""
    return {name: breaker.snapshot() for name, breaker in _BREAKERS.items()}
