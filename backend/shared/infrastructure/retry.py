"""
Retry helper for transient database connectivity errors.

Only connection-level failures are retried; integrity errors and the
application's own exceptions propagate on the first attempt.
"""

import asyncio
import functools
import inspect
import time
from typing import Any, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, DisconnectionError, OperationalError

from shared.config.settings import settings
from shared.config.logging import get_logger
from shared.utils.exceptions import DatabaseError

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

TRANSIENT_DB_ERRORS: tuple[type[Exception], ...] = (OperationalError, DisconnectionError)


def _is_transient(error: Exception) -> bool:
    if isinstance(error, TRANSIENT_DB_ERRORS):
        return True
    return isinstance(error, DBAPIError) and bool(error.connection_invalidated)


class _RetryPolicy:
    """Attempt accounting shared by the sync and async wrappers."""

    def __init__(self, operation: str, max_retries: int | None, delay: float | None):
        self.operation = operation
        self.attempts = max(1, max_retries or settings.db_lookup_max_retries)
        self.wait = settings.db_lookup_retry_delay if delay is None else delay

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """False for non-transient errors; raises DatabaseError once attempts run out."""
        if not _is_transient(error):
            return False
        if attempt == self.attempts:
            logger.error(
                "Database lookup failed after retries",
                operation=self.operation,
                attempts=self.attempts,
                error=str(error),
            )
            raise DatabaseError(self.operation) from error
        logger.warning(
            "Transient database error, retrying",
            operation=self.operation,
            attempt=attempt,
            max_retries=self.attempts,
            error=str(error),
        )
        return True


def retry_db_lookup(
    operation: str,
    max_retries: int | None = None,
    delay: float | None = None,
    sleep: Callable[[float], Any] | None = None,
    reset: Callable[[Any], None] | None = None,
) -> Callable[[F], F]:
    """
    Retry the decorated lookup on transient connectivity errors.

    After the last attempt the error surfaces as ``DatabaseError`` (500).
    ``reset`` is called with the first positional argument (the store)
    before each retry, e.g. to roll back a session left unusable.

    Coroutine functions get an async wrapper that waits with
    ``asyncio.sleep`` (or awaits ``sleep``), so a retrying lookup never
    stalls the event loop. Plain functions wait with ``time.sleep``.

    Usage:
        @retry_db_lookup("restaurant lookup")
        def get_restaurant(self, restaurant_id): ...
    """

    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):
            async_sleep = sleep or asyncio.sleep

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                policy = _RetryPolicy(operation, max_retries, delay)
                for attempt in range(1, policy.attempts + 1):
                    try:
                        return await func(*args, **kwargs)
                    except Exception as e:
                        if not policy.should_retry(e, attempt):
                            raise
                        if reset is not None and args:
                            reset(args[0])
                        waited = async_sleep(policy.wait)
                        if inspect.isawaitable(waited):
                            await waited

            return async_wrapper  # type: ignore[return-value]

        sync_sleep = sleep or time.sleep

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            policy = _RetryPolicy(operation, max_retries, delay)
            for attempt in range(1, policy.attempts + 1):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if not policy.should_retry(e, attempt):
                        raise
                    if reset is not None and args:
                        reset(args[0])
                    sync_sleep(policy.wait)

        return wrapper  # type: ignore[return-value]

    return decorator
