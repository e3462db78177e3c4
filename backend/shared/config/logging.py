"""
Structured logging shared by the REST API and the WebSocket gateway.

Loggers accept keyword arguments as structured fields:

    logger.info("Order placed", order_id=42, restaurant_id=7)

Production writes one JSON object per line; development writes a compact
human-readable line. Every record carries the request correlation ID when
one is active.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings

# Fields lifted to the top level of JSON records so log search can filter on them
PROMOTED_FIELDS = ("restaurant_id", "order_id", "order_number", "channel")

# Keyword arguments the stdlib logger understands itself
_LOGGING_KWARGS = ("exc_info", "stack_info", "stacklevel", "extra")


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "fields", None) or {}


def _record_request_id(record: logging.LogRecord) -> str | None:
    request_id = getattr(record, "request_id", None)
    return request_id if request_id and request_id != "-" else None


class JsonFormatter(logging.Formatter):
    """One JSON document per record, for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        fields = dict(_record_fields(record))
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        request_id = _record_request_id(record)
        if request_id:
            entry["request_id"] = request_id
        for name in PROMOTED_FIELDS:
            if name in fields:
                entry[name] = fields.pop(name)
        if fields:
            entry["fields"] = fields
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if settings.debug:
            entry["at"] = f"{record.pathname}:{record.lineno}"
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """`12:04:05 INFO  rest_api.orders [ab12cd34] Order placed order_id=42`"""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True):
        super().__init__()
        self._use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:<5}"
        color = self.LEVEL_COLORS.get(record.levelno) if self._use_color else None
        if color:
            level = f"{color}{level}{self.RESET}"

        parts = [clock, level, record.name]
        request_id = _record_request_id(record)
        if request_id:
            parts.append(f"[{request_id[:8]}]")
        parts.append(record.getMessage())
        parts.extend(f"{key}={value}" for key, value in _record_fields(record).items())

        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class StructuredLogger(logging.Logger):
    """
    Logger whose level methods take structured fields as keyword arguments.

    Unknown keywords are collected into ``record.fields`` instead of raising
    ``TypeError`` the way ``logging.Logger`` would.
    """

    def _emit(self, level: int, msg: str, args: tuple, kwargs: dict[str, Any]) -> None:
        std = {key: kwargs.pop(key) for key in _LOGGING_KWARGS if key in kwargs}
        if kwargs:
            std["extra"] = {**std.get("extra", {}), "fields": kwargs}
        # _emit and the level method sit between the caller and Logger._log
        std["stacklevel"] = std.get("stacklevel", 1) + 2
        self._log(level, msg, args, **std)

    def debug(self, msg, *args, **kwargs):
        if self.isEnabledFor(logging.DEBUG):
            self._emit(logging.DEBUG, msg, args, kwargs)

    def info(self, msg, *args, **kwargs):
        if self.isEnabledFor(logging.INFO):
            self._emit(logging.INFO, msg, args, kwargs)

    def warning(self, msg, *args, **kwargs):
        if self.isEnabledFor(logging.WARNING):
            self._emit(logging.WARNING, msg, args, kwargs)

    def error(self, msg, *args, **kwargs):
        if self.isEnabledFor(logging.ERROR):
            self._emit(logging.ERROR, msg, args, kwargs)

    def critical(self, msg, *args, **kwargs):
        if self.isEnabledFor(logging.CRITICAL):
            self._emit(logging.CRITICAL, msg, args, kwargs)


logging.setLoggerClass(StructuredLogger)


def _resolve_level() -> int:
    if settings.log_level:
        return logging.getLevelNamesMapping().get(settings.log_level.upper(), logging.INFO)
    return logging.DEBUG if settings.debug else logging.INFO


def _wants_json() -> bool:
    if settings.log_format == "auto":
        return settings.environment == "production"
    return settings.log_format == "json"


def setup_logging() -> None:
    """Install the stdout handler on the root logger. Safe to call twice."""
    from shared.infrastructure.correlation import CorrelationIdFilter

    level = _resolve_level()
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CorrelationIdFilter())
    if _wants_json():
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(ConsoleFormatter(use_color=sys.stdout.isatty()))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    """
    Usage:
        from shared.config.logging import get_logger
        logger = get_logger(__name__)
        logger.error("Cashfree order failed", order_id=42, exc_info=True)
    """
    return logging.getLogger(name)  # type: ignore[return-value]


def mask_email(email: str | None) -> str:
    """"owner@spiceroute.in" -> "ow***@spiceroute.in"."""
    if not email or "@" not in email:
        return "<no-email>"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


def mask_phone(phone: str | None) -> str:
    """"+91 98765 43210" -> "********3210"."""
    if not phone:
        return "<no-phone>"
    digits = "".join(ch for ch in phone if ch.isdigit())
    if len(digits) <= 4:
        return "****"
    return "*" * (len(digits) - 4) + digits[-4:]


rest_api_logger = get_logger("rest_api")
ws_gateway_logger = get_logger("ws_gateway")
orders_logger = get_logger("rest_api.orders")
payment_logger = get_logger("rest_api.payment")
webhook_audit_logger = get_logger("security.webhooks")


def audit_webhook_event(
    outcome: str,
    webhook_type: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    **fields: Any,
) -> None:
    """
    Record a payment webhook decision on the audit logger.

    ``outcome`` is ``ACCEPTED`` for verified callbacks; anything else is
    logged as a warning.
    """
    log = webhook_audit_logger.info if outcome == "ACCEPTED" else webhook_audit_logger.warning
    log(
        f"Webhook {outcome.lower()}",
        outcome=outcome,
        webhook_type=webhook_type,
        reason=reason,
        ip_address=ip_address,
        **fields,
    )
