"""
Payment gateway webhook signature verification.

The gateway signs ``timestamp + raw_body`` with HMAC-SHA256 keyed by the
merchant client secret and sends the base64 digest in
``x-webhook-signature``. The timestamp comes from ``x-webhook-timestamp``,
falling back to the ``timestamp`` field of the payload.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
from typing import Any

from shared.config.logging import get_logger

logger = get_logger(__name__)


def compute_webhook_signature(secret: str, timestamp: str, raw_body: bytes | str) -> str:
    """Return the base64 HMAC-SHA256 of ``timestamp + raw_body``."""
    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")
    message = timestamp.encode("utf-8") + raw_body
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def extract_timestamp(header_timestamp: str | None, raw_body: bytes) -> str:
    """Header timestamp if present, otherwise ``payload["timestamp"]`` (or empty)."""
    if header_timestamp:
        return header_timestamp
    try:
        payload: Any = json.loads(raw_body or b"{}")
    except ValueError:
        return ""
    if isinstance(payload, dict) and payload.get("timestamp") is not None:
        return str(payload["timestamp"])
    return ""


def verify_webhook_signature(
    secret: str,
    signature: str | None,
    raw_body: bytes,
    header_timestamp: str | None = None,
) -> bool:
    """
    Constant-time check of a webhook signature.

    A missing signature, or a missing secret, never verifies.
    """
    if not secret:
        logger.error("Webhook secret not configured, rejecting webhook")
        return False
    if not signature:
        logger.warning("Webhook missing signature header")
        return False

    timestamp = extract_timestamp(header_timestamp, raw_body)
    expected = compute_webhook_signature(secret, timestamp, raw_body)
    if not hmac.compare_digest(expected, signature.strip()):
        logger.warning("Webhook signature mismatch", received=signature[:8])
        return False
    return True
