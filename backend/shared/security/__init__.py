"""
Security module: staff token verification and webhook signatures.
"""

from shared.security.auth import (
    sign_jwt,
    verify_jwt,
    get_bearer_token,
    current_staff_context,
    require_roles,
    require_restaurant,
)
from shared.security.webhook_signature import (
    compute_webhook_signature,
    verify_webhook_signature,
)

__all__ = [
    # auth
    "sign_jwt",
    "verify_jwt",
    "get_bearer_token",
    "current_staff_context",
    "require_roles",
    "require_restaurant",
    # webhooks
    "compute_webhook_signature",
    "verify_webhook_signature",
]
