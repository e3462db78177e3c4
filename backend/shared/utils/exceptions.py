"""
Centralized HTTP exceptions for consistent error handling.

Every domain failure maps to one of these, so routers never build status
codes by hand and the response body is always ``{"detail": ...}``.

Usage:
    from shared.utils.exceptions import NotFoundError, ValidationError

    raise NotFoundError("Order", order_id)
    raise ValidationError("Order must contain at least one item")
"""

from fastapi import HTTPException, status
from typing import Any

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging and response format.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("Order", 123)
        raise NotFoundError("Menu item", item_id, restaurant_id=restaurant_id)
    """

    def __init__(self, entity: str, entity_id: int | str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} with ID {entity_id} not found"
        else:
            detail = f"{entity} not found"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


class OrderNotFoundError(NotFoundError):
    """Order not found (or not visible to the caller's restaurant)."""

    def __init__(self, order_id: int | None = None, **log_context: Any):
        super().__init__("Order", order_id, **log_context)


class RestaurantNotFoundError(NotFoundError):
    """Restaurant not found or inactive."""

    def __init__(self, identifier: int | str | None = None, **log_context: Any):
        super().__init__("Restaurant", identifier, **log_context)


# =============================================================================
# 401 / 403 Errors
# =============================================================================


class UnauthorizedError(AppException):
    """Missing or invalid credentials (401)."""

    def __init__(self, detail: str = "Authentication required", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class ForbiddenError(AppException):
    """
    Authorization/permission error (403).

    Usage:
        raise ForbiddenError("update order status")
    """

    def __init__(self, action: str | None = None, **log_context: Any):
        if action:
            detail = f"Not authorized to {action}"
        else:
            detail = "Access denied"

        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            log_level="warning",
            action=action,
            **log_context,
        )


class InsufficientRoleError(ForbiddenError):
    """User doesn't have the required role."""

    def __init__(self, required_roles: list[str], **log_context: Any):
        roles_str = ", ".join(required_roles)
        super().__init__(
            f"perform this action (requires role: {roles_str})",
            required_roles=required_roles,
            **log_context,
        )


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error (400).

    Usage:
        raise ValidationError("Order must contain at least one item")
        raise ValidationError("Invalid quantity", field="quantity", value=-1)
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class InvalidPromoCodeError(ValidationError):
    """Promo code unknown, inactive, expired or exhausted."""

    def __init__(self, code: str, **log_context: Any):
        super().__init__("Invalid or expired promo code", code=code, **log_context)


class StateConflictError(AppException):
    """
    Operation not allowed in the entity's current state (400).

    Usage:
        raise StateConflictError("Order payment is not completed", order_id=order.id)
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class InvalidTransitionError(StateConflictError):
    """Requested order status is not reachable from the current one."""

    def __init__(self, from_status: str, to_status: str, allowed: list[str], **log_context: Any):
        allowed_str = ", ".join(allowed) if allowed else "none (terminal state)"
        detail = (
            f"Invalid status transition from {from_status} to {to_status}. "
            f"Allowed transitions: {allowed_str}"
        )
        self.allowed = list(allowed)
        super().__init__(
            detail,
            from_status=from_status,
            to_status=to_status,
            **log_context,
        )


# =============================================================================
# 500 Internal Server Errors
# =============================================================================


class InternalError(AppException):
    """
    Internal server error (500).

    Usage:
        raise InternalError("Failed to persist order", order_id=123)
    """

    def __init__(self, detail: str = "Internal server error", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            log_level="error",
            **log_context,
        )


class DatabaseError(InternalError):
    """Database operation failed."""

    def __init__(self, operation: str, **log_context: Any):
        detail = f"Database error during {operation}. Please try again."
        super().__init__(detail, operation=operation, **log_context)


class ExternalGatewayError(InternalError):
    """
    Payment gateway call failed, timed out or the circuit is open (500).

    The gateway's own message is passed through in the detail when it
    is a plain string; structured bodies are only logged.
    """

    def __init__(
        self,
        operation: str,
        gateway_message: str | None = None,
        retry_after: int | None = None,
        **log_context: Any,
    ):
        detail = f"Payment gateway error during {operation}"
        if gateway_message:
            detail = f"{detail}: {gateway_message}"

        self.operation = operation
        self.gateway_message = gateway_message
        super().__init__(detail, operation=operation, **log_context)
        if retry_after:
            self.headers = {"Retry-After": str(retry_after)}
