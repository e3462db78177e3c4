"""
Utilities module: Exceptions, money arithmetic, schemas, health checks.
"""

from shared.utils.exceptions import (
    AppException,
    NotFoundError,
    ForbiddenError,
    ValidationError,
    StateConflictError,
    ExternalGatewayError,
)
from shared.utils.money import round2, to_decimal, order_total, split_amount

__all__ = [
    # exceptions
    "AppException",
    "NotFoundError",
    "ForbiddenError",
    "ValidationError",
    "StateConflictError",
    "ExternalGatewayError",
    # money
    "round2",
    "to_decimal",
    "order_total",
    "split_amount",
]
