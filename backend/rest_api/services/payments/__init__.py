"""
Payment Services - split-payment gateway integration.

Provides:
- Cashfree client behind a circuit breaker (gateway.py)
- Vendor provisioning, payment sessions, webhooks and refunds (settlement.py)
"""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerStats,
    CircuitBreakerError,
    CircuitState,
    cashfree_breaker,
    get_all_breaker_stats,
)
from .gateway import (
    PaymentGateway,
    CashfreeGateway,
    GatewayRejectedError,
    GatewayOrderRequest,
    GatewaySession,
    VendorDetails,
    get_payment_gateway,
)
from .settlement import PaymentSettlementReconciler, gateway_order_id_for

__all__ = [
    # Circuit breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerStats",
    "CircuitBreakerError",
    "CircuitState",
    "cashfree_breaker",
    "get_all_breaker_stats",
    # Gateway
    "PaymentGateway",
    "CashfreeGateway",
    "GatewayRejectedError",
    "GatewayOrderRequest",
    "GatewaySession",
    "VendorDetails",
    "get_payment_gateway",
    # Settlement
    "PaymentSettlementReconciler",
    "gateway_order_id_for",
]
