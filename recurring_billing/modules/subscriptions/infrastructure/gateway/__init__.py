"""
Payment gateway integrations.
"""

from .base import GatewayOutcome, PaymentGateway
from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from .http_gateway import HTTPPaymentGateway

__all__ = [
    "GatewayOutcome",
    "PaymentGateway",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "HTTPPaymentGateway",
]
