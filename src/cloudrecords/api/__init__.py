"""API clients and communication modules."""

from .circuit_breaker import CircuitBreaker, CircuitBreakerManager
from .cloudkit_client import CloudKitWebClient
from .error_handling import (
    AccountUnavailableError,
    CircuitBreakerOpenException,
    ErrorCategory,
    RecordClientError,
    StatusResolutionError,
    StoreError,
    StoreOperationError,
    categorize_error,
)
from .signing import RequestSigner

__all__ = [
    "CloudKitWebClient",
    "CircuitBreaker",
    "CircuitBreakerManager",
    "CircuitBreakerOpenException",
    "ErrorCategory",
    "categorize_error",
    "RecordClientError",
    "AccountUnavailableError",
    "StatusResolutionError",
    "StoreOperationError",
    "StoreError",
    "RequestSigner",
]
