"""API configuration for CloudKit Web Services endpoints."""

from enum import Enum


class CircuitBreakerState(Enum):
    """States for the circuit breaker pattern."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CloudKitAPIConfig:
    """CloudKit Web Services configuration and settings."""

    # Web service endpoint
    BASE_URL = "https://api.apple-cloudkit.com"
    API_VERSION = "1"

    # Request settings
    QUERY_PAGE_SIZE = 200
    MAX_RETRIES = 5
    REQUEST_TIMEOUT = 60

    # Circuit breaker settings
    CIRCUIT_BREAKER_FAILURE_THRESHOLD = 5
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT = 60

    # Retry settings
    RETRY_BASE_DELAY = 2
    RETRY_MAX_DELAY = 60

    # Server error codes that are worth retrying
    RETRYABLE_SERVER_CODES = frozenset({"THROTTLED", "TRY_AGAIN_LATER", "INTERNAL_ERROR", "SERVICE_UNAVAILABLE"})

    @classmethod
    def get_database_path(cls, container: str, environment: str, scope: str, operation: str) -> str:
        """Get the request subpath for a database operation.

        The subpath is also what server-to-server requests sign, so it never
        carries the query string.
        """
        return f"/database/{cls.API_VERSION}/{container}/{environment}/{scope}/{operation}"

    @classmethod
    def get_url(cls, subpath: str) -> str:
        """Get the full URL for a request subpath."""
        return f"{cls.BASE_URL}{subpath}"
