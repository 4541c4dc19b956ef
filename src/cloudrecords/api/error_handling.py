"""Error handling and categorization for record operations."""

import asyncio
import json
from enum import Enum
from typing import Any, Mapping, Optional

import aiohttp

from cloudrecords.config.api import CloudKitAPIConfig
from cloudrecords.core.models import AccountStatus


class ErrorCategory(Enum):
    """Categories for different types of store errors."""
    NETWORK = "network"
    SERVER = "server"
    CLIENT = "client"
    TIMEOUT = "timeout"
    DATA = "data"
    CONFLICT = "conflict"
    QUOTA = "quota"
    PERMISSION = "permission"
    UNKNOWN = "unknown"


# CloudKit server error codes grouped by the category callers act on
_CONFLICT_CODES = {"CONFLICT", "EXISTS"}
_QUOTA_CODES = {"QUOTA_EXCEEDED", "LIMIT_EXCEEDED"}
_PERMISSION_CODES = {"ACCESS_DENIED", "AUTHENTICATION_REQUIRED", "AUTHENTICATION_FAILED"}
_SERVER_CODES = {"THROTTLED", "TRY_AGAIN_LATER", "INTERNAL_ERROR", "SERVICE_UNAVAILABLE"}
_CLIENT_CODES = {"BAD_REQUEST", "NOT_FOUND", "VALIDATING_REFERENCE_ERROR", "ZONE_NOT_FOUND", "UNKNOWN_ERROR"}


class StoreError(Exception):
    """A failure reported by a record store for a request or a single record."""

    def __init__(
        self,
        server_error_code: str,
        reason: str = "",
        record_name: Optional[str] = None,
        status: Optional[int] = None,
    ):
        self.server_error_code = server_error_code
        self.reason = reason
        self.record_name = record_name
        self.status = status
        message = f"{server_error_code}: {reason}" if reason else server_error_code
        if record_name:
            message = f"{message} (record {record_name})"
        super().__init__(message)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], status: Optional[int] = None) -> "StoreError":
        """Build an error from a CloudKit error object."""
        return cls(
            server_error_code=str(payload.get("serverErrorCode") or "UNKNOWN_ERROR"),
            reason=str(payload.get("reason") or ""),
            record_name=payload.get("recordName"),
            status=status,
        )

    @property
    def retryable(self) -> bool:
        if self.server_error_code in CloudKitAPIConfig.RETRYABLE_SERVER_CODES:
            return True
        return self.status is not None and (self.status == 429 or 500 <= self.status < 600)


class CircuitBreakerOpenException(Exception):
    """Exception raised when an operation is attempted while the circuit breaker is open."""
    def __init__(self, message="Circuit breaker is open and cannot accept new calls"):
        self.message = message
        super().__init__(self.message)


class RecordClientError(Exception):
    """Base class for errors surfaced by the gated record client."""


class AccountUnavailableError(RecordClientError):
    """The account status resolved to something other than available."""

    def __init__(self, status: AccountStatus, operation: Optional[str] = None):
        self.status = status
        self.operation = operation
        where = f" for {operation}" if operation else ""
        super().__init__(f"Cloud account is not available{where}: {status.value}")


class StatusResolutionError(RecordClientError):
    """The account status check itself failed."""

    def __init__(self, cause: BaseException, operation: Optional[str] = None):
        self.cause = cause
        self.operation = operation
        where = f" for {operation}" if operation else ""
        super().__init__(f"Could not resolve account status{where}: {cause}")


class StoreOperationError(RecordClientError):
    """A delegated query, save or modify call failed in the store."""

    def __init__(self, operation: str, cause: BaseException, category: Optional[ErrorCategory] = None):
        self.operation = operation
        self.cause = cause
        self.category = category or categorize_error(cause)
        super().__init__(f"{operation} failed with {self.category.value} error: {cause}")


def _categorize_store_error(exception: StoreError) -> ErrorCategory:
    code = exception.server_error_code
    if code in _CONFLICT_CODES:
        return ErrorCategory.CONFLICT
    elif code in _QUOTA_CODES:
        return ErrorCategory.QUOTA
    elif code in _PERMISSION_CODES:
        return ErrorCategory.PERMISSION
    elif code in _SERVER_CODES:
        return ErrorCategory.SERVER
    elif code in _CLIENT_CODES:
        return ErrorCategory.CLIENT

    status = exception.status
    if status is None:
        return ErrorCategory.UNKNOWN
    elif status == 409:
        return ErrorCategory.CONFLICT
    elif status in (401, 403, 421):
        return ErrorCategory.PERMISSION
    elif status == 429 or 500 <= status < 600:
        return ErrorCategory.SERVER
    elif 400 <= status < 500:
        return ErrorCategory.CLIENT
    else:
        return ErrorCategory.UNKNOWN


def categorize_error(exception: BaseException) -> ErrorCategory:
    """Categorize an exception into error types for better handling."""
    if isinstance(exception, StoreOperationError):
        return exception.category
    elif isinstance(exception, StoreError):
        return _categorize_store_error(exception)
    elif isinstance(exception, asyncio.TimeoutError):
        return ErrorCategory.TIMEOUT
    elif isinstance(exception, CircuitBreakerOpenException):
        return ErrorCategory.NETWORK
    elif isinstance(exception, aiohttp.ClientConnectorError):
        return ErrorCategory.NETWORK
    elif isinstance(exception, aiohttp.ClientResponseError):
        if exception.status == 409:
            return ErrorCategory.CONFLICT
        elif 400 <= exception.status < 500:
            return ErrorCategory.CLIENT
        elif 500 <= exception.status < 600:
            return ErrorCategory.SERVER
        else:
            return ErrorCategory.UNKNOWN
    elif isinstance(exception, aiohttp.ClientError):
        return ErrorCategory.NETWORK
    elif isinstance(exception, (json.JSONDecodeError, ValueError, KeyError, TypeError)):
        return ErrorCategory.DATA
    else:
        return ErrorCategory.UNKNOWN
