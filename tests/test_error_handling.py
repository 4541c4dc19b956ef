"""
Tests for error categorization and the client-facing error types.
"""

import asyncio
import json
from unittest.mock import MagicMock

import aiohttp
import pytest

from cloudrecords.api.error_handling import (
    AccountUnavailableError,
    CircuitBreakerOpenException,
    ErrorCategory,
    RecordClientError,
    StatusResolutionError,
    StoreError,
    StoreOperationError,
    categorize_error,
)
from cloudrecords.core.models import AccountStatus


class TestStoreError:
    def test_from_payload(self):
        error = StoreError.from_payload(
            {"recordName": "n1", "serverErrorCode": "CONFLICT", "reason": "oplock failed"}, status=409
        )

        assert error.server_error_code == "CONFLICT"
        assert error.reason == "oplock failed"
        assert error.record_name == "n1"
        assert error.status == 409
        assert str(error) == "CONFLICT: oplock failed (record n1)"

    def test_from_empty_payload(self):
        error = StoreError.from_payload({})

        assert error.server_error_code == "UNKNOWN_ERROR"
        assert str(error) == "UNKNOWN_ERROR"

    @pytest.mark.parametrize(
        "code,status,retryable",
        [
            ("THROTTLED", None, True),
            ("TRY_AGAIN_LATER", 503, True),
            ("INTERNAL_ERROR", 500, True),
            ("HTTP_ERROR", 502, True),
            ("HTTP_ERROR", 429, True),
            ("CONFLICT", 409, False),
            ("BAD_REQUEST", 400, False),
            ("NOT_FOUND", None, False),
        ],
    )
    def test_retryable(self, code, status, retryable):
        assert StoreError(code, status=status).retryable is retryable


class TestCategorizeError:
    @pytest.mark.parametrize(
        "code,expected",
        [
            ("CONFLICT", ErrorCategory.CONFLICT),
            ("EXISTS", ErrorCategory.CONFLICT),
            ("QUOTA_EXCEEDED", ErrorCategory.QUOTA),
            ("ACCESS_DENIED", ErrorCategory.PERMISSION),
            ("AUTHENTICATION_REQUIRED", ErrorCategory.PERMISSION),
            ("THROTTLED", ErrorCategory.SERVER),
            ("BAD_REQUEST", ErrorCategory.CLIENT),
            ("ZONE_NOT_FOUND", ErrorCategory.CLIENT),
        ],
    )
    def test_server_error_codes(self, code, expected):
        assert categorize_error(StoreError(code)) == expected

    @pytest.mark.parametrize(
        "status,expected",
        [
            (409, ErrorCategory.CONFLICT),
            (401, ErrorCategory.PERMISSION),
            (421, ErrorCategory.PERMISSION),
            (429, ErrorCategory.SERVER),
            (503, ErrorCategory.SERVER),
            (413, ErrorCategory.CLIENT),
            (None, ErrorCategory.UNKNOWN),
        ],
    )
    def test_unknown_codes_fall_back_to_status(self, status, expected):
        assert categorize_error(StoreError("HTTP_ERROR", status=status)) == expected

    def test_timeout_error(self):
        assert categorize_error(asyncio.TimeoutError()) == ErrorCategory.TIMEOUT

    def test_circuit_breaker_open(self):
        assert categorize_error(CircuitBreakerOpenException()) == ErrorCategory.NETWORK

    def test_network_errors(self):
        connector_error = aiohttp.ClientConnectorError(MagicMock(), OSError("refused"))

        assert categorize_error(connector_error) == ErrorCategory.NETWORK
        assert categorize_error(aiohttp.ClientConnectionError("reset")) == ErrorCategory.NETWORK

    @pytest.mark.parametrize(
        "status,expected",
        [(409, ErrorCategory.CONFLICT), (404, ErrorCategory.CLIENT), (500, ErrorCategory.SERVER)],
    )
    def test_client_response_errors(self, status, expected):
        error = aiohttp.ClientResponseError(MagicMock(), (), status=status)

        assert categorize_error(error) == expected

    def test_data_errors(self):
        assert categorize_error(json.JSONDecodeError("bad", "doc", 0)) == ErrorCategory.DATA
        assert categorize_error(KeyError("recordName")) == ErrorCategory.DATA
        assert categorize_error(ValueError("bad value")) == ErrorCategory.DATA

    def test_unknown_errors(self):
        assert categorize_error(RuntimeError("unexpected")) == ErrorCategory.UNKNOWN

    def test_wrapped_error_keeps_its_category(self):
        wrapped = StoreOperationError("save_record", StoreError("CONFLICT"))

        assert categorize_error(wrapped) == ErrorCategory.CONFLICT


class TestClientErrors:
    def test_hierarchy(self):
        assert issubclass(AccountUnavailableError, RecordClientError)
        assert issubclass(StatusResolutionError, RecordClientError)
        assert issubclass(StoreOperationError, RecordClientError)

    def test_account_unavailable_message(self):
        error = AccountUnavailableError(AccountStatus.RESTRICTED, "save_record")

        assert error.status == AccountStatus.RESTRICTED
        assert str(error) == "Cloud account is not available for save_record: restricted"

    def test_status_resolution_keeps_cause(self):
        cause = TimeoutError("slow")
        error = StatusResolutionError(cause)

        assert error.cause is cause
        assert str(error) == "Could not resolve account status: slow"

    def test_store_operation_message(self):
        error = StoreOperationError("fetch_records", StoreError("BAD_REQUEST", "bad filter"))

        assert error.category == ErrorCategory.CLIENT
        assert str(error) == "fetch_records failed with client error: BAD_REQUEST: bad filter"

    def test_explicit_category_wins(self):
        error = StoreOperationError("update_record", ValueError("empty"), category=ErrorCategory.CONFLICT)

        assert error.category == ErrorCategory.CONFLICT
