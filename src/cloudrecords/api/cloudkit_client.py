"""HTTP client for CloudKit Web Services."""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp
import backoff

from cloudrecords.config.api import CloudKitAPIConfig
from cloudrecords.core.models import DatabaseScope

from .circuit_breaker import CircuitBreakerManager, circuit_breaker_manager
from .error_handling import CircuitBreakerOpenException, ErrorCategory, StoreError, categorize_error
from .signing import RequestSigner

_module_logger = logging.getLogger(__name__)


def _backoff_handler(details):
    """Log a backoff attempt with its error category."""
    exception = details.get("exception")
    error_category = categorize_error(exception) if exception is not None else ErrorCategory.UNKNOWN
    _module_logger.warning(
        f"Backing off {details['wait']:.1f}s after {error_category.value} error "
        f"(attempt {details['tries']}/{CloudKitAPIConfig.MAX_RETRIES}): {exception}"
    )


def _is_permanent(exception: Exception) -> bool:
    """Server-reported errors are only retried when the server says so."""
    return isinstance(exception, StoreError) and not exception.retryable


def _may_have_been_applied(exception: Exception) -> bool:
    """Whether a failed write could still have been committed by the server.

    Only a refused connection or an explicit throttle proves the request was
    never applied; anything else makes a replay unsafe.
    """
    if isinstance(exception, StoreError):
        return not (exception.server_error_code == "THROTTLED" or exception.status == 429)
    return not isinstance(exception, aiohttp.ClientConnectorError)


def _counts_as_outage(exception: Exception) -> bool:
    """Whether a failure says something about the endpoint's health."""
    if isinstance(exception, StoreError):
        return exception.retryable
    return isinstance(exception, (aiohttp.ClientError, asyncio.TimeoutError))


def _with_retries(giveup):
    return backoff.on_exception(
        backoff.expo,
        (aiohttp.ClientError, asyncio.TimeoutError, StoreError),
        max_tries=lambda: CloudKitAPIConfig.MAX_RETRIES,
        giveup=giveup,
        on_backoff=_backoff_handler,
        jitter=backoff.full_jitter,
        base=lambda: CloudKitAPIConfig.RETRY_BASE_DELAY,
        max_value=lambda: CloudKitAPIConfig.RETRY_MAX_DELAY,
    )


class CloudKitWebClient:
    """Client for the CloudKit Web Services database API.

    Authenticates with an API token (plus an optional web auth token for a
    signed-in user) or with a server-to-server ``RequestSigner``. The session
    is created lazily so the client can be built outside an event loop.
    """

    def __init__(
        self,
        container: str,
        environment: str = "development",
        api_token: Optional[str] = None,
        web_auth_token: Optional[str] = None,
        signer: Optional[RequestSigner] = None,
        session: Optional[aiohttp.ClientSession] = None,
        breakers: Optional[CircuitBreakerManager] = None,
        logger_obj: Optional[logging.Logger] = None,
    ):
        if not api_token and signer is None:
            raise ValueError("CloudKit requests need an API token or a server-to-server signer")
        self.container = container
        self.environment = environment
        self.api_token = api_token
        self.web_auth_token = web_auth_token
        self.signer = signer
        self.logger = logger_obj or logging.getLogger(__name__)
        self.config = CloudKitAPIConfig
        self._session = session
        self._owns_session = session is None
        self._breakers = breakers or circuit_breaker_manager

    async def __aenter__(self) -> "CloudKitWebClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def database_path(self, scope: DatabaseScope, operation: str) -> str:
        return self.config.get_database_path(self.container, self.environment, scope.value, operation)

    def _auth_params(self) -> Dict[str, str]:
        params = {}
        if self.api_token:
            params["ckAPIToken"] = self.api_token
        if self.web_auth_token:
            params["ckWebAuthToken"] = self.web_auth_token
        return params

    @_with_retries(giveup=_is_permanent)
    async def request_json(self, method: str, subpath: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a read-only request, retrying transient failures."""
        return await self._send(method, subpath, payload)

    @_with_retries(giveup=_may_have_been_applied)
    async def request_json_once(
        self, method: str, subpath: str, payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Send a write that must not be applied twice.

        It is retried only when the failure proves the server never applied
        it; a timeout or a dropped connection is raised to the caller.
        """
        return await self._send(method, subpath, payload)

    async def _send(self, method: str, subpath: str, payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Send one request through the circuit breaker, returning the decoded body."""
        endpoint = self.config.BASE_URL

        if not self._breakers.can_attempt(endpoint):
            raise CircuitBreakerOpenException(f"Circuit breaker is open for {endpoint}")

        body = json.dumps(payload).encode("utf-8") if payload is not None else b""
        headers = {"Content-Type": "application/json"} if payload is not None else {}
        if self.signer is not None:
            headers.update(self.signer.sign_headers(body, subpath))

        try:
            timeout = aiohttp.ClientTimeout(total=self.config.REQUEST_TIMEOUT)
            async with self._get_session().request(
                method,
                self.config.get_url(subpath),
                data=body or None,
                headers=headers,
                params=self._auth_params(),
                timeout=timeout,
            ) as resp:
                text = await resp.text()
                status = resp.status

            try:
                data = json.loads(text) if text else {}
            except ValueError:
                if status >= 400:
                    raise StoreError("HTTP_ERROR", text[:200], status=status) from None
                raise

            if status >= 400:
                raise StoreError.from_payload(data if isinstance(data, dict) else {}, status=status)

        except Exception as e:
            if _counts_as_outage(e):
                self._breakers.record_failure(endpoint)
            error_category = categorize_error(e)
            log = self.logger.error if _counts_as_outage(e) else self.logger.warning
            log(f"{method} {subpath} failed with {error_category.value} error: {e}")
            raise

        self._breakers.record_success(endpoint)
        return data

    async def fetch_caller(self, scope: DatabaseScope) -> Dict[str, Any]:
        """Fetch the user record of the caller; fails when nobody is signed in."""
        return await self.request_json("GET", self.database_path(scope, "users/caller"))

    async def query_records(self, scope: DatabaseScope, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request_json("POST", self.database_path(scope, "records/query"), body)

    async def modify_records(self, scope: DatabaseScope, body: Dict[str, Any]) -> Dict[str, Any]:
        # Never replayed after a failure that may have been committed
        return await self.request_json_once("POST", self.database_path(scope, "records/modify"), body)
