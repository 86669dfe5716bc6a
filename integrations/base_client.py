"""
Shared HTTP client for the external REST APIs.

Wraps httpx.AsyncClient with bearer auth, a timeout on every call and
bounded exponential-backoff retries for transient failures (network
errors, 5xx, 429). Retry-After is honoured on 429, up to the same cap as
the backoff delays. Anything left after
retries, and every other non-2xx response, surfaces as SyncError.
"""

from typing import Any, Optional

import httpx
import structlog
from pydantic import SecretStr
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from exceptions import SyncError

logger = structlog.get_logger(__name__)

# Response body excerpt kept in error details
ERROR_BODY_LIMIT = 500


class TransientHttpError(Exception):
    """Retryable failure: network error, 5xx or 429."""

    def __init__(self, message: str, status: Optional[int] = None, retry_after: Optional[float] = None):
        self.status = status
        self.retry_after = retry_after
        super().__init__(message)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After in seconds; HTTP-date values are not supported."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class ApiClient:
    """
    Base class for the inventory and marketplace clients.

    Args:
        base_url: API root, without trailing slash
        token: Bearer token
        timeout_seconds: Total timeout per request
        max_attempts: Attempts per call, first try included
        base_delay_seconds: First backoff delay; doubles per retry
        max_delay_seconds: Cap on any single delay, Retry-After included
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    service_name = "api"

    def __init__(
        self,
        base_url: str,
        token: SecretStr,
        timeout_seconds: float = 30.0,
        max_attempts: int = 3,
        base_delay_seconds: float = 1.0,
        max_delay_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        extra_headers: Optional[dict[str, str]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.max_attempts = max_attempts
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        headers = {
            "Authorization": f"Bearer {token.get_secret_value()}",
            "Content-Type": "application/json",
            **(extra_headers or {}),
        }
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 10.0)),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    # ===================
    # REQUESTS
    # ===================

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        """
        Send a request with retries.

        Returns:
            Decoded JSON body ({} for an empty body)

        Raises:
            SyncError: Non-transient failure, or retries exhausted
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type(TransientHttpError),
            before_sleep=self._log_retry,
            reraise=True,
        )
        result: Any = None
        try:
            async for attempt in retrying:
                with attempt:
                    result = await self._send(method, path, params, json)
        except TransientHttpError as e:
            logger.error(
                "api_request_failed",
                error_type="API_ERROR",
                service=self.service_name,
                method=method,
                path=path,
                status=e.status,
                attempts=self.max_attempts,
                error=str(e),
            )
            raise SyncError(
                service=self.service_name,
                message=f"{method} {path} failed after {self.max_attempts} attempts: {e}",
                method=method,
                path=path,
                status=e.status,
                transient=True,
            )
        return result

    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]],
        json: Optional[Any],
    ) -> Any:
        try:
            response = await self._client.request(method, path, params=params, json=json)
        except httpx.TransportError as e:
            raise TransientHttpError(f"{type(e).__name__}: {e}")

        status = response.status_code
        if status == 429:
            raise TransientHttpError(
                "rate limited",
                status=status,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )
        if status >= 500:
            raise TransientHttpError(f"server error {status}", status=status)
        if response.is_error:
            body = response.text[:ERROR_BODY_LIMIT]
            logger.error(
                "api_request_rejected",
                error_type="API_ERROR",
                service=self.service_name,
                method=method,
                path=path,
                status=status,
                response=body,
            )
            raise SyncError(
                service=self.service_name,
                message=f"{method} {path} returned {status}",
                method=method,
                path=path,
                status=status,
                transient=False,
                details={"response": body},
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            raise SyncError(
                service=self.service_name,
                message=f"{method} {path} returned a non-JSON body",
                method=method,
                path=path,
                status=status,
            )

    # ===================
    # RETRY POLICY
    # ===================

    def _wait(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome else None
        if isinstance(error, TransientHttpError) and error.retry_after is not None:
            return min(error.retry_after, self.max_delay_seconds)
        backoff = wait_exponential(
            multiplier=self.base_delay_seconds, max=self.max_delay_seconds, exp_base=2
        )
        return backoff(retry_state)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "api_request_retrying",
            service=self.service_name,
            attempt=retry_state.attempt_number,
            max_attempts=self.max_attempts,
            delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
            status=getattr(error, "status", None),
            error=str(error),
        )
