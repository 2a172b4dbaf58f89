"""Resilient HTTP client for Google APIs.

Wraps httpx with a fixed retry policy:

- Up to 3 attempts, sleeping 1s, 2s, 4s between attempts (no jitter).
- 4xx responses other than 401 fail immediately with ClientError.
- 401, 5xx and transport errors (timeouts, connection resets) are retried.
- Every attempt has a 30 second timeout.

The bearer token is sent in the Authorization header and never logged.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx

from revwave_core.domain.errors import ClientError, ExhaustedRetries

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_DELAYS = (1.0, 2.0, 4.0)


def is_retryable_status(status_code: int) -> bool:
    """Whether a response status should be retried."""
    if status_code == 401:
        return True
    return status_code >= 500


class ApiClient:
    """HTTP client with retry/backoff and error classification."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        delays: Sequence[float] = DEFAULT_DELAYS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            timeout: Per-attempt timeout in seconds.
            max_attempts: Total attempts before giving up.
            delays: Sleep before attempt n+1 is delays[n-1].
            sleep: Coroutine used to wait between attempts.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.timeout = timeout
        self.max_attempts = max_attempts
        self.delays = tuple(delays)
        self._sleep = sleep
        self._transport = transport

    def _delay_for(self, attempt: int) -> float:
        if not self.delays:
            return 0.0
        return self.delays[min(attempt, len(self.delays) - 1)]

    async def request(
        self,
        url: str,
        access_token: str,
        method: str = "GET",
        params: Optional[dict[str, Any]] = None,
        json: Optional[Any] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        """Send an authorized request, retrying transient failures.

        Args:
            url: Absolute request URL.
            access_token: OAuth bearer token.
            method: HTTP method.
            params: Query parameters.
            json: JSON body.
            headers: Extra headers.

        Returns:
            The successful (2xx/3xx) response.

        Raises:
            ClientError: On a 4xx response other than 401.
            ExhaustedRetries: When every attempt failed with a retryable error.
        """
        request_headers = {"Content-Type": "application/json"}
        if headers:
            request_headers.update(headers)
        request_headers["Authorization"] = f"Bearer {access_token}"

        last_error: Optional[str] = None

        for attempt in range(self.max_attempts):
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout, transport=self._transport
                ) as client:
                    response = await client.request(
                        method,
                        url,
                        params=params,
                        json=json,
                        headers=request_headers,
                    )
            except httpx.TransportError as e:
                last_error = f"{type(e).__name__}: {e}"
                logger.warning(
                    f"{method} {url} transport error on attempt "
                    f"{attempt + 1}/{self.max_attempts}: {type(e).__name__}"
                )
            else:
                if response.status_code < 400:
                    return response

                if not is_retryable_status(response.status_code):
                    logger.error(f"{method} {url} failed with {response.status_code}")
                    raise ClientError(
                        response.status_code,
                        f"Google API request failed with status {response.status_code}: "
                        f"{response.reason_phrase or 'Client error'}",
                    )

                last_error = f"HTTP {response.status_code}"
                logger.warning(
                    f"{method} {url} returned {response.status_code} on attempt "
                    f"{attempt + 1}/{self.max_attempts}"
                )

            if attempt < self.max_attempts - 1:
                await self._sleep(self._delay_for(attempt))

        logger.error(f"{method} {url} failed after {self.max_attempts} attempts")
        raise ExhaustedRetries(self.max_attempts, last_error)
