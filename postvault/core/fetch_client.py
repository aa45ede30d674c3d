"""Resilient JSON fetching against Instagram's web API."""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from postvault.core.exceptions import (
    AuthExpiredError,
    FetchError,
    FetchTimeoutError,
    NetworkError,
    ParsingError,
    RateLimitedError,
    RequestRejectedError,
    ServerError,
)
from postvault.core.rate_limiter import AdaptiveRateLimiter, RateLimitClass
from postvault.utils.config import (
    API_HEADERS,
    FETCH_TIMEOUT,
    INSTAGRAM_BASE_URL,
    MAX_RETRIES,
    RETRY_BACKOFF_BASE,
    RETRY_BACKOFF_MULTIPLIER,
)
from postvault.utils.logging import get_logger

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, FetchError) and exc.retryable


class FetchClient:
    """
    Issues authenticated JSON requests with an absolute timeout, error
    classification and exponential-backoff retries.

    Cookies ride on the shared httpx client; the CSRF token header is read
    from its ``csrftoken`` cookie on every request.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        limiter: AdaptiveRateLimiter,
        *,
        timeout: float = FETCH_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        backoff_base: float = RETRY_BACKOFF_BASE,
        backoff_multiplier: float = RETRY_BACKOFF_MULTIPLIER,
        sleep: SleepFunc = asyncio.sleep,
        referer: str = INSTAGRAM_BASE_URL + "/",
    ):
        """
        Initialize fetch client.

        Args:
            client: Shared HTTP client carrying the session cookies
            limiter: Rate limiter notified of throttling signals
            timeout: Absolute per-request timeout in seconds
            max_retries: Total attempts made by fetch_with_retry
            backoff_base: Base wait between retries in seconds
            backoff_multiplier: Exponential factor applied per attempt
            sleep: Awaitable used for retry waits
            referer: Referer header sent with every request
        """
        self.client = client
        self.limiter = limiter
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_multiplier = backoff_multiplier
        self.referer = referer
        self._sleep = sleep
        self.request_count = 0

    def _get_headers(self) -> dict:
        """Generate API request headers."""
        headers = dict(API_HEADERS)
        headers["Accept"] = "application/json"
        headers["Referer"] = self.referer
        csrf_token = self.client.cookies.get("csrftoken")
        if csrf_token:
            headers["X-CSRFToken"] = csrf_token
        return headers

    async def fetch_json(
        self,
        url: str,
        rate_class: RateLimitClass,
        params: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Perform a single GET request and decode its JSON body.

        Args:
            url: Absolute request URL
            rate_class: Request class notified when throttled
            params: Query parameters
            timeout: Override for the absolute timeout in seconds

        Returns:
            Decoded JSON payload

        Raises:
            RateLimitedError: On HTTP 429 or a non-JSON body (challenge page)
            AuthExpiredError: On HTTP 401/403
            ServerError: On HTTP 5xx
            RequestRejectedError: On any other 4xx
            FetchTimeoutError: If the absolute timeout expires
            NetworkError: On connection-level failures
            ParsingError: If a JSON response cannot be decoded
        """
        limit = timeout if timeout is not None else self.timeout
        self.request_count += 1

        try:
            response = await asyncio.wait_for(
                self.client.get(url, params=params, headers=self._get_headers()),
                timeout=limit,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise FetchTimeoutError(f"Request timed out after {limit:.0f}s: {url}")
        except httpx.TransportError as e:
            raise NetworkError(f"Network error fetching {url}: {e}")

        status = response.status_code
        if status == 429:
            self.limiter.record_throttled(rate_class)
            raise RateLimitedError("Rate limited by Instagram (HTTP 429)", status_code=status)
        if status in (401, 403):
            raise AuthExpiredError(f"Session rejected (HTTP {status})", status_code=status)
        if status >= 500:
            raise ServerError(f"Server error (HTTP {status})", status_code=status)
        if status >= 400:
            raise RequestRejectedError(f"HTTP {status}: {response.text[:100]}", status_code=status)

        content_type = response.headers.get("content-type", "")
        if "json" not in content_type:
            # Instagram serves an HTML challenge page instead of JSON when it throttles
            self.limiter.record_throttled(rate_class)
            raise RateLimitedError(
                f"Expected JSON but got '{content_type or 'no content type'}'",
                status_code=status,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ParsingError(f"Invalid JSON from {url}: {e}", status_code=status)

    def _backoff_wait(self, retry_state: RetryCallState) -> float:
        return self.backoff_base * self.backoff_multiplier ** retry_state.attempt_number

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"🔄 Attempt {retry_state.attempt_number} failed ({exc}), retrying in {wait:.1f}s"
        )

    async def fetch_with_retry(
        self,
        url: str,
        rate_class: RateLimitClass,
        params: Optional[dict] = None,
        max_retries: Optional[int] = None,
    ) -> Any:
        """
        Fetch JSON, retrying retryable failures with exponential backoff.

        Args:
            url: Absolute request URL
            rate_class: Request class notified when throttled
            params: Query parameters
            max_retries: Override for the total number of attempts

        Returns:
            Decoded JSON payload

        Raises:
            FetchError: The last error once attempts are exhausted, or the
                first non-retryable error
        """
        attempts = max_retries if max_retries is not None else self.max_retries
        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(attempts),
            wait=self._backoff_wait,
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )

        payload = None
        async for attempt in retrying:
            with attempt:
                payload = await self.fetch_json(url, rate_class, params=params)
        return payload
