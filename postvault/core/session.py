"""Per-run extraction context: HTTP client, rate limiter and post cache."""

import asyncio
import json
import random
from pathlib import Path
from typing import Optional

import httpx

from postvault.core.exceptions import AuthExpiredError, ScrapingFailedError
from postvault.core.fetch_client import FetchClient, SleepFunc
from postvault.core.rate_limiter import AdaptiveRateLimiter, RateLimitClass
from postvault.models.data_models import PostRecord
from postvault.utils.config import (
    CONNECT_TIMEOUT,
    FETCH_TIMEOUT,
    MAX_RETRIES,
    RETRY_BACKOFF_BASE,
    RETRY_BACKOFF_MULTIPLIER,
    USER_AGENTS,
)
from postvault.utils.logging import get_logger

logger = get_logger(__name__)


def load_storage_cookies(storage_state: Path) -> httpx.Cookies:
    """
    Read Instagram cookies from a Playwright storage-state file.

    Args:
        storage_state: Path written by ``context.storage_state(path=...)``

    Returns:
        Cookie jar for the httpx client

    Raises:
        AuthExpiredError: If the file is missing or holds no session cookie
    """
    if not storage_state.exists():
        raise AuthExpiredError(f"No saved session at {storage_state}")

    data = json.loads(storage_state.read_text(encoding="utf-8"))
    cookies = httpx.Cookies()
    for cookie in data.get("cookies", []):
        domain = cookie.get("domain", "")
        if "instagram.com" not in domain:
            continue
        cookies.set(cookie["name"], cookie["value"], domain=domain, path=cookie.get("path", "/"))

    if "sessionid" not in {c.get("name") for c in data.get("cookies", [])}:
        raise AuthExpiredError("Saved session has no sessionid cookie")

    logger.debug(f"Loaded {len(cookies)} cookies from {storage_state}")
    return cookies


class PostCache:
    """Single-slot cache for the post located on the current page view."""

    def __init__(self):
        self._record: Optional[PostRecord] = None

    def get(self, shortcode: str) -> Optional[PostRecord]:
        if self._record is not None and self._record.shortcode == shortcode:
            return self._record
        return None

    def store(self, record: PostRecord) -> None:
        self._record = record

    def clear(self) -> None:
        self._record = None


class ExtractionSession:
    """
    Owns everything that must outlive a single post extraction.

    One session spans one CLI command or batch run: the rate limiter keeps
    its backoff multipliers across posts, while the post cache is cleared on
    every navigation.

    Usage:
        async with ExtractionSession(cookies=cookies) as session:
            await PostExtractor(session).extract_comments(html, url)
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        cookies: Optional[httpx.Cookies] = None,
        limiter: Optional[AdaptiveRateLimiter] = None,
        sleep: SleepFunc = asyncio.sleep,
        timeout: float = FETCH_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        backoff_base: float = RETRY_BACKOFF_BASE,
        backoff_multiplier: float = RETRY_BACKOFF_MULTIPLIER,
    ):
        """
        Initialize session.

        Args:
            client: Existing HTTP client (created on context entry if omitted)
            cookies: Session cookies for a client created here
            limiter: Shared rate limiter (a fresh one if omitted)
            sleep: Awaitable used for every delay, injectable for tests
            timeout: Absolute per-request timeout in seconds
            max_retries: Total attempts per request
            backoff_base: Base wait between retries in seconds
            backoff_multiplier: Exponential factor between retries
        """
        self.client = client
        self.cookies = cookies
        self.limiter = limiter or AdaptiveRateLimiter()
        self.post_cache = PostCache()
        self._sleep = sleep
        self._owns_client = False
        self._fetch_options = dict(
            timeout=timeout,
            max_retries=max_retries,
            backoff_base=backoff_base,
            backoff_multiplier=backoff_multiplier,
            sleep=sleep,
        )
        self._fetcher: Optional[FetchClient] = None
        if client is not None:
            self._fetcher = FetchClient(client, self.limiter, **self._fetch_options)

    async def __aenter__(self):
        """Create HTTP client on context entry."""
        if self.client is None:
            self.client = httpx.AsyncClient(
                cookies=self.cookies,
                headers={"User-Agent": random.choice(USER_AGENTS)},
                timeout=httpx.Timeout(CONNECT_TIMEOUT),
                follow_redirects=True,
            )
            self._owns_client = True
            self._fetcher = FetchClient(self.client, self.limiter, **self._fetch_options)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Close HTTP client on context exit."""
        if self._owns_client and self.client:
            await self.client.aclose()
            self.client = None
            self._fetcher = None
        logger.debug(f"Session closed, limiter stats: {self.limiter.get_stats()}")

    @property
    def fetcher(self) -> FetchClient:
        if self._fetcher is None:
            raise ScrapingFailedError("ExtractionSession must be used as context manager")
        return self._fetcher

    def navigated(self) -> None:
        """Forget page-scoped state after the browser moves to another page."""
        self.post_cache.clear()

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await self._sleep(seconds)

    async def pace(self, rate_class: RateLimitClass) -> float:
        """
        Wait the limiter's current delay for a request class.

        Returns:
            The delay waited, in seconds
        """
        delay = self.limiter.delay(rate_class)
        logger.debug(f"Waiting {delay:.2f}s before next {rate_class.value} request")
        await self.sleep(delay)
        return delay
