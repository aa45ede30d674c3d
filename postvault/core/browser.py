"""Browser page abstraction and its Playwright implementation."""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Set

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Response, async_playwright

from postvault.core.exceptions import ScrapingFailedError
from postvault.utils.config import STORAGE_STATE_FILE, USER_AGENTS
from postvault.utils.logging import get_logger

logger = get_logger(__name__)

NAVIGATION_TIMEOUT = 60.0  # Seconds
GRAPHQL_RESPONSE_MARKER = "/graphql/query"
RESPONSE_QUEUE_SIZE = 200

SCROLL_SCRIPT = """
() => {
    const links = document.querySelectorAll('a[href*="/p/"], a[href*="/reel/"]');
    if (links.length > 0) {
        links[links.length - 1].scrollIntoView({ behavior: 'smooth', block: 'center' });
    } else {
        window.scrollBy(0, window.innerHeight);
    }
}
"""


class BrowserPage(ABC):
    """The parts of a logged-in browser tab the extractors rely on."""

    @property
    @abstractmethod
    def url(self) -> str:
        """Current page URL."""

    @abstractmethod
    async def goto(self, url: str) -> None:
        """Navigate to a URL."""

    @abstractmethod
    async def content(self) -> str:
        """Current rendered HTML."""

    @abstractmethod
    async def scroll_to_load_more(self) -> None:
        """Scroll so the page loads its next batch of posts."""

    @abstractmethod
    def json_responses(self) -> AsyncIterator[dict]:
        """Yield JSON bodies of the page's GraphQL responses as they arrive."""


class PlaywrightPage(BrowserPage):
    """
    BrowserPage backed by a Playwright page.

    GraphQL responses are captured only while json_responses() is being
    iterated, into a bounded queue; responses arriving while it is full
    are dropped.
    """

    def __init__(
        self,
        page: Page,
        response_marker: str = GRAPHQL_RESPONSE_MARKER,
        max_queued: int = RESPONSE_QUEUE_SIZE,
    ):
        self.page = page
        self.response_marker = response_marker
        self._responses: "asyncio.Queue[dict]" = asyncio.Queue(maxsize=max_queued)
        self._pending: Set[asyncio.Task] = set()

    @property
    def url(self) -> str:
        return self.page.url

    async def goto(self, url: str) -> None:
        logger.debug(f"Navigating to {url}")
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT * 1000)
        except PlaywrightError as e:
            raise ScrapingFailedError(f"Navigation to {url} failed: {e}")

    async def content(self) -> str:
        try:
            return await self.page.content()
        except PlaywrightError as e:
            raise ScrapingFailedError(f"Could not read page content: {e}")

    async def scroll_to_load_more(self) -> None:
        await self.page.evaluate(SCROLL_SCRIPT)

    def _on_response(self, response: Response) -> None:
        if self.response_marker not in response.url:
            return
        task = asyncio.create_task(self._capture(response))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _capture(self, response: Response) -> None:
        try:
            payload = await response.json()
        except (PlaywrightError, ValueError) as e:
            logger.debug(f"Ignoring non-JSON response from {response.url}: {e}")
            return
        if not isinstance(payload, dict):
            return
        try:
            self._responses.put_nowait(payload)
        except asyncio.QueueFull:
            logger.debug(f"Response queue full, dropping {response.url}")

    async def json_responses(self) -> AsyncIterator[dict]:
        self.page.on("response", self._on_response)
        try:
            while True:
                yield await self._responses.get()
        finally:
            self.page.remove_listener("response", self._on_response)
            for task in list(self._pending):
                task.cancel()
            while not self._responses.empty():
                self._responses.get_nowait()


@asynccontextmanager
async def open_browser_page(
    storage_state: Optional[Path] = None,
    headless: bool = True,
) -> AsyncIterator[PlaywrightPage]:
    """
    Launch Chromium with a saved login and yield a single page.

    Args:
        storage_state: Playwright storage-state file (default: from config)
        headless: Run without a visible window

    Yields:
        PlaywrightPage
    """
    state_file = storage_state or STORAGE_STATE_FILE
    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=headless)
        try:
            context = await browser.new_context(
                storage_state=str(state_file) if state_file.exists() else None,
                user_agent=USER_AGENTS[0],
            )
            page = await context.new_page()
            yield PlaywrightPage(page)
        finally:
            await browser.close()
