"""Download a post's photos and videos into its archive folder."""

import asyncio
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import aiofiles
import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from postvault.core.exceptions import DownloadError
from postvault.core.fetch_client import SleepFunc
from postvault.models.data_models import MediaItem
from postvault.utils.config import (
    CONNECT_TIMEOUT,
    DOWNLOAD_CHUNK_SIZE,
    MAX_CONCURRENT_DOWNLOADS,
    MAX_RETRIES,
    READ_TIMEOUT,
    RETRY_BACKOFF_BASE,
    RETRY_BACKOFF_MULTIPLIER,
    USER_AGENTS,
)
from postvault.utils.logging import get_logger

logger = get_logger(__name__)

# (1-based position, item) -> destination file
PathForItem = Callable[[int, MediaItem], Path]


@dataclass
class MediaDownloadReport:
    saved: List[Path] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed


class MediaDownloader:
    """
    Fetches media files from Instagram's CDN.

    CDN URLs are signed, so requests carry no session cookies. Files are
    streamed to a ``.part`` sibling and renamed once the body is complete,
    so an interrupted download never leaves a truncated file behind.
    """

    def __init__(
        self,
        max_concurrent: int = MAX_CONCURRENT_DOWNLOADS,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: int = MAX_RETRIES,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        Initialize downloader.

        Args:
            max_concurrent: Files fetched at the same time
            client: Existing HTTP client (created on context entry if omitted)
            max_retries: Attempts per file
            sleep: Awaitable used between attempts
        """
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.client = client
        self.max_retries = max_retries
        self._owns_client = client is None
        self._sleep = sleep
        self.download_count = 0
        self.failed_downloads: List[str] = []

    async def __aenter__(self):
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=httpx.Timeout(CONNECT_TIMEOUT, read=READ_TIMEOUT),
                follow_redirects=True,
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_client and self.client:
            await self.client.aclose()
            self.client = None

    async def fetch_to_file(self, url: str, destination: Path) -> int:
        """
        Stream one URL to disk in a single attempt.

        Returns:
            Number of bytes written

        Raises:
            DownloadError: On HTTP errors, network errors or a short body
        """
        if self.client is None:
            raise DownloadError("MediaDownloader must be used as context manager")

        destination.parent.mkdir(parents=True, exist_ok=True)
        partial = destination.with_name(destination.name + ".part")
        headers = {"User-Agent": random.choice(USER_AGENTS), "Accept": "*/*"}
        written = 0
        try:
            async with self.client.stream("GET", url, headers=headers) as response:
                if response.status_code >= 400:
                    raise DownloadError(f"HTTP {response.status_code} downloading {url}")
                expected = int(response.headers.get("content-length", 0))
                async with aiofiles.open(partial, "wb") as f:
                    async for chunk in response.aiter_bytes(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        await f.write(chunk)
                        written += len(chunk)
            if expected and written != expected:
                raise DownloadError(f"Incomplete download of {url}: {written}/{expected} bytes")
            partial.replace(destination)
        except httpx.HTTPError as e:
            raise DownloadError(f"Network error downloading {url}: {e}")
        finally:
            if partial.exists():
                partial.unlink()
        return written

    async def download(self, url: str, destination: Path) -> Path:
        """
        Download one file, retrying with exponential backoff.

        Raises:
            DownloadError: Once every attempt has failed
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(DownloadError),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=RETRY_BACKOFF_BASE, exp_base=RETRY_BACKOFF_MULTIPLIER),
            sleep=self._sleep,
            reraise=True,
        )
        async with self.semaphore:
            async for attempt in retrying:
                with attempt:
                    size = await self.fetch_to_file(url, destination)
        self.download_count += 1
        logger.info(f"📥 Saved {destination.name} ({size} bytes)")
        return destination

    async def download_post_media(self, items: Sequence[MediaItem], path_for: PathForItem) -> MediaDownloadReport:
        """
        Download every item of a post concurrently.

        A failed item is logged and reported; the others still complete.

        Args:
            items: Media of one post, in carousel order
            path_for: Destination for each item

        Returns:
            MediaDownloadReport with saved paths and failed URLs
        """
        jobs = [(item.url, path_for(index, item)) for index, item in enumerate(items, start=1) if item.url]
        results = await asyncio.gather(
            *(self.download(url, path) for url, path in jobs),
            return_exceptions=True,
        )

        report = MediaDownloadReport()
        for (url, path), result in zip(jobs, results):
            if isinstance(result, DownloadError):
                logger.error(f"❌ Failed to download {path.name}: {result}")
                report.failed.append(url)
                self.failed_downloads.append(str(path))
            elif isinstance(result, BaseException):
                raise result
            else:
                report.saved.append(result)

        logger.info(f"Media complete: {len(report.saved)}/{len(jobs)} files")
        return report

    def get_stats(self) -> dict:
        return {
            "total_downloads": self.download_count,
            "failed_downloads": len(self.failed_downloads),
            "failed_files": self.failed_downloads,
        }
