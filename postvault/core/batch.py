"""Batch processing of post URLs in a single browser page."""

import random
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from postvault.core.browser import BrowserPage
from postvault.core.downloader import MediaDownloader
from postvault.core.exceptions import BatchSizeError, PostNotFoundError, PostVaultError
from postvault.core.extractor import PostExtraction, PostExtractor
from postvault.core.post_locator import extract_shortcode
from postvault.core.run_controller import RunController
from postvault.models.data_models import BatchJob
from postvault.models.events import BatchComplete, BatchProgress, EventCallback
from postvault.models.schema import utcnow
from postvault.storage.archive import ArchiveWriter
from postvault.storage.history import HistoryStore
from postvault.utils.config import BATCH_DELAY_MAX, BATCH_DELAY_MIN, MAX_BATCH_SIZE, PAGE_LOAD_DELAY
from postvault.utils.logging import get_logger

logger = get_logger(__name__)


class BatchRunner:
    """
    Processes a queue of post URLs one at a time.

    For each URL: skip it if already downloaded, otherwise navigate, let
    the page settle, extract, write the archive and record it as
    downloaded. A failing URL is recorded and the run moves on. The
    extractor's session (and its rate limiter) is shared by every item.
    """

    def __init__(
        self,
        page: BrowserPage,
        extractor: PostExtractor,
        *,
        writer: Optional[ArchiveWriter] = None,
        history: Optional[HistoryStore] = None,
        downloader: Optional[MediaDownloader] = None,
        on_event: EventCallback = None,
        settle_delay: float = PAGE_LOAD_DELAY,
        item_delay: Tuple[float, float] = (BATCH_DELAY_MIN, BATCH_DELAY_MAX),
        max_batch_size: int = MAX_BATCH_SIZE,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize batch runner.

        Args:
            page: Browser page used for navigation
            extractor: Post extractor bound to the run's session
            writer: Archive writer (nothing is written when omitted)
            history: Download history for skip checks and run records
            downloader: Media downloader (media is skipped when omitted)
            on_event: Callback for BatchProgress and BatchComplete events
            settle_delay: Seconds to wait after navigation before extracting
            item_delay: Random delay range in seconds between items
            max_batch_size: Largest accepted queue
            rng: Random source for item delays
        """
        self.page = page
        self.extractor = extractor
        self.writer = writer
        self.history = history
        self.downloader = downloader
        self.on_event = on_event
        self.settle_delay = settle_delay
        self.item_delay = item_delay
        self.max_batch_size = max_batch_size
        self._rng = rng or random.Random()
        self.controller = RunController()
        self.job: Optional[BatchJob] = None

    def stop(self) -> None:
        """Stop after the item currently being processed."""
        logger.info("🛑 Batch stop requested")
        self.controller.stop()

    def _emit(self, event) -> None:
        if self.on_event:
            self.on_event(event)

    def _progress(self, job: BatchJob, current: int, url: str, skipped: bool) -> None:
        self._emit(BatchProgress(
            current=current,
            total=job.total,
            url=url,
            success_count=job.success_count,
            failed_urls=job.failed_urls(),
            skipped_count=job.skipped_count,
            skipped=skipped,
        ))

    async def run(self, urls: List[str], skip_already_downloaded: bool = True) -> BatchComplete:
        """
        Process every URL in order.

        Args:
            urls: Post or reel URLs
            skip_already_downloaded: Skip shortcodes found in the download history

        Returns:
            BatchComplete summary (also emitted as the final event)

        Raises:
            BatchSizeError: If the queue is empty or too large
        """
        if not urls:
            raise BatchSizeError("No URLs to process")
        if len(urls) > self.max_batch_size:
            raise BatchSizeError(f"Batch has {len(urls)} URLs; the maximum is {self.max_batch_size}")

        job = BatchJob(queue=list(urls), skip_downloaded=skip_already_downloaded, is_processing=True)
        self.job = job
        self.controller.start()
        logger.info(f"📦 Starting batch of {job.total} URLs (skip downloaded: {job.skip_downloaded})")

        for index, url in enumerate(job.queue):
            if not self.controller.should_continue():
                logger.info(f"Batch stopped before item {index + 1}/{job.total}")
                break
            job.current_index = index

            shortcode = extract_shortcode(url)
            if job.skip_downloaded and shortcode and self.history and await self.history.is_downloaded(shortcode):
                job.skipped_count += 1
                logger.info(f"⏭️ Skipping already downloaded: {shortcode}")
                self._progress(job, index + 1, url, skipped=True)
                continue

            self._progress(job, index + 1, url, skipped=False)
            await self._process(job, url, shortcode)

            if index < job.total - 1:
                await self.controller.sleep(self._rng.uniform(*self.item_delay))

        job.is_processing = False
        self.controller.complete()
        summary = BatchComplete(
            success_count=job.success_count,
            skipped_count=job.skipped_count,
            failed_urls=job.failed_urls(),
            total=job.total,
        )
        logger.info(
            f"✅ Batch finished: {job.success_count} succeeded, {job.skipped_count} skipped, "
            f"{len(job.failed)} failed"
        )
        self._emit(summary)
        return summary

    async def _process(self, job: BatchJob, url: str, shortcode: Optional[str]) -> None:
        started_at = utcnow()
        try:
            if shortcode is None:
                raise PostNotFoundError(f"Invalid Instagram URL: {url}")
            extraction, download_path = await self.process_url(url)
        except PostVaultError as e:
            logger.error(f"❌ Failed to process {url}: {e}")
            job.failed.append((url, str(e)))
            await self._record(url, started_at, shortcode, error=str(e))
            return
        except Exception as e:
            logger.exception(f"Unexpected error processing {url}")
            job.failed.append((url, f"Unexpected error: {e}"))
            await self._record(url, started_at, shortcode, error=str(e))
            return

        job.success_count += 1
        if self.history:
            await self.history.mark_downloaded(
                extraction.record.shortcode,
                extraction.post_info.post_url,
                extraction.post_info.username,
            )
        await self._record(url, started_at, shortcode, extraction=extraction, download_path=download_path)

    async def process_url(self, url: str) -> Tuple[PostExtraction, Optional[Path]]:
        """
        Navigate to one post, extract it and write its archive.

        Returns:
            The extraction and the archive folder (None without a writer)
        """
        await self.page.goto(url)
        self.extractor.session.navigated()
        await self.controller.sleep(self.settle_delay)

        html = await self.page.content()
        extraction = await self.extractor.extract(html, self.page.url)
        return extraction, await self.save(extraction)

    async def save(self, extraction: PostExtraction) -> Optional[Path]:
        """Write comments, metadata and (optionally) media for an extraction."""
        if self.writer is None:
            return None

        post_info = extraction.post_info
        await self.writer.write_comments(extraction.to_dict(), post_info, extraction.comments)

        media = list(extraction.record.media_items)
        if self.downloader is not None and media:
            await self.downloader.download_post_media(
                media,
                lambda index, item: self.writer.media_path(post_info, index, item.url, item.media_type == "video"),
            )

        await self.writer.write_metadata(post_info, len(media), extraction.total)
        return self.writer.post_dir(post_info)

    async def _record(
        self,
        url: str,
        started_at: datetime,
        shortcode: Optional[str],
        extraction: Optional[PostExtraction] = None,
        download_path: Optional[Path] = None,
        error: Optional[str] = None,
    ) -> None:
        if self.history is None:
            return
        if extraction is None:
            await self.history.record_run(url, started_at, shortcode=shortcode, error_message=error)
            return
        await self.history.record_run(
            url,
            started_at,
            shortcode=extraction.record.shortcode,
            username=extraction.post_info.username,
            comment_count=len(extraction.comments),
            reply_count=extraction.reply_count,
            expected_count=extraction.record.comment_count,
            media_count=len(extraction.record.media_items),
            completeness=extraction.verification.status.value,
            success=True,
            download_path=str(download_path) if download_path else None,
        )
