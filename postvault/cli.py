"""
Command line entry for PostVault.

    python -m postvault post https://www.instagram.com/p/SHORTCODE/
    python -m postvault batch urls.txt
    python -m postvault profile https://www.instagram.com/username/ --count 20 --download
    python -m postvault history --stats
"""

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional

from postvault.core.batch import BatchRunner
from postvault.core.browser import BrowserPage, open_browser_page
from postvault.core.downloader import MediaDownloader
from postvault.core.exceptions import PostVaultError, ScrapingFailedError, describe_error
from postvault.core.extractor import CommentSource, PostExtractor
from postvault.core.profile_collector import ProfileCollector, is_profile_page
from postvault.core.session import ExtractionSession, load_storage_cookies
from postvault.models.events import BatchComplete, BatchProgress, Event, ProfileScrapeProgress
from postvault.storage.archive import ArchiveWriter
from postvault.storage.database import HistoryDatabase
from postvault.storage.history import HistoryStore
from postvault.storage.repository import DownloadedPostRepository, ExtractionRunRepository
from postvault.utils.config import (
    APP_NAME,
    APP_VERSION,
    DB_URL,
    DOWNLOAD_DIR,
    PAGE_LOAD_DELAY,
    STORAGE_STATE_FILE,
)
from postvault.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def log_event(event: Event) -> None:
    """Print progress events to the log."""
    if isinstance(event, BatchProgress):
        status = "⏭️ skipped" if event.skipped else "processing"
        logger.info(f"[{event.current}/{event.total}] {status}: {event.url}")
    elif isinstance(event, BatchComplete):
        for failure in event.failed_urls:
            logger.warning(f"Failed: {failure['url']} ({failure['error']})")
    elif isinstance(event, ProfileScrapeProgress):
        target = event.target_count or "∞"
        logger.info(f"Collected {event.count}/{target} posts")


def read_url_file(path: Path) -> List[str]:
    """One URL per line; blank lines and # comments are ignored."""
    lines = path.read_text(encoding="utf-8").splitlines()
    return [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="postvault", description=f"{APP_NAME} {APP_VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Print debug logs")
    parser.add_argument("--db", default=DB_URL, help="History database URL")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_extraction_options(p: argparse.ArgumentParser) -> None:
        p.add_argument("--output", type=Path, default=DOWNLOAD_DIR, help="Archive directory")
        p.add_argument("--session", type=Path, default=STORAGE_STATE_FILE, help="Saved browser session")
        p.add_argument("--graphql", action="store_true", help="Use the GraphQL comments query (no replies)")
        p.add_argument("--skip-replies", action="store_true", help="Do not fetch replies")
        p.add_argument("--no-media", action="store_true", help="Do not download photos and videos")
        p.add_argument("--show-browser", action="store_true", help="Run the browser with a window")

    post = sub.add_parser("post", help="Archive a single post")
    post.add_argument("url")
    add_extraction_options(post)

    batch = sub.add_parser("batch", help="Archive every post listed in a file")
    batch.add_argument("file", type=Path)
    batch.add_argument("--no-skip", action="store_true", help="Re-download posts already in history")
    add_extraction_options(batch)

    profile = sub.add_parser("profile", help="Collect post URLs from a profile")
    profile.add_argument("url")
    profile.add_argument("--count", type=int, default=0, help="Number of posts (0 = all)")
    profile.add_argument("--save-urls", type=Path, help="Write collected URLs to this file")
    profile.add_argument("--download", action="store_true", help="Archive the collected posts")
    profile.add_argument("--no-skip", action="store_true", help="Re-download posts already in history")
    add_extraction_options(profile)

    history = sub.add_parser("history", help="Show download history")
    history.add_argument("--limit", type=int, default=20)
    history.add_argument("--stats", action="store_true", help="Show totals only")
    history.add_argument("--clear", action="store_true", help="Forget downloaded posts")

    return parser


async def run_batch(
    args: argparse.Namespace,
    page: BrowserPage,
    urls: List[str],
    skip_downloaded: bool,
) -> BatchComplete:
    """Run the batch pipeline for URLs on an already open page."""
    database = HistoryDatabase(args.db)
    await database.init()
    try:
        cookies = load_storage_cookies(args.session)
        async with ExtractionSession(cookies=cookies) as session, MediaDownloader() as downloader:
            extractor = PostExtractor(
                session,
                source=CommentSource.GRAPHQL if args.graphql else CommentSource.API,
                skip_replies=args.skip_replies,
            )
            runner = BatchRunner(
                page,
                extractor,
                writer=ArchiveWriter(args.output),
                history=HistoryStore(database),
                downloader=None if args.no_media else downloader,
                on_event=log_event,
            )
            return await runner.run(urls, skip_already_downloaded=skip_downloaded)
    finally:
        await database.close()


async def cmd_batch(args: argparse.Namespace, urls: List[str], skip_downloaded: bool) -> int:
    async with open_browser_page(args.session, headless=not args.show_browser) as page:
        summary = await run_batch(args, page, urls, skip_downloaded)
    print(json.dumps(summary.to_dict(), indent=2))
    return 0 if not summary.failed_urls else 1


async def cmd_profile(args: argparse.Namespace) -> int:
    async with open_browser_page(args.session, headless=not args.show_browser) as page:
        await page.goto(args.url)
        await asyncio.sleep(PAGE_LOAD_DELAY)
        if not is_profile_page(await page.content(), page.url):
            raise ScrapingFailedError(f"Not a profile page: {page.url}")
        collector = ProfileCollector(page, on_event=log_event)
        collection = await collector.collect(target_count=args.count)

        if args.save_urls:
            args.save_urls.write_text("\n".join(collection.post_urls) + "\n", encoding="utf-8")
            logger.info(f"💾 Saved {len(collection.post_urls)} URLs to {args.save_urls}")
        else:
            for url in collection.post_urls:
                print(url)

        if args.download and collection.post_urls:
            summary = await run_batch(args, page, collection.post_urls, not args.no_skip)
            print(json.dumps(summary.to_dict(), indent=2))
    return 0


async def cmd_history(args: argparse.Namespace) -> int:
    database = HistoryDatabase(args.db)
    await database.init()
    try:
        async with database.session() as session:
            if args.clear:
                removed = await DownloadedPostRepository.clear(session)
                print(f"🗑️ Cleared {removed} downloaded posts")
                return 0

            stats = await ExtractionRunRepository.get_stats(session)
            downloaded = await DownloadedPostRepository.count(session)
            print(f"📊 {downloaded} posts downloaded, {stats['total_runs']} runs "
                  f"({stats['failed_runs']} failed), {stats['total_comments']} comments, "
                  f"{stats['total_replies']} replies")
            if args.stats:
                return 0

            for run in await ExtractionRunRepository.get_recent(session, limit=args.limit):
                status = "✅" if run.success else "❌"
                detail = (
                    f"{run.comment_count}+{run.reply_count}/{run.expected_count} comments ({run.completeness})"
                    if run.success else (run.error_message or "")[:80]
                )
                print(f"{status} {run.started_at:%Y-%m-%d %H:%M} {run.url} {detail}")
    finally:
        await database.close()
    return 0


async def dispatch(args: argparse.Namespace) -> int:
    if args.command == "post":
        return await cmd_batch(args, [args.url], skip_downloaded=False)
    if args.command == "batch":
        return await cmd_batch(args, read_url_file(args.file), skip_downloaded=not args.no_skip)
    if args.command == "profile":
        return await cmd_profile(args)
    return await cmd_history(args)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.INFO, verbose=args.verbose)
    try:
        return asyncio.run(dispatch(args))
    except PostVaultError as e:
        details = describe_error(e)
        logger.error(f"❌ {details['error']}")
        logger.error(f"   {details['guidance']}")
        return 2
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
