"""Download history used to skip already archived posts."""

from datetime import datetime
from typing import Optional

from postvault.storage.database import HistoryDatabase
from postvault.storage.repository import DownloadedPostRepository, ExtractionRunRepository
from postvault.utils.config import DOWNLOAD_HISTORY_LIMIT


class HistoryStore:
    """Session-scoped access to the history tables for the batch runner."""

    def __init__(self, database: HistoryDatabase, limit: int = DOWNLOAD_HISTORY_LIMIT):
        self.database = database
        self.limit = limit

    async def is_downloaded(self, shortcode: str) -> bool:
        async with self.database.session() as session:
            return await DownloadedPostRepository.is_downloaded(session, shortcode)

    async def mark_downloaded(
        self,
        shortcode: str,
        post_url: Optional[str] = None,
        username: Optional[str] = None,
    ) -> None:
        async with self.database.session() as session:
            await DownloadedPostRepository.mark(session, shortcode, post_url, username, limit=self.limit)

    async def record_run(
        self,
        url: str,
        started_at: datetime,
        shortcode: Optional[str] = None,
        username: Optional[str] = None,
        comment_count: int = 0,
        reply_count: int = 0,
        expected_count: int = 0,
        media_count: int = 0,
        completeness: Optional[str] = None,
        success: bool = False,
        error_message: Optional[str] = None,
        download_path: Optional[str] = None,
    ) -> None:
        async with self.database.session() as session:
            await ExtractionRunRepository.create(session, {
                "url": url,
                "shortcode": shortcode,
                "username": username,
                "comment_count": comment_count,
                "reply_count": reply_count,
                "expected_count": expected_count,
                "media_count": media_count,
                "completeness": completeness,
                "success": success,
                "error_message": error_message,
                "download_path": download_path,
                "started_at": started_at,
            })
