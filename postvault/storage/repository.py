"""Repository layer for database operations."""

from typing import Iterable, List, Optional, Set

from sqlalchemy import case, delete, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from postvault.models.schema import DownloadedPost, ExtractionRun, utcnow
from postvault.utils.config import DOWNLOAD_HISTORY_LIMIT
from postvault.utils.logging import get_logger

logger = get_logger(__name__)


class DownloadedPostRepository:
    """Repository for DownloadedPost operations."""

    @staticmethod
    async def mark(
        session: AsyncSession,
        shortcode: str,
        post_url: Optional[str] = None,
        username: Optional[str] = None,
        limit: int = DOWNLOAD_HISTORY_LIMIT,
    ) -> DownloadedPost:
        """
        Record a post as downloaded, keeping only the newest ``limit`` entries.

        Args:
            session: Database session
            shortcode: Instagram post shortcode
            post_url: Post URL
            username: Post author
            limit: Maximum number of shortcodes retained

        Returns:
            DownloadedPost instance
        """
        post = await session.get(DownloadedPost, shortcode)
        if post:
            post.downloaded_at = utcnow()
            if post_url:
                post.post_url = post_url
            if username:
                post.username = username
        else:
            post = DownloadedPost(shortcode=shortcode, post_url=post_url, username=username)
            session.add(post)
        await session.flush()

        await DownloadedPostRepository.prune(session, limit)
        logger.debug(f"Marked post as downloaded: {shortcode}")
        return post

    @staticmethod
    async def prune(session: AsyncSession, limit: int = DOWNLOAD_HISTORY_LIMIT) -> int:
        """
        Delete everything but the ``limit`` most recently downloaded posts.

        Returns:
            Number of rows deleted
        """
        stale = (
            select(DownloadedPost.shortcode)
            .order_by(desc(DownloadedPost.downloaded_at))
            .offset(limit)
        )
        result = await session.execute(stale)
        shortcodes = list(result.scalars().all())
        if not shortcodes:
            return 0
        await session.execute(delete(DownloadedPost).where(DownloadedPost.shortcode.in_(shortcodes)))
        await session.flush()
        logger.debug(f"Pruned {len(shortcodes)} old download records")
        return len(shortcodes)

    @staticmethod
    async def is_downloaded(session: AsyncSession, shortcode: str) -> bool:
        """
        Check whether a post was downloaded before.

        Args:
            session: Database session
            shortcode: Instagram post shortcode

        Returns:
            True if the shortcode is in the history
        """
        return await session.get(DownloadedPost, shortcode) is not None

    @staticmethod
    async def filter_downloaded(session: AsyncSession, shortcodes: Iterable[str]) -> Set[str]:
        """Return the subset of shortcodes already downloaded."""
        codes = list(shortcodes)
        if not codes:
            return set()
        result = await session.execute(
            select(DownloadedPost.shortcode).where(DownloadedPost.shortcode.in_(codes))
        )
        return set(result.scalars().all())

    @staticmethod
    async def count(session: AsyncSession) -> int:
        result = await session.execute(select(func.count(DownloadedPost.shortcode)))
        return result.scalar_one()

    @staticmethod
    async def get_recent(session: AsyncSession, limit: int = 50) -> List[DownloadedPost]:
        result = await session.execute(
            select(DownloadedPost)
            .order_by(desc(DownloadedPost.downloaded_at))
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def clear(session: AsyncSession) -> int:
        """
        Forget every downloaded post.

        Returns:
            Number of rows deleted
        """
        result = await session.execute(delete(DownloadedPost))
        await session.flush()
        logger.info(f"Cleared {result.rowcount} downloaded posts from history")
        return result.rowcount


class ExtractionRunRepository:
    """Repository for ExtractionRun operations."""

    @staticmethod
    async def create(session: AsyncSession, run_data: dict) -> ExtractionRun:
        """
        Create a new extraction history record.

        Args:
            session: Database session
            run_data: Column values

        Returns:
            ExtractionRun instance
        """
        run = ExtractionRun(**run_data)
        session.add(run)
        await session.flush()
        logger.debug(f"Created extraction record: {run.url[:50]}")
        return run

    @staticmethod
    async def get_recent(session: AsyncSession, limit: int = 50) -> List[ExtractionRun]:
        """
        Get recent extraction records.

        Args:
            session: Database session
            limit: Maximum number of records to return

        Returns:
            List of ExtractionRun instances
        """
        result = await session.execute(
            select(ExtractionRun)
            .order_by(desc(ExtractionRun.started_at), desc(ExtractionRun.id))
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_by_shortcode(session: AsyncSession, shortcode: str) -> List[ExtractionRun]:
        result = await session.execute(
            select(ExtractionRun)
            .where(ExtractionRun.shortcode == shortcode)
            .order_by(desc(ExtractionRun.started_at))
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_stats(session: AsyncSession) -> dict:
        """
        Get overall extraction statistics.

        Args:
            session: Database session

        Returns:
            Dictionary with statistics
        """
        result = await session.execute(
            select(
                func.count(ExtractionRun.id).label("total_runs"),
                func.sum(case((ExtractionRun.success.is_(True), 1), else_=0)).label("successful_runs"),
                func.sum(ExtractionRun.comment_count).label("total_comments"),
                func.sum(ExtractionRun.reply_count).label("total_replies"),
                func.sum(ExtractionRun.media_count).label("total_media"),
            )
        )
        stats = result.one()

        return {
            "total_runs": stats.total_runs or 0,
            "successful_runs": stats.successful_runs or 0,
            "failed_runs": (stats.total_runs or 0) - (stats.successful_runs or 0),
            "total_comments": stats.total_comments or 0,
            "total_replies": stats.total_replies or 0,
            "total_media": stats.total_media or 0,
        }
