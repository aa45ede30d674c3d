"""Tests for the download history database."""

from datetime import datetime, timedelta

import pytest

from postvault.models.schema import DownloadedPost
from postvault.storage.history import HistoryStore
from postvault.storage.repository import DownloadedPostRepository, ExtractionRunRepository


@pytest.mark.asyncio
class TestDownloadedPostRepository:
    async def test_mark_and_lookup(self, history_db):
        async with history_db.session() as session:
            await DownloadedPostRepository.mark(session, "AAA", "https://www.instagram.com/p/AAA/", "alice")

        async with history_db.session() as session:
            assert await DownloadedPostRepository.is_downloaded(session, "AAA")
            assert not await DownloadedPostRepository.is_downloaded(session, "BBB")
            assert await DownloadedPostRepository.filter_downloaded(session, ["AAA", "BBB"]) == {"AAA"}
            assert await DownloadedPostRepository.count(session) == 1

    async def test_mark_twice_updates_existing_row(self, history_db):
        async with history_db.session() as session:
            await DownloadedPostRepository.mark(session, "AAA")
        async with history_db.session() as session:
            post = await DownloadedPostRepository.mark(session, "AAA", username="alice")

        assert post.username == "alice"
        async with history_db.session() as session:
            assert await DownloadedPostRepository.count(session) == 1

    async def test_prune_keeps_most_recent(self, history_db):
        base = datetime(2024, 1, 1)
        async with history_db.session() as session:
            for i, code in enumerate(["old", "mid", "new"]):
                session.add(DownloadedPost(shortcode=code, downloaded_at=base + timedelta(days=i)))

        async with history_db.session() as session:
            removed = await DownloadedPostRepository.prune(session, limit=2)

        assert removed == 1
        async with history_db.session() as session:
            recent = await DownloadedPostRepository.get_recent(session)
        assert [p.shortcode for p in recent] == ["new", "mid"]

    async def test_mark_enforces_limit(self, history_db):
        async with history_db.session() as session:
            session.add(DownloadedPost(shortcode="ancient", downloaded_at=datetime(2000, 1, 1)))

        async with history_db.session() as session:
            await DownloadedPostRepository.mark(session, "fresh", limit=1)

        async with history_db.session() as session:
            assert not await DownloadedPostRepository.is_downloaded(session, "ancient")
            assert await DownloadedPostRepository.is_downloaded(session, "fresh")

    async def test_clear(self, history_db):
        async with history_db.session() as session:
            await DownloadedPostRepository.mark(session, "AAA")
            await DownloadedPostRepository.mark(session, "BBB")

        async with history_db.session() as session:
            assert await DownloadedPostRepository.clear(session) == 2
            assert await DownloadedPostRepository.count(session) == 0


@pytest.mark.asyncio
class TestHistoryStore:
    async def test_record_runs_and_stats(self, history_db):
        store = HistoryStore(history_db)
        started = datetime(2024, 5, 1, 12, 0)

        await store.record_run(
            "https://www.instagram.com/p/AAA/", started, shortcode="AAA", username="alice",
            comment_count=10, reply_count=4, expected_count=14, media_count=2,
            completeness="Complete", success=True,
        )
        await store.record_run("https://www.instagram.com/p/BBB/", started, shortcode="BBB", error_message="boom")

        async with history_db.session() as session:
            stats = await ExtractionRunRepository.get_stats(session)
            recent = await ExtractionRunRepository.get_recent(session)
            runs = await ExtractionRunRepository.get_by_shortcode(session, "AAA")

        assert stats == {
            "total_runs": 2,
            "successful_runs": 1,
            "failed_runs": 1,
            "total_comments": 10,
            "total_replies": 4,
            "total_media": 2,
        }
        assert len(recent) == 2
        assert runs[0].username == "alice"
        assert runs[0].completed_at is not None

    async def test_mark_and_check(self, history_db):
        store = HistoryStore(history_db, limit=5)

        await store.mark_downloaded("AAA", "https://www.instagram.com/p/AAA/", "alice")

        assert await store.is_downloaded("AAA")
        assert not await store.is_downloaded("ZZZ")

    async def test_empty_stats(self, history_db):
        async with history_db.session() as session:
            stats = await ExtractionRunRepository.get_stats(session)

        assert stats["total_runs"] == 0
        assert stats["total_comments"] == 0
