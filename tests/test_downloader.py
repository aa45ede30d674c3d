"""Tests for the media downloader."""

import httpx
import pytest

from postvault.core.downloader import MediaDownloader
from postvault.core.exceptions import DownloadError
from postvault.models.data_models import MediaItem

from conftest import SleepRecorder

JPEG = b"\xff\xd8jpeg-bytes"


def cdn_transport():
    """CDN stub: paths containing 'missing' answer 404, everything else a JPEG."""
    def handler(request: httpx.Request) -> httpx.Response:
        if "missing" in request.url.path:
            return httpx.Response(404)
        return httpx.Response(200, content=JPEG, headers={"content-length": str(len(JPEG))})
    return httpx.MockTransport(handler)


@pytest.mark.asyncio
class TestMediaDownloader:
    async def test_streams_to_file(self, tmp_path):
        async with httpx.AsyncClient(transport=cdn_transport()) as client:
            downloader = MediaDownloader(client=client)
            target = tmp_path / "media" / "a.jpg"

            path = await downloader.download("https://cdn.example/a.jpg", target)

        assert path == target
        assert target.read_bytes() == JPEG
        assert not (target.parent / "a.jpg.part").exists()
        assert downloader.get_stats()["total_downloads"] == 1

    async def test_http_error_is_retried_then_raised(self, tmp_path):
        sleeper = SleepRecorder()
        async with httpx.AsyncClient(transport=cdn_transport()) as client:
            downloader = MediaDownloader(client=client, sleep=sleeper)

            with pytest.raises(DownloadError):
                await downloader.download("https://cdn.example/missing.jpg", tmp_path / "x.jpg")

        assert len(sleeper.calls) == 2
        assert not (tmp_path / "x.jpg").exists()

    async def test_requires_client(self, tmp_path):
        with pytest.raises(DownloadError):
            await MediaDownloader().fetch_to_file("https://cdn.example/a.jpg", tmp_path / "a.jpg")

    async def test_post_media_reports_failures(self, tmp_path):
        items = [
            MediaItem(media_type="image", image_url="https://cdn.example/one.jpg"),
            MediaItem(media_type="image", image_url="https://cdn.example/missing.jpg"),
            MediaItem(media_type="video", video_url="https://cdn.example/three.mp4"),
            MediaItem(media_type="image"),
        ]
        async with httpx.AsyncClient(transport=cdn_transport()) as client:
            downloader = MediaDownloader(client=client, sleep=SleepRecorder())

            report = await downloader.download_post_media(items, lambda i, item: tmp_path / f"media_{i}")

        assert report.saved == [tmp_path / "media_1", tmp_path / "media_3"]
        assert report.failed == ["https://cdn.example/missing.jpg"]
        assert not report.complete
        assert downloader.get_stats()["failed_files"] == [str(tmp_path / "media_2")]
