"""Shared fixtures: mocked Instagram API, recorded sleeps and fake browser pages."""

import asyncio
import json
import random
from typing import AsyncIterator, Dict, List, Optional

import httpx
import pytest
import respx

from postvault.core.browser import BrowserPage
from postvault.core.rate_limiter import AdaptiveRateLimiter
from postvault.core.session import ExtractionSession
from postvault.storage.database import HistoryDatabase
from postvault.utils.config import INSTAGRAM_BASE_URL

SHORTCODE = "Cxyz123ABCd"
MEDIA_ID = "3141592653"
POST_URL = f"{INSTAGRAM_BASE_URL}/p/{SHORTCODE}/"
COMMENTS_PATH = f"/api/v1/media/{MEDIA_ID}/comments/"


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_post(code: str = SHORTCODE, pk: str = MEDIA_ID, comment_count: int = 0, **extra) -> dict:
    post = {
        "code": code,
        "pk": pk,
        "id": f"{pk}_42",
        "user": {"pk": "42", "username": "alice", "full_name": "Alice A", "profile_pic_url": "https://cdn/alice.jpg"},
        "caption": {"text": "hello world"},
        "like_count": 10,
        "comment_count": comment_count,
        "taken_at": 1700000000,
        "media_type": 1,
        "image_versions2": {"candidates": [{"url": "https://cdn/img.jpg", "width": 1080, "height": 1080}]},
    }
    post.update(extra)
    return post


def embed_post(post: dict) -> str:
    """Script tag laid out the way Instagram prefetches post data."""
    payload = {
        "require": [
            ["ScheduledServerJS", "handle", None, [{
                "__bbox": {
                    "require": [
                        ["RelayPrefetchedStreamCache", "next", [], ["adp_PolarisPostRoot", {
                            "__bbox": {"result": {"data": {
                                "xdt_api__v1__media__shortcode__web_info": {"items": [post]},
                            }}},
                        }]],
                    ],
                },
            }]],
        ],
    }
    return f'<script type="application/json">{json.dumps(payload)}</script>'


def post_page(post: Optional[dict] = None, header: str = "", extra: str = "") -> str:
    scripts = embed_post(post) if post is not None else ""
    return f"<html><head>{extra}{scripts}</head><body>{header}<main>post</main></body></html>"


def api_comment(pk: str, child_count: int = 0, username: str = "bob", text: str = "nice") -> dict:
    return {
        "pk": pk,
        "text": text,
        "created_at": 1700000100,
        "user": {"pk": f"u{pk}", "username": username, "profile_pic_url": f"https://cdn/{username}.jpg"},
        "comment_like_count": 1,
        "child_comment_count": child_count,
    }


def comment_page(pks: List[str], cursor: Optional[str] = None, has_more: bool = False, children: Optional[Dict[str, int]] = None) -> dict:
    children = children or {}
    page = {
        "comments": [api_comment(pk, children.get(pk, 0)) for pk in pks],
        "has_more_comments": has_more,
        "status": "ok",
    }
    if cursor:
        page["next_max_id"] = cursor
    return page


def reply_page(pks: List[str], cursor: Optional[str] = None, has_more: bool = False) -> dict:
    page = {"child_comments": [api_comment(pk, username="carol") for pk in pks], "has_more_tail_child_comments": has_more}
    if cursor:
        page["next_min_id"] = cursor
    return page


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def limiter() -> AdaptiveRateLimiter:
    return AdaptiveRateLimiter(rng=random.Random(7))


@pytest.fixture
def api():
    with respx.mock(base_url=INSTAGRAM_BASE_URL, assert_all_called=False) as mock:
        yield mock


@pytest.fixture
async def history_db(tmp_path):
    db = HistoryDatabase(f"sqlite+aiosqlite:///{tmp_path / 'history.db'}")
    await db.init()
    yield db
    await db.close()


@pytest.fixture
async def session(sleeper, limiter):
    async with httpx.AsyncClient(cookies={"csrftoken": "csrf-token"}) as client:
        yield ExtractionSession(client, limiter=limiter, sleep=sleeper)


class FakePostPage(BrowserPage):
    """Browser page serving canned HTML per URL."""

    def __init__(self, pages: Dict[str, str]):
        self.pages = pages
        self.visited: List[str] = []
        self._url = "about:blank"

    @property
    def url(self) -> str:
        return self._url

    async def goto(self, url: str) -> None:
        self.visited.append(url)
        self._url = url

    async def content(self) -> str:
        return self.pages.get(self._url, "<html></html>")

    async def scroll_to_load_more(self) -> None:
        pass

    async def json_responses(self) -> AsyncIterator[dict]:
        while True:
            await asyncio.sleep(3600)
            yield {}


class FakeProfilePage(BrowserPage):
    """
    Profile grid that reveals ``per_scroll`` more post links on every
    scroll, with queued GraphQL payloads for the network producer.
    """

    def __init__(self, codes: List[str], per_scroll: int, username: str = "alice", header: bool = True):
        self.codes = codes
        self.per_scroll = per_scroll
        self.visible = min(per_scroll, len(codes))
        self.username = username
        self.header = header
        self.scrolls = 0
        self.responses: "asyncio.Queue[dict]" = asyncio.Queue()

    @property
    def url(self) -> str:
        return f"{INSTAGRAM_BASE_URL}/{self.username}/"

    async def goto(self, url: str) -> None:
        pass

    async def content(self) -> str:
        links = "".join(
            f'<a href="/{self.username}/{"reel" if i % 2 else "p"}/{code}/">x</a>'
            for i, code in enumerate(self.codes[:self.visible])
        )
        header = f"<header><section><h2>{self.username}</h2></section></header>" if self.header else ""
        return f'<html><body>{header}<div role="tablist"></div><article>{links}</article></body></html>'

    async def scroll_to_load_more(self) -> None:
        self.scrolls += 1
        self.visible = min(self.visible + self.per_scroll, len(self.codes))

    async def json_responses(self) -> AsyncIterator[dict]:
        while True:
            yield await self.responses.get()
