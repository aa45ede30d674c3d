"""Collect post URLs from a profile feed by scrolling and intercepting responses."""

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from postvault.core.browser import BrowserPage
from postvault.core.post_locator import dig
from postvault.core.run_controller import RunController
from postvault.models.data_models import PostSummary, ProfileCollectionState
from postvault.models.events import EventCallback, ProfileScrapeComplete, ProfileScrapeProgress
from postvault.utils.config import (
    INSTAGRAM_BASE_URL,
    PROFILE_PATH_EXCLUDES,
    PROFILE_SCROLL_DELAY,
    PROFILE_STALL_LIMIT,
)
from postvault.utils.logging import get_logger

logger = get_logger(__name__)

POST_LINK_SELECTOR = 'a[href*="/p/"], a[href*="/reel/"]'
POST_LINK_PATTERN = re.compile(r"/(p|reel)/([^/?#]+)")
PROFILE_PATH_PATTERN = re.compile(r"^/([^/?]+)/?$")
USERNAME_SELECTORS = [
    "header h2 span",
    "header section h2",
    'header a[href*="/"] span',
    '[role="main"] header h2',
]

TIMELINE_KEY = "xdt_api__v1__feed__user_timeline_graphql_connection"
CLIPS_KEY = "xdt_api__v1__clips__user__connection_v2"


def profile_username(html: str, url: str) -> Optional[str]:
    """
    Find the profile's username from the page header, else from the URL.

    Returns:
        Username, or None if the page does not look like a profile
    """
    soup = BeautifulSoup(html, "lxml")
    for selector in USERNAME_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            text = element.get_text(strip=True)
            if text:
                return text

    match = PROFILE_PATH_PATTERN.match(urlparse(url).path)
    if match and match.group(1) not in PROFILE_PATH_EXCLUDES:
        return match.group(1)
    return None


def is_profile_page(html: str, url: str) -> bool:
    """A profile page has a tab list or a post grid and is not a post/explore path."""
    path = urlparse(url).path
    if any(f"/{segment}/" in path for segment in PROFILE_PATH_EXCLUDES):
        return False
    soup = BeautifulSoup(html, "lxml")
    return soup.select_one('[role="tablist"]') is not None or soup.select_one('article a[href*="/p/"]') is not None


def parse_post_links(html: str, username: Optional[str] = None) -> List[PostSummary]:
    """
    Build post stubs from the post links rendered on a profile grid.

    Media type is inferred from the path: reels are videos (2), the rest
    images (1).
    """
    soup = BeautifulSoup(html, "lxml")
    stubs = {}
    for link in soup.select(POST_LINK_SELECTOR):
        href = link.get("href") or ""
        match = POST_LINK_PATTERN.search(href)
        if not match or match.group(2) in stubs:
            continue
        code = match.group(2)
        stubs[code] = PostSummary(
            code=code,
            post_url=urljoin(INSTAGRAM_BASE_URL + "/", href),
            media_type=2 if match.group(1) == "reel" else 1,
            user_name=username,
        )
    return list(stubs.values())


def parse_feed_node(node: dict, username: Optional[str] = None) -> Optional[PostSummary]:
    """Build a full post summary from a timeline or clips media node."""
    code = node.get("code")
    if not code:
        return None
    taken_at = node.get("taken_at")
    pk = node.get("pk")
    return PostSummary(
        code=code,
        post_url=f"{INSTAGRAM_BASE_URL}/p/{code}/",
        post_id=str(pk) if pk else None,
        media_type=node.get("media_type"),
        likes_count=node.get("like_count") or 0,
        comments_count=node.get("comment_count") or 0,
        view_count=node.get("view_count") or node.get("play_count") or 0,
        caption=dig(node, "caption", "text") or "",
        create_date=datetime.fromtimestamp(taken_at, tz=timezone.utc).isoformat() if taken_at else None,
        user_name=dig(node, "user", "username") or username,
    )


def extract_feed_posts(payload: dict, username: Optional[str] = None) -> List[PostSummary]:
    """
    Pull posts out of an intercepted GraphQL response.

    Recognises the user timeline connection (``edges[].node``) and the
    reels connection (``edges[].node.media``); anything else yields nothing.
    """
    nodes = []
    for edge in dig(payload, "data", TIMELINE_KEY, "edges") or []:
        nodes.append(dig(edge, "node"))
    for edge in dig(payload, "data", CLIPS_KEY, "edges") or []:
        nodes.append(dig(edge, "node", "media"))

    posts = []
    for node in nodes:
        if not isinstance(node, dict):
            continue
        try:
            post = parse_feed_node(node, username)
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning(f"⚠️ Skipping malformed feed node {node.get('code')}: {e}")
            continue
        if post is not None:
            posts.append(post)
    return posts


@dataclass
class ProfileCollection:
    posts: List[PostSummary]
    username: Optional[str]

    @property
    def post_urls(self) -> List[str]:
        return [p.post_url for p in self.posts]

    def to_event(self) -> ProfileScrapeComplete:
        return ProfileScrapeComplete(
            posts=[p.to_dict() for p in self.posts],
            username=self.username,
            post_urls=self.post_urls,
        )


class ProfileCollector:
    """
    Collects posts from a profile page.

    Two producers feed one merge: rendered post links found after each
    scroll, and post records from intercepted GraphQL responses. Records
    are keyed by shortcode; later network data overwrites stub fields.
    Collection finishes when the target is reached, after ``stall_limit``
    scrolls without new posts, or when stop() is called.
    """

    def __init__(
        self,
        page: BrowserPage,
        scroll_delay: float = PROFILE_SCROLL_DELAY,
        stall_limit: int = PROFILE_STALL_LIMIT,
        on_event: EventCallback = None,
    ):
        self.page = page
        self.scroll_delay = scroll_delay
        self.stall_limit = stall_limit
        self.on_event = on_event
        self.controller = RunController()
        self.state = ProfileCollectionState()
        self.username: Optional[str] = None

    def stop(self) -> None:
        """Finish collection at the next opportunity."""
        logger.info("🛑 Profile collection stop requested")
        self.controller.stop()

    def _emit(self, event) -> None:
        if self.on_event:
            self.on_event(event)

    def merge(self, posts: List[PostSummary], from_network: bool = False) -> int:
        """
        Merge posts into the collection.

        Network records overwrite fields of posts already held; DOM stubs
        only fill fields that are still empty.

        Args:
            posts: Posts from one producer
            from_network: Posts came from an intercepted API response

        Returns:
            Number of new shortcodes added
        """
        added = 0
        for post in posts:
            existing = self.state.posts.get(post.code)
            if existing is None:
                self.state.posts[post.code] = post
                added += 1
            elif from_network:
                existing.merge(post)
            else:
                existing.fill_missing(post)
        if added:
            logger.debug(f"➕ Added {added} posts, total {self.state.count}")
            self._emit(ProfileScrapeProgress(count=self.state.count, target_count=self.state.target_count))
        return added

    async def _dom_snapshots(self) -> AsyncIterator[List[PostSummary]]:
        while True:
            html = await self.page.content()
            yield parse_post_links(html, self.username)
            await self.page.scroll_to_load_more()
            await self.controller.sleep(self.scroll_delay)

    async def _consume_responses(self) -> None:
        async for payload in self.page.json_responses():
            posts = extract_feed_posts(payload, self.username)
            if posts:
                logger.debug(f"📥 Intercepted {len(posts)} posts with full metadata")
                self.merge(posts, from_network=True)

    async def collect(self, target_count: int = 0) -> ProfileCollection:
        """
        Collect posts from the current profile page.

        Args:
            target_count: Stop after this many posts (0 collects everything)

        Returns:
            ProfileCollection truncated to the target
        """
        self.state = ProfileCollectionState(target_count=target_count, collecting=True)
        self.controller.start()
        html = await self.page.content()
        self.username = profile_username(html, self.page.url)
        logger.info(f"🎬 Collecting posts from @{self.username or 'unknown'}, target: {target_count or 'all'}")
        self._emit(ProfileScrapeProgress(count=0, target_count=target_count))

        network = asyncio.create_task(self._consume_responses())
        snapshots = self._dom_snapshots()
        try:
            async for stubs in snapshots:
                self.merge(stubs)
                if self.state.target_reached():
                    logger.info("✅ Reached target post count")
                    break
                if self.controller.stop_requested():
                    break
                if self.state.count == self.state.last_count:
                    self.state.stall_count += 1
                    logger.debug(f"No new posts ({self.state.stall_count}/{self.stall_limit})")
                    if self.state.stall_count >= self.stall_limit:
                        logger.info("📭 No more posts available")
                        break
                else:
                    self.state.stall_count = 0
                    self.state.last_count = self.state.count
        finally:
            await snapshots.aclose()
            network.cancel()
            try:
                await network
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"❌ Response listener failed, kept {self.state.count} posts: {e}")
            self.state.collecting = False
            self.controller.complete()

        posts = list(self.state.posts.values())
        if target_count > 0:
            posts = posts[:target_count]
        collection = ProfileCollection(posts=posts, username=self.username)
        logger.info(f"✅ Collection finished with {len(posts)} posts")
        self._emit(collection.to_event())
        return collection
