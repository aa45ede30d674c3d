"""Locate a post's embedded data in a page's initial HTML payload."""

import json
import re
from datetime import datetime, timezone
from typing import Any, Iterator, List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from postvault.core.exceptions import PostNotFoundError
from postvault.core.session import ExtractionSession
from postvault.models.data_models import (
    MediaItem,
    OwnerInfo,
    PostInfo,
    PostRecord,
    media_type_tag,
)
from postvault.utils.config import INSTAGRAM_BASE_URL, PROFILE_PATH_EXCLUDES
from postvault.utils.logging import get_logger

logger = get_logger(__name__)

SHORTCODE_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{11}$")
POST_URL_PATTERN = re.compile(r"instagram\.com/(?:[^/]+/)?(p|reel|reels)/([^/?#]+)")
PAGE_PATH_PATTERN = re.compile(r"/(p|reel|reels)/([^/?#]+)")
HEADER_PROFILE_PATTERN = re.compile(r"instagram\.com/([^/?]+)")

MEDIA_INFO_KEY = "xdt_api__v1__media__shortcode__web_info"
STREAM_CACHE_TAG = "RelayPrefetchedStreamCache"


def extract_shortcode(url: str) -> Optional[str]:
    """
    Extract the shortcode from a post or reel URL.

    Accepts absolute URLs (optionally with a username segment before
    ``/p/``) as well as bare paths such as ``/reel/ABC/``.

    Returns:
        Shortcode, or None if the URL is not a post URL
    """
    match = POST_URL_PATTERN.search(url) or PAGE_PATH_PATTERN.search(urlparse(url).path)
    return match.group(2) if match else None


def is_valid_shortcode(shortcode: str) -> bool:
    return bool(SHORTCODE_PATTERN.match(shortcode or ""))


def is_reel_url(url: Optional[str]) -> bool:
    return bool(url) and ("/reel/" in url or "/reels/" in url)


def build_post_url(post_type: str, shortcode: str) -> str:
    """Canonical URL for a post ('reel' or anything else for /p/)."""
    segment = "reel" if post_type == "reel" else "p"
    return f"{INSTAGRAM_BASE_URL}/{segment}/{shortcode}/"


def dig(data: Any, *path: Any) -> Any:
    """Follow keys/indices through nested JSON, returning None on any miss."""
    current = data
    for key in path:
        try:
            current = current[key]
        except (KeyError, IndexError, TypeError):
            return None
    return current


def iter_cached_media(payload: dict) -> Iterator[dict]:
    """
    Yield ``items[0]`` of every prefetched media record in a payload.

    The layout is ``require[*][3][0].__bbox.require[*]`` where an entry
    tagged RelayPrefetchedStreamCache carries the query result at
    ``[3][1].__bbox.result.data``.
    """
    for require_item in payload.get("require") or []:
        if not isinstance(require_item, list) or len(require_item) < 4:
            continue
        bbox_require = dig(require_item, 3, 0, "__bbox", "require")
        if not isinstance(bbox_require, list):
            continue
        for cache_item in bbox_require:
            if not isinstance(cache_item, list) or not cache_item or cache_item[0] != STREAM_CACHE_TAG:
                continue
            items = dig(cache_item, 3, 1, "__bbox", "result", "data", MEDIA_INFO_KEY, "items")
            if isinstance(items, list) and items and isinstance(items[0], dict):
                yield items[0]


def _owner_from_page(soup: Optional[BeautifulSoup], page_url: Optional[str]) -> OwnerInfo:
    """Rendered-page fallback: header profile link and avatar, then the URL path."""
    username = None
    avatar = None
    if soup is not None:
        link = soup.select_one('header a[role="link"]')
        if link is not None and link.get("href"):
            href = urljoin(INSTAGRAM_BASE_URL + "/", link["href"])
            match = HEADER_PROFILE_PATTERN.search(href)
            if match:
                username = match.group(1)

        img = soup.select_one("header img")
        if img is not None and img.get("src"):
            avatar = img["src"]

    if username is None and page_url:
        match = re.match(r"^/([^/]+)/", urlparse(page_url).path)
        if match and match.group(1) not in PROFILE_PATH_EXCLUDES:
            username = match.group(1)

    return OwnerInfo(username=username or "unknown", profile_pic_url=avatar)


def resolve_owner(post: dict, soup: Optional[BeautifulSoup] = None, page_url: Optional[str] = None) -> OwnerInfo:
    """
    Work out who posted a media record.

    Instagram moves the author around between layouts, so sources are tried
    in order: ``user``, ``owner``, ``caption.user``, the first
    ``coauthor_producers`` entry, then the rendered page header and the
    URL path. The first source carrying a username wins.
    """
    sources = [
        post.get("user"),
        post.get("owner"),
        dig(post, "caption", "user"),
    ]
    sources.extend(post.get("coauthor_producers") or [])

    for source in sources:
        if isinstance(source, dict) and source.get("username"):
            pk = source.get("pk") or source.get("id")
            return OwnerInfo(
                username=source["username"],
                user_id=str(pk) if pk else None,
                full_name=source.get("full_name") or source.get("name") or None,
                profile_pic_url=(
                    source.get("profile_pic_url")
                    or source.get("profile_picture")
                    or dig(source, "hd_profile_pic_url_info", "url")
                ),
            )

    logger.warning("⚠️ No owner info in post data, falling back to page header")
    return _owner_from_page(soup, page_url)


def extract_media_items(post: dict) -> List[MediaItem]:
    """
    List downloadable media for a post: carousel children, or the post itself.

    Videos use the first (highest quality) ``video_versions`` entry with the
    first image candidate as thumbnail; images use the first candidate.
    """
    children = post.get("carousel_media") or [post]
    items = []
    for child in children:
        image = dig(child, "image_versions2", "candidates", 0) or {}
        video_versions = child.get("video_versions") or []
        pk = child.get("pk") or child.get("id")
        if video_versions:
            video = video_versions[0]
            items.append(MediaItem(
                media_type="video",
                id=str(pk) if pk else None,
                shortcode=child.get("code") or post.get("code"),
                video_url=video.get("url"),
                width=video.get("width"),
                height=video.get("height"),
                thumbnail_url=image.get("url"),
            ))
        elif image.get("url"):
            items.append(MediaItem(
                media_type="image",
                id=str(pk) if pk else None,
                shortcode=child.get("code") or post.get("code"),
                image_url=image["url"],
                width=image.get("width"),
                height=image.get("height"),
            ))
    return items


def build_record(post: dict, owner: OwnerInfo) -> PostRecord:
    """Build an immutable PostRecord from a located ``items[0]`` dict."""
    media_id = post.get("pk") or str(post.get("id", "")).split("_")[0]
    caption = post.get("caption") or {}
    return PostRecord(
        media_id=str(media_id),
        shortcode=post.get("code", ""),
        owner=owner,
        caption=caption.get("text", "") if isinstance(caption, dict) else "",
        like_count=post.get("like_count") or 0,
        comment_count=post.get("comment_count") or 0,
        taken_at=post.get("taken_at"),
        media_type=media_type_tag(post.get("media_type")),
        media_items=tuple(extract_media_items(post)),
        raw=post,
    )


def build_post_info(record: PostRecord, page_url: Optional[str] = None) -> PostInfo:
    """Post metadata for results, with the post type taken from the page URL."""
    post_type = "reel" if is_reel_url(page_url) else "post"
    posted_at = None
    if record.taken_at:
        posted_at = datetime.fromtimestamp(record.taken_at, tz=timezone.utc).isoformat()
    return PostInfo(
        username=record.owner.username,
        full_name=record.owner.full_name,
        user_id=record.owner.user_id,
        profile_pic_url=record.owner.profile_pic_url,
        post_url=build_post_url(post_type, record.shortcode),
        post_type=post_type,
        shortcode=record.shortcode,
        caption=record.caption,
        like_count=record.like_count,
        comment_count=record.comment_count,
        posted_at=posted_at,
        posted_at_timestamp=record.taken_at,
        media_type=record.media_type,
        is_video=record.is_video,
    )


class PostLocator:
    """Finds the post record embedded in a post page and caches it per page view."""

    def __init__(self, session: ExtractionSession):
        self.session = session

    def locate(self, html: str, shortcode: str, page_url: Optional[str] = None) -> PostRecord:
        """
        Find the embedded record for a shortcode.

        Args:
            html: Page HTML as rendered in the browser
            shortcode: Post shortcode from the page URL
            page_url: Page URL, used for owner fallbacks

        Returns:
            PostRecord for the first structural match

        Raises:
            PostNotFoundError: If no script payload contains the post
        """
        cached = self.session.post_cache.get(shortcode)
        if cached is not None:
            logger.debug(f"Post {shortcode} served from page cache")
            return cached

        soup = BeautifulSoup(html, "lxml")
        scripts = soup.find_all("script", type="application/json")
        logger.debug(f"Scanning {len(scripts)} JSON script tags for {shortcode}")

        for script in scripts:
            content = script.string or script.get_text()
            if not content or shortcode not in content:
                continue
            try:
                payload = json.loads(content)
            except json.JSONDecodeError:
                logger.debug("Skipping script tag with invalid JSON")
                continue
            if not isinstance(payload, dict):
                continue

            for post in iter_cached_media(payload):
                if post.get("code") != shortcode:
                    continue
                owner = resolve_owner(post, soup, page_url)
                record = build_record(post, owner)
                self.session.post_cache.store(record)
                logger.info(
                    f"✅ Found post {shortcode} by @{owner.username} "
                    f"({record.comment_count} comments, {len(record.media_items)} media)"
                )
                return record

        raise PostNotFoundError(f"Post data not found for {shortcode}")
