"""Top-level comment pagination."""

import json
from typing import Callable, Optional

from postvault.core.post_locator import dig
from postvault.core.rate_limiter import RateLimitClass
from postvault.core.session import ExtractionSession
from postvault.models.data_models import Comment, CommentListing, CommentPage
from postvault.models.events import EventCallback, ExtractionProgress
from postvault.utils.config import (
    COMMENTS_PER_PAGE,
    COMMENTS_URL,
    EMPTY_PAGE_DELAY,
    EMPTY_PAGE_LIMIT,
    GRAPHQL_QUERY_HASH,
    INSTAGRAM_GRAPHQL_URL,
    MAX_API_REQUESTS,
    MAX_GRAPHQL_REQUESTS,
)
from postvault.utils.logging import get_logger

logger = get_logger(__name__)

# (page, comments fetched so far, expected total) -> fetch another page?
ContinuationPolicy = Callable[[CommentPage, int, int], bool]

STOP_EXHAUSTED = "exhausted"
STOP_EMPTY_PAGES = "empty_pages"
STOP_NO_CURSOR = "no_cursor"
STOP_REQUEST_CAP = "request_cap"


def relaxed_continuation(page: CommentPage, fetched: int, expected_total: int) -> bool:
    """
    Keep going while a cursor exists and either the server says there is
    more or we are still short of the post's advertised comment count.

    Instagram sometimes reports ``has_more_comments: false`` while handing
    out a valid cursor to further pages.
    """
    return bool(page.cursor) and (page.has_more or fetched < expected_total)


def strict_continuation(page: CommentPage, fetched: int, expected_total: int) -> bool:
    """Trust the server's ``has_more_comments`` flag."""
    return bool(page.cursor) and page.has_more


def parse_comment_page(payload) -> CommentPage:
    """
    Parse a comments API response.

    A response without a ``comments`` list yields a page whose comments
    are None, keeping whatever cursor it carried. Non-object entries in
    the list are dropped.
    """
    if not isinstance(payload, dict):
        return CommentPage(comments=None)
    cursor = payload.get("next_max_id") or None
    has_more = bool(payload.get("has_more_comments"))
    raw_comments = payload.get("comments")
    if not isinstance(raw_comments, list):
        return CommentPage(comments=None, cursor=cursor, has_more=has_more)
    return CommentPage(
        comments=[Comment.from_api(node) for node in raw_comments if isinstance(node, dict)],
        cursor=cursor,
        has_more=has_more,
    )


class CommentPaginator:
    """
    Fetches every top-level comment of a post through the v1 comments API.

    Pagination stops when the continuation policy says so, after
    ``empty_page_limit`` consecutive malformed pages, when a malformed page
    carries no cursor, or at the request cap. Fetch errors that survive
    the retry wrapper propagate to the caller.
    """

    def __init__(
        self,
        session: ExtractionSession,
        policy: ContinuationPolicy = relaxed_continuation,
        max_requests: int = MAX_API_REQUESTS,
        empty_page_limit: int = EMPTY_PAGE_LIMIT,
        empty_page_delay: float = EMPTY_PAGE_DELAY,
        on_progress: EventCallback = None,
    ):
        self.session = session
        self.policy = policy
        self.max_requests = max_requests
        self.empty_page_limit = empty_page_limit
        self.empty_page_delay = empty_page_delay
        self.on_progress = on_progress

    async def fetch_all(self, media_id: str, expected_total: int) -> CommentListing:
        """
        Paginate all top-level comments.

        Args:
            media_id: Numeric media id of the post
            expected_total: Comment count advertised by the post

        Returns:
            CommentListing with comments in server order and replies empty
        """
        limiter = self.session.limiter
        throttles_before = limiter.throttle_count(RateLimitClass.COMMENT_LISTING)
        url = COMMENTS_URL.format(media_id=media_id)
        listing = CommentListing()
        cursor: Optional[str] = None
        empty_pages = 0

        logger.info(f"💬 Fetching comments for media {media_id} (expecting {expected_total})")

        while True:
            params = {"can_support_threading": "true", "permalink_enabled": "false"}
            if cursor:
                params["max_id"] = cursor

            payload = await self.session.fetcher.fetch_with_retry(
                url, RateLimitClass.COMMENT_LISTING, params=params
            )
            listing.requests += 1
            page = parse_comment_page(payload)

            if page.comments is None:
                empty_pages += 1
                logger.warning(
                    f"⚠️ Response without comments (page {listing.requests}, "
                    f"{empty_pages}/{self.empty_page_limit} in a row)"
                )
                if empty_pages >= self.empty_page_limit:
                    listing.stop_reason = STOP_EMPTY_PAGES
                    break
                if not page.cursor:
                    listing.stop_reason = STOP_NO_CURSOR
                    break
                delay = self.empty_page_delay
            else:
                empty_pages = 0
                listing.comments.extend(page.comments)
                logger.debug(
                    f"Page {listing.requests}: +{len(page.comments)} comments "
                    f"(total {len(listing.comments)}, has_more={page.has_more}, cursor={bool(page.cursor)})"
                )
                self._report(len(listing.comments), expected_total)
                if not self.policy(page, len(listing.comments), expected_total):
                    listing.stop_reason = STOP_EXHAUSTED
                    break
                delay = None

            if listing.requests >= self.max_requests:
                listing.stop_reason = STOP_REQUEST_CAP
                listing.hit_request_cap = True
                listing.note = (
                    f"Stopped after {listing.requests} requests; "
                    f"{len(listing.comments)} of {expected_total} comments fetched"
                )
                logger.warning(f"⚠️ {listing.note}")
                break

            cursor = page.cursor
            if delay is None:
                await self.session.pace(RateLimitClass.COMMENT_LISTING)
            else:
                await self.session.sleep(delay)

        listing.throttled = limiter.throttle_count(RateLimitClass.COMMENT_LISTING) > throttles_before
        logger.info(
            f"Fetched {len(listing.comments)} top-level comments in {listing.requests} "
            f"requests ({listing.stop_reason})"
        )
        return listing

    def _report(self, fetched: int, expected_total: int) -> None:
        if self.on_progress:
            self.on_progress(ExtractionProgress(
                message=f"Fetching comments ({fetched}/{expected_total})...",
                current=fetched,
                total=expected_total,
            ))


class GraphQLCommentPaginator:
    """
    Alternate path through the GraphQL comments query.

    Returns a flat list; replies are not resolved on this path.
    """

    def __init__(
        self,
        session: ExtractionSession,
        max_requests: int = MAX_GRAPHQL_REQUESTS,
        page_size: int = COMMENTS_PER_PAGE,
        on_progress: EventCallback = None,
    ):
        self.session = session
        self.max_requests = max_requests
        self.page_size = page_size
        self.on_progress = on_progress

    async def fetch_all(self, shortcode: str, expected_total: int) -> CommentListing:
        """
        Paginate comments for a shortcode via GraphQL.

        Args:
            shortcode: Post shortcode
            expected_total: Comment count advertised by the post

        Returns:
            CommentListing with a flat list of comments
        """
        limiter = self.session.limiter
        throttles_before = limiter.throttle_count(RateLimitClass.PRIMARY_QUERY)
        listing = CommentListing()
        cursor: Optional[str] = None

        logger.info(f"💬 Fetching comments for {shortcode} via GraphQL")

        while True:
            variables = {"shortcode": shortcode, "first": self.page_size}
            if cursor:
                variables["after"] = cursor
            params = {
                "query_hash": GRAPHQL_QUERY_HASH,
                "variables": json.dumps(variables, separators=(",", ":")),
            }

            payload = await self.session.fetcher.fetch_with_retry(
                INSTAGRAM_GRAPHQL_URL, RateLimitClass.PRIMARY_QUERY, params=params
            )
            listing.requests += 1

            connection = dig(payload, "data", "shortcode_media", "edge_media_to_comment")
            if not isinstance(connection, dict):
                logger.warning("⚠️ GraphQL response without edge_media_to_comment")
                listing.stop_reason = STOP_EMPTY_PAGES
                break

            for edge in connection.get("edges") or []:
                node = edge.get("node") if isinstance(edge, dict) else None
                if isinstance(node, dict):
                    listing.comments.append(Comment.from_graphql(node))

            if self.on_progress:
                self.on_progress(ExtractionProgress(
                    message=f"Fetching comments ({len(listing.comments)}/{expected_total})...",
                    current=len(listing.comments),
                    total=expected_total,
                ))

            page_info = connection.get("page_info") or {}
            if not (page_info.get("has_next_page") and page_info.get("end_cursor")):
                listing.stop_reason = STOP_EXHAUSTED
                break

            if listing.requests >= self.max_requests:
                listing.stop_reason = STOP_REQUEST_CAP
                listing.hit_request_cap = True
                listing.note = (
                    f"Stopped after {listing.requests} requests; "
                    f"{len(listing.comments)} of {expected_total} comments fetched"
                )
                logger.warning(f"⚠️ {listing.note}")
                break

            cursor = page_info["end_cursor"]
            await self.session.pace(RateLimitClass.PRIMARY_QUERY)

        listing.throttled = limiter.throttle_count(RateLimitClass.PRIMARY_QUERY) > throttles_before
        return listing
