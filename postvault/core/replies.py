"""Reply (child comment) resolution for top-level comments."""

from typing import List, Optional

from postvault.core.exceptions import FetchError
from postvault.core.rate_limiter import RateLimitClass
from postvault.core.session import ExtractionSession
from postvault.models.data_models import Comment
from postvault.models.events import EventCallback, ExtractionProgress
from postvault.utils.config import CHILD_COMMENTS_URL, MAX_CHILD_COMMENT_REQUESTS
from postvault.utils.logging import get_logger

logger = get_logger(__name__)


class ReplyResolver:
    """
    Fetches replies for each top-level comment that advertises any.

    A failure while fetching one parent's replies keeps what was gathered
    for that parent and moves on to the next parent.
    """

    def __init__(
        self,
        session: ExtractionSession,
        max_requests: int = MAX_CHILD_COMMENT_REQUESTS,
        on_progress: EventCallback = None,
    ):
        """
        Initialize reply resolver.

        Args:
            session: Extraction session providing fetcher and limiter
            max_requests: Reply pages fetched per parent at most
            on_progress: Optional progress callback
        """
        self.session = session
        self.max_requests = max_requests
        self.on_progress = on_progress
        self.failed_parents: List[str] = []

    async def fetch_replies(self, media_id: str, parent_id: str) -> List[Comment]:
        """
        Fetch all reply pages for one parent comment. Never raises.

        Args:
            media_id: Numeric media id of the post
            parent_id: Id of the top-level comment

        Returns:
            Replies in server order (possibly partial)
        """
        url = CHILD_COMMENTS_URL.format(media_id=media_id, comment_id=parent_id)
        replies: List[Comment] = []
        cursor: Optional[str] = None
        requests = 0

        while requests < self.max_requests:
            params = {"min_id": cursor} if cursor else None
            try:
                payload = await self.session.fetcher.fetch_with_retry(
                    url, RateLimitClass.REPLY_LISTING, params=params
                )
            except FetchError as e:
                logger.warning(
                    f"⚠️ Replies for comment {parent_id} failed after {len(replies)} replies: {e}"
                )
                self.failed_parents.append(parent_id)
                break
            requests += 1

            children = payload.get("child_comments") if isinstance(payload, dict) else None
            if not isinstance(children, list):
                logger.debug(f"No child_comments in response for {parent_id}")
                break

            for node in children:
                if not isinstance(node, dict):
                    logger.debug(f"Skipping malformed reply entry for {parent_id}: {node!r}")
                    continue
                reply = Comment.from_api(node)
                if reply.child_comment_count:
                    logger.warning(
                        f"⚠️ Reply {reply.id} reports {reply.child_comment_count} nested replies; "
                        f"nested threads are not fetched"
                    )
                replies.append(reply)

            cursor = payload.get("next_min_id") or None
            if not (payload.get("has_more_tail_child_comments") and cursor):
                break
            if requests >= self.max_requests:
                logger.warning(f"⚠️ Reply request cap reached for comment {parent_id}")
                break
            await self.session.pace(RateLimitClass.REPLY_PAGINATION)

        return replies

    async def resolve(self, media_id: str, parents: List[Comment]) -> int:
        """
        Attach replies to every parent with a non-zero reply count.

        Args:
            media_id: Numeric media id of the post
            parents: Top-level comments, mutated in place

        Returns:
            Total number of replies attached
        """
        with_replies = [p for p in parents if p.child_comment_count > 0]
        if not with_replies:
            return 0

        logger.info(f"🧵 Fetching replies for {len(with_replies)} comments")
        total = 0
        for index, parent in enumerate(with_replies):
            if index > 0:
                await self.session.pace(RateLimitClass.COMMENT_LISTING)
            parent.replies = await self.fetch_replies(media_id, parent.id)
            total += len(parent.replies)
            if self.on_progress:
                self.on_progress(ExtractionProgress(
                    message=f"Fetching replies ({index + 1}/{len(with_replies)})...",
                    current=index + 1,
                    total=len(with_replies),
                ))

        logger.info(f"Attached {total} replies ({len(self.failed_parents)} parents incomplete)")
        return total
