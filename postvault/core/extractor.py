"""Single-post extraction: locate, paginate, resolve replies, verify."""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from postvault.core.comments import CommentPaginator, GraphQLCommentPaginator, relaxed_continuation
from postvault.core.exceptions import PostNotFoundError, PostVaultError, describe_error
from postvault.core.post_locator import PostLocator, build_post_info, extract_shortcode
from postvault.core.replies import ReplyResolver
from postvault.core.session import ExtractionSession
from postvault.core.verifier import Verification, completeness_note, verify
from postvault.models.data_models import Comment, CommentListing, PostInfo, PostRecord
from postvault.models.events import EventCallback, ExtractionProgress
from postvault.utils.logging import get_logger

logger = get_logger(__name__)


class CommentSource(Enum):
    """Which endpoint family paginates comments."""
    API = "api"  # v1 comments API, with replies
    GRAPHQL = "graphql"  # flat list, no replies


@dataclass
class PostExtraction:
    """Everything extracted for one post."""
    record: PostRecord
    post_info: PostInfo
    comments: List[Comment]
    listing: CommentListing
    reply_count: int
    verification: Verification
    note: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.comments) + self.reply_count

    def to_dict(self) -> dict:
        return {
            "post_info": self.post_info.to_dict(),
            "total": self.total,
            "total_comments": len(self.comments),
            "total_replies": self.reply_count,
            "comments": [c.to_dict() for c in self.comments],
            "note": self.note,
            "completeness": {
                "status": self.verification.status.value,
                "percentage": self.verification.percentage,
            },
        }


class PostExtractor:
    """
    Runs the full extraction pipeline for the post shown on a page.

    Usage:
        async with ExtractionSession(cookies=cookies) as session:
            extractor = PostExtractor(session)
            result = await extractor.extract_comments(html, page_url)
    """

    def __init__(
        self,
        session: ExtractionSession,
        source: CommentSource = CommentSource.API,
        skip_replies: bool = False,
        skip_replies_when_throttled: bool = True,
        on_progress: EventCallback = None,
    ):
        """
        Initialize extractor.

        Args:
            session: Extraction session shared across posts
            source: Comment endpoint family to use
            skip_replies: Never fetch replies
            skip_replies_when_throttled: Skip replies for a post whose main
                pagination was throttled
            on_progress: Optional progress callback
        """
        self.session = session
        self.source = source
        self.skip_replies = skip_replies
        self.skip_replies_when_throttled = skip_replies_when_throttled
        self.on_progress = on_progress
        self.locator = PostLocator(session)

    def _emit(self, message: str) -> None:
        if self.on_progress:
            self.on_progress(ExtractionProgress(message=message))

    def locate(self, html: str, page_url: str) -> PostRecord:
        """
        Find the post record for the page.

        Raises:
            PostNotFoundError: If the URL is not a post URL or no data is embedded
        """
        shortcode = extract_shortcode(page_url)
        if not shortcode:
            raise PostNotFoundError(f"Not on a post or reel page: {page_url}")
        self._emit("Extracting post data...")
        return self.locator.locate(html, shortcode, page_url)

    async def extract(self, html: str, page_url: str) -> PostExtraction:
        """
        Extract the post and its complete comment tree.

        Args:
            html: Rendered page HTML
            page_url: URL of the page

        Returns:
            PostExtraction

        Raises:
            PostVaultError: If the post cannot be located or comment
                pagination fails after retries
        """
        record = self.locate(html, page_url)
        post_info = build_post_info(record, page_url)
        expected = record.comment_count

        if self.source is CommentSource.GRAPHQL:
            paginator = GraphQLCommentPaginator(self.session, on_progress=self.on_progress)
            listing = await paginator.fetch_all(record.shortcode, expected)
            reply_count = 0
        else:
            paginator = CommentPaginator(
                self.session, policy=relaxed_continuation, on_progress=self.on_progress
            )
            listing = await paginator.fetch_all(record.media_id, expected)
            reply_count = await self._resolve_replies(record, listing)

        verification = verify(len(listing.comments), reply_count, expected)
        fetched = len(listing.comments) + reply_count
        notes = [n for n in (listing.note, completeness_note(verification, fetched, expected)) if n]

        logger.info(
            f"📊 {record.shortcode}: {len(listing.comments)} comments + {reply_count} replies "
            f"of {expected} ({verification.status.value}, {verification.percentage}%)"
        )
        return PostExtraction(
            record=record,
            post_info=post_info,
            comments=listing.comments,
            listing=listing,
            reply_count=reply_count,
            verification=verification,
            note=" ".join(notes) if notes else None,
        )

    async def _resolve_replies(self, record: PostRecord, listing: CommentListing) -> int:
        if self.skip_replies:
            logger.info("Skipping replies (disabled)")
            return 0
        if self.skip_replies_when_throttled and listing.throttled:
            logger.warning("⚠️ Skipping replies because comment pagination was throttled")
            return 0
        resolver = ReplyResolver(self.session, on_progress=self.on_progress)
        return await resolver.resolve(record.media_id, listing.comments)

    async def extract_comments(self, html: str, page_url: str) -> dict:
        """
        Extract comments and return the result as a plain dictionary.

        Returns:
            ``{post_info, total, total_comments, total_replies, comments, note}``
            or ``{total: 0, comments: [], error, errorType, guidance}``
        """
        try:
            extraction = await self.extract(html, page_url)
        except PostVaultError as e:
            logger.error(f"❌ Comment extraction failed for {page_url}: {e}")
            return {"total": 0, "comments": [], **describe_error(e, "Failed to extract comments")}
        return extraction.to_dict()

    def extract_media(self, html: str, page_url: str) -> dict:
        """
        List the media of the post on the page.

        Returns:
            ``{media, post_info}`` or ``{error, errorType, guidance}``
        """
        try:
            record = self.locate(html, page_url)
        except PostVaultError as e:
            logger.error(f"❌ Media extraction failed for {page_url}: {e}")
            return describe_error(e, "Failed to extract media")
        return {
            "media": [item.to_dict() for item in record.media_items],
            "post_info": build_post_info(record, page_url).to_dict(),
        }
