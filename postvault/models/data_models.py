"""Data models for extracted Instagram posts, comments and feeds."""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple


MEDIA_TYPE_IMAGE = "Image"
MEDIA_TYPE_VIDEO = "Video"
MEDIA_TYPE_CAROUSEL = "Carousel"


def media_type_tag(code: Optional[int]) -> str:
    """Map Instagram's numeric media_type (1, 2, 8) to a display tag."""
    if code == 2:
        return MEDIA_TYPE_VIDEO
    if code == 8:
        return MEDIA_TYPE_CAROUSEL
    return MEDIA_TYPE_IMAGE


@dataclass(frozen=True)
class OwnerInfo:
    """Post author as resolved by the post locator."""
    username: str
    user_id: Optional[str] = None
    full_name: Optional[str] = None
    profile_pic_url: Optional[str] = None


@dataclass(frozen=True)
class MediaItem:
    """Represents a single media item (image or video)."""
    media_type: str  # 'image' or 'video'
    id: Optional[str] = None
    shortcode: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    thumbnail_url: Optional[str] = None

    @property
    def url(self) -> Optional[str]:
        """Best downloadable URL for this item."""
        return self.video_url or self.image_url

    def to_dict(self) -> dict:
        return {
            "type": self.media_type,
            "id": self.id,
            "shortcode": self.shortcode,
            "url": self.url,
            "image_url": self.image_url,
            "video_url": self.video_url,
            "width": self.width,
            "height": self.height,
            "thumbnail": self.thumbnail_url,
        }


@dataclass(frozen=True)
class PostRecord:
    """A post located in a page's embedded payload. Immutable once built."""
    media_id: str
    shortcode: str
    owner: OwnerInfo
    caption: str = ""
    like_count: int = 0
    comment_count: int = 0
    taken_at: Optional[int] = None  # epoch seconds
    media_type: str = MEDIA_TYPE_IMAGE
    media_items: Tuple[MediaItem, ...] = ()
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_video(self) -> bool:
        return self.media_type == MEDIA_TYPE_VIDEO


@dataclass
class CommentAuthor:
    """Comment author."""
    id: Optional[str]
    username: str
    profile_pic_url: Optional[str] = None


@dataclass
class Comment:
    """
    A top-level comment or a reply.

    Replies are only ever attached to top-level comments; a reply's own
    ``replies`` list stays empty.
    """
    id: str
    text: str
    created_at: Optional[int]  # epoch seconds
    owner: CommentAuthor
    like_count: int = 0
    child_comment_count: int = 0
    replies: List["Comment"] = field(default_factory=list)

    @classmethod
    def from_api(cls, node: dict) -> "Comment":
        """
        Build a comment from a comments API (v1) node.

        Args:
            node: Entry of ``comments`` or ``child_comments``

        Returns:
            Comment instance with no replies attached
        """
        user = node.get("user") or {}
        return cls(
            id=str(node.get("pk") or node.get("id") or ""),
            text=node.get("text") or "",
            created_at=node.get("created_at") or node.get("created_at_utc"),
            owner=CommentAuthor(
                id=str(user["pk"]) if user.get("pk") is not None else user.get("id"),
                username=user.get("username") or "unknown",
                profile_pic_url=user.get("profile_pic_url"),
            ),
            like_count=node.get("comment_like_count") or 0,
            child_comment_count=node.get("child_comment_count") or 0,
        )

    @classmethod
    def from_graphql(cls, node: dict) -> "Comment":
        """Build a comment from an ``edge_media_to_comment`` node."""
        owner = node.get("owner") or {}
        return cls(
            id=str(node.get("id") or ""),
            text=node.get("text") or "",
            created_at=node.get("created_at"),
            owner=CommentAuthor(
                id=owner.get("id"),
                username=owner.get("username") or "unknown",
                profile_pic_url=owner.get("profile_pic_url"),
            ),
            like_count=(node.get("edge_liked_by") or {}).get("count", 0),
            child_comment_count=(node.get("edge_threaded_comments") or {}).get("count", 0),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "created_at": self.created_at,
            "owner": {
                "id": self.owner.id,
                "username": self.owner.username,
                "profile_pic_url": self.owner.profile_pic_url,
            },
            "like_count": self.like_count,
            "child_comment_count": self.child_comment_count,
            "replies": [reply.to_dict() for reply in self.replies],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Comment":
        owner = data.get("owner") or {}
        return cls(
            id=data["id"],
            text=data.get("text", ""),
            created_at=data.get("created_at"),
            owner=CommentAuthor(
                id=owner.get("id"),
                username=owner.get("username", "unknown"),
                profile_pic_url=owner.get("profile_pic_url"),
            ),
            like_count=data.get("like_count", 0),
            child_comment_count=data.get("child_comment_count", 0),
            replies=[cls.from_dict(r) for r in data.get("replies", [])],
        )


@dataclass
class CommentPage:
    """One page of the comments API. ``comments`` is None for a malformed page."""
    comments: Optional[List[Comment]]
    cursor: Optional[str] = None
    has_more: bool = False


@dataclass
class CommentListing:
    """Outcome of paginating all top-level comments of a post."""
    comments: List[Comment] = field(default_factory=list)
    requests: int = 0
    stop_reason: str = ""
    throttled: bool = False
    hit_request_cap: bool = False
    note: Optional[str] = None


@dataclass
class PostInfo:
    """Post metadata as returned alongside extracted comments and media."""
    username: str
    full_name: Optional[str]
    user_id: Optional[str]
    profile_pic_url: Optional[str]
    post_url: str
    post_type: str  # 'post' or 'reel'
    shortcode: str
    caption: str
    like_count: int
    comment_count: int
    posted_at: Optional[str]  # ISO-8601
    posted_at_timestamp: Optional[int]
    media_type: str
    is_video: bool

    def to_dict(self) -> dict:
        return asdict(self)

    @property
    def posted_date(self) -> Optional[datetime]:
        if self.posted_at_timestamp is None:
            return None
        return datetime.fromtimestamp(self.posted_at_timestamp, tz=timezone.utc)


@dataclass
class PostSummary:
    """
    A post found while collecting a profile feed.

    DOM stubs only know code, media type, user name and URL; intercepted
    API records fill in the rest.
    """
    code: str
    post_url: str
    post_id: Optional[str] = None
    media_type: Optional[int] = None
    likes_count: Optional[int] = None
    comments_count: Optional[int] = None
    view_count: Optional[int] = None
    caption: Optional[str] = None
    create_date: Optional[str] = None
    user_name: Optional[str] = None

    def merge(self, other: "PostSummary") -> None:
        """Overwrite fields with every non-empty value from a richer record."""
        for f in fields(self):
            value = getattr(other, f.name)
            if value not in (None, ""):
                setattr(self, f.name, value)

    def fill_missing(self, other: "PostSummary") -> None:
        """Copy values from another record into fields that are still empty."""
        for f in fields(self):
            value = getattr(other, f.name)
            if getattr(self, f.name) in (None, "") and value not in (None, ""):
                setattr(self, f.name, value)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "postId": self.post_id,
            "mediaType": self.media_type,
            "likesCount": self.likes_count or 0,
            "commentsCount": self.comments_count or 0,
            "viewCount": self.view_count or 0,
            "caption": self.caption or "",
            "createDate": self.create_date or "",
            "userName": self.user_name or "",
            "postUrl": self.post_url,
        }


@dataclass
class BatchJob:
    """State of one batch run, mutated only by the batch loop."""
    queue: List[str]
    skip_downloaded: bool = True
    current_index: int = 0
    success_count: int = 0
    skipped_count: int = 0
    failed: List[Tuple[str, str]] = field(default_factory=list)
    is_processing: bool = False

    @property
    def total(self) -> int:
        return len(self.queue)

    def failed_urls(self) -> List[dict]:
        return [{"url": url, "error": error} for url, error in self.failed]


@dataclass
class ProfileCollectionState:
    """Working state of one profile collection."""
    target_count: int = 0  # 0 means unbounded
    posts: Dict[str, PostSummary] = field(default_factory=dict)  # insertion ordered
    stall_count: int = 0
    last_count: int = 0
    collecting: bool = False

    @property
    def count(self) -> int:
        return len(self.posts)

    def target_reached(self) -> bool:
        return self.target_count > 0 and self.count >= self.target_count
