"""Progress events emitted by extraction, batch and profile runs."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union


@dataclass
class ExtractionProgress:
    """Free-text progress for a single post extraction."""
    message: str
    current: int = 0
    total: int = 0

    def to_dict(self) -> dict:
        return {"type": "extraction_progress", "message": self.message,
                "current": self.current, "total": self.total}


@dataclass
class BatchProgress:
    current: int
    total: int
    url: str
    success_count: int
    failed_urls: List[Dict[str, str]]
    skipped_count: int
    skipped: bool = False

    def to_dict(self) -> dict:
        return {
            "type": "batch_progress",
            "current": self.current,
            "total": self.total,
            "url": self.url,
            "successCount": self.success_count,
            "failedUrls": list(self.failed_urls),
            "skippedCount": self.skipped_count,
            "skipped": self.skipped,
        }


@dataclass
class BatchComplete:
    success_count: int
    skipped_count: int
    failed_urls: List[Dict[str, str]]
    total: int

    def to_dict(self) -> dict:
        return {
            "type": "batch_complete",
            "successCount": self.success_count,
            "skippedCount": self.skipped_count,
            "failedUrls": list(self.failed_urls),
            "total": self.total,
        }


@dataclass
class ProfileScrapeProgress:
    count: int
    target_count: int

    def to_dict(self) -> dict:
        return {"type": "profile_scrape_progress", "count": self.count,
                "targetCount": self.target_count}


@dataclass
class ProfileScrapeComplete:
    posts: List[Dict[str, Any]]
    username: Optional[str]
    post_urls: List[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.posts)

    def to_dict(self) -> dict:
        return {
            "type": "profile_scrape_complete",
            "posts": self.posts,
            "postUrls": self.post_urls,
            "count": self.count,
            "username": self.username,
        }


Event = Union[ExtractionProgress, BatchProgress, BatchComplete, ProfileScrapeProgress, ProfileScrapeComplete]
EventCallback = Optional[Callable[[Event], None]]
