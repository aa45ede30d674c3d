"""Write extracted posts to disk as JSON, CSV and metadata files."""

import csv
import io
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

import aiofiles

from postvault.models.data_models import Comment, PostInfo
from postvault.utils.config import COMMENTS_SUBFOLDER, DOWNLOAD_DIR, MEDIA_SUBFOLDER
from postvault.utils.logging import get_logger

logger = get_logger(__name__)

CSV_HEADER = [
    "Post Username",
    "Post URL",
    "Post Caption",
    "Post Like Count",
    "Post Comment Count",
    "Post Date",
    "Comment ID",
    "Comment Username",
    "Comment Text",
    "Comment Created At",
    "Comment Likes",
    "Is Reply",
]


def folder_name(post_info: PostInfo) -> str:
    """``{username}_{POSTTYPE}_{YYYYMMDD}_{shortcode}``"""
    posted = post_info.posted_date
    date_str = posted.strftime("%Y%m%d") if posted else "unknown-date"
    username = post_info.username or "unknown"
    post_type = (post_info.post_type or "post").upper()
    return f"{username}_{post_type}_{date_str}_{post_info.shortcode or 'post'}"


def _iso(timestamp: Optional[int]) -> str:
    if not timestamp:
        return ""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def comments_to_csv_rows(post_info: PostInfo, comments: Iterable[Comment]) -> List[List]:
    """
    Flatten a comment tree into CSV rows, header first.

    Post columns repeat on every row; each reply row follows its parent.
    """
    post_columns = [
        post_info.username or "Unknown",
        post_info.post_url,
        post_info.caption or "",
        post_info.like_count,
        post_info.comment_count,
        post_info.posted_at or "",
    ]
    rows: List[List] = [list(CSV_HEADER)]

    def add(comment: Comment, is_reply: bool) -> None:
        rows.append(post_columns + [
            comment.id,
            comment.owner.username or "Unknown",
            comment.text,
            _iso(comment.created_at),
            comment.like_count,
            "Yes" if is_reply else "No",
        ])
        for reply in comment.replies:
            add(reply, True)

    for comment in comments:
        add(comment, False)
    return rows


def comments_to_csv(post_info: PostInfo, comments: Iterable[Comment]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerows(comments_to_csv_rows(post_info, comments))
    return buffer.getvalue()


class ArchiveWriter:
    """
    Writes one folder per post under the download directory:

        {folder}/comments/{folder}_comments.json
        {folder}/comments/{folder}_comments.csv
        {folder}/{folder}_metadata.json
        {folder}/media/{folder}_media_{n}.{ext}
    """

    def __init__(self, base_dir: Path = DOWNLOAD_DIR):
        self.base_dir = Path(base_dir)

    def post_dir(self, post_info: PostInfo) -> Path:
        return self.base_dir / folder_name(post_info)

    def media_path(self, post_info: PostInfo, index: int, url: str, is_video: bool) -> Path:
        """Destination for the ``index``-th (1-based) media item."""
        prefix = folder_name(post_info)
        return self.post_dir(post_info) / MEDIA_SUBFOLDER / f"{prefix}_media_{index}.{media_extension(url, is_video)}"

    async def _write_text(self, path: Path, text: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "w", encoding="utf-8", newline="") as f:
            await f.write(text)
        return path

    async def write_comments(self, result: dict, post_info: PostInfo, comments: List[Comment]) -> List[Path]:
        """
        Write the extraction result as JSON and the comment tree as CSV.

        Args:
            result: ExtractedComments dictionary
            post_info: Post metadata
            comments: Top-level comments with replies attached

        Returns:
            Paths written
        """
        prefix = folder_name(post_info)
        folder = self.post_dir(post_info) / COMMENTS_SUBFOLDER
        json_path = await self._write_text(
            folder / f"{prefix}_comments.json",
            json.dumps(result, indent=2, ensure_ascii=False),
        )
        csv_path = await self._write_text(
            folder / f"{prefix}_comments.csv",
            comments_to_csv(post_info, comments),
        )
        logger.info(f"💾 Saved {len(comments)} comments to {folder}")
        return [json_path, csv_path]

    async def write_metadata(self, post_info: PostInfo, media_count: int, comment_total: int) -> Path:
        """Write ``{prefix}_metadata.json`` with the post info and counts."""
        metadata = post_info.to_dict()
        metadata.update({
            "downloaded_at": datetime.now(timezone.utc).isoformat(),
            "media_count": media_count,
            "comment_count": comment_total,
        })
        prefix = folder_name(post_info)
        return await self._write_text(
            self.post_dir(post_info) / f"{prefix}_metadata.json",
            json.dumps(metadata, indent=2, ensure_ascii=False),
        )


async def read_comments(path: Path) -> List[Comment]:
    """Load comments back from a ``*_comments.json`` archive file."""
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        data = json.loads(await f.read())
    return [Comment.from_dict(c) for c in data.get("comments", [])]


def media_extension(url: str, is_video: bool = False) -> str:
    """File extension for a media URL (mp4 for videos, jpg when unknown)."""
    if is_video:
        return "mp4"
    path = url.split("?", 1)[0].lower()
    for ext in ("jpg", "jpeg", "png", "webp", "gif"):
        if path.endswith("." + ext):
            return ext
    return "jpg"
