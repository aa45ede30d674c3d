"""SQLAlchemy ORM models for PostVault."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored by SQLite."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class DownloadedPost(Base):
    """A post whose archive was written; used to skip it in later batches."""

    __tablename__ = "downloaded_posts"

    # Primary key: Instagram's shortcode
    shortcode: Mapped[str] = mapped_column(String(20), primary_key=True)

    post_url: Mapped[Optional[str]] = mapped_column(Text)
    username: Mapped[Optional[str]] = mapped_column(String(100))
    downloaded_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<DownloadedPost(shortcode='{self.shortcode}')>"


class ExtractionRun(Base):
    """History record of one post extraction attempt."""

    __tablename__ = "extraction_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Target
    url: Mapped[str] = mapped_column(Text, nullable=False)
    shortcode: Mapped[Optional[str]] = mapped_column(String(20), index=True)
    username: Mapped[Optional[str]] = mapped_column(String(100))

    # Results
    comment_count: Mapped[int] = mapped_column(Integer, default=0)
    reply_count: Mapped[int] = mapped_column(Integer, default=0)
    expected_count: Mapped[int] = mapped_column(Integer, default=0)
    media_count: Mapped[int] = mapped_column(Integer, default=0)
    completeness: Mapped[Optional[str]] = mapped_column(String(20))  # Complete / Partial
    success: Mapped[bool] = mapped_column(Boolean, default=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    download_path: Mapped[Optional[str]] = mapped_column(Text)

    # Timing
    started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    completed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<ExtractionRun(id={self.id}, shortcode='{self.shortcode}', success={self.success})>"
