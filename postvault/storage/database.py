"""Database engine and session management."""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from postvault.models.schema import Base
from postvault.utils.config import DB_URL
from postvault.utils.logging import get_logger

logger = get_logger(__name__)


class HistoryDatabase:
    """
    Async SQLite database holding download history.

    Usage:
        db = HistoryDatabase()
        await db.init()
        async with db.session() as session:
            await session.execute(...)
        await db.close()
    """

    def __init__(self, db_url: str = DB_URL):
        """
        Initialize database engine.

        Args:
            db_url: SQLAlchemy async URL (SQLite requires the aiosqlite driver)
        """
        self.db_url = db_url
        self.engine = create_async_engine(db_url, echo=False)
        self._session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def init(self) -> None:
        """Create all tables. Safe to call on every start."""
        database = make_url(self.db_url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)

        logger.debug(f"Initializing database at: {self.db_url}")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get an async database session as a context manager.

        Commits on success and rolls back if the block raises.

        Yields:
            SQLAlchemy AsyncSession instance
        """
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def close(self) -> None:
        """Clean up database connections."""
        await self.engine.dispose()
        logger.debug("Database connections closed")
