"""
Async DB access for the job status table.

Provides:
- Database: engine + session factory built from an explicit Settings object
- get_session(): FastAPI dependency (commit/rollback handled)
- get_db_session(): context manager for worker code
- close_db(): shutdown helper
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shared.config import Settings, get_settings
from api.orchestrator.db.models import Base


class Database:
    def __init__(self, settings: Optional[Settings] = None, *, url: Optional[str] = None) -> None:
        self.settings = settings or get_settings()
        self.url = url or str(self.settings.database_url)

        engine_kwargs: dict = {"echo": self.settings.log_level == "DEBUG"}
        if self.url.startswith("sqlite"):
            # one shared in-process connection (in-memory DBs vanish per connection)
            engine_kwargs.update(
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            engine_kwargs["pool_pre_ping"] = True

        self.engine: AsyncEngine = create_async_engine(self.url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Dev/test helper; production schemas come from Alembic."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


_db: Optional[Database] = None


def get_database() -> Database:
    global _db
    if _db is None:
        _db = Database()
    return _db


def set_database(db: Optional[Database]) -> None:
    """Swap the process-wide database (tests, alternative DSNs)."""
    global _db
    _db = db


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: yields a session and commits/rollbacks automatically."""
    async with get_database().session() as session:
        yield session


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Use outside FastAPI (worker/background tasks)."""
    async with get_database().session() as session:
        yield session


async def close_db() -> None:
    global _db
    if _db is not None:
        await _db.dispose()
        _db = None
