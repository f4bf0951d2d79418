from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from question_dedup.db.engine import get_engine
from question_dedup.models.base import Base

_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return a cached session factory bound to the engine."""
    global _session_factory
    if _session_factory is None:
        engine = get_engine()
        _session_factory = async_sessionmaker(engine, expire_on_commit=False)
    return _session_factory


async def create_tables() -> None:
    """Create any missing tables (local SQLite runs without Alembic)."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
