from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from question_dedup.config.settings import get_settings

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Return the process-wide async engine for ``Settings.database_url``.

    Pre-ping is skipped for SQLite, whose connections never go stale.
    """
    global _engine
    if _engine is None:
        url = get_settings().database_url
        _engine = create_async_engine(url, pool_pre_ping=not url.startswith("sqlite"))
    return _engine


async def dispose_engine() -> None:
    """Close pooled connections at shutdown, before the event loop exits."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
