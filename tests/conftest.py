"""Shared test fixtures."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from question_dedup.clustering.types import SimilarityPair
from question_dedup.models.base import Base

from helpers import make_pairs


@pytest.fixture
def two_tight_pairs() -> list[SimilarityPair]:
    """Four questions: {a, b} and {c, d} are near-identical, loosely linked."""
    return make_pairs(
        ("a", "b", 0.97),
        ("c", "d", 0.97),
        ("a", "c", 0.87),
        ("b", "c", 0.86),
        ("a", "d", 0.86),
        ("b", "d", 0.86),
    )


@pytest.fixture
def uniform_pairs() -> list[SimilarityPair]:
    """Six questions whose pairwise scores are all 0.86."""
    ids = [f"q{i}" for i in range(6)]
    return [
        SimilarityPair(ids[i], ids[j], 0.86)
        for i in range(len(ids))
        for j in range(i + 1, len(ids))
    ]


@pytest.fixture
async def test_engine():
    """Create an async SQLite in-memory engine for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the test engine."""
    return async_sessionmaker(test_engine, expire_on_commit=False)
