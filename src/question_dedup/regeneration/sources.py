"""Collaborator interfaces that feed the engine, and bounded pair gathering.

The engine itself never performs I/O; nearest-neighbour search and the
embedding store live behind these protocols.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog

from question_dedup.clustering.pair_index import pair_key
from question_dedup.clustering.types import SimilarityPair

logger = structlog.get_logger()


@dataclass(frozen=True)
class Neighbor:
    neighbor_id: str
    score: float


class SimilaritySource(Protocol):
    """Approximate nearest-neighbour search over question embeddings."""

    async def neighbors(self, question_id: str, top_k: int) -> Sequence[Neighbor]: ...


class EmbeddingStore(Protocol):
    """Lookup of raw embedding vectors for dense recomputation."""

    async def embeddings_by_id(self, ids: Iterable[str]) -> Mapping[str, Sequence[float]]: ...


async def gather_similarity_pairs(
    source: SimilaritySource,
    question_ids: Iterable[str],
    top_k: int = 10,
    max_concurrent: int = 5,
) -> list[SimilarityPair]:
    """Query neighbours for every question and collapse them into pairs.

    At most ``max_concurrent`` neighbour queries run at once.  Self matches
    are dropped and, when both directions of a pair are reported, the
    higher score is kept.  A failed query is logged and skipped; the
    remaining questions still contribute pairs.

    Returns:
        Pairs sorted by ``pair_key`` so repeated runs are identical.
    """
    semaphore = asyncio.Semaphore(max_concurrent)
    ids = list(dict.fromkeys(question_ids))

    async def fetch_one(question_id: str) -> tuple[str, Sequence[Neighbor]]:
        async with semaphore:
            try:
                return question_id, await source.neighbors(question_id, top_k)
            except Exception as e:
                logger.warning("neighbor_query_failed", question_id=question_id, error=str(e))
                return question_id, []

    results = await asyncio.gather(*(fetch_one(qid) for qid in ids))

    best: dict[str, SimilarityPair] = {}
    for question_id, neighbors in results:
        for n in neighbors:
            if n.neighbor_id == question_id:
                continue
            key = pair_key(question_id, n.neighbor_id)
            current = best.get(key)
            if current is None or n.score > current.score:
                a_id, b_id = sorted((question_id, n.neighbor_id))
                best[key] = SimilarityPair(a_id, b_id, n.score)

    logger.info("similarity_pairs_gathered", questions=len(ids), pairs=len(best))
    return [best[k] for k in sorted(best)]


class JsonNeighborSource:
    """Neighbour lists precomputed by an external ANN index and saved as JSON.

    The file maps each question ID to ``[{"id": ..., "score": ...}, ...]``
    ordered best first.
    """

    def __init__(self, path: Path) -> None:
        data = json.loads(path.read_text(encoding="utf-8"))
        self._neighbors = {
            str(qid): [Neighbor(str(n["id"]), float(n["score"])) for n in entries]
            for qid, entries in data.items()
        }

    @property
    def question_ids(self) -> list[str]:
        return sorted(self._neighbors)

    async def neighbors(self, question_id: str, top_k: int) -> Sequence[Neighbor]:
        return self._neighbors.get(question_id, [])[:top_k]


class JsonEmbeddingStore:
    """Embedding vectors saved as a JSON object of ``{question_id: [floats]}``."""

    def __init__(self, path: Path) -> None:
        data = json.loads(path.read_text(encoding="utf-8"))
        self._vectors = {str(qid): [float(x) for x in vec] for qid, vec in data.items()}

    async def embeddings_by_id(self, ids: Iterable[str]) -> Mapping[str, Sequence[float]]:
        return {i: self._vectors[i] for i in ids if i in self._vectors}
