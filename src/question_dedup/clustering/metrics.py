"""Cluster quality metrics.

Metrics are computed from sparse pair scores: only edges present in the
pair index contribute to the average, extremes and spread.  Missing pairs
count as zero only when ranking members for the medoid.  When sparse
neighbour scores are too coarse, ``compute_pair_scores_from_embeddings``
rebuilds a dense index straight from the embedding vectors.
"""

from __future__ import annotations

import math
from collections.abc import Collection, Mapping, Sequence
from dataclasses import asdict, dataclass
from itertools import combinations

import numpy as np

from .pair_index import pair_key
from .types import PairIndex


@dataclass
class ClusterMetrics:
    """Quality metrics for one member set.

    Attributes:
        avg_similarity: Mean score over discovered edges.
        max_similarity: Highest discovered edge score.
        min_similarity: Lowest discovered edge score.
        cohesion_score: Currently identical to ``avg_similarity``.
        std_dev_similarity: Population standard deviation of edge scores.
        edge_count: Number of discovered edges.
        possible_edge_count: ``n * (n - 1) / 2``.
        density: ``edge_count / possible_edge_count``.
        medoid_id: Member with the highest total similarity to the others.
    """

    avg_similarity: float = 0.0
    max_similarity: float = 0.0
    min_similarity: float = 0.0
    cohesion_score: float = 0.0
    std_dev_similarity: float = 0.0
    edge_count: int = 0
    possible_edge_count: int = 0
    density: float = 0.0
    medoid_id: str | None = None

    def as_fields(self) -> dict:
        """Return the metrics as ``Cluster`` field values."""
        return asdict(self)


def _possible_edges(n: int) -> int:
    return n * (n - 1) // 2 if n >= 2 else 0


def calculate_cluster_metrics_extended(
    member_ids: Collection[str], pair_index: Mapping[str, float]
) -> ClusterMetrics:
    """Compute cohesion, dispersion, density and medoid for a member set.

    Fewer than two members, or no indexed edges between them, yields
    zero-valued statistics rather than an error.

    Args:
        member_ids: Question IDs (duplicates are ignored).
        pair_index: Score lookup keyed by ``pair_key``.

    Returns:
        A ``ClusterMetrics`` instance.
    """
    members = sorted(set(member_ids))
    n = len(members)
    if n < 2:
        return ClusterMetrics()

    scores: list[float] = []
    totals = dict.fromkeys(members, 0.0)
    for a_id, b_id in combinations(members, 2):
        score = pair_index.get(pair_key(a_id, b_id))
        if score is None:
            continue
        scores.append(score)
        totals[a_id] += score
        totals[b_id] += score

    # First member with the strictly highest total wins ties
    medoid_id = max(members, key=lambda m: totals[m])
    possible = _possible_edges(n)

    if not scores:
        return ClusterMetrics(possible_edge_count=possible, medoid_id=medoid_id)

    lo, hi = min(scores), max(scores)
    avg = min(max(math.fsum(scores) / len(scores), lo), hi)
    variance = math.fsum((s - avg) ** 2 for s in scores) / len(scores)

    return ClusterMetrics(
        avg_similarity=avg,
        max_similarity=hi,
        min_similarity=lo,
        cohesion_score=avg,
        std_dev_similarity=math.sqrt(variance),
        edge_count=len(scores),
        possible_edge_count=possible,
        density=len(scores) / possible,
        medoid_id=medoid_id,
    )


def compute_pair_scores_from_embeddings(
    member_ids: Collection[str],
    embeddings_by_id: Mapping[str, Sequence[float]],
) -> PairIndex:
    """Build a dense pair index from raw embedding vectors.

    Each vector is L2-normalized; cosine similarity is the dot product of
    the normalized vectors, clamped to ``[0, 1]``.  Members without an
    embedding, with a zero vector, or whose dimension differs from the
    first usable vector are left out of the index.
    """
    ids: list[str] = []
    vectors: list[np.ndarray] = []
    dim: int | None = None
    for member_id in sorted(set(member_ids)):
        raw = embeddings_by_id.get(member_id)
        if raw is None or len(raw) == 0:
            continue
        vec = np.asarray(raw, dtype=np.float64)
        if dim is None:
            dim = vec.shape[0]
        elif vec.shape[0] != dim:
            continue
        norm = np.linalg.norm(vec)
        if norm == 0.0:
            continue
        ids.append(member_id)
        vectors.append(vec / norm)

    if len(ids) < 2:
        return {}

    matrix = np.vstack(vectors)
    similarities = np.clip(matrix @ matrix.T, 0.0, 1.0)

    index: PairIndex = {}
    for i, j in combinations(range(len(ids)), 2):
        index[pair_key(ids[i], ids[j])] = float(similarities[i, j])
    return index
