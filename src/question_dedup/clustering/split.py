"""Splitting over-broad clusters into tighter subclusters.

Both entry points are pure: they return candidate subclusters and leave
committing the split to the decision layer.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import structlog

from .graph_cluster import cluster_questions_by_similarity, make_cluster, sort_clusters
from .pair_index import internal_pairs
from .types import Cluster

logger = structlog.get_logger()

DEFAULT_CANDIDATE_THRESHOLDS: tuple[float, ...] = (0.92, 0.94, 0.96, 0.98)


@dataclass
class SplitResult:
    """Outcome of an auto-split search.

    Attributes:
        threshold: The chosen threshold, or the lowest candidate when no
            split was found.
        subclusters: The proposed subclusters, or ``[original]`` when no
            split was found.
        split_found: Whether any candidate produced two or more subclusters.
        score: Quality score of the chosen candidate (0 when not found).
        candidate_scores: Score per threshold that produced a valid split.
    """

    threshold: float
    subclusters: list[Cluster]
    split_found: bool = False
    score: float = 0.0
    candidate_scores: dict[float, float] = field(default_factory=dict)


def score_split(subclusters: Sequence[Cluster], original_size: int) -> float:
    """Score a candidate partition.

    Each subcluster contributes ``cohesion * density * weight`` where the
    weight is its share of the covered members times the fraction of the
    original cluster that the partition still covers.  Members dropped as
    singletons therefore lower the score.
    """
    covered = sum(c.size for c in subclusters)
    if covered == 0 or original_size == 0:
        return 0.0
    coverage = covered / original_size
    return sum(
        c.cohesion_score * c.density * (c.size / covered) * coverage
        for c in subclusters
    )


def split_cluster_by_threshold(
    cluster: Cluster,
    pair_index: Mapping[str, float],
    threshold: float,
    min_cluster_size: int = 2,
) -> list[Cluster]:
    """Re-cluster a cluster's members using only edges at or above ``threshold``.

    Subcluster metrics are recomputed against every indexed pair inside
    the subcluster, not just the edges that survived the threshold.
    """
    min_cluster_size = max(2, min_cluster_size)
    pairs = internal_pairs(cluster.member_ids, pair_index, min_score=threshold)
    components = cluster_questions_by_similarity(pairs, min_cluster_size, threshold)
    return sort_clusters(
        [make_cluster(c.member_ids, pair_index) for c in components]
    )


def split_cluster_auto(
    cluster: Cluster,
    pair_index: Mapping[str, float],
    candidate_thresholds: Sequence[float] | None = None,
    min_cluster_size: int = 2,
) -> SplitResult:
    """Search candidate thresholds for the best split of a cluster.

    Every threshold that yields at least two subclusters is scored with
    ``score_split``; the highest score wins, and the lower threshold wins
    a tie.  When no candidate splits the cluster, the original cluster is
    returned unchanged together with the lowest candidate threshold.

    Args:
        cluster: The over-broad cluster.
        pair_index: Scores for the cluster's internal pairs (sparse or
            dense).
        candidate_thresholds: Thresholds to try; defaults to
            ``DEFAULT_CANDIDATE_THRESHOLDS``.
        min_cluster_size: Smallest subcluster kept (clamped to >= 2).

    Returns:
        A ``SplitResult``.
    """
    thresholds = sorted(candidate_thresholds or DEFAULT_CANDIDATE_THRESHOLDS)
    log = logger.bind(cluster_id=cluster.id, size=cluster.size)

    best: tuple[float, float, list[Cluster]] | None = None
    candidate_scores: dict[float, float] = {}
    for threshold in thresholds:
        subclusters = split_cluster_by_threshold(
            cluster, pair_index, threshold, min_cluster_size
        )
        if len(subclusters) < 2:
            log.debug(
                "split_candidate_rejected",
                threshold=threshold,
                subcluster_count=len(subclusters),
            )
            continue
        score = score_split(subclusters, cluster.size)
        candidate_scores[threshold] = score
        if best is None or score > best[1]:
            best = (threshold, score, subclusters)

    if best is None:
        log.warning("split_not_found", candidates=thresholds)
        return SplitResult(threshold=thresholds[0], subclusters=[cluster])

    threshold, score, subclusters = best
    log.info(
        "split_found",
        threshold=threshold,
        score=round(score, 4),
        subcluster_count=len(subclusters),
    )
    return SplitResult(
        threshold=threshold,
        subclusters=subclusters,
        split_found=True,
        score=score,
        candidate_scores=candidate_scores,
    )
