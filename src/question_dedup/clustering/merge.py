"""Merging several clusters into one."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from .graph_cluster import make_cluster
from .pair_index import build_pair_score_index
from .types import Cluster, SimilarityPair


def merge_clusters(
    clusters: Sequence[Cluster], pairs: Iterable[SimilarityPair]
) -> Cluster | None:
    """Union the members of ``clusters`` into a single pending cluster.

    Metrics are recomputed against the full pair list and the ID is
    derived from the deduplicated, sorted member list.  Pure -- nothing
    is persisted.

    Returns:
        The merged cluster, or ``None`` if the union has fewer than two
        members (e.g. an empty input).
    """
    members = {m for c in clusters for m in c.member_ids}
    if len(members) < 2:
        return None
    return make_cluster(members, build_pair_score_index(pairs))
