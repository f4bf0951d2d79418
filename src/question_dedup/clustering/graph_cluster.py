"""Graph-based clustering using networkx connected components.

Builds an undirected graph from thresholded similarity pairs and turns
each sufficiently large connected component into a candidate cluster
with metrics attached.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping

import networkx as nx
import structlog

from .ids import generate_cluster_id
from .metrics import calculate_cluster_metrics_extended
from .pair_index import build_pair_score_index, build_similarity_graph, filter_pairs
from .types import Cluster, SimilarityPair

logger = structlog.get_logger()


def make_cluster(
    member_ids: Collection[str],
    pair_index: Mapping[str, float],
    **fields,
) -> Cluster:
    """Create a ``Cluster`` for a member set with freshly computed metrics.

    Extra keyword arguments are passed through as cluster fields (status,
    lineage, timestamps, ...) and take precedence over computed metrics.
    """
    members = sorted(set(member_ids))
    metrics = calculate_cluster_metrics_extended(members, pair_index)
    return Cluster(
        id=generate_cluster_id(members),
        member_ids=members,
        **{**metrics.as_fields(), **fields},
    )


def sort_clusters(clusters: list[Cluster]) -> list[Cluster]:
    """Order clusters by size, then average similarity (both descending).

    The cluster ID is a final tie-break so the result never depends on
    the order pairs were supplied in.
    """
    return sorted(clusters, key=lambda c: (-c.size, -c.avg_similarity, c.id))


def cluster_questions_by_similarity(
    pairs: list[SimilarityPair],
    min_cluster_size: int = 2,
    threshold: float = 0.85,
) -> list[Cluster]:
    """Group questions into clusters of mutually reachable near-duplicates.

    Pairs scoring below ``threshold`` are discarded, the remaining ones
    form a similarity graph, and every connected component with at least
    ``min_cluster_size`` members becomes a ``pending`` cluster.  Metrics
    are computed from the passing pairs only.

    Args:
        pairs: Pairwise similarity scores (either orientation).
        min_cluster_size: Smallest component kept as a cluster.
        threshold: Inclusive minimum score for an edge.

    Returns:
        Clusters sorted by member count, then average similarity,
        both descending.  Empty when no pair passes the threshold.
    """
    passing = filter_pairs(pairs, threshold)
    if not passing:
        return []

    graph = build_similarity_graph(passing, threshold)
    pair_index = build_pair_score_index(passing)

    clusters: list[Cluster] = []
    dropped = 0
    # connected_components walks the graph iteratively, so dense graphs
    # with many members do not hit the recursion limit
    for component in nx.connected_components(graph):
        if len(component) < min_cluster_size:
            dropped += 1
            continue
        clusters.append(make_cluster(component, pair_index))

    logger.debug(
        "clusters_built",
        pair_count=len(pairs),
        passing_pairs=len(passing),
        cluster_count=len(clusters),
        dropped_components=dropped,
        threshold=threshold,
    )
    return sort_clusters(clusters)
