"""Semantic clustering of near-duplicate questions.

Turns pairwise similarity scores into clusters using networkx connected
components, computes cluster quality metrics, and splits or merges
clusters without touching persisted state.
"""

from .graph_cluster import cluster_questions_by_similarity, make_cluster
from .ids import generate_cluster_id
from .merge import merge_clusters
from .metrics import (
    ClusterMetrics,
    calculate_cluster_metrics_extended,
    compute_pair_scores_from_embeddings,
)
from .pair_index import build_pair_score_index, build_similarity_graph, pair_key
from .split import SplitResult, split_cluster_auto, split_cluster_by_threshold
from .types import Cluster, ClusterStatus, PairIndex, ProposedAddition, SimilarityPair

__all__ = [
    "Cluster",
    "ClusterMetrics",
    "ClusterStatus",
    "PairIndex",
    "ProposedAddition",
    "SimilarityPair",
    "SplitResult",
    "build_pair_score_index",
    "build_similarity_graph",
    "calculate_cluster_metrics_extended",
    "cluster_questions_by_similarity",
    "compute_pair_scores_from_embeddings",
    "generate_cluster_id",
    "make_cluster",
    "merge_clusters",
    "pair_key",
    "split_cluster_auto",
    "split_cluster_by_threshold",
]
