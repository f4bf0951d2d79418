"""Regeneration of clusters from fresh similarity data."""

from .reconcile import RegenerationPlan, reconcile_clusters
from .sources import (
    EmbeddingStore,
    JsonEmbeddingStore,
    JsonNeighborSource,
    Neighbor,
    SimilaritySource,
    gather_similarity_pairs,
)

__all__ = [
    "EmbeddingStore",
    "JsonEmbeddingStore",
    "JsonNeighborSource",
    "Neighbor",
    "RegenerationPlan",
    "SimilaritySource",
    "gather_similarity_pairs",
    "reconcile_clusters",
]
