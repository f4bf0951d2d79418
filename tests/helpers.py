"""Factories shared by the test modules."""

from question_dedup.clustering.graph_cluster import make_cluster
from question_dedup.clustering.pair_index import build_pair_score_index
from question_dedup.clustering.types import Cluster, SimilarityPair


def make_pairs(*triples: tuple[str, str, float]) -> list[SimilarityPair]:
    """Build SimilarityPairs from ``(a, b, score)`` tuples."""
    return [SimilarityPair(a, b, score) for a, b, score in triples]


def cluster_from_pairs(pairs: list[SimilarityPair], **fields) -> Cluster:
    """A cluster containing every ID mentioned in ``pairs``."""
    members = {p.a_id for p in pairs} | {p.b_id for p in pairs}
    return make_cluster(members, build_pair_score_index(pairs), **fields)
