"""Pair canonicalization, score lookup and similarity-graph construction.

Pairs arrive from nearest-neighbour search in either orientation; every
structure here keys them by the canonical ``pair_key`` so ``(a, b)`` and
``(b, a)`` collapse to one edge.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping
from itertools import combinations

import networkx as nx

from .types import PairIndex, SimilarityPair

PAIR_KEY_SEPARATOR = "::"


def pair_key(a_id: str, b_id: str) -> str:
    """Return the order-independent key for a pair of question IDs."""
    if a_id > b_id:
        a_id, b_id = b_id, a_id
    return f"{a_id}{PAIR_KEY_SEPARATOR}{b_id}"


def build_pair_score_index(pairs: Iterable[SimilarityPair]) -> PairIndex:
    """Map ``pair_key`` to score.

    If the same pair appears more than once the last value written wins.
    Self-pairs are ignored.
    """
    index: PairIndex = {}
    for pair in pairs:
        if pair.a_id == pair.b_id:
            continue
        index[pair_key(pair.a_id, pair.b_id)] = pair.score
    return index


def filter_pairs(
    pairs: Iterable[SimilarityPair], min_similarity_threshold: float
) -> list[SimilarityPair]:
    """Keep pairs scoring at or above the threshold, dropping self-pairs."""
    return [
        p
        for p in pairs
        if p.a_id != p.b_id and p.score >= min_similarity_threshold
    ]


def build_similarity_graph(
    pairs: Iterable[SimilarityPair], min_similarity_threshold: float = 0.85
) -> nx.Graph:
    """Build an undirected graph from the pairs that pass the threshold.

    Nodes are question IDs; each edge carries its score as ``weight``.
    Only nodes touched by a passing pair are added.
    """
    G = nx.Graph()
    for pair in filter_pairs(pairs, min_similarity_threshold):
        G.add_edge(pair.a_id, pair.b_id, weight=pair.score)
    return G


def internal_pairs(
    member_ids: Collection[str],
    pair_index: Mapping[str, float],
    min_score: float | None = None,
) -> list[SimilarityPair]:
    """Return the indexed pairs whose endpoints are both members.

    Args:
        member_ids: Cluster members.
        pair_index: Score lookup keyed by ``pair_key``.
        min_score: Optional inclusive lower bound on the score.
    """
    result: list[SimilarityPair] = []
    for a_id, b_id in combinations(sorted(set(member_ids)), 2):
        score = pair_index.get(pair_key(a_id, b_id))
        if score is None:
            continue
        if min_score is not None and score < min_score:
            continue
        result.append(SimilarityPair(a_id, b_id, score))
    return result


def drop_ignored_pairs(
    pair_index: Mapping[str, float], ignored_keys: Collection[str]
) -> PairIndex:
    """Return a copy of the index without edges an admin marked as not similar."""
    return {k: v for k, v in pair_index.items() if k not in ignored_keys}
