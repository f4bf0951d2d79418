"""Tests for cluster metrics and dense pair-score recomputation."""

from __future__ import annotations

import math

import pytest

from question_dedup.clustering.metrics import (
    ClusterMetrics,
    calculate_cluster_metrics_extended,
    compute_pair_scores_from_embeddings,
)
from question_dedup.clustering.pair_index import build_pair_score_index, pair_key

from helpers import make_pairs


class TestSparseMetrics:
    def test_missing_pairs_excluded_from_average(self):
        index = build_pair_score_index(make_pairs(("a", "b", 0.95), ("b", "c", 0.90)))

        m = calculate_cluster_metrics_extended(["a", "b", "c"], index)

        assert m.avg_similarity == pytest.approx(0.925)
        assert m.cohesion_score == m.avg_similarity
        assert m.max_similarity == 0.95
        assert m.min_similarity == 0.90
        assert m.edge_count == 2
        assert m.possible_edge_count == 3
        assert m.density == pytest.approx(2 / 3)

    def test_population_std_dev(self):
        index = build_pair_score_index(make_pairs(("a", "b", 0.8), ("b", "c", 1.0)))

        m = calculate_cluster_metrics_extended(["a", "b", "c"], index)

        assert m.std_dev_similarity == pytest.approx(0.1)

    def test_medoid_counts_missing_pairs_as_zero(self):
        # b touches both others; a and c have no direct score
        index = build_pair_score_index(make_pairs(("a", "b", 0.86), ("b", "c", 0.86)))

        m = calculate_cluster_metrics_extended(["a", "b", "c"], index)

        assert m.medoid_id == "b"

    def test_no_edges_gives_zero_metrics(self):
        m = calculate_cluster_metrics_extended(["a", "b"], {})

        assert m.avg_similarity == 0.0
        assert m.max_similarity == 0.0
        assert m.min_similarity == 0.0
        assert m.edge_count == 0
        assert m.possible_edge_count == 1
        assert m.density == 0.0

    @pytest.mark.parametrize("members", [[], ["a"], ["a", "a"]])
    def test_fewer_than_two_members(self, members):
        assert calculate_cluster_metrics_extended(members, {"a::b": 0.9}) == ClusterMetrics()

    def test_bounds_hold_for_equal_scores(self):
        index = build_pair_score_index(
            make_pairs(("a", "b", 0.86), ("a", "c", 0.86), ("b", "c", 0.86))
        )

        m = calculate_cluster_metrics_extended(["a", "b", "c"], index)

        assert 0 <= m.min_similarity <= m.avg_similarity <= m.max_similarity <= 1
        assert 0 <= m.density <= 1

    def test_member_order_irrelevant(self):
        index = build_pair_score_index(
            make_pairs(("a", "b", 0.9), ("b", "c", 0.91), ("a", "c", 0.93))
        )

        assert calculate_cluster_metrics_extended(
            ["c", "a", "b"], index
        ) == calculate_cluster_metrics_extended(["a", "b", "c"], index)


class TestDensePairScores:
    def test_cosine_of_normalized_vectors(self):
        embeddings = {"a": [3.0, 4.0], "b": [6.0, 8.0], "c": [4.0, -3.0]}

        index = compute_pair_scores_from_embeddings(["a", "b", "c"], embeddings)

        assert index[pair_key("a", "b")] == pytest.approx(1.0)
        assert index[pair_key("a", "c")] == pytest.approx(0.0)

    def test_negative_similarity_clamped(self):
        index = compute_pair_scores_from_embeddings(
            ["a", "b"], {"a": [1.0, 0.0], "b": [-1.0, 0.0]}
        )

        assert index == {"a::b": 0.0}

    def test_partial_cosine(self):
        index = compute_pair_scores_from_embeddings(
            ["a", "b"], {"a": [1.0, 0.0], "b": [1.0, 1.0]}
        )

        assert index["a::b"] == pytest.approx(1 / math.sqrt(2))

    def test_missing_and_zero_vectors_skipped(self):
        embeddings = {"a": [1.0, 0.0], "b": [0.0, 0.0], "c": [1.0, 0.1], "d": []}

        index = compute_pair_scores_from_embeddings(["a", "b", "c", "d", "e"], embeddings)

        assert set(index) == {"a::c"}

    def test_dense_index_covers_all_pairs(self):
        embeddings = {f"q{i}": [1.0, float(i)] for i in range(5)}

        index = compute_pair_scores_from_embeddings(list(embeddings), embeddings)

        assert len(index) == 10
        m = calculate_cluster_metrics_extended(list(embeddings), index)
        assert m.density == 1.0

    def test_fewer_than_two_vectors(self):
        assert compute_pair_scores_from_embeddings(["a", "b"], {"a": [1.0]}) == {}
