"""Tests for merging clusters."""

from __future__ import annotations

import pytest

from question_dedup.clustering.ids import generate_cluster_id
from question_dedup.clustering.merge import merge_clusters

from helpers import cluster_from_pairs, make_pairs


class TestMergeClusters:
    PAIRS = make_pairs(
        ("a", "b", 0.95),
        ("b", "c", 0.90),
        ("c", "d", 0.93),
        ("a", "d", 0.88),
    )

    def test_union_of_members(self):
        first = cluster_from_pairs(make_pairs(("a", "b", 0.95), ("b", "c", 0.90)))
        second = cluster_from_pairs(make_pairs(("c", "d", 0.93)))

        merged = merge_clusters([first, second], self.PAIRS)

        assert merged.member_ids == ["a", "b", "c", "d"]
        assert merged.id == generate_cluster_id(["d", "c", "b", "a"])

    def test_metrics_recomputed_from_all_pairs(self):
        first = cluster_from_pairs(make_pairs(("a", "b", 0.95)))
        second = cluster_from_pairs(make_pairs(("c", "d", 0.93)))

        merged = merge_clusters([first, second], self.PAIRS)

        assert merged.edge_count == 4
        assert merged.possible_edge_count == 6
        assert merged.avg_similarity == pytest.approx((0.95 + 0.90 + 0.93 + 0.88) / 4)
        assert merged.status == "pending"

    def test_order_independent(self):
        first = cluster_from_pairs(make_pairs(("a", "b", 0.95)))
        second = cluster_from_pairs(make_pairs(("c", "d", 0.93)))

        assert merge_clusters([first, second], self.PAIRS) == merge_clusters(
            [second, first], list(reversed(self.PAIRS))
        )

    def test_overlapping_members_deduplicated(self):
        first = cluster_from_pairs(make_pairs(("a", "b", 0.95), ("b", "c", 0.90)))
        second = cluster_from_pairs(make_pairs(("b", "c", 0.90)))

        merged = merge_clusters([first, second], self.PAIRS)

        assert merged.member_ids == ["a", "b", "c"]

    def test_empty_input(self):
        assert merge_clusters([], self.PAIRS) is None
