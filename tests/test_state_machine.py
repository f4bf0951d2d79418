"""Tests for applying admin actions to clusters."""

from __future__ import annotations

import datetime as dt

import pytest

from question_dedup.clustering.ids import generate_cluster_id
from question_dedup.clustering.pair_index import build_pair_score_index, pair_key
from question_dedup.clustering.types import ProposedAddition
from question_dedup.config.dedup import SplitConfig
from question_dedup.errors import ClusterLocked, InvalidMember, NoSplitFound
from question_dedup.review.actions import (
    ApproveAdditions,
    ApproveDuplicates,
    ApproveVariants,
    ClearReview,
    ExcludeQuestion,
    FlagReview,
    RejectAdditions,
    Reset,
    SplitAction,
)
from question_dedup.review.state_machine import (
    PROPOSED_ADDITIONS_REASON,
    apply_cluster_action,
    resolve_pair_scores,
)

from helpers import cluster_from_pairs, make_pairs

NOW = dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.timezone.utc)

TRIANGLE = make_pairs(("a", "b", 0.95), ("b", "c", 0.90), ("a", "c", 0.88))


def _triangle(**fields):
    return cluster_from_pairs(TRIANGLE, **fields)


def _apply(cluster, action, pairs=TRIANGLE, **kwargs):
    return apply_cluster_action(
        cluster,
        action,
        operator="alice",
        now=NOW,
        pair_index=build_pair_score_index(pairs),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Approvals and reset
# ---------------------------------------------------------------------------


class TestApprovals:
    def test_approve_duplicates_defaults_to_medoid(self):
        result = _apply(_triangle(), ApproveDuplicates())

        cluster = result.cluster
        assert result.action == "approved_duplicates"
        assert cluster.status == "approved_duplicates"
        assert cluster.kept_question_id == "b"
        assert cluster.locked is True
        assert cluster.decided_by == "alice"
        assert cluster.decided_at == NOW
        assert result.excluded_question_ids == ["a", "c"]

    def test_approve_duplicates_explicit_keep(self):
        result = _apply(_triangle(), ApproveDuplicates(keep_question_id="c"))

        assert result.cluster.kept_question_id == "c"
        assert result.excluded_question_ids == ["a", "b"]

    def test_approve_duplicates_unknown_keep(self):
        with pytest.raises(InvalidMember) as exc_info:
            _apply(_triangle(), ApproveDuplicates(keep_question_id="zzz"))

        assert exc_info.value.question_id == "zzz"

    def test_approve_variants(self):
        result = _apply(_triangle(), ApproveVariants())

        assert result.cluster.status == "approved_variants"
        assert result.cluster.kept_question_id is None
        assert result.cluster.locked is True

    def test_reset_after_approval(self):
        approved = _apply(_triangle(), ApproveDuplicates()).cluster

        result = _apply(approved, Reset())

        cluster = result.cluster
        assert cluster.status == "pending"
        assert cluster.locked is False
        assert cluster.decided_at is None
        assert cluster.decided_by is None
        assert cluster.kept_question_id is None
        assert cluster.member_ids == approved.member_ids

    def test_input_not_mutated(self):
        cluster = _triangle()
        before = cluster.model_dump()

        _apply(cluster, ApproveDuplicates())

        assert cluster.model_dump() == before


# ---------------------------------------------------------------------------
# Exclusion
# ---------------------------------------------------------------------------


class TestExcludeQuestion:
    def test_two_member_cluster_is_deleted(self):
        pairs = make_pairs(("a", "b", 0.95))
        cluster = cluster_from_pairs(pairs)

        result = _apply(cluster, ExcludeQuestion(question_id="a"), pairs=pairs)

        assert result.action == "cluster_deleted"
        assert result.deleted is True
        assert result.cluster is None
        assert result.ignored_pairs == [("a", "b")]

    def test_three_member_cluster_shrinks(self):
        cluster = _triangle()

        result = _apply(cluster, ExcludeQuestion(question_id="c"))

        updated = result.cluster
        assert result.action == "question_excluded"
        assert updated.id == generate_cluster_id(["a", "b"])
        assert result.previous_id == cluster.id
        assert updated.member_ids == ["a", "b"]
        assert updated.avg_similarity == pytest.approx(0.95)
        assert updated.edge_count == 1
        assert updated.possible_edge_count == 1
        assert updated.density == 1.0
        assert updated.locked is True
        assert result.ignored_pairs == [("a", "c"), ("b", "c")]

    def test_excluding_kept_question_falls_back_to_medoid(self):
        approved = _apply(_triangle(), ApproveDuplicates(keep_question_id="c")).cluster

        result = _apply(approved, ExcludeQuestion(question_id="c"))

        assert result.cluster.status == "approved_duplicates"
        assert result.cluster.kept_question_id == result.cluster.medoid_id == "a"
        assert result.excluded_question_ids == ["b"]

    def test_excluding_kept_question_from_variants_clears_it(self):
        approved = _apply(_triangle(), ApproveVariants()).cluster
        approved = approved.model_copy(update={"kept_question_id": "c"})

        result = _apply(approved, ExcludeQuestion(question_id="c"))

        assert result.cluster.kept_question_id is None
        assert result.excluded_question_ids == []

    def test_excluding_other_member_keeps_choice(self):
        approved = _apply(_triangle(), ApproveDuplicates(keep_question_id="b")).cluster

        result = _apply(approved, ExcludeQuestion(question_id="c"))

        assert result.cluster.kept_question_id == "b"

    def test_non_member(self):
        with pytest.raises(InvalidMember):
            _apply(_triangle(), ExcludeQuestion(question_id="x"))


# ---------------------------------------------------------------------------
# Split
# ---------------------------------------------------------------------------


class TestSplit:
    def test_locked_cluster_without_override(self, two_tight_pairs):
        cluster = cluster_from_pairs(two_tight_pairs, locked=True)

        with pytest.raises(ClusterLocked):
            _apply(cluster, SplitAction(), pairs=two_tight_pairs)

        assert cluster.member_ids == ["a", "b", "c", "d"]
        assert cluster.status == "pending"

    def test_locked_cluster_with_override(self, two_tight_pairs):
        cluster = cluster_from_pairs(two_tight_pairs, locked=True)

        result = _apply(cluster, SplitAction(override=True), pairs=two_tight_pairs)

        assert result.action == "split"

    def test_auto_split_creates_children(self, two_tight_pairs):
        cluster = cluster_from_pairs(two_tight_pairs)

        result = _apply(cluster, SplitAction(), pairs=two_tight_pairs)

        parent = result.cluster
        assert result.threshold == 0.92
        assert parent.status == "split"
        assert parent.locked is True
        assert parent.member_ids == cluster.member_ids
        assert parent.children == [c.id for c in result.created]
        assert {tuple(c.member_ids) for c in result.created} == {("a", "b"), ("c", "d")}
        for child in result.created:
            assert child.status == "pending"
            assert child.locked is True
            assert child.parents == [cluster.id]
            assert child.created_at == NOW

    def test_threshold_split_uses_manual_default(self, two_tight_pairs):
        cluster = cluster_from_pairs(two_tight_pairs)

        result = _apply(cluster, SplitAction(strategy="threshold"), pairs=two_tight_pairs)

        assert result.threshold == 0.95
        assert len(result.created) == 2

    def test_threshold_split_explicit(self, two_tight_pairs):
        cluster = cluster_from_pairs(two_tight_pairs)

        with pytest.raises(NoSplitFound) as exc_info:
            _apply(
                cluster,
                SplitAction(strategy="threshold", threshold=0.99),
                pairs=two_tight_pairs,
            )

        assert exc_info.value.threshold == 0.99

    def test_uniform_cluster_cannot_split(self, uniform_pairs):
        cluster = cluster_from_pairs(uniform_pairs)

        with pytest.raises(NoSplitFound) as exc_info:
            _apply(cluster, SplitAction(), pairs=uniform_pairs)

        assert exc_info.value.threshold == 0.92

    def test_custom_split_config(self, two_tight_pairs):
        cluster = cluster_from_pairs(two_tight_pairs)

        result = _apply(
            cluster,
            SplitAction(),
            pairs=two_tight_pairs,
            split_config=SplitConfig(candidate_thresholds=[0.96]),
        )

        assert result.threshold == 0.96

    def test_split_from_embeddings(self):
        """Dense scores override the flat sparse scores."""
        pairs = make_pairs(
            ("a", "b", 0.86),
            ("a", "c", 0.86),
            ("a", "d", 0.86),
            ("b", "c", 0.86),
            ("b", "d", 0.86),
            ("c", "d", 0.86),
        )
        cluster = cluster_from_pairs(pairs)
        embeddings = {
            "a": [1.0, 0.0],
            "b": [1.0, 0.05],
            "c": [0.0, 1.0],
            "d": [0.05, 1.0],
        }

        result = _apply(cluster, SplitAction(), pairs=pairs, embeddings_by_id=embeddings)

        assert {tuple(c.member_ids) for c in result.created} == {("a", "b"), ("c", "d")}

    def test_ignored_pairs_excluded_from_split(self, two_tight_pairs):
        cluster = cluster_from_pairs(two_tight_pairs)

        with pytest.raises(NoSplitFound):
            _apply(
                cluster,
                SplitAction(),
                pairs=two_tight_pairs,
                ignored_pair_keys={pair_key("a", "b"), pair_key("c", "d")},
            )

    def test_split_parent_rejects_further_actions(self, two_tight_pairs):
        parent = _apply(
            cluster_from_pairs(two_tight_pairs), SplitAction(), pairs=two_tight_pairs
        ).cluster

        with pytest.raises(ClusterLocked):
            _apply(parent, SplitAction(override=True), pairs=two_tight_pairs)
        with pytest.raises(ClusterLocked):
            _apply(parent, ApproveDuplicates(), pairs=two_tight_pairs)
        with pytest.raises(ClusterLocked):
            _apply(parent, ExcludeQuestion(question_id="a"), pairs=two_tight_pairs)

    def test_reset_split_parent_keeps_lineage(self, two_tight_pairs):
        parent = _apply(
            cluster_from_pairs(two_tight_pairs), SplitAction(), pairs=two_tight_pairs
        ).cluster

        reset = _apply(parent, Reset(), pairs=two_tight_pairs).cluster

        assert reset.status == "pending"
        assert reset.children == parent.children


# ---------------------------------------------------------------------------
# Review flags and proposed additions
# ---------------------------------------------------------------------------


def _with_proposals():
    return _triangle(
        locked=True,
        proposed_additions=[
            ProposedAddition(id="e", score=0.91, proposed_at=NOW),
            ProposedAddition(id="f", score=0.89, proposed_at=NOW),
        ],
        flagged_for_review=True,
        flagged_reason=PROPOSED_ADDITIONS_REASON,
        flagged_at=NOW,
    )


class TestReviewFlags:
    def test_flag_and_clear(self):
        flagged = _apply(_triangle(), FlagReview(reason="wording differs")).cluster

        assert flagged.flagged_for_review is True
        assert flagged.flagged_reason == "wording differs"
        assert flagged.flagged_by == "alice"
        assert flagged.flagged_at == NOW
        assert flagged.locked is True

        cleared = _apply(flagged, ClearReview()).cluster

        assert cleared.flagged_for_review is False
        assert cleared.flagged_reason is None
        assert cleared.flagged_at is None
        assert cleared.locked is True


class TestProposedAdditions:
    PAIRS = TRIANGLE + make_pairs(("a", "e", 0.91), ("b", "e", 0.90), ("c", "f", 0.89))

    def test_approve_some(self):
        result = _apply(_with_proposals(), ApproveAdditions(ids=["e"]), pairs=self.PAIRS)

        cluster = result.cluster
        assert cluster.member_ids == ["a", "b", "c", "e"]
        assert [p.id for p in cluster.proposed_additions] == ["f"]
        assert cluster.flagged_for_review is True
        assert cluster.edge_count == 5
        assert result.details["remaining_proposals"] == 1
        assert cluster.id == generate_cluster_id(["a", "b", "c", "e"])
        assert result.previous_id == _with_proposals().id

    def test_approve_all_clears_flag(self):
        result = _apply(
            _with_proposals(), ApproveAdditions(ids=["e", "f"]), pairs=self.PAIRS
        )

        cluster = result.cluster
        assert cluster.proposed_additions == []
        assert cluster.flagged_for_review is False
        assert cluster.flagged_reason is None

    def test_approve_unknown_proposal(self):
        with pytest.raises(InvalidMember):
            _apply(_with_proposals(), ApproveAdditions(ids=["zzz"]), pairs=self.PAIRS)

    def test_reject_records_ignored_pairs(self):
        result = _apply(_with_proposals(), RejectAdditions(ids=["f"]), pairs=self.PAIRS)

        assert result.cluster.member_ids == ["a", "b", "c"]
        assert [p.id for p in result.cluster.proposed_additions] == ["e"]
        assert result.ignored_pairs == [("a", "f"), ("b", "f"), ("c", "f")]

    def test_manual_flag_survives_resolution(self):
        cluster = _with_proposals().model_copy(update={"flagged_reason": "check wording"})

        result = _apply(cluster, RejectAdditions(ids=["e", "f"]), pairs=self.PAIRS)

        assert result.cluster.flagged_for_review is True
        assert result.cluster.flagged_reason == "check wording"


class TestResolvePairScores:
    def test_dense_overrides_sparse(self):
        scores = resolve_pair_scores(
            ["a", "b"],
            {pair_key("a", "b"): 0.5},
            {"a": [1.0, 0.0], "b": [1.0, 0.0]},
        )

        assert scores[pair_key("a", "b")] == pytest.approx(1.0)

    def test_ignored_removed(self):
        scores = resolve_pair_scores(
            ["a", "b", "c"],
            build_pair_score_index(TRIANGLE),
            ignored_pair_keys={pair_key("a", "c")},
        )

        assert pair_key("a", "c") not in scores
        assert pair_key("a", "b") in scores


class TestMembershipChangesRederiveIds:
    PAIRS = make_pairs(
        ("a", "b", 0.97),
        ("c", "d", 0.97),
        ("b", "c", 0.86),
    )

    def test_split_after_additions_gives_children_new_ids(self):
        base = cluster_from_pairs(
            make_pairs(("a", "b", 0.97)),
            locked=True,
            proposed_additions=[
                ProposedAddition(id="c", score=0.86, proposed_at=NOW),
                ProposedAddition(id="d", score=0.86, proposed_at=NOW),
            ],
        )
        grown = _apply(base, ApproveAdditions(ids=["c", "d"]), pairs=self.PAIRS).cluster

        result = _apply(grown, SplitAction(override=True), pairs=self.PAIRS)

        assert grown.id == generate_cluster_id(["a", "b", "c", "d"])
        assert grown.id not in result.cluster.children
        assert base.id in result.cluster.children
        assert all(child.parents == [grown.id] for child in result.created)

    def test_additions_to_approved_duplicates_are_excluded(self):
        approved = _apply(_with_proposals(), ApproveDuplicates(keep_question_id="a")).cluster

        result = _apply(
            approved, ApproveAdditions(ids=["e"]), pairs=TestProposedAdditions.PAIRS
        )

        assert result.cluster.kept_question_id == "a"
        assert result.excluded_question_ids == ["b", "c", "e"]
