"""Decision state machine for admin curation of clusters.

``apply_cluster_action`` is pure: it returns the updated cluster (plus any
child clusters and pair flags) and leaves persistence to the caller.
Status moves ``pending`` -> ``approved_duplicates`` | ``approved_variants``
| ``split`` and back to ``pending`` only through ``reset``.  Every action
other than ``reset`` locks the cluster so regeneration runs can no longer
change its membership.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, field

import structlog

from question_dedup.clustering.graph_cluster import make_cluster
from question_dedup.clustering.ids import generate_cluster_id
from question_dedup.clustering.metrics import (
    calculate_cluster_metrics_extended,
    compute_pair_scores_from_embeddings,
)
from question_dedup.clustering.pair_index import drop_ignored_pairs
from question_dedup.clustering.split import split_cluster_auto, split_cluster_by_threshold
from question_dedup.clustering.types import Cluster, PairIndex
from question_dedup.config.dedup import SplitConfig
from question_dedup.errors import ClusterLocked, InvalidMember, NoSplitFound

from .actions import (
    ApproveAdditions,
    ApproveDuplicates,
    ApproveVariants,
    ClearReview,
    ClusterAction,
    ExcludeQuestion,
    FlagReview,
    RejectAdditions,
    Reset,
    SplitAction,
)

logger = structlog.get_logger()

PROPOSED_ADDITIONS_REASON = "proposed_additions"


@dataclass
class ActionResult:
    """Outcome of applying one admin action.

    Attributes:
        action: Outcome name, e.g. ``"question_excluded"`` or
            ``"cluster_deleted"``.
        cluster: The updated cluster, or ``None`` if it was deleted.
        created: Child clusters produced by a split.
        deleted: ``True`` when the cluster fell below two members.
        excluded_question_ids: Members logically excluded downstream
            (non-kept members of an approved duplicate cluster).
        ignored_pairs: Canonically ordered ``(a_id, b_id)`` pairs an admin
            marked as not similar.
        threshold: Split threshold actually used.
        previous_id: The ID before a membership change re-derived it.
        details: Extra context for the audit log.
    """

    action: str
    cluster: Cluster | None
    created: list[Cluster] = field(default_factory=list)
    deleted: bool = False
    excluded_question_ids: list[str] = field(default_factory=list)
    ignored_pairs: list[tuple[str, str]] = field(default_factory=list)
    threshold: float | None = None
    previous_id: str | None = None
    details: dict = field(default_factory=dict)


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _ordered(a_id: str, b_id: str) -> tuple[str, str]:
    return (a_id, b_id) if a_id < b_id else (b_id, a_id)


def resolve_pair_scores(
    member_ids: Collection[str],
    pair_index: Mapping[str, float] | None = None,
    embeddings_by_id: Mapping[str, Sequence[float]] | None = None,
    ignored_pair_keys: Collection[str] = (),
) -> PairIndex:
    """Combine sparse scores with dense scores recomputed from embeddings.

    Dense scores take precedence where both exist.  Pairs an admin marked
    as not similar are removed.
    """
    scores: PairIndex = dict(pair_index or {})
    if embeddings_by_id:
        scores.update(compute_pair_scores_from_embeddings(member_ids, embeddings_by_id))
    if ignored_pair_keys:
        scores = drop_ignored_pairs(scores, ignored_pair_keys)
    return scores


def _with_members(
    cluster: Cluster, member_ids: Collection[str], scores: Mapping[str, float], **updates
) -> Cluster:
    """Rebuild a cluster around a new member set, keeping its decisions.

    The ID is re-derived from the new members.
    """
    metrics = calculate_cluster_metrics_extended(member_ids, scores)
    data = cluster.model_dump()
    data.update(metrics.as_fields())
    data.update(updates)
    data["member_ids"] = list(member_ids)
    data["id"] = generate_cluster_id(member_ids)
    return Cluster.model_validate(data)


def _decided(operator: str, now: dt.datetime) -> dict:
    return {"locked": True, "decided_at": now, "decided_by": operator, "updated_at": now}


def _check_not_split(cluster: Cluster, action: str) -> None:
    if cluster.status == "split":
        raise ClusterLocked(
            f"Cluster {cluster.id} was split; reset it before '{action}'", cluster.id
        )


def _check_proposed(cluster: Cluster, ids: Sequence[str]) -> None:
    proposed = {p.id for p in cluster.proposed_additions}
    for question_id in ids:
        if question_id not in proposed:
            raise InvalidMember(question_id, cluster.id)


def _resolve_proposals(cluster: Cluster, resolved: Collection[str]) -> dict:
    """Drop resolved proposals and keep the review flag in sync with the rest."""
    remaining = [p for p in cluster.proposed_additions if p.id not in resolved]
    update: dict = {"proposed_additions": remaining}
    if remaining:
        update["flagged_for_review"] = True
        update["flagged_reason"] = cluster.flagged_reason or PROPOSED_ADDITIONS_REASON
    elif cluster.flagged_reason == PROPOSED_ADDITIONS_REASON:
        update.update(
            flagged_for_review=False, flagged_reason=None, flagged_at=None, flagged_by=None
        )
    return update


def apply_cluster_action(
    cluster: Cluster,
    action: ClusterAction,
    *,
    operator: str = "anonymous",
    now: dt.datetime | None = None,
    pair_index: Mapping[str, float] | None = None,
    embeddings_by_id: Mapping[str, Sequence[float]] | None = None,
    ignored_pair_keys: Collection[str] = (),
    split_config: SplitConfig | None = None,
) -> ActionResult:
    """Apply an admin action to a cluster.

    Args:
        cluster: The current cluster state.
        action: A parsed action (see ``review.actions``).
        operator: Who performed the action (recorded as ``decided_by``).
        now: Decision timestamp; defaults to the current UTC time.
        pair_index: Sparse scores used to recompute metrics.
        embeddings_by_id: Optional embeddings for dense recomputation.
        ignored_pair_keys: ``pair_key`` values excluded from all scoring.
        split_config: Split defaults (candidate and manual thresholds).

    Returns:
        An ``ActionResult``; the input cluster is never mutated.

    Raises:
        InvalidMember: The action names a question that is not a member
            (or not a pending proposal).
        ClusterLocked: ``split`` on a locked cluster without ``override``,
            or a decision on a cluster that was already split.
        NoSplitFound: ``split`` could not produce two subclusters.
    """
    now = now or _now()
    split_config = split_config or SplitConfig()
    log = logger.bind(cluster_id=cluster.id, action=action.type, operator=operator)

    if isinstance(action, ApproveDuplicates):
        _check_not_split(cluster, action.type)
        keep = action.keep_question_id or cluster.medoid_id or cluster.member_ids[0]
        if not cluster.has_member(keep):
            raise InvalidMember(keep, cluster.id)
        updated = cluster.model_copy(
            update={
                "status": "approved_duplicates",
                "kept_question_id": keep,
                **_decided(operator, now),
            }
        )
        excluded = [m for m in cluster.member_ids if m != keep]
        result = ActionResult(
            action="approved_duplicates",
            cluster=updated,
            excluded_question_ids=excluded,
            details={"kept_question_id": keep, "excluded_question_ids": excluded},
        )

    elif isinstance(action, ApproveVariants):
        _check_not_split(cluster, action.type)
        updated = cluster.model_copy(
            update={
                "status": "approved_variants",
                "kept_question_id": None,
                **_decided(operator, now),
            }
        )
        result = ActionResult(action="approved_variants", cluster=updated)

    elif isinstance(action, ExcludeQuestion):
        _check_not_split(cluster, action.type)
        removed = action.question_id
        if not cluster.has_member(removed):
            raise InvalidMember(removed, cluster.id)
        remaining = [m for m in cluster.member_ids if m != removed]
        ignored = [_ordered(removed, other) for other in remaining]
        if len(remaining) < 2:
            result = ActionResult(
                action="cluster_deleted",
                cluster=None,
                deleted=True,
                ignored_pairs=ignored,
                details={"removed_question_id": removed},
            )
        else:
            scores = resolve_pair_scores(
                remaining, pair_index, embeddings_by_id, ignored_pair_keys
            )
            update = _decided(operator, now)
            if cluster.kept_question_id == removed:
                update["kept_question_id"] = None
            updated = _with_members(cluster, remaining, scores, **update)
            excluded: list[str] = []
            if updated.status == "approved_duplicates" and updated.kept_question_id is None:
                keep = updated.medoid_id or updated.member_ids[0]
                updated = updated.model_copy(update={"kept_question_id": keep})
                excluded = [m for m in remaining if m != keep]
            result = ActionResult(
                action="question_excluded",
                cluster=updated,
                excluded_question_ids=excluded,
                ignored_pairs=ignored,
                previous_id=cluster.id,
                details={
                    "removed_question_id": removed,
                    "remaining": remaining,
                    "new_cluster_id": updated.id,
                    "kept_question_id": updated.kept_question_id,
                },
            )

    elif isinstance(action, SplitAction):
        result = _apply_split(
            cluster, action, operator, now, pair_index, embeddings_by_id,
            ignored_pair_keys, split_config,
        )

    elif isinstance(action, Reset):
        updated = cluster.model_copy(
            update={
                "status": "pending",
                "locked": False,
                "decided_at": None,
                "decided_by": None,
                "kept_question_id": None,
                "updated_at": now,
            }
        )
        result = ActionResult(action="reset", cluster=updated)

    elif isinstance(action, FlagReview):
        updated = cluster.model_copy(
            update={
                "flagged_for_review": True,
                "flagged_reason": action.reason,
                "flagged_at": now,
                "flagged_by": operator,
                "locked": True,
                "updated_at": now,
            }
        )
        result = ActionResult(
            action="flag_review", cluster=updated, details={"reason": action.reason}
        )

    elif isinstance(action, ClearReview):
        updated = cluster.model_copy(
            update={
                "flagged_for_review": False,
                "flagged_reason": None,
                "flagged_at": None,
                "flagged_by": None,
                "locked": True,
                "updated_at": now,
            }
        )
        result = ActionResult(action="clear_review", cluster=updated)

    elif isinstance(action, ApproveAdditions):
        _check_not_split(cluster, action.type)
        _check_proposed(cluster, action.ids)
        members = sorted(set(cluster.member_ids) | set(action.ids))
        scores = resolve_pair_scores(members, pair_index, embeddings_by_id, ignored_pair_keys)
        updated = _with_members(
            cluster,
            members,
            scores,
            **_resolve_proposals(cluster, action.ids),
            locked=True,
            updated_at=now,
        )
        excluded = (
            [m for m in members if m != updated.kept_question_id]
            if updated.status == "approved_duplicates"
            else []
        )
        result = ActionResult(
            action="approve_additions",
            cluster=updated,
            excluded_question_ids=excluded,
            previous_id=cluster.id,
            details={
                "added": list(action.ids),
                "remaining_proposals": len(updated.proposed_additions),
                "new_cluster_id": updated.id,
            },
        )

    elif isinstance(action, RejectAdditions):
        _check_proposed(cluster, action.ids)
        ignored = [
            _ordered(rejected, member)
            for rejected in action.ids
            for member in cluster.member_ids
        ]
        updated = cluster.model_copy(
            update={
                **_resolve_proposals(cluster, action.ids),
                "locked": True,
                "updated_at": now,
            }
        )
        result = ActionResult(
            action="reject_additions",
            cluster=updated,
            ignored_pairs=ignored,
            details={
                "rejected": list(action.ids),
                "remaining_proposals": len(updated.proposed_additions),
            },
        )

    else:  # pragma: no cover - the discriminated union is exhaustive
        raise TypeError(f"Unsupported action: {action!r}")

    log.info("cluster_action_applied", outcome=result.action, deleted=result.deleted)
    return result


def _apply_split(
    cluster: Cluster,
    action: SplitAction,
    operator: str,
    now: dt.datetime,
    pair_index: Mapping[str, float] | None,
    embeddings_by_id: Mapping[str, Sequence[float]] | None,
    ignored_pair_keys: Collection[str],
    split_config: SplitConfig,
) -> ActionResult:
    """Commit a split: children become new locked clusters, the parent is marked split."""
    if cluster.status == "split":
        raise ClusterLocked(f"Cluster {cluster.id} is already split", cluster.id)
    if cluster.locked and not action.override:
        raise ClusterLocked(
            f"Cluster {cluster.id} is locked; pass override to split it", cluster.id
        )

    min_size = max(2, action.min_cluster_size or split_config.min_cluster_size)
    scores = resolve_pair_scores(
        cluster.member_ids, pair_index, embeddings_by_id, ignored_pair_keys
    )

    if action.strategy == "threshold":
        threshold = (
            action.threshold if action.threshold is not None else split_config.manual_threshold
        )
        subclusters = split_cluster_by_threshold(cluster, scores, threshold, min_size)
    else:
        outcome = split_cluster_auto(
            cluster, scores, split_config.candidate_thresholds, min_size
        )
        threshold = outcome.threshold
        subclusters = outcome.subclusters if outcome.split_found else []

    if len(subclusters) < 2:
        raise NoSplitFound(cluster.id, threshold)

    children = [
        make_cluster(
            sub.member_ids,
            scores,
            status="pending",
            locked=True,
            parents=[cluster.id],
            created_at=now,
            updated_at=now,
        )
        for sub in subclusters
    ]
    parent = cluster.model_copy(
        update={
            "status": "split",
            "children": [c.id for c in children],
            **_decided(operator, now),
        }
    )
    return ActionResult(
        action="split",
        cluster=parent,
        created=children,
        threshold=threshold,
        details={
            "strategy": action.strategy,
            "threshold": threshold,
            "children": [c.id for c in children],
        },
    )
