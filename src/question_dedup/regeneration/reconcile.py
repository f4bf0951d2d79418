"""Incremental regeneration that preserves admin curation.

A fresh clustering run is reconciled against the clusters already stored
for a scope.  Unlocked clusters are freely replaced; locked clusters keep
their membership and only receive ``proposed_additions`` for review.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, field

import structlog

from question_dedup.clustering.pair_index import pair_key
from question_dedup.clustering.types import Cluster, ProposedAddition
from question_dedup.review.state_machine import PROPOSED_ADDITIONS_REASON

logger = structlog.get_logger()


@dataclass
class RegenerationPlan:
    """Writes needed to bring a scope in line with a fresh clustering run.

    Attributes:
        inserts: New unlocked clusters.
        updates: Existing clusters to rewrite (refreshed metrics, or locked
            clusters with new proposals).  Each keeps the ``version`` it
            was read with so the write can be conditioned on it.
        deletes: Unlocked clusters that are stale or superseded.
        proposal_count: Number of proposed additions appended to locked
            clusters.
    """

    inserts: list[Cluster] = field(default_factory=list)
    updates: list[Cluster] = field(default_factory=list)
    deletes: list[Cluster] = field(default_factory=list)
    proposal_count: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.inserts or self.updates or self.deletes)


def _best_score(
    candidate: str, members: Sequence[str], pair_index: Mapping[str, float]
) -> float | None:
    scores = [
        pair_index[key]
        for key in (pair_key(candidate, m) for m in members)
        if key in pair_index
    ]
    return max(scores) if scores else None


def _rejected_everywhere(
    candidate: str, members: Sequence[str], ignored_pair_keys: Collection[str]
) -> bool:
    """An admin already ruled the candidate out against every member."""
    return bool(ignored_pair_keys) and all(
        pair_key(candidate, m) in ignored_pair_keys for m in members
    )


def reconcile_clusters(
    existing: Sequence[Cluster],
    fresh: Sequence[Cluster],
    pair_index: Mapping[str, float],
    now: dt.datetime | None = None,
    ignored_pair_keys: Collection[str] = (),
) -> RegenerationPlan:
    """Plan how to merge a fresh clustering run into the stored clusters.

    Rules, applied per fresh cluster:

    1. If it overlaps any active locked cluster, it is not stored.  Its
       members that belong to no locked cluster are appended to each
       overlapping locked cluster's ``proposed_additions`` (with the best
       score against that cluster's members) and the cluster is flagged for
       review.  ``member_ids`` of locked clusters never change.
    2. Otherwise, if an unlocked cluster with the same ID exists, only its
       metrics are refreshed.
    3. Otherwise, it is inserted as a new ``pending`` cluster.

    A fresh cluster identical to a split parent is skipped.  Unlocked
    clusters not matched by rule 2 are deleted.  Locked clusters,
    including split parents, are always kept.

    Args:
        existing: Clusters currently stored for the scope.
        fresh: Output of ``cluster_questions_by_similarity``.
        pair_index: Scores used for proposal scores.
        now: Timestamp for new clusters and proposals.
        ignored_pair_keys: Pairs an admin marked as not similar; candidates
            ruled out against every member of a locked cluster are not
            proposed again.

    Returns:
        A ``RegenerationPlan``.
    """
    now = now or dt.datetime.now(dt.timezone.utc)

    locked = [c for c in existing if c.locked and c.is_active]
    locked_members = {m for c in locked for m in c.member_ids}
    unlocked_by_id = {c.id: c for c in existing if not c.locked}
    split_ids = {c.id for c in existing if not c.is_active}

    working: dict[str, Cluster] = {}
    kept: set[str] = set()
    plan = RegenerationPlan()

    for candidate in fresh:
        if candidate.id in split_ids:
            # Same member set as a cluster an admin already split
            continue
        members = set(candidate.member_ids)
        overlapping = [c for c in locked if members & set(c.member_ids)]

        if overlapping:
            free = members - locked_members
            for target in overlapping:
                current = working.get(target.id, target)
                already = {p.id for p in current.proposed_additions}
                additions = [
                    ProposedAddition(
                        id=qid,
                        score=_best_score(qid, current.member_ids, pair_index),
                        proposed_at=now,
                    )
                    for qid in sorted(free - already)
                    if not _rejected_everywhere(qid, current.member_ids, ignored_pair_keys)
                ]
                if not additions:
                    continue
                working[target.id] = current.model_copy(
                    update={
                        "proposed_additions": [*current.proposed_additions, *additions],
                        "flagged_for_review": True,
                        "flagged_reason": current.flagged_reason or PROPOSED_ADDITIONS_REASON,
                        "flagged_at": current.flagged_at or now,
                        "updated_at": now,
                    }
                )
                plan.proposal_count += len(additions)
            continue

        stored = unlocked_by_id.get(candidate.id)
        if stored is not None:
            kept.add(stored.id)
            refreshed = stored.model_copy(
                update={
                    "avg_similarity": candidate.avg_similarity,
                    "max_similarity": candidate.max_similarity,
                    "min_similarity": candidate.min_similarity,
                    "cohesion_score": candidate.cohesion_score,
                    "std_dev_similarity": candidate.std_dev_similarity,
                    "edge_count": candidate.edge_count,
                    "possible_edge_count": candidate.possible_edge_count,
                    "density": candidate.density,
                    "medoid_id": candidate.medoid_id,
                    "updated_at": now,
                }
            )
            plan.updates.append(refreshed)
        else:
            plan.inserts.append(
                candidate.model_copy(
                    update={"status": "pending", "locked": False, "created_at": now, "updated_at": now}
                )
            )

    plan.updates.extend(working.values())
    plan.deletes = [c for cid, c in unlocked_by_id.items() if cid not in kept]

    logger.info(
        "regeneration_planned",
        existing=len(existing),
        fresh=len(fresh),
        inserts=len(plan.inserts),
        updates=len(plan.updates),
        deletes=len(plan.deletes),
        proposals=plan.proposal_count,
    )
    return plan
