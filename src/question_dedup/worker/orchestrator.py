"""Regeneration runs bridging pair sources, clustering and persistence.

1. Load stored clusters and admin pair flags for the scope
2. Drop ignored pairs and run the clusterer (pure function)
3. Reconcile with stored clusters so locked decisions survive
4. Persist the plan with version-conditioned writes
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Sequence

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from question_dedup.clustering.graph_cluster import cluster_questions_by_similarity
from question_dedup.clustering.pair_index import build_pair_score_index, pair_key
from question_dedup.clustering.quality import find_split_candidates
from question_dedup.clustering.split import SplitResult, split_cluster_auto
from question_dedup.clustering.types import SimilarityPair
from question_dedup.config.dedup import DedupConfig
from question_dedup.errors import ClusterNotFound
from question_dedup.regeneration.reconcile import reconcile_clusters
from question_dedup.regeneration.sources import EmbeddingStore
from question_dedup.review.state_machine import resolve_pair_scores
from question_dedup.worker.persistence import (
    apply_regeneration_plan,
    get_cluster,
    load_clusters,
    load_ignored_pair_keys,
)

logger = structlog.get_logger()


async def regenerate_scope(
    scope: str,
    pairs: Sequence[SimilarityPair],
    session_factory: async_sessionmaker,
    config: DedupConfig | None = None,
    now: dt.datetime | None = None,
) -> dict:
    """Re-cluster a scope from fresh pairs without discarding curation.

    Args:
        scope: Scope whose clusters are regenerated (e.g. an exam ID).
        pairs: Similarity pairs gathered for the scope's questions.
        session_factory: Async session factory for DB access.
        config: Engine configuration; defaults apply when ``None``.
        now: Timestamp for new clusters and proposals.

    Returns:
        Stats dict with cluster counts and split candidates.

    Raises:
        ConcurrentModification: An admin changed a cluster while the run
            was in progress; nothing from this run is written.
    """
    config = config or DedupConfig()
    log = logger.bind(scope=scope)

    async with session_factory() as session, session.begin():
        existing = await load_clusters(session, scope)
        ignored = await load_ignored_pair_keys(session, scope)

        usable = [p for p in pairs if pair_key(p.a_id, p.b_id) not in ignored]
        fresh = cluster_questions_by_similarity(
            usable,
            config.clustering.min_cluster_size,
            config.clustering.min_similarity_threshold,
        )
        plan = reconcile_clusters(
            existing, fresh, build_pair_score_index(usable), now=now, ignored_pair_keys=ignored
        )
        await apply_regeneration_plan(session, scope, plan)

    stored = {c.id: c for c in existing}
    for c in plan.deletes:
        stored.pop(c.id, None)
    for c in [*plan.updates, *plan.inserts]:
        stored[c.id] = c
    split_candidates = find_split_candidates(stored.values(), config.quality)

    log.info(
        "regeneration_complete",
        pairs=len(pairs),
        ignored_pairs=len(pairs) - len(usable),
        fresh_clusters=len(fresh),
        inserted=len(plan.inserts),
        updated=len(plan.updates),
        deleted=len(plan.deletes),
        proposals=plan.proposal_count,
        split_candidates=len(split_candidates),
    )
    return {
        "status": "completed",
        "scope": scope,
        "fresh_clusters": len(fresh),
        "inserted": len(plan.inserts),
        "updated": len(plan.updates),
        "deleted": len(plan.deletes),
        "proposals": plan.proposal_count,
        "split_candidates": [
            {"cluster_id": c.id, "reason": reason} for c, reason in split_candidates
        ],
    }


async def preview_split(
    scope: str,
    cluster_id: str,
    session_factory: async_sessionmaker,
    pairs: Sequence[SimilarityPair] = (),
    embedding_store: EmbeddingStore | None = None,
    config: DedupConfig | None = None,
) -> SplitResult:
    """Run the auto-split search for a stored cluster without committing it."""
    config = config or DedupConfig()
    async with session_factory() as session:
        cluster = await get_cluster(session, scope, cluster_id)
        if cluster is None:
            raise ClusterNotFound(f"Cluster {cluster_id} not found in {scope}", cluster_id)
        ignored = await load_ignored_pair_keys(session, scope)

    embeddings = (
        await embedding_store.embeddings_by_id(cluster.member_ids)
        if embedding_store is not None
        else None
    )
    scores = resolve_pair_scores(
        cluster.member_ids, build_pair_score_index(pairs), embeddings, ignored
    )
    return split_cluster_auto(
        cluster, scores, config.split.candidate_thresholds, config.split.min_cluster_size
    )
