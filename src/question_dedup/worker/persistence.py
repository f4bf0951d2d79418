"""Cluster document store on top of SQLAlchemy.

Provides find-by-scope, upsert and version-conditioned update/delete for
clusters, plus storage for admin pair flags.  Conditional writes raise
``ConcurrentModification`` when the stored version moved on since the
cluster was read.
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from question_dedup.clustering.pair_index import pair_key
from question_dedup.clustering.types import Cluster
from question_dedup.errors import ClusterConflict, ConcurrentModification
from question_dedup.models.pair_flag import DedupePairFlag
from question_dedup.models.question_cluster import QuestionCluster
from question_dedup.regeneration.reconcile import RegenerationPlan

logger = structlog.get_logger()


def cluster_to_row_values(cluster: Cluster) -> dict:
    """Column values for a cluster (everything except scope and version)."""
    return {
        "cluster_id": cluster.id,
        "member_ids": list(cluster.member_ids),
        "avg_similarity": cluster.avg_similarity,
        "max_similarity": cluster.max_similarity,
        "min_similarity": cluster.min_similarity,
        "cohesion_score": cluster.cohesion_score,
        "std_dev_similarity": cluster.std_dev_similarity,
        "edge_count": cluster.edge_count,
        "possible_edge_count": cluster.possible_edge_count,
        "density": cluster.density,
        "medoid_id": cluster.medoid_id,
        "status": cluster.status,
        "locked": cluster.locked,
        "decided_at": cluster.decided_at,
        "decided_by": cluster.decided_by,
        "kept_question_id": cluster.kept_question_id,
        "parents": list(cluster.parents),
        "children": list(cluster.children),
        "proposed_additions": [p.model_dump(mode="json") for p in cluster.proposed_additions],
        "flagged_for_review": cluster.flagged_for_review,
        "flagged_reason": cluster.flagged_reason,
        "flagged_at": cluster.flagged_at,
        "flagged_by": cluster.flagged_by,
        "created_at": cluster.created_at,
        "updated_at": cluster.updated_at,
    }


def row_to_cluster(row: QuestionCluster) -> Cluster:
    """Convert a stored row back into a ``Cluster``."""
    return Cluster(
        id=row.cluster_id,
        member_ids=row.member_ids,
        avg_similarity=row.avg_similarity,
        max_similarity=row.max_similarity,
        min_similarity=row.min_similarity,
        cohesion_score=row.cohesion_score,
        std_dev_similarity=row.std_dev_similarity,
        edge_count=row.edge_count,
        possible_edge_count=row.possible_edge_count,
        density=row.density,
        medoid_id=row.medoid_id,
        status=row.status,
        locked=row.locked,
        decided_at=row.decided_at,
        decided_by=row.decided_by,
        kept_question_id=row.kept_question_id,
        parents=row.parents or [],
        children=row.children or [],
        proposed_additions=row.proposed_additions or [],
        flagged_for_review=row.flagged_for_review,
        flagged_reason=row.flagged_reason,
        flagged_at=row.flagged_at,
        flagged_by=row.flagged_by,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


async def load_clusters(session: AsyncSession, scope: str) -> list[Cluster]:
    """Load every cluster in a scope, highest average similarity first."""
    result = await session.execute(
        select(QuestionCluster)
        .where(QuestionCluster.scope == scope)
        .order_by(QuestionCluster.avg_similarity.desc(), QuestionCluster.cluster_id)
        .execution_options(populate_existing=True)
    )
    return [row_to_cluster(row) for row in result.scalars().all()]


async def get_cluster(session: AsyncSession, scope: str, cluster_id: str) -> Cluster | None:
    """Fetch one cluster, bypassing rows cached by earlier reads in the session."""
    result = await session.execute(
        select(QuestionCluster).where(
            QuestionCluster.scope == scope, QuestionCluster.cluster_id == cluster_id
        ).execution_options(populate_existing=True)
    )
    row = result.scalar_one_or_none()
    return row_to_cluster(row) if row is not None else None


async def upsert_cluster(session: AsyncSession, scope: str, cluster: Cluster) -> Cluster:
    """Insert a cluster, or overwrite the stored one with the same ID.

    Unconditional: use ``update_cluster`` for decision writes and
    ``link_split_child`` for split children.

    Returns:
        The cluster with its new stored version.
    """
    values = cluster_to_row_values(cluster)
    result = await session.execute(
        select(QuestionCluster).where(
            QuestionCluster.scope == scope, QuestionCluster.cluster_id == cluster.id
        ).execution_options(populate_existing=True)
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = QuestionCluster(scope=scope, version=1, **values)
        session.add(row)
    else:
        for key, value in values.items():
            setattr(row, key, value)
        row.version = row.version + 1
    await session.flush()
    return cluster.model_copy(update={"version": row.version})


async def update_cluster(
    session: AsyncSession,
    scope: str,
    cluster: Cluster,
    expected_version: int | None = None,
    stored_id: str | None = None,
) -> Cluster:
    """Write a cluster only if its stored version is still ``expected_version``.

    Args:
        session: Active async session.
        scope: Cluster scope.
        cluster: New cluster state.
        expected_version: Version last read; defaults to ``cluster.version``.
        stored_id: ID the row is currently stored under, when a membership
            change re-derived ``cluster.id``.

    Returns:
        The cluster carrying its incremented version.

    Raises:
        ConcurrentModification: No row matched the ID and version.
    """
    expected = cluster.version if expected_version is None else expected_version
    result = await session.execute(
        update(QuestionCluster)
        .where(
            QuestionCluster.scope == scope,
            QuestionCluster.cluster_id == (stored_id or cluster.id),
            QuestionCluster.version == expected,
        )
        .values(**cluster_to_row_values(cluster), version=expected + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning("concurrent_modification", cluster_id=cluster.id, expected_version=expected)
        raise ConcurrentModification(cluster.id, expected)
    return cluster.model_copy(update={"version": expected + 1})


async def delete_cluster(
    session: AsyncSession, scope: str, cluster_id: str, expected_version: int | None = None
) -> None:
    """Delete a cluster, optionally conditioned on its version.

    Raises:
        ConcurrentModification: A version was given and no row matched it.
    """
    stmt = delete(QuestionCluster).where(
        QuestionCluster.scope == scope, QuestionCluster.cluster_id == cluster_id
    )
    if expected_version is not None:
        stmt = stmt.where(QuestionCluster.version == expected_version)
    result = await session.execute(stmt.execution_options(synchronize_session=False))
    if expected_version is not None and result.rowcount != 1:
        raise ConcurrentModification(cluster_id, expected_version)


async def link_split_child(
    session: AsyncSession, scope: str, child: Cluster, parent_id: str
) -> Cluster:
    """Store a split child without overwriting an existing cluster.

    A stored cluster with the same members is kept as-is, decisions
    included, and only gains ``parent_id`` in its ``parents``.

    Returns:
        The stored child.

    Raises:
        ClusterConflict: The ID belongs to a cluster with other members.
    """
    existing = await get_cluster(session, scope, child.id)
    if existing is None:
        return await upsert_cluster(session, scope, child)

    if existing.member_ids != child.member_ids:
        raise ClusterConflict(
            f"Cluster {child.id} already exists with different members", child.id
        )
    logger.info("split_child_exists", cluster_id=child.id, status=existing.status)
    if parent_id in existing.parents:
        return existing
    return await update_cluster(
        session,
        scope,
        existing.model_copy(update={"parents": [*existing.parents, parent_id]}),
    )


async def rename_lineage_links(
    session: AsyncSession, scope: str, old_id: str, cluster: Cluster
) -> None:
    """Point the parents and children of a renamed cluster at its new ID."""
    for parent_id in cluster.parents:
        parent = await get_cluster(session, scope, parent_id)
        if parent is not None and old_id in parent.children:
            children = [cluster.id if c == old_id else c for c in parent.children]
            await update_cluster(session, scope, parent.model_copy(update={"children": children}))
    for child_id in cluster.children:
        child = await get_cluster(session, scope, child_id)
        if child is not None and old_id in child.parents:
            parents = [cluster.id if p == old_id else p for p in child.parents]
            await update_cluster(session, scope, child.model_copy(update={"parents": parents}))


async def record_ignored_pairs(
    session: AsyncSession, scope: str, pairs: Iterable[tuple[str, str]]
) -> int:
    """Store ``ignore`` flags for question pairs; existing flags are kept.

    Returns:
        Number of new flags written.
    """
    wanted = {tuple(sorted(p)) for p in pairs if p[0] != p[1]}
    if not wanted:
        return 0
    existing = await load_ignored_pair_keys(session, scope)
    written = 0
    for a_id, b_id in sorted(wanted):
        if pair_key(a_id, b_id) in existing:
            continue
        session.add(DedupePairFlag(scope=scope, a_id=a_id, b_id=b_id, status="ignore"))
        written += 1
    await session.flush()
    return written


async def load_ignored_pair_keys(session: AsyncSession, scope: str) -> set[str]:
    """Return ``pair_key`` values of every pair flagged ``ignore`` in a scope."""
    result = await session.execute(
        select(DedupePairFlag.a_id, DedupePairFlag.b_id).where(
            DedupePairFlag.scope == scope, DedupePairFlag.status == "ignore"
        )
    )
    return {pair_key(a_id, b_id) for a_id, b_id in result.all()}


async def apply_regeneration_plan(
    session: AsyncSession, scope: str, plan: RegenerationPlan
) -> None:
    """Execute a regeneration plan.

    Updates and deletes are conditioned on the versions the plan was built
    from, so a concurrent admin decision aborts the run with
    ``ConcurrentModification`` instead of being overwritten.  Must be
    called within an active ``session.begin()`` context.
    """
    for cluster in plan.deletes:
        await delete_cluster(session, scope, cluster.id, expected_version=cluster.version)
    for cluster in plan.updates:
        await update_cluster(session, scope, cluster)
    for cluster in plan.inserts:
        session.add(QuestionCluster(scope=scope, version=1, **cluster_to_row_values(cluster)))
    await session.flush()
