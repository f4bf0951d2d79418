"""Review operations: apply admin actions to stored clusters."""

from __future__ import annotations

from collections.abc import Mapping

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from question_dedup.config.dedup import SplitConfig
from question_dedup.errors import ClusterConflict, ClusterNotFound, ConcurrentModification
from question_dedup.models.audit_log import AuditLog
from question_dedup.regeneration.sources import EmbeddingStore
from question_dedup.worker.persistence import (
    delete_cluster,
    get_cluster,
    link_split_child,
    load_ignored_pair_keys,
    record_ignored_pairs,
    rename_lineage_links,
    update_cluster,
)

from .actions import ApproveAdditions, ClusterAction, ExcludeQuestion, SplitAction
from .state_machine import ActionResult, apply_cluster_action

logger = structlog.get_logger()


async def apply_action_to_stored_cluster(
    session: AsyncSession,
    scope: str,
    cluster_id: str,
    action: ClusterAction,
    operator: str = "anonymous",
    expected_version: int | None = None,
    pair_index: Mapping[str, float] | None = None,
    embedding_store: EmbeddingStore | None = None,
    split_config: SplitConfig | None = None,
) -> ActionResult:
    """Load a cluster, apply an admin action and persist the outcome.

    Actions that recompute metrics (``exclude_question``, ``split``,
    ``approve_additions``) fetch embeddings from ``embedding_store`` when
    one is given so scores are dense rather than neighbour-sparse.  Pairs
    an admin marked as not similar are always left out.

    All work is done within a single transaction.  The cluster write is
    conditioned on the version that was read (or ``expected_version`` when
    the caller supplies the version it displayed to the admin).  When a
    membership change re-derives the cluster ID, the row is renamed and its
    lineage links follow.  Split children that are already stored keep
    their state and decisions; they only gain the parent link.

    Returns:
        The ``ActionResult``; ``result.cluster`` carries its new version
        and ``result.created`` the children as stored.

    Raises:
        ClusterNotFound: No cluster with this ID in the scope.
        ConcurrentModification: The cluster changed since it was read.
        ClusterConflict: The new or child ID is taken by another cluster.
        InvalidMember, ClusterLocked, NoSplitFound: Rejected by the
            decision state machine; nothing is written.
    """
    log = logger.bind(scope=scope, cluster_id=cluster_id, action=action.type)

    async with session.begin():
        cluster = await get_cluster(session, scope, cluster_id)
        if cluster is None:
            raise ClusterNotFound(f"Cluster {cluster_id} not found in {scope}", cluster_id)
        if expected_version is not None and cluster.version != expected_version:
            log.warning(
                "concurrent_modification",
                expected_version=expected_version,
                stored_version=cluster.version,
            )
            raise ConcurrentModification(cluster_id, expected_version)

        ignored = await load_ignored_pair_keys(session, scope)

        embeddings = None
        if embedding_store is not None and isinstance(
            action, (ExcludeQuestion, SplitAction, ApproveAdditions)
        ):
            wanted = set(cluster.member_ids)
            if isinstance(action, ApproveAdditions):
                wanted.update(action.ids)
            embeddings = await embedding_store.embeddings_by_id(sorted(wanted))

        result = apply_cluster_action(
            cluster,
            action,
            operator=operator,
            pair_index=pair_index,
            embeddings_by_id=embeddings,
            ignored_pair_keys=ignored,
            split_config=split_config,
        )

        if result.deleted:
            await delete_cluster(session, scope, cluster.id, expected_version=cluster.version)
        elif result.cluster is not None and result.cluster.id != cluster.id:
            if await get_cluster(session, scope, result.cluster.id) is not None:
                raise ClusterConflict(
                    f"Cluster {result.cluster.id} already exists", result.cluster.id
                )
            result.cluster = await update_cluster(
                session, scope, result.cluster, stored_id=cluster.id
            )
            await rename_lineage_links(session, scope, cluster.id, result.cluster)
        elif result.cluster is not None:
            result.cluster = await update_cluster(session, scope, result.cluster)

        result.created = [
            await link_split_child(session, scope, child, cluster.id) for child in result.created
        ]

        if result.ignored_pairs:
            await record_ignored_pairs(session, scope, result.ignored_pairs)

        session.add(
            AuditLog(
                scope=scope,
                action_type=result.action,
                cluster_id=cluster_id,
                operator=operator,
                details=result.details or None,
            )
        )

    log.info("cluster_action_persisted", outcome=result.action, created=len(result.created))
    return result
