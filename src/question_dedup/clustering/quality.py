"""Quality checks that decide which clusters deserve an automatic split.

A cluster is "over-broad" when it is too large, or when its members are
only loosely connected (low cohesion or low edge density).  Such clusters
are reported with a reason rather than silently accepted.
"""

from __future__ import annotations

from collections.abc import Iterable

from question_dedup.config.dedup import QualityConfig

from .types import Cluster


def quality_issues(cluster: Cluster, config: QualityConfig) -> list[str]:
    """List the quality checks a cluster fails.

    Checks performed (all of them, in order):

    1. **Size** -- cluster must not exceed ``max_cluster_size``.
    2. **Cohesion** -- ``cohesion_score`` must be at least ``min_cohesion``.
    3. **Density** -- ``density`` must be at least ``min_density``.

    Returns:
        Reason codes such as ``"oversized"``; empty when the cluster passes.
    """
    issues: list[str] = []
    if cluster.size > config.max_cluster_size:
        issues.append("oversized")
    if cluster.cohesion_score < config.min_cohesion:
        issues.append("low_cohesion")
    if cluster.density < config.min_density:
        issues.append("low_density")
    return issues


def needs_split(cluster: Cluster, config: QualityConfig) -> bool:
    """``True`` if the cluster fails any quality check."""
    return bool(quality_issues(cluster, config))


def find_split_candidates(
    clusters: Iterable[Cluster], config: QualityConfig
) -> list[tuple[Cluster, str]]:
    """Return active, unlocked clusters that fail a quality check.

    Locked clusters carry an admin decision and are never proposed for an
    automatic split.

    Returns:
        ``(cluster, reason)`` tuples where ``reason`` joins the failed
        checks with commas.
    """
    candidates: list[tuple[Cluster, str]] = []
    for cluster in clusters:
        if cluster.locked or not cluster.is_active:
            continue
        issues = quality_issues(cluster, config)
        if issues:
            candidates.append((cluster, ",".join(issues)))
    return candidates
