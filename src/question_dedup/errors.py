"""Structured errors raised by the cluster decision layer.

Pure clustering functions never raise these; they degrade to empty or
zero-valued results.  Only decision application (and its persistence
wrapper) rejects work with one of the errors below so that callers can
map them onto user-visible failures.
"""

from __future__ import annotations


class ClusterError(Exception):
    """Base class for cluster decision failures."""

    code = "cluster_error"

    def __init__(self, message: str, cluster_id: str | None = None) -> None:
        super().__init__(message)
        self.cluster_id = cluster_id


class InvalidMember(ClusterError):
    """An action referenced a question that is not part of the cluster."""

    code = "invalid_member"

    def __init__(self, question_id: str, cluster_id: str | None = None) -> None:
        super().__init__(
            f"Question {question_id} is not a member of cluster {cluster_id}",
            cluster_id,
        )
        self.question_id = question_id


class ClusterLocked(ClusterError):
    """A protected mutation was attempted on a locked cluster without override."""

    code = "cluster_locked"


class ConcurrentModification(ClusterError):
    """The persisted cluster changed since it was read; re-read and retry."""

    code = "concurrent_modification"

    def __init__(
        self, cluster_id: str, expected_version: int, message: str | None = None
    ) -> None:
        super().__init__(
            message or f"Cluster {cluster_id} was modified (expected version {expected_version})",
            cluster_id,
        )
        self.expected_version = expected_version


class ClusterNotFound(ClusterError):
    code = "cluster_not_found"


class NoSplitFound(ClusterError):
    """No split candidate produced at least two subclusters."""

    code = "no_split_found"

    def __init__(self, cluster_id: str, threshold: float) -> None:
        super().__init__(
            f"No split found for cluster {cluster_id} (threshold {threshold})",
            cluster_id,
        )
        self.threshold = threshold


class InvalidAction(ClusterError):
    """The action payload could not be parsed or is not applicable."""

    code = "invalid_action"


class ClusterConflict(ClusterError):
    """A write would replace a different stored cluster that owns the same ID."""

    code = "cluster_conflict"
