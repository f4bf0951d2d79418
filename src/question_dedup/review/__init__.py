"""Admin curation of clusters: action models, the decision state machine,
and its persisted application."""

from .actions import ClusterAction, parse_action
from .state_machine import ActionResult, apply_cluster_action

__all__ = ["ActionResult", "ClusterAction", "apply_cluster_action", "parse_action"]
