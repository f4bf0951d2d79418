"""Deduplication engine configuration with sensible defaults.

All parameters can be overridden via ``dedup.yaml``.  If the file does
not exist, defaults are used.
"""

from __future__ import annotations

from pathlib import Path

import structlog
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class ClusteringConfig(BaseModel):
    """Parameters for the similarity-graph clustering run."""

    min_similarity_threshold: float = Field(0.85, ge=0.0, le=1.0)
    min_cluster_size: int = Field(2, ge=2)


class SplitConfig(BaseModel):
    """Parameters for auto and manual cluster splitting."""

    candidate_thresholds: list[float] = [0.92, 0.94, 0.96, 0.98]
    manual_threshold: float = Field(0.95, ge=0.0, le=1.0)
    min_cluster_size: int = Field(2, ge=2)

    @field_validator("candidate_thresholds")
    @classmethod
    def check_thresholds(cls, value: list[float]) -> list[float]:
        if not value:
            raise ValueError("candidate_thresholds must not be empty")
        if any(t < 0.0 or t > 1.0 for t in value):
            raise ValueError("candidate_thresholds must lie in [0, 1]")
        if value != sorted(value):
            raise ValueError("candidate_thresholds must be ascending")
        return value


class QualityConfig(BaseModel):
    """Limits below which a cluster is proposed for splitting."""

    max_cluster_size: int = Field(25, ge=2)
    min_cohesion: float = Field(0.88, ge=0.0, le=1.0)
    min_density: float = Field(0.5, ge=0.0, le=1.0)


class NeighborConfig(BaseModel):
    """Parameters for gathering nearest-neighbour pairs."""

    top_k: int = Field(10, ge=1)
    max_concurrent_requests: int = Field(5, ge=1)


class DedupConfig(BaseModel):
    """Top-level engine configuration combining all sub-configs."""

    clustering: ClusteringConfig = ClusteringConfig()
    split: SplitConfig = SplitConfig()
    quality: QualityConfig = QualityConfig()
    neighbors: NeighborConfig = NeighborConfig()

    @model_validator(mode="after")
    def warn_if_split_below_clustering(self) -> "DedupConfig":
        """Log a warning if split candidates cannot tighten the clustering threshold."""
        lowest = self.split.candidate_thresholds[0]
        if lowest <= self.clustering.min_similarity_threshold:
            structlog.get_logger().warning(
                "split_thresholds_not_tighter",
                lowest_candidate=lowest,
                clustering_threshold=self.clustering.min_similarity_threshold,
            )
        return self


def load_dedup_config(path: Path) -> DedupConfig:
    """Load engine configuration from a YAML file.

    If the file does not exist, returns a ``DedupConfig`` with all
    default values.  Partial overrides are supported -- only the keys
    present in the YAML file will override defaults.
    """
    if not path.exists():
        return DedupConfig()

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return DedupConfig(**data)
