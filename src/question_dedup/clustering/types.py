"""Data model shared by the clustering engine and the decision layer."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, Field, field_validator

ClusterStatus = Literal["pending", "approved_duplicates", "approved_variants", "split"]

# pair_key(a, b) -> similarity score in [0, 1]
PairIndex = dict[str, float]


@dataclass(frozen=True)
class SimilarityPair:
    """An externally supplied similarity score between two questions.

    Attributes:
        a_id: First question ID (any order; see ``pair_key``).
        b_id: Second question ID.
        score: Similarity in ``[0, 1]``.
    """

    a_id: str
    b_id: str
    score: float


class ProposedAddition(BaseModel):
    """A candidate member suggested for a locked cluster by regeneration."""

    id: str
    score: float | None = None
    proposed_at: dt.datetime


class Cluster(BaseModel):
    """A persistent, admin-curatable group of near-duplicate questions.

    ``member_ids`` is kept sorted and unique; ``id`` is derived from it so
    the same member set always maps to the same cluster.  Decision fields
    are only changed through ``review.state_machine.apply_cluster_action``.
    """

    id: str
    member_ids: list[str] = Field(min_length=2)

    avg_similarity: float = 0.0
    max_similarity: float = 0.0
    min_similarity: float = 0.0
    cohesion_score: float = 0.0
    std_dev_similarity: float = 0.0
    edge_count: int = 0
    possible_edge_count: int = 0
    density: float = 0.0
    medoid_id: str | None = None

    status: ClusterStatus = "pending"
    locked: bool = False
    decided_at: dt.datetime | None = None
    decided_by: str | None = None
    kept_question_id: str | None = None

    parents: list[str] = []
    children: list[str] = []
    proposed_additions: list[ProposedAddition] = []

    flagged_for_review: bool = False
    flagged_reason: str | None = None
    flagged_at: dt.datetime | None = None
    flagged_by: str | None = None

    version: int = 1
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    @field_validator("member_ids")
    @classmethod
    def normalize_members(cls, value: list[str]) -> list[str]:
        members = sorted(set(value))
        if len(members) < 2:
            raise ValueError("a cluster needs at least two distinct members")
        return members

    @property
    def size(self) -> int:
        return len(self.member_ids)

    @property
    def is_active(self) -> bool:
        """Split parents no longer take part in duplicate checks."""
        return self.status != "split"

    def has_member(self, question_id: str) -> bool:
        return question_id in self.member_ids
