"""Persisted cluster document -- one row per cluster within a scope."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from question_dedup.models.base import Base


class QuestionCluster(Base):
    """Stored form of ``clustering.types.Cluster``.

    ``scope`` groups clusters (typically one exam's question bank).
    ``version`` is bumped on every write and used for optimistic
    concurrency: updates are conditioned on the version last read.
    """

    __tablename__ = "question_clusters"
    __table_args__ = (sa.UniqueConstraint("scope", "cluster_id", name="uq_question_clusters_scope_id"),)

    pk: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    scope: Mapped[str] = mapped_column(sa.String, index=True)
    cluster_id: Mapped[str] = mapped_column(sa.String)

    member_ids: Mapped[list] = mapped_column(sa.JSON)

    # Metrics
    avg_similarity: Mapped[float] = mapped_column(sa.Float, default=0.0)
    max_similarity: Mapped[float] = mapped_column(sa.Float, default=0.0)
    min_similarity: Mapped[float] = mapped_column(sa.Float, default=0.0)
    cohesion_score: Mapped[float] = mapped_column(sa.Float, default=0.0)
    std_dev_similarity: Mapped[float] = mapped_column(sa.Float, default=0.0)
    edge_count: Mapped[int] = mapped_column(sa.Integer, default=0)
    possible_edge_count: Mapped[int] = mapped_column(sa.Integer, default=0)
    density: Mapped[float] = mapped_column(sa.Float, default=0.0)
    medoid_id: Mapped[str | None] = mapped_column(sa.String, nullable=True)

    # Decision state
    status: Mapped[str] = mapped_column(sa.String, default="pending")
    locked: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    decided_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    decided_by: Mapped[str | None] = mapped_column(sa.String, nullable=True)
    kept_question_id: Mapped[str | None] = mapped_column(sa.String, nullable=True)

    # Lineage and review (JSON for SQLite compatibility)
    parents: Mapped[list | None] = mapped_column(sa.JSON, nullable=True)
    children: Mapped[list | None] = mapped_column(sa.JSON, nullable=True)
    proposed_additions: Mapped[list | None] = mapped_column(sa.JSON, nullable=True)
    flagged_for_review: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    flagged_reason: Mapped[str | None] = mapped_column(sa.String, nullable=True)
    flagged_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    flagged_by: Mapped[str | None] = mapped_column(sa.String, nullable=True)

    version: Mapped[int] = mapped_column(sa.Integer, default=1)
    created_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
