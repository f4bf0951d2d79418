"""Audit log model for tracking admin cluster decisions."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from question_dedup.models.base import Base


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    scope: Mapped[str] = mapped_column(sa.String, index=True)
    action_type: Mapped[str] = mapped_column(sa.String)  # "split", "reset", "cluster_deleted", ...
    cluster_id: Mapped[str] = mapped_column(sa.String, index=True)
    operator: Mapped[str] = mapped_column(sa.String, default="anonymous")
    details: Mapped[dict | None] = mapped_column(sa.JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")
    )
