"""Admin verdicts on individual question pairs."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from question_dedup.models.base import Base


class DedupePairFlag(Base):
    """A pair of questions an admin judged (``status="ignore"`` = not similar).

    ``a_id`` < ``b_id`` always holds.
    """

    __tablename__ = "dedupe_pair_flags"
    __table_args__ = (
        sa.UniqueConstraint("scope", "a_id", "b_id", name="uq_dedupe_pair_flags_pair"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    scope: Mapped[str] = mapped_column(sa.String, index=True)
    a_id: Mapped[str] = mapped_column(sa.String)
    b_id: Mapped[str] = mapped_column(sa.String)
    status: Mapped[str] = mapped_column(sa.String, default="ignore")
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")
    )
