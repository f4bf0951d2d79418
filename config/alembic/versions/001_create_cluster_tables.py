"""Create question_clusters, dedupe_pair_flags and audit_log tables.

Revision ID: 001_cluster_tables
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "001_cluster_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "question_clusters",
        sa.Column("pk", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("scope", sa.String(), nullable=False),
        sa.Column("cluster_id", sa.String(), nullable=False),
        sa.Column("member_ids", sa.JSON(), nullable=False),
        sa.Column("avg_similarity", sa.Float(), nullable=False, server_default="0"),
        sa.Column("max_similarity", sa.Float(), nullable=False, server_default="0"),
        sa.Column("min_similarity", sa.Float(), nullable=False, server_default="0"),
        sa.Column("cohesion_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("std_dev_similarity", sa.Float(), nullable=False, server_default="0"),
        sa.Column("edge_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("possible_edge_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("density", sa.Float(), nullable=False, server_default="0"),
        sa.Column("medoid_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_by", sa.String(), nullable=True),
        sa.Column("kept_question_id", sa.String(), nullable=True),
        sa.Column("parents", sa.JSON(), nullable=True),
        sa.Column("children", sa.JSON(), nullable=True),
        sa.Column("proposed_additions", sa.JSON(), nullable=True),
        sa.Column("flagged_for_review", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("flagged_reason", sa.String(), nullable=True),
        sa.Column("flagged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("flagged_by", sa.String(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("scope", "cluster_id", name="uq_question_clusters_scope_id"),
    )
    op.create_index("ix_question_clusters_scope", "question_clusters", ["scope"])

    op.create_table(
        "dedupe_pair_flags",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("scope", sa.String(), nullable=False),
        sa.Column("a_id", sa.String(), nullable=False),
        sa.Column("b_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="ignore"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("scope", "a_id", "b_id", name="uq_dedupe_pair_flags_pair"),
    )
    op.create_index("ix_dedupe_pair_flags_scope", "dedupe_pair_flags", ["scope"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("scope", sa.String(), nullable=False),
        sa.Column("action_type", sa.String(), nullable=False),
        sa.Column("cluster_id", sa.String(), nullable=False),
        sa.Column("operator", sa.String(), nullable=False, server_default="anonymous"),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_audit_log_scope", "audit_log", ["scope"])
    op.create_index("ix_audit_log_cluster_id", "audit_log", ["cluster_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_log_cluster_id")
    op.drop_index("ix_audit_log_scope")
    op.drop_table("audit_log")
    op.drop_index("ix_dedupe_pair_flags_scope")
    op.drop_table("dedupe_pair_flags")
    op.drop_index("ix_question_clusters_scope")
    op.drop_table("question_clusters")
