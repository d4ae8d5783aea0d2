"""Create operation log table."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "3e7d1c9a5b20"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create operations table with per-repo reverse scan index."""
    op.create_table(
        "operations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("plan_id", sa.String(length=255), nullable=False),
        sa.Column("repo_id", sa.String(length=255), nullable=False),
        sa.Column("snapshot_id", sa.String(length=255), nullable=True),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("unix_time_start_ms", sa.BigInteger(), nullable=False),
        sa.Column("unix_time_end_ms", sa.BigInteger(), nullable=True),
        sa.Column("display_message", sa.Text(), nullable=True),
        sa.Column("payload_json", sa.Text(), nullable=True),
        sa.CheckConstraint(
            "kind IN ('backup', 'stats')",
            name="ck_operations_kind",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'in_progress', 'success', 'warning', "
            "'error', 'user_cancelled', 'system_cancelled')",
            name="ck_operations_status",
        ),
    )
    op.create_index(
        "ix_operations_repo_id_id",
        "operations",
        ["repo_id", "id"],
        unique=False,
    )
    op.create_index(
        "ix_operations_plan_id",
        "operations",
        ["plan_id"],
        unique=False,
    )


def downgrade() -> None:
    """Drop operations table."""
    op.drop_index("ix_operations_plan_id", table_name="operations")
    op.drop_index("ix_operations_repo_id_id", table_name="operations")
    op.drop_table("operations")
