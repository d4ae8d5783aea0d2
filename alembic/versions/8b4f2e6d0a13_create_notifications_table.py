"""Create hook notifications table."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "8b4f2e6d0a13"
down_revision = "3e7d1c9a5b20"
branch_labels = None
depends_on = None

HOOK_CONDITIONS = (
    "any_error",
    "snapshot_start",
    "snapshot_end",
    "snapshot_error",
    "prune_error",
    "check_error",
)


def upgrade() -> None:
    """Create notifications table written by hook dispatch."""
    conditions = ", ".join(f"'{condition}'" for condition in HOOK_CONDITIONS)
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("condition", sa.String(length=32), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("hook_name", sa.String(length=128), nullable=True),
        sa.Column("task", sa.String(length=255), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("plan_id", sa.String(length=255), nullable=False),
        sa.Column("repo_id", sa.String(length=255), nullable=False),
        sa.Column("snapshot_id", sa.String(length=255), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("created_at_ms", sa.BigInteger(), nullable=False),
        sa.CheckConstraint(
            f"condition IN ({conditions})",
            name="ck_notifications_condition",
        ),
    )
    op.create_index(
        "ix_notifications_repo_condition",
        "notifications",
        ["repo_id", "condition"],
        unique=False,
    )


def downgrade() -> None:
    """Drop notifications table."""
    op.drop_index("ix_notifications_repo_condition", table_name="notifications")
    op.drop_table("notifications")
