"""Initial schema.

Revision ID: 001
Revises:
Create Date: 2026-10-18

Scheduled message task records.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "scheduled_tasks",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("scheduled_time", sa.String(5), nullable=False),
        sa.Column("fire_at", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("recipient", sa.String(), nullable=True),
        sa.Column("recipient_type", sa.String(), nullable=False),
        sa.Column("priority", sa.String(), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_scheduled_tasks_status_fire_at",
        "scheduled_tasks",
        ["status", "fire_at"],
    )
    op.create_index(
        "ix_scheduled_tasks_recipient",
        "scheduled_tasks",
        ["recipient"],
    )
    op.create_index(
        "ix_scheduled_tasks_priority_status",
        "scheduled_tasks",
        ["priority", "status"],
    )


def downgrade() -> None:
    op.drop_index("ix_scheduled_tasks_priority_status", table_name="scheduled_tasks")
    op.drop_index("ix_scheduled_tasks_recipient", table_name="scheduled_tasks")
    op.drop_index("ix_scheduled_tasks_status_fire_at", table_name="scheduled_tasks")
    op.drop_table("scheduled_tasks")
