"""
Инициальная миграция.

Создаёт таблицы:
- tasks
- scheduled_actions (FK на tasks, ON DELETE CASCADE)
- completed_tasks
- transcriptions
- notification_counters
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

_PRIORITY = ("low", "medium", "high")
_ACTION_TYPE = ("reminder", "call", "text", "email", "note")
_ACTION_STATUS = ("pending", "completed", "failed")


def upgrade() -> None:
    op.create_table(
        "tasks",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("priority", sa.Enum(*_PRIORITY, name="priority"), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed", sa.Boolean(), nullable=False),
        sa.Column("action_type", sa.Enum(*_ACTION_TYPE, name="actiontype"), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=True),
        sa.Column("contact_info", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_tasks_created_at", "tasks", ["created_at"], unique=False)

    op.create_table(
        "scheduled_actions",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column(
            "task_id",
            sa.String(length=64),
            sa.ForeignKey("tasks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("action_type", sa.Enum(*_ACTION_TYPE, name="actiontype"), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("contact_info", sa.JSON(), nullable=True),
        sa.Column("notification_settings", sa.JSON(), nullable=False),
        sa.Column("status", sa.Enum(*_ACTION_STATUS, name="actionstatus"), nullable=False),
        sa.Column("notification_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_scheduled_actions_status_scheduled_for",
        "scheduled_actions",
        ["status", "scheduled_for"],
        unique=False,
    )
    op.create_index("ix_scheduled_actions_task_id", "scheduled_actions", ["task_id"], unique=False)

    op.create_table(
        "completed_tasks",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("original_task_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("priority", sa.Enum(*_PRIORITY, name="priority"), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "transcriptions",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("audio_length", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "notification_counters",
        sa.Column("name", sa.String(length=64), primary_key=True),
        sa.Column("value", sa.Integer(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("notification_counters")
    op.drop_table("transcriptions")
    op.drop_table("completed_tasks")
    op.drop_index("ix_scheduled_actions_task_id", table_name="scheduled_actions")
    op.drop_index("ix_scheduled_actions_status_scheduled_for", table_name="scheduled_actions")
    op.drop_table("scheduled_actions")
    op.drop_index("ix_tasks_created_at", table_name="tasks")
    op.drop_table("tasks")
    sa.Enum(name="actionstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="actiontype").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="priority").drop(op.get_bind(), checkfirst=True)
