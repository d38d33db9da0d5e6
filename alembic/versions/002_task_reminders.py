"""Add reminder scheduling to tasks.

Revision ID: 002_task_reminders
Revises: 001_initial_crm
Create Date: 2026-10-19

Adds tasks.reminder_time (when to remind) and tasks.reminder_sent (set once
the reminder has been handed out), plus an index for the due-reminder scan.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "002_task_reminders"
down_revision: Union[str, None] = "001_initial_crm"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("tasks", sa.Column("reminder_time", sa.DateTime(timezone=True), nullable=True))
    op.add_column(
        "tasks",
        sa.Column("reminder_sent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )
    op.create_index("ix_tasks_reminder_time", "tasks", ["reminder_time"])


def downgrade() -> None:
    op.drop_index("ix_tasks_reminder_time", table_name="tasks")
    op.drop_column("tasks", "reminder_sent")
    op.drop_column("tasks", "reminder_time")
