"""create initial schema

Revision ID: a1c4e7f20b31
Revises:
Create Date: 2026-10-19 09:00:00.000000

This migration creates:
1. users
2. scheduled_jobs and job_runs for the background job runner
3. quizzes and quiz_submissions
4. student_tasks and task_reminders
5. workers, worker_goals and worker_reminders
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1c4e7f20b31"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column(
            "role",
            sa.Enum(
                "student", "teacher", "worker", "admin", "global_overseer", name="user_role"
            ),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    # Background jobs
    op.create_table(
        "scheduled_jobs",
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("interval_seconds", sa.Integer(), nullable=True),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_by", sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("name"),
    )
    op.create_index(
        "ix_scheduled_jobs_next_run_at", "scheduled_jobs", ["next_run_at"], unique=False
    )

    op.create_table(
        "job_runs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("job_name", sa.String(length=100), nullable=False),
        sa.Column("trigger", sa.Enum("schedule", "manual", name="job_trigger"), nullable=False),
        sa.Column(
            "outcome",
            sa.Enum("success", "failure", "skipped", name="job_outcome"),
            nullable=False,
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_job_runs_job_name_started_at",
        "job_runs",
        ["job_name", "started_at"],
        unique=False,
    )

    # Quizzes
    op.create_table(
        "quizzes",
        sa.Column("id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column("teacher_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("time_limit_minutes", sa.Integer(), nullable=True),
        sa.Column("questions", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["teacher_id"], ["users.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "quiz_submissions",
        sa.Column("id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column("quiz_id", sa.Uuid(), nullable=False),
        sa.Column("student_id", sa.Uuid(), nullable=False),
        sa.Column("answers", sa.JSON(), nullable=False),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("auto_submitted", sa.Boolean(), nullable=False, server_default="false"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["quiz_id"], ["quizzes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_quiz_submissions_quiz_id", "quiz_submissions", ["quiz_id"])
    op.create_index("ix_quiz_submissions_open", "quiz_submissions", ["submitted_at"])

    # Student tasks
    op.create_table(
        "student_tasks",
        sa.Column("id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column("student_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("reminder_enabled", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("reminder_time", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_student_tasks_student_due", "student_tasks", ["student_id", "due_date"]
    )

    op.create_table(
        "task_reminders",
        sa.Column("id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column("task_id", sa.Uuid(), nullable=False),
        sa.Column("remind_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("message", sa.String(length=300), nullable=False),
        sa.Column("is_sent", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["task_id"], ["student_tasks.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("task_id", "remind_at", name="uq_task_reminders_task_remind_at"),
    )
    op.create_index("ix_task_reminders_pending", "task_reminders", ["is_sent", "remind_at"])

    # Workers
    op.create_table(
        "workers",
        sa.Column("id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("country", sa.String(length=2), nullable=False),
        sa.Column("occupation", sa.String(length=100), nullable=False),
        sa.Column("motivation_level", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("active_streak_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_tasks_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id"),
    )

    op.create_table(
        "worker_goals",
        sa.Column("id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column("worker_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "category",
            sa.Enum(
                "career",
                "personal",
                "financial",
                "education",
                "wellness",
                name="goal_category",
            ),
            nullable=False,
        ),
        sa.Column("target_completion_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("progress_percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["worker_id"], ["workers.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_worker_goals_target", "worker_goals", ["is_completed", "target_completion_date"]
    )

    op.create_table(
        "worker_reminders",
        sa.Column("id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column("worker_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "category",
            sa.Enum("personal", "work", "finance", "learning", name="reminder_category"),
            nullable=False,
        ),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_dismissed", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_sent", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["worker_id"], ["workers.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_worker_reminders_pending", "worker_reminders", ["is_sent", "due_date"])


def downgrade() -> None:
    """Drop all tables and enum types."""
    op.drop_index("ix_worker_reminders_pending", table_name="worker_reminders")
    op.drop_table("worker_reminders")
    op.drop_index("ix_worker_goals_target", table_name="worker_goals")
    op.drop_table("worker_goals")
    op.drop_table("workers")

    op.drop_index("ix_task_reminders_pending", table_name="task_reminders")
    op.drop_table("task_reminders")
    op.drop_index("ix_student_tasks_student_due", table_name="student_tasks")
    op.drop_table("student_tasks")

    op.drop_index("ix_quiz_submissions_open", table_name="quiz_submissions")
    op.drop_index("ix_quiz_submissions_quiz_id", table_name="quiz_submissions")
    op.drop_table("quiz_submissions")
    op.drop_table("quizzes")

    op.drop_index("ix_job_runs_job_name_started_at", table_name="job_runs")
    op.drop_table("job_runs")
    op.drop_index("ix_scheduled_jobs_next_run_at", table_name="scheduled_jobs")
    op.drop_table("scheduled_jobs")

    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_name in (
        "reminder_category",
        "goal_category",
        "job_outcome",
        "job_trigger",
        "user_role",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
