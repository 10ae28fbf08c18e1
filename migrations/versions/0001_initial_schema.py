"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # --- habit_templates ---
    op.create_table(
        "habit_templates",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("icon", sa.String(64), nullable=True),
        sa.Column("default_frequency_type", sa.String(16), nullable=False, server_default="daily"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    # --- habits ---
    op.create_table(
        "habits",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("template_id", sa.String(36), nullable=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("icon", sa.String(64), nullable=True),
        sa.Column("color", sa.String(32), nullable=True),
        sa.Column("frequency_type", sa.String(16), nullable=False, server_default="daily"),
        sa.Column("frequency_value", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("frequency_days", sa.JSON(), nullable=True),
        sa.Column("frequency_month_day", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["template_id"], ["habit_templates.id"]),
    )
    op.create_index("ix_habits_user_id", "habits", ["user_id"])
    op.create_index("ix_habits_is_archived", "habits", ["is_archived"])

    # --- habit_logs ---
    op.create_table(
        "habit_logs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("habit_id", sa.String(36), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="unchecked"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["habit_id"], ["habits.id"]),
        sa.UniqueConstraint("habit_id", "date", name="uq_habit_logs_habit_date"),
    )
    op.create_index("ix_habit_logs_habit_id", "habit_logs", ["habit_id"])
    op.create_index("ix_habit_logs_date", "habit_logs", ["date"])

    # --- habit_daily_statistics ---
    op.create_table(
        "habit_daily_statistics",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("habit_id", sa.String(36), nullable=False),
        sa.Column("stat_date", sa.Date(), nullable=False),
        sa.Column("achieved_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("achievement_rate", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("calculated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["habit_id"], ["habits.id"]),
        sa.UniqueConstraint("habit_id", "stat_date", name="uq_habit_statistics_habit_date"),
    )
    op.create_index("ix_habit_daily_statistics_habit_id", "habit_daily_statistics", ["habit_id"])
    op.create_index("ix_habit_daily_statistics_stat_date", "habit_daily_statistics", ["stat_date"])

    # --- statistics_runs ---
    op.create_table(
        "statistics_runs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("trigger", sa.String(16), nullable=False),
        sa.Column("run_date", sa.Date(), nullable=False),
        sa.Column("habits_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_statistics_runs_id", "statistics_runs", ["id"])
    op.create_index("ix_statistics_runs_user_id", "statistics_runs", ["user_id"])
    op.create_index("ix_statistics_runs_run_date", "statistics_runs", ["run_date"])

    # --- seed templates ---
    op.execute("""
        INSERT INTO habit_templates (id, name, icon, default_frequency_type)
        VALUES
          ('3f0c2a52-6f5e-4b59-9d0e-0a8f8c1b2a01', 'Drink water',    'water',    'daily'),
          ('3f0c2a52-6f5e-4b59-9d0e-0a8f8c1b2a02', 'Read 20 pages',  'book',     'daily'),
          ('3f0c2a52-6f5e-4b59-9d0e-0a8f8c1b2a03', 'Exercise',       'dumbbell', 'weekly'),
          ('3f0c2a52-6f5e-4b59-9d0e-0a8f8c1b2a04', 'Meditate',       'lotus',    'daily'),
          ('3f0c2a52-6f5e-4b59-9d0e-0a8f8c1b2a05', 'Review budget',  'wallet',   'monthly')
    """)


def downgrade() -> None:
    op.drop_table("statistics_runs")
    op.drop_table("habit_daily_statistics")
    op.drop_table("habit_logs")
    op.drop_table("habits")
    op.drop_table("habit_templates")
