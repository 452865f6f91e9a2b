"""Create scenario generation queue and scenarios tables.

Revision ID: a3f1c9e27b40
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "a3f1c9e27b40"
down_revision = None
branch_labels = None
depends_on = None

queue_owner_kind = postgresql.ENUM("path", "week", name="queue_owner_kind", create_type=False)
queue_status = postgresql.ENUM("pending", "in_progress", "ready", "failed", "skipped", name="queue_status", create_type=False)


def upgrade() -> None:
  """Upgrade schema."""
  bind = op.get_bind()
  queue_owner_kind.create(bind, checkfirst=True)
  queue_status.create(bind, checkfirst=True)

  op.create_table(
    "scenario_generation_queue",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("owner_kind", queue_owner_kind, nullable=False),
    sa.Column("owner_id", sa.String(), nullable=False),
    sa.Column("target_key", sa.String(), nullable=False),
    sa.Column("day_index", sa.Integer(), nullable=True),
    sa.Column("seed_id", sa.String(), nullable=True),
    sa.Column("target_date", sa.DateTime(timezone=True), nullable=False),
    sa.Column("status", queue_status, server_default="pending", nullable=False),
    sa.Column("attempts", sa.Integer(), server_default="0", nullable=False),
    sa.Column("last_error", sa.Text(), nullable=True),
    sa.Column("result_ref", sa.String(), nullable=True),
    sa.Column("context_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("last_processed_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("owner_kind", "owner_id", "target_key", name="ux_scenario_queue_owner_target"),
  )
  op.create_index(op.f("ix_scenario_generation_queue_owner_id"), "scenario_generation_queue", ["owner_id"], unique=False)
  op.create_index("ix_scenario_queue_pending_target", "scenario_generation_queue", ["status", "target_date"], unique=False)
  op.create_index("ix_scenario_queue_status_updated", "scenario_generation_queue", ["status", "updated_at"], unique=False)

  op.create_table(
    "scenarios",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("source_job_id", sa.String(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False),
    sa.Column("role", sa.String(), server_default="tutor", nullable=False),
    sa.Column("language_id", sa.String(), nullable=False),
    sa.Column("difficulty", sa.String(), nullable=False),
    sa.Column("difficulty_rating", sa.Integer(), nullable=False),
    sa.Column("cefr_level", sa.String(), nullable=True),
    sa.Column("cefr_recommendation", sa.String(), nullable=True),
    sa.Column("learning_goal", sa.Text(), nullable=True),
    sa.Column("instructions", sa.Text(), nullable=True),
    sa.Column("context", sa.Text(), nullable=True),
    sa.Column("expected_outcome", sa.Text(), nullable=True),
    sa.Column("learning_objectives", postgresql.ARRAY(sa.String()), nullable=False),
    sa.Column("persona", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("categories", postgresql.ARRAY(sa.String()), nullable=False),
    sa.Column("tags", postgresql.ARRAY(sa.String()), nullable=False),
    sa.Column("search_keywords", postgresql.ARRAY(sa.String()), nullable=False),
    sa.Column("estimated_duration_seconds", sa.Integer(), server_default="600", nullable=False),
    sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("source_job_id"),
  )
  op.create_index(op.f("ix_scenarios_language_id"), "scenarios", ["language_id"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_scenarios_language_id"), table_name="scenarios")
  op.drop_table("scenarios")
  op.drop_index("ix_scenario_queue_status_updated", table_name="scenario_generation_queue")
  op.drop_index("ix_scenario_queue_pending_target", table_name="scenario_generation_queue")
  op.drop_index(op.f("ix_scenario_generation_queue_owner_id"), table_name="scenario_generation_queue")
  op.drop_table("scenario_generation_queue")
  bind = op.get_bind()
  queue_status.drop(bind, checkfirst=True)
  queue_owner_kind.drop(bind, checkfirst=True)
