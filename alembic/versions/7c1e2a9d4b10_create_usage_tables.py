"""Create usage bucket and API usage log tables.

Revision ID: 7c1e2a9d4b10
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "7c1e2a9d4b10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "usage_buckets",
    sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("user_id", sa.String(), nullable=False),
    sa.Column("kind", sa.String(), nullable=False),
    sa.Column("period_start", sa.Date(), nullable=False),
    sa.Column("used", sa.Integer(), server_default="0", nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("user_id", "kind", "period_start", name="ux_usage_buckets_user_kind_period"),
  )
  op.create_index(op.f("ix_usage_buckets_user_id"), "usage_buckets", ["user_id"], unique=False)

  op.create_table(
    "api_usage_logs",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("user_id", sa.String(), nullable=False),
    sa.Column("user_email", sa.String(), nullable=True),
    sa.Column("feature", sa.String(), nullable=False),
    sa.Column("model", sa.String(), nullable=False),
    sa.Column("input_tokens", sa.Integer(), server_default="0", nullable=False),
    sa.Column("output_tokens", sa.Integer(), server_default="0", nullable=False),
    sa.Column("estimated_cost_usd", sa.Numeric(12, 6), server_default="0", nullable=False),
    sa.Column("success", sa.Boolean(), nullable=False),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("metadata_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_api_usage_logs_user_id"), "api_usage_logs", ["user_id"], unique=False)
  op.create_index(op.f("ix_api_usage_logs_feature"), "api_usage_logs", ["feature"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_api_usage_logs_feature"), table_name="api_usage_logs")
  op.drop_index(op.f("ix_api_usage_logs_user_id"), table_name="api_usage_logs")
  op.drop_table("api_usage_logs")
  op.drop_index(op.f("ix_usage_buckets_user_id"), table_name="usage_buckets")
  op.drop_table("usage_buckets")
