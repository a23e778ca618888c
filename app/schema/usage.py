"""SQLAlchemy models for monthly usage buckets and API usage telemetry."""

from __future__ import annotations

import datetime
import uuid

from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class UsageBucket(Base):
  """Per-user, per-resource-kind counter for one calendar month."""

  __tablename__ = "usage_buckets"
  __table_args__ = (UniqueConstraint("user_id", "kind", "period_start", name="ux_usage_buckets_user_kind_period"),)

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  user_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
  kind: Mapped[str] = mapped_column(String, nullable=False)
  period_start: Mapped[datetime.date] = mapped_column(Date, nullable=False)
  used: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ApiUsageLog(Base):
  """One billed or attempted call to an external model."""

  __tablename__ = "api_usage_logs"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  user_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
  user_email: Mapped[str | None] = mapped_column(String, nullable=True)
  feature: Mapped[str] = mapped_column(String, index=True, nullable=False)
  model: Mapped[str] = mapped_column(String, nullable=False)
  input_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  estimated_cost_usd: Mapped[float] = mapped_column(Numeric(12, 6), nullable=False, default=0, server_default="0")
  success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  metadata_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
