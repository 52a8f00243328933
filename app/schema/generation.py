from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class GenerationQueueJob(Base):
  __tablename__ = "generation_queue_jobs"
  __table_args__ = (Index("ix_generation_queue_jobs_status_target_date", "status", "target_date"),)

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  path_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  day_index: Mapped[int] = mapped_column(Integer, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, server_default="pending")
  target_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
  last_processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class GenerationGroupRow(Base):
  __tablename__ = "generation_groups"

  group_id: Mapped[str] = mapped_column(String, primary_key=True)
  path_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False)
  target_language: Mapped[str] = mapped_column(String, nullable=False)
  week_number: Mapped[int] = mapped_column(Integer, nullable=False)
  theme: Mapped[str] = mapped_column(String, nullable=False)
  theme_description: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
  difficulty_min: Mapped[str] = mapped_column(String, nullable=False)
  difficulty_max: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, server_default="active")


class GenerationTargetRow(Base):
  """One row per target so a target can be updated without touching its siblings."""

  __tablename__ = "generation_targets"

  group_id: Mapped[str] = mapped_column(ForeignKey("generation_groups.group_id", ondelete="CASCADE"), primary_key=True)
  target_id: Mapped[str] = mapped_column(String, primary_key=True)
  position: Mapped[int] = mapped_column(Integer, nullable=False)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
  session_types: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")
  vocabulary_hints: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")
  grammar_hints: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")
  content_id: Mapped[str | None] = mapped_column(String, nullable=True)
  generation_status: Mapped[str] = mapped_column(String, nullable=False, server_default="pending")
  retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
  last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
