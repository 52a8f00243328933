from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class LearningPathRow(Base):
  __tablename__ = "learning_paths"

  path_id: Mapped[str] = mapped_column(String, primary_key=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  target_language: Mapped[str] = mapped_column(String, nullable=False)
  title: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, server_default="draft", index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

  days: Mapped[list[LearningPathDayRow]] = relationship(back_populates="path", cascade="all, delete-orphan", order_by="LearningPathDayRow.day_index", lazy="selectin")


class LearningPathDayRow(Base):
  __tablename__ = "learning_path_days"

  path_id: Mapped[str] = mapped_column(ForeignKey("learning_paths.path_id", ondelete="CASCADE"), primary_key=True)
  day_index: Mapped[int] = mapped_column(Integer, primary_key=True)
  theme: Mapped[str] = mapped_column(String, nullable=False)
  difficulty: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  learning_objectives: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")
  scenario_id: Mapped[str | None] = mapped_column(String, nullable=True)
  is_unlocked: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")

  path: Mapped[LearningPathRow] = relationship(back_populates="days")


class ScenarioRow(Base):
  __tablename__ = "scenarios"

  scenario_id: Mapped[str] = mapped_column(String, primary_key=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False)
  difficulty: Mapped[str] = mapped_column(String, nullable=False)
  cefr_level: Mapped[str | None] = mapped_column(String, nullable=True)
  created_by_user_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  learning_objectives: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")
  tags: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")
  content_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
