from __future__ import annotations

import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from scenario_queue.core.database import Base


class Scenario(Base):
  """Generated conversation scenario linked back to the queue job that produced it."""

  __tablename__ = "scenarios"

  id: Mapped[str] = mapped_column(String, primary_key=True)
  source_job_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False)
  role: Mapped[str] = mapped_column(String, nullable=False, default="tutor", server_default="tutor")
  language_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  difficulty: Mapped[str] = mapped_column(String, nullable=False)
  difficulty_rating: Mapped[int] = mapped_column(Integer, nullable=False)
  cefr_level: Mapped[str | None] = mapped_column(String, nullable=True)
  cefr_recommendation: Mapped[str | None] = mapped_column(String, nullable=True)
  learning_goal: Mapped[str | None] = mapped_column(Text, nullable=True)
  instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
  context: Mapped[str | None] = mapped_column(Text, nullable=True)
  expected_outcome: Mapped[str | None] = mapped_column(Text, nullable=True)
  learning_objectives: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=list)
  persona: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  categories: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=list)
  tags: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=list)
  search_keywords: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=list)
  estimated_duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=600, server_default="600")
  is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
