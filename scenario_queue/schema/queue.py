from __future__ import annotations

import datetime
import uuid

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from scenario_queue.core.database import Base
from scenario_queue.jobs.models import OwnerKind, QueueStatus


def _enum_values(enum_cls: type) -> list[str]:
  return [member.value for member in enum_cls]


class ScenarioGenerationJob(Base):
  """One row per (owner, target) awaiting or holding a generated scenario."""

  __tablename__ = "scenario_generation_queue"
  __table_args__ = (
    UniqueConstraint("owner_kind", "owner_id", "target_key", name="ux_scenario_queue_owner_target"),
    Index("ix_scenario_queue_pending_target", "status", "target_date"),
    Index("ix_scenario_queue_status_updated", "status", "updated_at"),
  )

  id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
  owner_kind: Mapped[OwnerKind] = mapped_column(SAEnum(OwnerKind, name="queue_owner_kind", values_callable=_enum_values), nullable=False)
  owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  target_key: Mapped[str] = mapped_column(String, nullable=False)
  day_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
  seed_id: Mapped[str | None] = mapped_column(String, nullable=True)
  target_date: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  status: Mapped[QueueStatus] = mapped_column(SAEnum(QueueStatus, name="queue_status", values_callable=_enum_values), nullable=False, default=QueueStatus.PENDING, server_default=QueueStatus.PENDING.value)
  attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
  result_ref: Mapped[str | None] = mapped_column(String, nullable=True)
  context_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  last_processed_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
