"""Turn new curricula into queue units and enqueue them."""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from scenario_queue.ai.contracts import GenerationContext
from scenario_queue.jobs.models import QueueJob, QueueOwner, QueueTarget, QueueUnit
from scenario_queue.storage.queue_repo import QueueStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PathDay:
  """One scheduled day of a learning path."""

  day_index: int
  context: GenerationContext


@dataclass(frozen=True)
class ConversationSeed:
  """One conversation planned for an adaptive week."""

  seed_id: str
  context: GenerationContext


@dataclass(frozen=True)
class AdaptiveWeek:
  week_id: str
  week_number: int
  starts_at: datetime
  seeds: Sequence[ConversationSeed]


def _zone(timezone: str) -> ZoneInfo:
  try:
    return ZoneInfo(timezone)
  except (ZoneInfoNotFoundError, ValueError) as exc:
    raise ValueError(f"Unknown timezone: {timezone!r}") from exc


def _as_utc(value: datetime) -> datetime:
  # Naive timestamps are treated as UTC.
  if value.tzinfo is None:
    return value.replace(tzinfo=UTC)
  return value.astimezone(UTC)


def _context_payload(context: GenerationContext) -> dict:
  return context.model_dump(mode="json", exclude_none=True)


def build_path_units(start_date: date, days: Sequence[PathDay], timezone: str = "UTC") -> list[QueueUnit]:
  """One unit per day, due at the learner's local midnight of that day.

  Day `n` is due on `start_date + (n - 1)` days; the stored target date is that
  local midnight expressed in UTC.
  """
  zone = _zone(timezone)
  seen: set[int] = set()
  units: list[QueueUnit] = []
  for day in days:
    if day.day_index in seen:
      raise ValueError(f"Duplicate day_index {day.day_index} in learning path.")
    seen.add(day.day_index)
    local_midnight = datetime.combine(start_date + timedelta(days=day.day_index - 1), dt.time.min, tzinfo=zone)
    context = day.context if day.context.day_index == day.day_index else day.context.model_copy(update={"day_index": day.day_index})
    units.append(QueueUnit(target=QueueTarget.day(day.day_index), target_date=local_midnight.astimezone(UTC), context=_context_payload(context)))
  return units


def build_week_units(week: AdaptiveWeek) -> list[QueueUnit]:
  """One unit per conversation seed, all due when the week starts."""
  target_date = _as_utc(week.starts_at)
  seen: set[str] = set()
  units: list[QueueUnit] = []
  for seed in week.seeds:
    if seed.seed_id in seen:
      raise ValueError(f"Duplicate seed_id {seed.seed_id!r} in adaptive week.")
    seen.add(seed.seed_id)
    context = seed.context if seed.context.week_number is not None else seed.context.model_copy(update={"week_number": week.week_number})
    units.append(QueueUnit(target=QueueTarget.seed(seed.seed_id), target_date=target_date, context=_context_payload(context)))
  return units


async def enqueue_learning_path(store: QueueStore, path_id: str, *, start_date: date, days: Sequence[PathDay], timezone: str = "UTC") -> list[QueueJob]:
  """Queue generation for every day of a path. Safe to call again for the same path."""
  units = build_path_units(start_date, days, timezone)
  jobs = await store.enqueue(QueueOwner.path(path_id), units)
  logger.info("Queued learning path path_id=%s days=%d jobs=%d timezone=%s", path_id, len(units), len(jobs), timezone)
  return jobs


async def enqueue_adaptive_week(store: QueueStore, week: AdaptiveWeek) -> list[QueueJob]:
  """Queue generation for every conversation seed of a week. Safe to call again."""
  units = build_week_units(week)
  jobs = await store.enqueue(QueueOwner.week(week.week_id), units)
  logger.info("Queued adaptive week week_id=%s week_number=%d seeds=%d jobs=%d", week.week_id, week.week_number, len(units), len(jobs))
  return jobs


async def cancel_generation(store: QueueStore, owner: QueueOwner, reason: str = "Owner archived") -> int:
  """Skip the owner's pending jobs; finished scenarios and running claims are left alone."""
  cancelled = await store.cancel_owner(owner, reason)
  logger.info("Cancelled scenario generation owner=%s:%s jobs=%d reason=%s", owner.kind.value, owner.owner_id, cancelled, reason)
  return cancelled


async def discard_generation(store: QueueStore, owner: QueueOwner) -> int:
  """Delete every queue row of an owner, e.g. when the path or week itself is deleted."""
  deleted = await store.delete_jobs_for_owner(owner)
  logger.info("Discarded scenario queue rows owner=%s:%s jobs=%d", owner.kind.value, owner.owner_id, deleted)
  return deleted
