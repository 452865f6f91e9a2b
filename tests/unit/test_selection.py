from __future__ import annotations

from datetime import UTC, datetime, timedelta

from scenario_queue.jobs.models import QueueJob, QueueOwner, QueueStatus, QueueTarget
from scenario_queue.jobs.selection import order_pending, select_batch

BASE = datetime(2026, 3, 2, tzinfo=UTC)


def _job(job_id: str, target: QueueTarget, *, due_in_days: int, created_offset: int = 0, status: QueueStatus = QueueStatus.PENDING) -> QueueJob:
  created = BASE + timedelta(seconds=created_offset)
  return QueueJob(id=job_id, owner=QueueOwner.path("p1"), target=target, status=status, target_date=BASE + timedelta(days=due_in_days), created_at=created, updated_at=created)


def test_day_one_beats_an_earlier_target_date() -> None:
  seed_today = _job("seed", QueueTarget.seed("s1"), due_in_days=0)
  day_one_next_week = _job("day1", QueueTarget.day(1), due_in_days=7)

  assert [job.id for job in order_pending([seed_today, day_one_next_week])] == ["day1", "seed"]


def test_target_date_then_creation_order() -> None:
  later = _job("later", QueueTarget.day(3), due_in_days=2)
  first_created = _job("first", QueueTarget.day(2), due_in_days=1, created_offset=0)
  second_created = _job("second", QueueTarget.seed("s1"), due_in_days=1, created_offset=5)

  assert [job.id for job in order_pending([later, second_created, first_created])] == ["first", "second", "later"]


def test_id_breaks_exact_ties() -> None:
  jobs = [_job("b", QueueTarget.day(2), due_in_days=1), _job("a", QueueTarget.seed("x"), due_in_days=1)]

  assert [job.id for job in order_pending(jobs)] == ["a", "b"]


def test_only_pending_jobs_are_selected() -> None:
  jobs = [
    _job("claimed", QueueTarget.day(1), due_in_days=0, status=QueueStatus.IN_PROGRESS),
    _job("failed", QueueTarget.day(2), due_in_days=1, status=QueueStatus.FAILED),
    _job("pending", QueueTarget.day(3), due_in_days=2),
  ]

  assert [job.id for job in select_batch(jobs, 5)] == ["pending"]


def test_batch_respects_limit() -> None:
  jobs = [_job(f"job-{index}", QueueTarget.day(index), due_in_days=index) for index in range(1, 6)]

  assert [job.id for job in select_batch(jobs, 2)] == ["job-1", "job-2"]
  assert select_batch(jobs, 0) == []
