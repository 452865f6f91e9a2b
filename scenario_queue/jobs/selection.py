"""Ordering policy for pending jobs.

Day-one scenarios block a learner from starting a path, so they always run
first. Everything else is prefetched earliest-needed first, FIFO within the
same target date.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from scenario_queue.jobs.models import QueueJob, QueueStatus


def selection_key(job: QueueJob) -> tuple[int, datetime, datetime, str]:
  """Sort key: day one first, then target date, then creation time."""
  # The id keeps ordering total when timestamps collide.
  return (0 if job.is_day_one else 1, job.target_date, job.created_at, job.id)


def order_pending(jobs: Iterable[QueueJob]) -> list[QueueJob]:
  """Return the pending jobs of a snapshot in processing order."""
  return sorted((job for job in jobs if job.status is QueueStatus.PENDING), key=selection_key)


def select_batch(jobs: Iterable[QueueJob], limit: int) -> list[QueueJob]:
  """Return at most `limit` jobs to run in this pass."""
  if limit <= 0:
    return []
  return order_pending(jobs)[:limit]
