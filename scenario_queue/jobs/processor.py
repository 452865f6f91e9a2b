"""Processing passes over the scenario generation queue."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

from scenario_queue.config import Settings
from scenario_queue.jobs.errors import JobNotFoundError, JobStateError
from scenario_queue.jobs.events import JOB_FAILED, PASS_COMPLETED, QueueEvent, QueueEvents
from scenario_queue.jobs.executor import JobExecutor
from scenario_queue.jobs.models import OwnerStatus, ProcessingResult, QueueJob, QueueOwner, QueueStats, QueueStatus
from scenario_queue.jobs.selection import select_batch
from scenario_queue.storage.queue_repo import QueueStore

logger = logging.getLogger(__name__)


class QueueProcessor:
  """Drives one pass at a time: fetch, run sequentially, aggregate.

  Jobs run one after another to keep a single request in flight against the
  LLM provider. Per-job failures end up in the result; only store failures
  while fetching the batch propagate to the caller.
  """

  def __init__(
    self,
    *,
    queue_store: QueueStore,
    executor: JobExecutor,
    events: QueueEvents | None = None,
    default_limit: int = 5,
    max_limit: int = 20,
    stale_claim_seconds: int = 600,
    retention_days: int = 30,
  ) -> None:
    self._queue_store = queue_store
    self._executor = executor
    self._events = events or QueueEvents()
    self._default_limit = default_limit
    self._max_limit = max_limit
    self._stale_claim_seconds = stale_claim_seconds
    self._retention_days = retention_days

  @classmethod
  def from_settings(cls, settings: Settings, *, queue_store: QueueStore, executor: JobExecutor, events: QueueEvents | None = None) -> QueueProcessor:
    return cls(
      queue_store=queue_store,
      executor=executor,
      events=events,
      default_limit=settings.queue_default_limit,
      max_limit=settings.queue_max_limit,
      stale_claim_seconds=settings.queue_stale_claim_seconds,
      retention_days=settings.queue_retention_days,
    )

  @property
  def max_limit(self) -> int:
    return self._max_limit

  def clamp_limit(self, limit: int | None) -> int:
    """Apply the default and keep the batch size within [1, max_limit]."""
    if limit is None:
      limit = self._default_limit
    return max(1, min(int(limit), self._max_limit))

  async def process_pending_jobs(self, limit: int | None = None, *, dry_run: bool = False, due_before: datetime | None = None, owner: QueueOwner | None = None) -> ProcessingResult:
    """Run one processing pass and return its aggregate.

    With `owner` the pass only picks that path's or week's jobs, for on-demand
    generation when a learner opens it before the scheduled pass got there.
    """
    started = time.perf_counter()
    batch_size = self.clamp_limit(limit)

    # A dry run must not move rows, stale or otherwise.
    if not dry_run:
      await self.recover_stale_jobs()

    candidates = await self._queue_store.find_pending_jobs(batch_size, due_before=due_before, owner=owner)
    jobs = select_batch(candidates, batch_size)
    logger.info("Queue pass started limit=%d candidates=%d dry_run=%s owner=%s", batch_size, len(jobs), dry_run, f"{owner.kind.value}:{owner.owner_id}" if owner else "*")

    result = ProcessingResult(dry_run=dry_run)
    for job in jobs:
      outcome = await self._executor.execute(job, dry_run=dry_run)
      result.record(job, outcome)

    result.duration_ms = int((time.perf_counter() - started) * 1000)
    logger.info(
      "Queue pass finished processed=%d succeeded=%d failed=%d skipped=%d dry_run=%s duration_ms=%d",
      result.processed,
      result.succeeded,
      result.failed,
      result.skipped,
      dry_run,
      result.duration_ms,
    )
    await self._events.emit(QueueEvent(name=PASS_COMPLETED, payload={"result": result}))
    return result

  async def get_queue_stats(self) -> QueueStats:
    return await self._queue_store.get_queue_stats()

  async def get_job(self, job_id: str) -> QueueJob:
    job = await self._queue_store.get_job(job_id)
    if job is None:
      raise JobNotFoundError(job_id)
    return job

  async def get_owner_status(self, owner: QueueOwner) -> OwnerStatus:
    """Per-owner counts and job states; an unknown owner reports zero jobs."""
    jobs = await self._queue_store.list_jobs_for_owner(owner)
    return OwnerStatus.from_jobs(owner, jobs)

  async def list_failed_jobs(self, limit: int = 50) -> list[QueueJob]:
    return await self._queue_store.list_failed_jobs(max(1, limit))

  async def skip_job(self, job_id: str, reason: str) -> QueueJob:
    """Retire one pending job so no pass generates it."""
    job = await self.get_job(job_id)
    skipped = await self._queue_store.mark_skipped(job_id, reason)
    if skipped is None:
      raise JobStateError(job_id, job.status.value, "skip")
    logger.info("Skipped queue job job=%s reason=%s", skipped.log_context(), reason)
    return skipped

  async def recover_stale_jobs(self) -> int:
    """Expire claims older than the stale threshold.

    A claim that outlives the threshold belongs to a pass that died mid-job, so
    it counts as a failed attempt; a job that keeps killing its pass still
    reaches the attempt cap.
    """
    cutoff = datetime.now(UTC) - timedelta(seconds=self._stale_claim_seconds)
    expired = await self._queue_store.reset_stale_claims(cutoff, max_attempts=self._executor.max_attempts)
    if not expired:
      return 0
    logger.warning("Expired %d stale queue claim(s) older than %ds", len(expired), self._stale_claim_seconds)
    for job in expired:
      if job.status is QueueStatus.FAILED:
        logger.error("Job failed after %d attempt(s) job_id=%s target=%s: %s", job.attempts, job.id, job.target.key, job.last_error)
        await self._events.emit(QueueEvent(name=JOB_FAILED, job_id=job.id, payload={"job": job, "error": job.last_error}))
    return len(expired)

  async def cleanup_old_jobs(self, older_than_days: int | None = None) -> int:
    """Delete finished jobs last touched more than `older_than_days` ago."""
    days = self._retention_days if older_than_days is None else older_than_days
    if days < 0:
      raise ValueError("older_than_days must not be negative.")
    cutoff = datetime.now(UTC) - timedelta(days=days)
    deleted = await self._queue_store.delete_finished_before(cutoff)
    logger.info("Deleted %d finished queue job(s) older than %d day(s)", deleted, days)
    return deleted

  async def retry_failed_jobs(self, *, owner: QueueOwner | None = None, job_ids: Sequence[str] | None = None) -> int:
    """Give permanently failed jobs a fresh attempt budget."""
    reset = await self._queue_store.retry_failed(owner=owner, job_ids=job_ids)
    logger.info("Reset %d failed queue job(s) to pending owner=%s", reset, owner.owner_id if owner else "*")
    return reset
