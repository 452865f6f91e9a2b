"""Shared fixtures: in-memory stores, scripted generators and a wired runtime."""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from scenario_queue.ai.contracts import GenerationContext, ScenarioDraft, map_cefr_to_difficulty
from scenario_queue.config import Settings
from scenario_queue.jobs.errors import GenerationError, QueueStoreError, ScenarioPersistenceError
from scenario_queue.jobs.events import QueueEvents
from scenario_queue.jobs.models import QueueJob, QueueOwner, QueueStats, QueueStatus, QueueTarget, QueueUnit
from scenario_queue.jobs.selection import select_batch
from scenario_queue.services.factory import QueueRuntime, build_queue_runtime
from scenario_queue.storage.queue_repo import STALE_CLAIM_ERROR
from scenario_queue.utils.ids import generate_job_id, generate_scenario_id

START = datetime(2026, 3, 2, tzinfo=UTC)


class InMemoryQueueStore:
  """Queue store double with the same guarded transitions as the Postgres store."""

  def __init__(self) -> None:
    self.jobs: dict[str, QueueJob] = {}
    self.fail_on: set[str] = set()
    self.claim_calls: list[str] = []
    self._tick = itertools.count()

  def _now(self) -> datetime:
    # Strictly increasing so creation order is observable.
    return datetime.now(UTC) + timedelta(microseconds=next(self._tick))

  def _maybe_fail(self, operation: str) -> None:
    if operation in self.fail_on:
      raise QueueStoreError(f"{operation} failed: Connection exception")

  def _transition(self, job_id: str, expected: QueueStatus, **changes: Any) -> QueueJob | None:
    job = self.jobs.get(job_id)
    if job is None or job.status is not expected:
      return None
    updated = replace(job, updated_at=self._now(), **changes)
    self.jobs[job_id] = updated
    return replace(updated)

  async def enqueue(self, owner: QueueOwner, units: Sequence[QueueUnit]) -> list[QueueJob]:
    self._maybe_fail("enqueue")
    result: dict[str, QueueJob] = {}
    for unit in units:
      existing = next((job for job in self.jobs.values() if job.owner == owner and job.target == unit.target), None)
      if existing is None:
        now = self._now()
        existing = QueueJob(id=generate_job_id(), owner=owner, target=unit.target, status=QueueStatus.PENDING, target_date=unit.target_date, created_at=now, updated_at=now, context=dict(unit.context))
        self.jobs[existing.id] = existing
      result.setdefault(unit.target.key, replace(existing))
    return list(result.values())

  async def get_job(self, job_id: str) -> QueueJob | None:
    self._maybe_fail("get_job")
    job = self.jobs.get(job_id)
    return replace(job) if job is not None else None

  async def find_pending_jobs(self, limit: int, *, due_before: datetime | None = None, owner: QueueOwner | None = None) -> list[QueueJob]:
    self._maybe_fail("find_pending_jobs")
    candidates = [job for job in self.jobs.values() if (due_before is None or job.target_date <= due_before) and (owner is None or job.owner == owner)]
    return [replace(job) for job in select_batch(candidates, limit)]

  async def mark_in_progress(self, job_id: str) -> bool:
    self._maybe_fail("mark_in_progress")
    self.claim_calls.append(job_id)
    # Let concurrent callers interleave before the compare-and-swap.
    await asyncio.sleep(0)
    now = self._now()
    return self._transition(job_id, QueueStatus.PENDING, status=QueueStatus.IN_PROGRESS, last_processed_at=now) is not None

  async def release_claim(self, job_id: str) -> bool:
    self._maybe_fail("release_claim")
    return self._transition(job_id, QueueStatus.IN_PROGRESS, status=QueueStatus.PENDING, last_processed_at=None) is not None

  async def mark_ready(self, job_id: str, result_ref: str) -> QueueJob | None:
    self._maybe_fail("mark_ready")
    return self._transition(job_id, QueueStatus.IN_PROGRESS, status=QueueStatus.READY, result_ref=result_ref, last_error=None)

  async def mark_failed(self, job_id: str, error: str) -> QueueJob | None:
    self._maybe_fail("mark_failed")
    return self._transition(job_id, QueueStatus.IN_PROGRESS, status=QueueStatus.FAILED, last_error=error)

  async def mark_skipped(self, job_id: str, reason: str) -> QueueJob | None:
    self._maybe_fail("mark_skipped")
    return self._transition(job_id, QueueStatus.PENDING, status=QueueStatus.SKIPPED, last_error=reason)

  async def record_failure(self, job_id: str, error: str, *, max_attempts: int) -> QueueJob | None:
    self._maybe_fail("record_failure")
    job = self.jobs.get(job_id)
    if job is None or job.status is not QueueStatus.IN_PROGRESS:
      return None
    attempts = job.attempts + 1
    status = QueueStatus.FAILED if attempts >= max_attempts else QueueStatus.PENDING
    return self._transition(job_id, QueueStatus.IN_PROGRESS, status=status, attempts=attempts, last_error=error)

  async def get_queue_stats(self) -> QueueStats:
    self._maybe_fail("get_queue_stats")
    counts = {status.value: 0 for status in QueueStatus}
    for job in self.jobs.values():
      counts[job.status.value] += 1
    return QueueStats(**counts)

  async def list_jobs_for_owner(self, owner: QueueOwner, *, status: QueueStatus | None = None) -> list[QueueJob]:
    self._maybe_fail("list_jobs_for_owner")
    jobs = [job for job in self.jobs.values() if job.owner == owner and (status is None or job.status is status)]
    # Seeds have no day index and sort after days, like NULLS LAST.
    return [replace(job) for job in sorted(jobs, key=lambda job: (job.target.day_index is None, job.target.day_index or 0, job.target_date, job.created_at))]

  async def list_failed_jobs(self, limit: int = 50) -> list[QueueJob]:
    self._maybe_fail("list_failed_jobs")
    failed = sorted((job for job in self.jobs.values() if job.status is QueueStatus.FAILED), key=lambda job: job.updated_at)
    return [replace(job) for job in failed[:limit]]

  async def retry_failed(self, *, owner: QueueOwner | None = None, job_ids: Sequence[str] | None = None) -> int:
    self._maybe_fail("retry_failed")
    count = 0
    for job in list(self.jobs.values()):
      if owner is not None and job.owner != owner:
        continue
      if job_ids is not None and job.id not in job_ids:
        continue
      if self._transition(job.id, QueueStatus.FAILED, status=QueueStatus.PENDING, attempts=0, last_error=None, last_processed_at=None) is not None:
        count += 1
    return count

  async def reset_stale_claims(self, older_than: datetime, *, max_attempts: int) -> list[QueueJob]:
    self._maybe_fail("reset_stale_claims")
    expired: list[QueueJob] = []
    for job in list(self.jobs.values()):
      if job.status is QueueStatus.IN_PROGRESS and job.last_processed_at is not None and job.last_processed_at < older_than:
        attempts = job.attempts + 1
        status = QueueStatus.FAILED if attempts >= max_attempts else QueueStatus.PENDING
        expired.append(self._transition(job.id, QueueStatus.IN_PROGRESS, status=status, attempts=attempts, last_error=STALE_CLAIM_ERROR, last_processed_at=None))
    return expired

  async def cancel_owner(self, owner: QueueOwner, reason: str) -> int:
    self._maybe_fail("cancel_owner")
    count = 0
    for job in list(self.jobs.values()):
      if job.owner == owner and self._transition(job.id, QueueStatus.PENDING, status=QueueStatus.SKIPPED, last_error=reason) is not None:
        count += 1
    return count

  async def delete_jobs_for_owner(self, owner: QueueOwner) -> int:
    self._maybe_fail("delete_jobs_for_owner")
    doomed = [job_id for job_id, job in self.jobs.items() if job.owner == owner]
    for job_id in doomed:
      del self.jobs[job_id]
    return len(doomed)

  async def delete_finished_before(self, cutoff: datetime) -> int:
    finished = {QueueStatus.READY, QueueStatus.FAILED, QueueStatus.SKIPPED}
    doomed = [job_id for job_id, job in self.jobs.items() if job.status in finished and job.updated_at < cutoff]
    for job_id in doomed:
      del self.jobs[job_id]
    return len(doomed)

  def status_of(self, job_id: str) -> QueueStatus:
    return self.jobs[job_id].status

  def by_target(self, key: str) -> QueueJob:
    return next(job for job in self.jobs.values() if job.target.key == key)


class InMemoryScenarioStore:
  """Scenario store double keyed by source job, like the Postgres upsert."""

  def __init__(self) -> None:
    self.saved: dict[str, tuple[str, ScenarioDraft]] = {}
    self.failures_remaining = 0

  async def save(self, job: QueueJob, context: GenerationContext, draft: ScenarioDraft) -> str:
    if self.failures_remaining > 0:
      self.failures_remaining -= 1
      raise ScenarioPersistenceError(f"Saving scenario for job {job.id} failed: OperationalError")
    scenario_id = self.saved[job.id][0] if job.id in self.saved else generate_scenario_id()
    self.saved[job.id] = (scenario_id, draft)
    return scenario_id


class ScriptedGenerator:
  """Generator double: fails for listed titles, optionally stalls."""

  def __init__(self) -> None:
    self.calls: list[GenerationContext] = []
    self.fail_titles: set[str] = set()
    self.fail_always = False
    self.delay_seconds = 0.0

  async def generate(self, context: GenerationContext) -> ScenarioDraft:
    self.calls.append(context)
    if self.delay_seconds:
      await asyncio.sleep(self.delay_seconds)
    if self.fail_always or context.title in self.fail_titles:
      raise GenerationError(f"Scenario generation request failed: upstream error for {context.title}")
    return ScenarioDraft(title=f"Scenario: {context.title}", description=f"Practice {context.title.lower()}.", difficulty=map_cefr_to_difficulty(context.difficulty), cefr_level=context.difficulty)

  @property
  def titles(self) -> list[str]:
    return [context.title for context in self.calls]


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def settings() -> Settings:
  return Settings(
    environment="test",
    debug=False,
    pg_dsn=None,
    pg_connect_timeout=5,
    log_dir=None,
    log_max_bytes=1_048_576,
    log_backup_count=1,
    cron_secret="test-cron-secret",
    openai_api_key=None,
    openai_model="gpt-4o-mini",
    openai_base_url=None,
    generation_timeout_seconds=30.0,
    queue_max_attempts=3,
    queue_default_limit=5,
    queue_max_limit=20,
    queue_stale_claim_seconds=600,
    queue_retention_days=30,
  )


@pytest.fixture
def queue_store() -> InMemoryQueueStore:
  return InMemoryQueueStore()


@pytest.fixture
def scenario_store() -> InMemoryScenarioStore:
  return InMemoryScenarioStore()


@pytest.fixture
def generator() -> ScriptedGenerator:
  return ScriptedGenerator()


@pytest.fixture
def events() -> QueueEvents:
  return QueueEvents()


@pytest.fixture
def runtime(settings: Settings, queue_store: InMemoryQueueStore, scenario_store: InMemoryScenarioStore, generator: ScriptedGenerator, events: QueueEvents) -> QueueRuntime:
  return build_queue_runtime(settings, queue_store=queue_store, scenario_store=scenario_store, generator=generator, events=events)


@pytest.fixture
def make_context() -> Callable[..., dict[str, Any]]:
  def _make(title: str, **overrides: Any) -> dict[str, Any]:
    context: dict[str, Any] = {"theme": "Daily life", "title": title, "difficulty": "A2", "language_target": "ja"}
    context.update(overrides)
    return context

  return _make


@pytest.fixture
def day_units(make_context: Callable[..., dict[str, Any]]) -> Callable[..., list[QueueUnit]]:
  """Build day units whose context title is `Day <n>`, due one day apart from START."""

  def _build(*day_indexes: int) -> list[QueueUnit]:
    return [QueueUnit(target=QueueTarget.day(index), target_date=START + timedelta(days=index - 1), context=make_context(f"Day {index}", day_index=index)) for index in day_indexes]

  return _build
