"""Per-job state machine: claim, generate, persist, settle."""

from __future__ import annotations

import asyncio
import logging

from pydantic import ValidationError

from scenario_queue.ai.contracts import GenerationContext, ScenarioDraft, ScenarioGenerator
from scenario_queue.config import Settings
from scenario_queue.jobs.errors import GenerationTimeoutError, InvalidGenerationContextError, QueueError
from scenario_queue.jobs.events import JOB_FAILED, JOB_READY, JOB_RETRY_SCHEDULED, QueueEvent, QueueEvents
from scenario_queue.jobs.models import ExecutionOutcome, GenerationResult, QueueJob, QueueStatus
from scenario_queue.storage.queue_repo import QueueStore
from scenario_queue.storage.scenarios_repo import ScenarioStore

logger = logging.getLogger(__name__)

_MAX_ERROR_LENGTH = 1000


def describe_error(exc: BaseException) -> str:
  """Render an exception as the message stored in `last_error`."""
  message = str(exc) if isinstance(exc, QueueError) else f"{type(exc).__name__}: {exc}"
  return message[:_MAX_ERROR_LENGTH]


def _load_context(job: QueueJob) -> GenerationContext:
  try:
    return GenerationContext.model_validate(job.context)
  except ValidationError as exc:
    raise InvalidGenerationContextError(f"Invalid generation context: {exc.error_count()} validation error(s)") from exc


class JobExecutor:
  """Runs one claimed job to a settled state.

  Every failure below the claim is captured into the returned outcome; only
  cancellation escapes, so one poisoned job cannot abort a pass.
  """

  def __init__(
    self,
    *,
    queue_store: QueueStore,
    scenario_store: ScenarioStore,
    generator: ScenarioGenerator,
    max_attempts: int = 3,
    generation_timeout: float = 30.0,
    events: QueueEvents | None = None,
  ) -> None:
    if max_attempts < 1:
      raise ValueError("max_attempts must be at least 1.")
    self._queue_store = queue_store
    self._scenario_store = scenario_store
    self._generator = generator
    self._max_attempts = max_attempts
    self._generation_timeout = generation_timeout
    self._events = events or QueueEvents()

  @classmethod
  def from_settings(cls, settings: Settings, *, queue_store: QueueStore, scenario_store: ScenarioStore, generator: ScenarioGenerator, events: QueueEvents | None = None) -> JobExecutor:
    return cls(
      queue_store=queue_store,
      scenario_store=scenario_store,
      generator=generator,
      max_attempts=settings.queue_max_attempts,
      generation_timeout=settings.generation_timeout_seconds,
      events=events,
    )

  @property
  def max_attempts(self) -> int:
    return self._max_attempts

  async def execute(self, job: QueueJob, *, dry_run: bool = False) -> ExecutionOutcome:
    """Claim and run one job, returning what happened to it."""
    try:
      claimed = await self._queue_store.mark_in_progress(job.id)
    except Exception as exc:  # noqa: BLE001
      # Nothing was claimed, the job is still pending for a later pass.
      logger.error("Claiming job failed job_id=%s: %s", job.id, exc)
      return ExecutionOutcome(job_id=job.id, status="retry", error=describe_error(exc), dry_run=dry_run)

    if not claimed:
      logger.info("Job already claimed by another pass job_id=%s target=%s", job.id, job.target.key)
      return ExecutionOutcome(job_id=job.id, status="skipped", dry_run=dry_run)

    if dry_run:
      return await self._release_dry_run(job)

    try:
      context = _load_context(job)
    except InvalidGenerationContextError as exc:
      return await self._fail_permanently(job, str(exc))

    result = await self._generate_and_save(job, context)
    if not result.success or result.scenario_id is None:
      return await self._record_failure(job, result.error or "Scenario generation produced no scenario")
    scenario_id = result.scenario_id

    try:
      updated = await self._queue_store.mark_ready(job.id, scenario_id)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Marking job ready failed job=%s scenario_id=%s: %s", job.log_context(), scenario_id, exc)
      return await self._record_failure(job, describe_error(exc))

    if updated is None:
      # A stale-claim reset moved the row under us; the saved scenario is reused on the next run.
      logger.warning("Job left in_progress before completion job_id=%s scenario_id=%s", job.id, scenario_id)
      return ExecutionOutcome(job_id=job.id, status="skipped", error="Claim lost before completion", scenario_id=scenario_id)

    logger.info("Job ready job_id=%s owner=%s target=%s scenario_id=%s", job.id, job.owner.owner_id, job.target.key, scenario_id)
    await self._events.emit(QueueEvent(name=JOB_READY, job_id=job.id, payload={"job": updated, "scenario_id": scenario_id}))
    return ExecutionOutcome(job_id=job.id, status="ready", scenario_id=scenario_id)

  async def _generate_and_save(self, job: QueueJob, context: GenerationContext) -> GenerationResult:
    """Produce and persist the scenario; any failure comes back as an unsuccessful result."""
    try:
      draft = await self._generate(context)
      scenario_id = await self._scenario_store.save(job, context, draft)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Scenario generation attempt failed job=%s: %s", job.log_context(), exc)
      return GenerationResult(success=False, error=describe_error(exc))
    return GenerationResult(success=True, scenario_id=scenario_id)

  async def _generate(self, context: GenerationContext) -> ScenarioDraft:
    try:
      return await asyncio.wait_for(self._generator.generate(context), timeout=self._generation_timeout)
    except TimeoutError as exc:
      raise GenerationTimeoutError(self._generation_timeout) from exc

  async def _release_dry_run(self, job: QueueJob) -> ExecutionOutcome:
    try:
      await self._queue_store.release_claim(job.id)
    except Exception as exc:  # noqa: BLE001
      logger.error("Releasing dry-run claim failed job_id=%s: %s", job.id, exc)
      return ExecutionOutcome(job_id=job.id, status="retry", error=describe_error(exc), dry_run=True)
    logger.info("Dry run: would generate job_id=%s owner=%s target=%s", job.id, job.owner.owner_id, job.target.key)
    return ExecutionOutcome(job_id=job.id, status="ready", dry_run=True)

  async def _fail_permanently(self, job: QueueJob, message: str) -> ExecutionOutcome:
    try:
      updated = await self._queue_store.mark_failed(job.id, message)
    except Exception as exc:  # noqa: BLE001
      logger.error("Marking job failed did not persist job_id=%s: %s", job.id, exc)
      return ExecutionOutcome(job_id=job.id, status="failed", error=message)
    logger.error("Job failed permanently job_id=%s target=%s: %s", job.id, job.target.key, message)
    if updated is not None:
      await self._events.emit(QueueEvent(name=JOB_FAILED, job_id=job.id, payload={"job": updated, "error": message}))
    return ExecutionOutcome(job_id=job.id, status="failed", error=message)

  async def _record_failure(self, job: QueueJob, message: str) -> ExecutionOutcome:
    try:
      updated = await self._queue_store.record_failure(job.id, message, max_attempts=self._max_attempts)
    except Exception as exc:  # noqa: BLE001
      # The claim stays in place until stale-claim recovery returns it to pending.
      logger.error("Recording failure did not persist job_id=%s: %s", job.id, exc)
      return ExecutionOutcome(job_id=job.id, status="retry", error=message)

    if updated is None:
      return ExecutionOutcome(job_id=job.id, status="retry", error=message)

    if updated.status is QueueStatus.FAILED:
      logger.error("Job failed after %d attempt(s) job_id=%s target=%s: %s", updated.attempts, job.id, job.target.key, message)
      await self._events.emit(QueueEvent(name=JOB_FAILED, job_id=job.id, payload={"job": updated, "error": message}))
      return ExecutionOutcome(job_id=job.id, status="failed", error=message)

    logger.info("Job scheduled for retry job_id=%s attempts=%d/%d", job.id, updated.attempts, self._max_attempts)
    await self._events.emit(QueueEvent(name=JOB_RETRY_SCHEDULED, job_id=job.id, payload={"job": updated, "error": message}))
    return ExecutionOutcome(job_id=job.id, status="retry", error=message)
