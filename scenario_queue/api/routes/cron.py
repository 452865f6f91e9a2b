from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, status
from pydantic import BaseModel, ConfigDict, Field, model_validator

from scenario_queue.api.deps import get_queue_processor
from scenario_queue.core.security import verify_cron_secret
from scenario_queue.jobs.models import JobError, OwnerKind, QueueOwner
from scenario_queue.jobs.processor import QueueProcessor

router = APIRouter()
logger = logging.getLogger(__name__)


class OwnerFilter(BaseModel):
  """Optional owner scope shared by trigger bodies."""

  model_config = ConfigDict(populate_by_name=True)

  owner_kind: OwnerKind | None = Field(default=None, alias="ownerKind")
  owner_id: str | None = Field(default=None, alias="ownerId", min_length=1)

  @model_validator(mode="after")
  def check_owner_pair(self) -> OwnerFilter:
    if (self.owner_kind is None) != (self.owner_id is None):
      raise ValueError("ownerKind and ownerId must be given together.")
    return self

  @property
  def owner(self) -> QueueOwner | None:
    if self.owner_kind is None or self.owner_id is None:
      return None
    return QueueOwner(kind=self.owner_kind, owner_id=self.owner_id)


class ProcessScenariosRequest(OwnerFilter):
  """Optional trigger body; omitted fields fall back to configured defaults."""

  limit: int | None = Field(default=None, description="Jobs to run in this pass, capped server-side.")
  dry_run: bool = Field(default=False, alias="dryRun")


class RetryFailedRequest(OwnerFilter):
  job_ids: list[str] | None = Field(default=None, alias="jobIds")


def _error_entry(error: JobError) -> dict[str, Any]:
  return {"jobId": error.job_id, "ownerId": error.owner_id, "targetKey": error.target_key, "error": error.error}


@router.post("/process-scenarios", status_code=status.HTTP_200_OK, dependencies=[Depends(verify_cron_secret)])
async def process_scenarios(processor: Annotated[QueueProcessor, Depends(get_queue_processor)], payload: Annotated[ProcessScenariosRequest | None, Body()] = None) -> dict[str, Any]:
  """Run one processing pass and report what it did."""
  started = time.perf_counter()
  request = payload or ProcessScenariosRequest()
  limit = processor.clamp_limit(request.limit)
  logger.info("Starting scenario queue processing limit=%d dry_run=%s owner=%s", limit, request.dry_run, request.owner_id or "*")

  stats_before = await processor.get_queue_stats()
  result = await processor.process_pending_jobs(limit, dry_run=request.dry_run, owner=request.owner)
  stats_after = await processor.get_queue_stats()

  duration_ms = int((time.perf_counter() - started) * 1000)
  logger.info("Scenario queue processing complete processed=%d succeeded=%d failed=%d skipped=%d duration_ms=%d", result.processed, result.succeeded, result.failed, result.skipped, duration_ms)
  return {
    "success": True,
    "data": {
      "processed": result.processed,
      "succeeded": result.succeeded,
      "failed": result.failed,
      "skipped": result.skipped,
      "errors": [_error_entry(error) for error in result.errors],
      "dryRun": result.dry_run,
      "durationMs": duration_ms,
      "queue": {"before": stats_before.to_dict(), "after": stats_after.to_dict()},
    },
  }


@router.get("/process-scenarios", status_code=status.HTTP_200_OK)
async def queue_status(processor: Annotated[QueueProcessor, Depends(get_queue_processor)]) -> dict[str, Any]:
  """Unauthenticated queue health for uptime checks."""
  stats = await processor.get_queue_stats()
  return {"success": True, "status": "healthy", "queue": stats.to_dict(), "timestamp": datetime.now(UTC).isoformat()}


@router.post("/retry-failed", status_code=status.HTTP_200_OK, dependencies=[Depends(verify_cron_secret)])
async def retry_failed(processor: Annotated[QueueProcessor, Depends(get_queue_processor)], payload: Annotated[RetryFailedRequest | None, Body()] = None) -> dict[str, Any]:
  """Move permanently failed jobs back to pending."""
  request = payload or RetryFailedRequest()
  reset = await processor.retry_failed_jobs(owner=request.owner, job_ids=request.job_ids)
  return {"success": True, "data": {"reset": reset}}


@router.get("/owners/{owner_kind}/{owner_id}", status_code=status.HTTP_200_OK, dependencies=[Depends(verify_cron_secret)])
async def owner_status(owner_kind: OwnerKind, owner_id: str, processor: Annotated[QueueProcessor, Depends(get_queue_processor)]) -> dict[str, Any]:
  """Generation progress of one learning path or adaptive week."""
  owner_state = await processor.get_owner_status(QueueOwner(kind=owner_kind, owner_id=owner_id))
  return {"success": True, "data": owner_state.to_dict()}
