"""Storage interface for the scenario generation queue."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from scenario_queue.jobs.models import QueueJob, QueueOwner, QueueStats, QueueStatus, QueueUnit

STALE_CLAIM_ERROR = "Claim expired before completion"


class QueueStore(Protocol):
  """Repository contract for queue persistence.

  Every status change is a conditional write guarded by the expected previous
  status, so concurrent passes can only race on `mark_in_progress`, and only
  one of them wins.
  """

  async def enqueue(self, owner: QueueOwner, units: Sequence[QueueUnit]) -> list[QueueJob]:
    """Create one job per unit; existing (owner, target) pairs are returned untouched."""

  async def get_job(self, job_id: str) -> QueueJob | None:
    """Fetch a job by identifier."""

  async def find_pending_jobs(self, limit: int, *, due_before: datetime | None = None, owner: QueueOwner | None = None) -> list[QueueJob]:
    """Return up to `limit` pending jobs, day one first, then by target date and age. `owner` narrows the search to one path or week."""

  async def mark_in_progress(self, job_id: str) -> bool:
    """Claim a pending job. False when another pass already holds it."""

  async def release_claim(self, job_id: str) -> bool:
    """Return a claimed job to pending without counting an attempt."""

  async def mark_ready(self, job_id: str, result_ref: str) -> QueueJob | None:
    """Finish a claimed job with a reference to its scenario."""

  async def mark_failed(self, job_id: str, error: str) -> QueueJob | None:
    """Fail a claimed job permanently."""

  async def mark_skipped(self, job_id: str, reason: str) -> QueueJob | None:
    """Retire a pending job that no longer needs generation."""

  async def record_failure(self, job_id: str, error: str, *, max_attempts: int) -> QueueJob | None:
    """Count a failed attempt on a claimed job: back to pending, or failed once attempts reach the cap."""

  async def get_queue_stats(self) -> QueueStats:
    """Return job counts per status."""

  async def list_jobs_for_owner(self, owner: QueueOwner, *, status: QueueStatus | None = None) -> list[QueueJob]:
    """List an owner's jobs: days in order, then seeds, each by target date and age."""

  async def list_failed_jobs(self, limit: int = 50) -> list[QueueJob]:
    """List permanently failed jobs, oldest update first."""

  async def retry_failed(self, *, owner: QueueOwner | None = None, job_ids: Sequence[str] | None = None) -> int:
    """Move failed jobs back to pending with a fresh attempt budget."""

  async def reset_stale_claims(self, older_than: datetime, *, max_attempts: int) -> list[QueueJob]:
    """Expire claims taken before `older_than`, counting each as a failed attempt.

    Expired jobs go back to pending, or to failed once attempts reach `max_attempts`.
    """

  async def cancel_owner(self, owner: QueueOwner, reason: str) -> int:
    """Skip every pending job of an owner."""

  async def delete_jobs_for_owner(self, owner: QueueOwner) -> int:
    """Delete all jobs of an owner."""

  async def delete_finished_before(self, cutoff: datetime) -> int:
    """Delete ready, failed and skipped jobs last updated before `cutoff`."""
