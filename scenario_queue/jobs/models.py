"""Domain models for the scenario generation queue."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal


class QueueStatus(str, Enum):
  PENDING = "pending"
  IN_PROGRESS = "in_progress"
  READY = "ready"
  FAILED = "failed"
  SKIPPED = "skipped"

  @property
  def is_terminal(self) -> bool:
    return self in (QueueStatus.READY, QueueStatus.SKIPPED)


class OwnerKind(str, Enum):
  PATH = "path"
  WEEK = "week"


OutcomeStatus = Literal["ready", "retry", "failed", "skipped"]


@dataclass(frozen=True)
class QueueOwner:
  """Curriculum container that owns a set of jobs."""

  kind: OwnerKind
  owner_id: str

  @classmethod
  def path(cls, path_id: str) -> QueueOwner:
    return cls(kind=OwnerKind.PATH, owner_id=path_id)

  @classmethod
  def week(cls, week_id: str) -> QueueOwner:
    return cls(kind=OwnerKind.WEEK, owner_id=week_id)


@dataclass(frozen=True)
class QueueTarget:
  """Unit of work inside an owner: a 1-based schedule day or a conversation seed."""

  day_index: int | None = None
  seed_id: str | None = None

  def __post_init__(self) -> None:
    if (self.day_index is None) == (self.seed_id is None):
      raise ValueError("A queue target needs exactly one of day_index or seed_id.")
    if self.day_index is not None and self.day_index < 1:
      raise ValueError("day_index is 1-based.")

  @classmethod
  def day(cls, day_index: int) -> QueueTarget:
    return cls(day_index=day_index)

  @classmethod
  def seed(cls, seed_id: str) -> QueueTarget:
    return cls(seed_id=seed_id)

  @classmethod
  def from_key(cls, target_key: str) -> QueueTarget:
    kind, _, value = target_key.partition(":")
    if kind == "day":
      return cls(day_index=int(value))
    if kind == "seed" and value:
      return cls(seed_id=value)
    raise ValueError(f"Malformed target key: {target_key!r}")

  @property
  def key(self) -> str:
    if self.day_index is not None:
      return f"day:{self.day_index}"
    return f"seed:{self.seed_id}"


@dataclass(frozen=True)
class QueueUnit:
  """One unit handed to enqueue: what to generate and when it is needed."""

  target: QueueTarget
  target_date: datetime
  context: dict[str, Any]


@dataclass
class QueueJob:
  """Represents one persisted scenario generation job."""

  id: str
  owner: QueueOwner
  target: QueueTarget
  status: QueueStatus
  target_date: datetime
  created_at: datetime
  updated_at: datetime
  attempts: int = 0
  context: dict[str, Any] = field(default_factory=dict)
  last_error: str | None = None
  result_ref: str | None = None
  last_processed_at: datetime | None = None

  @property
  def is_day_one(self) -> bool:
    return self.target.day_index == 1

  def log_context(self) -> dict[str, Any]:
    return {"job_id": self.id, "owner": f"{self.owner.kind.value}:{self.owner.owner_id}", "target": self.target.key, "attempts": self.attempts}


@dataclass(frozen=True)
class QueueStats:
  pending: int = 0
  in_progress: int = 0
  ready: int = 0
  failed: int = 0
  skipped: int = 0

  @property
  def total(self) -> int:
    return self.pending + self.in_progress + self.ready + self.failed + self.skipped

  def to_dict(self) -> dict[str, int]:
    return {**asdict(self), "total": self.total}


@dataclass(frozen=True)
class OwnerStatus:
  """Generation progress of one learning path or adaptive week."""

  owner: QueueOwner
  counts: QueueStats
  jobs: list[QueueJob] = field(default_factory=list)

  @classmethod
  def from_jobs(cls, owner: QueueOwner, jobs: list[QueueJob]) -> OwnerStatus:
    tally = {status.value: 0 for status in QueueStatus}
    for job in jobs:
      tally[job.status.value] += 1
    return cls(owner=owner, counts=QueueStats(**tally), jobs=jobs)

  @property
  def is_complete(self) -> bool:
    # Skipped targets were cancelled on purpose and never block completion.
    return self.counts.total > 0 and all(job.status.is_terminal for job in self.jobs)

  @property
  def has_failures(self) -> bool:
    return self.counts.failed > 0

  @property
  def needs_generation(self) -> bool:
    return self.counts.pending > 0

  def to_dict(self) -> dict[str, Any]:
    return {
      "ownerKind": self.owner.kind.value,
      "ownerId": self.owner.owner_id,
      "counts": self.counts.to_dict(),
      "isComplete": self.is_complete,
      "hasFailures": self.has_failures,
      "needsGeneration": self.needs_generation,
      "jobs": [
        {"jobId": job.id, "targetKey": job.target.key, "status": job.status.value, "attempts": job.attempts, "scenarioId": job.result_ref, "error": job.last_error}
        for job in self.jobs
      ],
    }


@dataclass(frozen=True)
class GenerationResult:
  """Outcome of generating and saving one scenario."""

  success: bool
  scenario_id: str | None = None
  error: str | None = None


@dataclass(frozen=True)
class ExecutionOutcome:
  """What the executor did with one job."""

  job_id: str
  status: OutcomeStatus
  error: str | None = None
  scenario_id: str | None = None
  dry_run: bool = False


@dataclass(frozen=True)
class JobError:
  job_id: str
  error: str
  owner_id: str | None = None
  target_key: str | None = None


@dataclass
class ProcessingResult:
  """Aggregate of a processing pass."""

  processed: int = 0
  succeeded: int = 0
  failed: int = 0
  skipped: int = 0
  errors: list[JobError] = field(default_factory=list)
  outcomes: list[ExecutionOutcome] = field(default_factory=list)
  dry_run: bool = False
  duration_ms: int = 0

  def record(self, job: QueueJob, outcome: ExecutionOutcome) -> None:
    """Fold one execution outcome into the totals."""
    self.processed += 1
    self.outcomes.append(outcome)
    if outcome.status == "ready":
      self.succeeded += 1
    elif outcome.status == "skipped":
      self.skipped += 1
    else:
      self.failed += 1
    if outcome.error is not None:
      self.errors.append(JobError(job_id=job.id, error=outcome.error, owner_id=job.owner.owner_id, target_key=job.target.key))

  def summary(self) -> dict[str, Any]:
    return {
      "processed": self.processed,
      "succeeded": self.succeeded,
      "failed": self.failed,
      "skipped": self.skipped,
      "errors": [asdict(item) for item in self.errors],
      "dry_run": self.dry_run,
      "duration_ms": self.duration_ms,
    }
