"""Exception taxonomy for the scenario generation queue."""

from __future__ import annotations


class QueueError(Exception):
  """Base class for queue failures."""


class QueueStoreError(QueueError):
  """The queue store could not be reached or rejected a statement; fatal for a pass."""


class JobNotFoundError(QueueError):
  """Raised when a job id does not exist."""

  def __init__(self, job_id: str) -> None:
    super().__init__(f"Queue job {job_id} not found")
    self.job_id = job_id


class JobStateError(QueueError):
  """The job is not in a status that allows the requested change."""

  def __init__(self, job_id: str, status: str, action: str) -> None:
    super().__init__(f"Queue job {job_id} is {status}; cannot {action}")
    self.job_id = job_id
    self.status = status


class GenerationError(QueueError):
  """The generation adapter could not produce a scenario draft. Retryable."""


class GenerationTimeoutError(GenerationError):
  """The generation call exceeded its time budget."""

  def __init__(self, timeout_seconds: float) -> None:
    super().__init__(f"Generation timed out after {timeout_seconds:g}s")
    self.timeout_seconds = timeout_seconds


class InvalidGenerationContextError(QueueError):
  """The stored generation context failed validation; retrying cannot help."""


class ScenarioPersistenceError(QueueError):
  """The generated scenario could not be saved."""
