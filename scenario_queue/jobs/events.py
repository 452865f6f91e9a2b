"""Post-commit notifications emitted by the queue.

Subscribers run after the store has committed a transition. They are best
effort: a failing subscriber is logged and never changes the outcome of the
job or the pass that emitted the event.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Final, Literal

logger = logging.getLogger(__name__)

EventName = Literal["job_ready", "job_retry_scheduled", "job_failed", "pass_completed"]

JOB_READY: Final[EventName] = "job_ready"
JOB_RETRY_SCHEDULED: Final[EventName] = "job_retry_scheduled"
JOB_FAILED: Final[EventName] = "job_failed"
PASS_COMPLETED: Final[EventName] = "pass_completed"

EVENT_NAMES: Final[frozenset[str]] = frozenset({JOB_READY, JOB_RETRY_SCHEDULED, JOB_FAILED, PASS_COMPLETED})


@dataclass(frozen=True)
class QueueEvent:
  name: EventName
  job_id: str | None = None
  payload: dict[str, Any] = field(default_factory=dict)


EventHandler = Callable[[QueueEvent], Awaitable[None]]


class QueueEvents:
  """In-process registry of async event subscribers."""

  def __init__(self) -> None:
    self._handlers: dict[str, list[EventHandler]] = {}

  def subscribe(self, event_name: EventName, handler: EventHandler) -> None:
    if event_name not in EVENT_NAMES:
      raise ValueError(f"Unknown queue event: {event_name}")
    self._handlers.setdefault(event_name, []).append(handler)

  def handlers(self, event_name: EventName) -> list[EventHandler]:
    return list(self._handlers.get(event_name, ()))

  async def emit(self, event: QueueEvent) -> None:
    """Await every subscriber of the event in registration order."""
    for handler in self.handlers(event.name):
      try:
        await handler(event)
      except Exception as exc:  # noqa: BLE001
        # Collaborators must not be able to fail a committed transition.
        logger.error("Queue event subscriber failed event=%s job_id=%s handler=%s: %s", event.name, event.job_id, getattr(handler, "__qualname__", repr(handler)), exc, exc_info=True)
