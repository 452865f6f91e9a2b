"""Shared FastAPI dependencies resolving the queue runtime from app.state."""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from scenario_queue.jobs.processor import QueueProcessor
from scenario_queue.services.factory import QueueRuntime

logger = logging.getLogger(__name__)


def get_queue_runtime(request: Request) -> QueueRuntime:
  """Return the runtime the lifespan attached to the application."""
  runtime: QueueRuntime | None = getattr(request.app.state, "queue_runtime", None)
  if runtime is None:
    logger.error("Queue runtime missing on app.state; lifespan did not run")
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Queue runtime is not initialized.")
  return runtime


def get_queue_processor(request: Request) -> QueueProcessor:
  return get_queue_runtime(request).processor
