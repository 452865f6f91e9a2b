import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from scenario_queue.config import get_database_settings, get_settings
from scenario_queue.core.database import Database
from scenario_queue.core.logging import initialize_logging
from scenario_queue.services.factory import build_postgres_runtime


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Open the database, build the queue runtime and expose it on app.state."""
  settings = get_settings()
  initialize_logging(settings)
  logger = logging.getLogger("scenario_queue.core.lifespan")

  database_settings = get_database_settings()
  database = Database(database_settings)
  database.open()
  logger.info("Database opened dsn=%s", _redact_dsn(database_settings.pg_dsn))

  try:
    runtime = build_postgres_runtime(settings, database)
  except Exception:
    logger.error("Queue runtime could not be built; refusing to start.", exc_info=True)
    await database.close()
    raise

  app.state.settings = settings
  app.state.database = database
  app.state.queue_runtime = runtime
  logger.info("Startup complete environment=%s model=%s max_attempts=%d timeout=%.1fs", settings.environment, settings.openai_model, settings.queue_max_attempts, settings.generation_timeout_seconds)

  try:
    yield
  finally:
    await database.close()
    logger.info("Shutdown complete")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
