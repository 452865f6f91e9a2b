from __future__ import annotations

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from scenario_queue import __version__
from scenario_queue.api.routes import cron
from scenario_queue.core.exceptions import global_exception_handler, http_exception_handler, queue_store_exception_handler, request_validation_exception_handler
from scenario_queue.core.lifespan import lifespan
from scenario_queue.core.middleware import RequestLoggingMiddleware
from scenario_queue.jobs.errors import QueueStoreError


def create_app() -> FastAPI:
  """Build the application; the lifespan attaches the queue runtime on startup."""
  app = FastAPI(title="Kaiwa scenario queue", version=__version__, lifespan=lifespan, docs_url=None, redoc_url=None)

  # Add exception handlers
  app.add_exception_handler(Exception, global_exception_handler)
  # Starlette's base class also covers router 404/405 responses.
  app.add_exception_handler(StarletteHTTPException, http_exception_handler)
  app.add_exception_handler(QueueStoreError, queue_store_exception_handler)
  app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

  app.add_middleware(RequestLoggingMiddleware)

  @app.get("/health", include_in_schema=False)
  async def health_check() -> dict[str, str]:
    """Return a simple health status."""
    return {"status": "ok", "version": __version__}

  app.include_router(cron.router, prefix="/api/cron", tags=["cron"])
  return app


app = create_app()
