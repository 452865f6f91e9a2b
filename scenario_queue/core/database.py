from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from scenario_queue.config import DatabaseSettings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
  pass


def normalize_database_url(raw: str | None) -> str | None:
  """Force the asyncpg driver onto plain postgres DSNs."""
  if not raw:
    return None
  for prefix in ("postgresql://", "postgres://"):
    if raw.startswith(prefix):
      return raw.replace(prefix, "postgresql+asyncpg://", 1)
  return raw


class Database:
  """Explicitly opened and closed handle around the async engine and session factory."""

  def __init__(self, settings: DatabaseSettings) -> None:
    self._settings = settings
    self._engine: AsyncEngine | None = None
    self._session_factory: async_sessionmaker[AsyncSession] | None = None

  @property
  def is_open(self) -> bool:
    return self._engine is not None

  @property
  def engine(self) -> AsyncEngine:
    if self._engine is None:
      raise RuntimeError("Database is not open.")
    return self._engine

  def open(self) -> None:
    """Create the engine; safe to call more than once."""
    if self.is_open:
      return
    database_url = normalize_database_url(self._settings.pg_dsn)
    if database_url is None:
      raise RuntimeError("Database connection is not configured (KAIWA_PG_DSN is missing).")
    connect_args = {"timeout": self._settings.pg_connect_timeout} if database_url.startswith("postgresql+asyncpg") else {}
    self._engine = create_async_engine(database_url, echo=self._settings.debug, pool_pre_ping=True, connect_args=connect_args)
    self._session_factory = async_sessionmaker(bind=self._engine, expire_on_commit=False, class_=AsyncSession)
    logger.info("Database engine created")

  async def close(self) -> None:
    """Dispose pooled connections."""
    if not self.is_open:
      return
    await self._engine.dispose()
    self._engine = None
    self._session_factory = None
    logger.info("Database engine disposed")

  @asynccontextmanager
  async def session(self) -> AsyncIterator[AsyncSession]:
    """Yield a session bound to the open engine."""
    if self._session_factory is None:
      raise RuntimeError("Database is not open.")
    async with self._session_factory() as session:
      yield session
