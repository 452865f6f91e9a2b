"""Postgres-backed scenario generation queue using SQLAlchemy."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import Delete, Select, Update, case, cast, delete, func, select, update
from sqlalchemy.dialects.postgresql import Insert
from sqlalchemy.dialects.postgresql import insert as pg_insert

from scenario_queue.core.database import Database
from scenario_queue.jobs.models import QueueJob, QueueOwner, QueueStats, QueueStatus, QueueTarget, QueueUnit
from scenario_queue.schema.queue import ScenarioGenerationJob
from scenario_queue.storage.queue_repo import STALE_CLAIM_ERROR, QueueStore
from scenario_queue.utils.db_errors import wrap_store_errors
from scenario_queue.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

_Job = ScenarioGenerationJob
_FINISHED = (QueueStatus.READY, QueueStatus.FAILED, QueueStatus.SKIPPED)


def _owner_filters(owner: QueueOwner) -> tuple:
  return (_Job.owner_kind == owner.kind, _Job.owner_id == owner.owner_id)


def build_enqueue_statement(owner: QueueOwner, units: Sequence[QueueUnit]) -> Insert:
  """INSERT one row per unit; the (owner, target) unique constraint turns repeats into no-ops."""
  rows = [
    {
      "id": generate_job_id(),
      "owner_kind": owner.kind,
      "owner_id": owner.owner_id,
      "target_key": unit.target.key,
      "day_index": unit.target.day_index,
      "seed_id": unit.target.seed_id,
      "target_date": unit.target_date,
      "status": QueueStatus.PENDING,
      "attempts": 0,
      "context_json": unit.context,
    }
    for unit in units
  ]
  return pg_insert(_Job).values(rows).on_conflict_do_nothing(constraint="ux_scenario_queue_owner_target")


def build_pending_query(limit: int, due_before: datetime | None = None, owner: QueueOwner | None = None) -> Select:
  """SELECT pending rows in selection order: day one, target date, creation time."""
  stmt = select(_Job).where(_Job.status == QueueStatus.PENDING)
  if owner is not None:
    stmt = stmt.where(*_owner_filters(owner))
  if due_before is not None:
    stmt = stmt.where(_Job.target_date <= due_before)
  day_one_first = case((_Job.day_index == 1, 0), else_=1)
  return stmt.order_by(day_one_first, _Job.target_date.asc(), _Job.created_at.asc(), _Job.id.asc()).limit(limit)


def build_claim_statement(job_id: str) -> Update:
  """Compare-and-swap pending -> in_progress; zero rows returned means the claim was lost."""
  return (
    update(_Job)
    .where(_Job.id == job_id, _Job.status == QueueStatus.PENDING)
    .values(status=QueueStatus.IN_PROGRESS, last_processed_at=func.now(), updated_at=func.now())
    .returning(_Job.id)
    .execution_options(synchronize_session=False)
  )


def _status_after_failure(max_attempts: int):
  next_status = case((_Job.attempts + 1 >= max_attempts, QueueStatus.FAILED.value), else_=QueueStatus.PENDING.value)
  return cast(next_status, _Job.__table__.c.status.type)


def build_record_failure_statement(job_id: str, error: str, max_attempts: int) -> Update:
  """Count one failed attempt and pick the next status in the same statement."""
  return (
    update(_Job)
    .where(_Job.id == job_id, _Job.status == QueueStatus.IN_PROGRESS)
    .values(status=_status_after_failure(max_attempts), attempts=_Job.attempts + 1, last_error=error, updated_at=func.now())
    .returning(_Job)
    .execution_options(synchronize_session=False)
  )


def build_expire_stale_claims_statement(older_than: datetime, max_attempts: int) -> Update:
  """Expire old claims as failed attempts; the holder is assumed dead."""
  return (
    update(_Job)
    .where(_Job.status == QueueStatus.IN_PROGRESS, _Job.last_processed_at < older_than)
    .values(status=_status_after_failure(max_attempts), attempts=_Job.attempts + 1, last_error=STALE_CLAIM_ERROR, last_processed_at=None, updated_at=func.now())
    .returning(_Job)
    .execution_options(synchronize_session=False)
  )


def _transition(job_id: str, expected: QueueStatus, **values: object) -> Update:
  return (
    update(_Job)
    .where(_Job.id == job_id, _Job.status == expected)
    .values(**values, updated_at=func.now())
    .returning(_Job)
    .execution_options(synchronize_session=False)
  )


def build_retry_failed_statement(*, owner: QueueOwner | None = None, job_ids: Sequence[str] | None = None) -> Update:
  stmt = update(_Job).where(_Job.status == QueueStatus.FAILED)
  if owner is not None:
    stmt = stmt.where(*_owner_filters(owner))
  if job_ids is not None:
    stmt = stmt.where(_Job.id.in_(list(job_ids)))
  return stmt.values(status=QueueStatus.PENDING, attempts=0, last_error=None, last_processed_at=None, updated_at=func.now()).execution_options(synchronize_session=False)


def build_stats_query() -> Select:
  """One row with a count per status, using count(*) FILTER (WHERE status = ...)."""
  return select(*(func.count().filter(_Job.status == status).label(status.value) for status in QueueStatus)).select_from(_Job)


def build_delete_finished_statement(cutoff: datetime) -> Delete:
  return delete(_Job).where(_Job.status.in_(_FINISHED), _Job.updated_at < cutoff).execution_options(synchronize_session=False)


class PostgresQueueStore(QueueStore):
  """Persist queue jobs to Postgres through an injected Database handle."""

  def __init__(self, database: Database) -> None:
    self._db = database

  @wrap_store_errors("enqueue")
  async def enqueue(self, owner: QueueOwner, units: Sequence[QueueUnit]) -> list[QueueJob]:
    if not units:
      return []
    keys = [unit.target.key for unit in units]
    async with self._db.session() as session:
      result = await session.execute(build_enqueue_statement(owner, units))
      await session.commit()
      rows = (await session.execute(select(_Job).where(*_owner_filters(owner), _Job.target_key.in_(keys)))).scalars().all()
    logger.info("Enqueued scenario jobs owner=%s:%s requested=%d inserted=%d", owner.kind.value, owner.owner_id, len(units), max(result.rowcount or 0, 0))
    by_key = {row.target_key: row for row in rows}
    return [self._model_to_job(by_key[key]) for key in dict.fromkeys(keys) if key in by_key]

  @wrap_store_errors("get_job")
  async def get_job(self, job_id: str) -> QueueJob | None:
    async with self._db.session() as session:
      row = await session.get(_Job, job_id)
      return self._model_to_job(row) if row is not None else None

  @wrap_store_errors("find_pending_jobs")
  async def find_pending_jobs(self, limit: int, *, due_before: datetime | None = None, owner: QueueOwner | None = None) -> list[QueueJob]:
    if limit <= 0:
      return []
    async with self._db.session() as session:
      rows = (await session.execute(build_pending_query(limit, due_before, owner))).scalars().all()
      return [self._model_to_job(row) for row in rows]

  @wrap_store_errors("mark_in_progress")
  async def mark_in_progress(self, job_id: str) -> bool:
    async with self._db.session() as session:
      claimed = (await session.execute(build_claim_statement(job_id))).first()
      await session.commit()
      return claimed is not None

  @wrap_store_errors("release_claim")
  async def release_claim(self, job_id: str) -> bool:
    return await self._apply(_transition(job_id, QueueStatus.IN_PROGRESS, status=QueueStatus.PENDING, last_processed_at=None)) is not None

  @wrap_store_errors("mark_ready")
  async def mark_ready(self, job_id: str, result_ref: str) -> QueueJob | None:
    return await self._apply(_transition(job_id, QueueStatus.IN_PROGRESS, status=QueueStatus.READY, result_ref=result_ref, last_error=None))

  @wrap_store_errors("mark_failed")
  async def mark_failed(self, job_id: str, error: str) -> QueueJob | None:
    return await self._apply(_transition(job_id, QueueStatus.IN_PROGRESS, status=QueueStatus.FAILED, last_error=error))

  @wrap_store_errors("mark_skipped")
  async def mark_skipped(self, job_id: str, reason: str) -> QueueJob | None:
    return await self._apply(_transition(job_id, QueueStatus.PENDING, status=QueueStatus.SKIPPED, last_error=reason))

  @wrap_store_errors("record_failure")
  async def record_failure(self, job_id: str, error: str, *, max_attempts: int) -> QueueJob | None:
    return await self._apply(build_record_failure_statement(job_id, error, max_attempts))

  @wrap_store_errors("get_queue_stats")
  async def get_queue_stats(self) -> QueueStats:
    async with self._db.session() as session:
      row = (await session.execute(build_stats_query())).one()
    counts = row._mapping
    return QueueStats(**{status.value: int(counts[status.value] or 0) for status in QueueStatus})

  @wrap_store_errors("list_jobs_for_owner")
  async def list_jobs_for_owner(self, owner: QueueOwner, *, status: QueueStatus | None = None) -> list[QueueJob]:
    stmt = select(_Job).where(*_owner_filters(owner))
    if status is not None:
      stmt = stmt.where(_Job.status == status)
    stmt = stmt.order_by(_Job.day_index.asc().nulls_last(), _Job.target_date.asc(), _Job.created_at.asc())
    async with self._db.session() as session:
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_job(row) for row in rows]

  @wrap_store_errors("list_failed_jobs")
  async def list_failed_jobs(self, limit: int = 50) -> list[QueueJob]:
    stmt = select(_Job).where(_Job.status == QueueStatus.FAILED).order_by(_Job.updated_at.asc()).limit(limit)
    async with self._db.session() as session:
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_job(row) for row in rows]

  @wrap_store_errors("retry_failed")
  async def retry_failed(self, *, owner: QueueOwner | None = None, job_ids: Sequence[str] | None = None) -> int:
    return await self._apply_count(build_retry_failed_statement(owner=owner, job_ids=job_ids))

  @wrap_store_errors("reset_stale_claims")
  async def reset_stale_claims(self, older_than: datetime, *, max_attempts: int) -> list[QueueJob]:
    async with self._db.session() as session:
      rows = (await session.execute(build_expire_stale_claims_statement(older_than, max_attempts))).scalars().all()
      await session.commit()
      return [self._model_to_job(row) for row in rows]

  @wrap_store_errors("cancel_owner")
  async def cancel_owner(self, owner: QueueOwner, reason: str) -> int:
    stmt = update(_Job).where(*_owner_filters(owner), _Job.status == QueueStatus.PENDING).values(status=QueueStatus.SKIPPED, last_error=reason, updated_at=func.now()).execution_options(synchronize_session=False)
    return await self._apply_count(stmt)

  @wrap_store_errors("delete_jobs_for_owner")
  async def delete_jobs_for_owner(self, owner: QueueOwner) -> int:
    return await self._apply_count(delete(_Job).where(*_owner_filters(owner)).execution_options(synchronize_session=False))

  @wrap_store_errors("delete_finished_before")
  async def delete_finished_before(self, cutoff: datetime) -> int:
    return await self._apply_count(build_delete_finished_statement(cutoff))

  async def _apply(self, stmt: Update) -> QueueJob | None:
    async with self._db.session() as session:
      row = (await session.execute(stmt)).scalars().first()
      await session.commit()
      return self._model_to_job(row) if row is not None else None

  async def _apply_count(self, stmt: Update | Delete) -> int:
    async with self._db.session() as session:
      result = await session.execute(stmt)
      await session.commit()
      return max(result.rowcount or 0, 0)

  def _model_to_job(self, row: ScenarioGenerationJob) -> QueueJob:
    return QueueJob(
      id=row.id,
      owner=QueueOwner(kind=row.owner_kind, owner_id=row.owner_id),
      target=QueueTarget.from_key(row.target_key),
      status=QueueStatus(row.status),
      target_date=row.target_date,
      created_at=row.created_at,
      updated_at=row.updated_at,
      attempts=int(row.attempts),
      context=dict(row.context_json or {}),
      last_error=row.last_error,
      result_ref=row.result_ref,
      last_processed_at=row.last_processed_at,
    )
