"""Persistence of generated scenarios."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from sqlalchemy.dialects.postgresql import Insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import DBAPIError

from scenario_queue.ai.contracts import GenerationContext, ScenarioDraft, difficulty_rating, map_cefr_to_difficulty
from scenario_queue.core.database import Database
from scenario_queue.jobs.errors import ScenarioPersistenceError
from scenario_queue.jobs.models import OwnerKind, QueueJob
from scenario_queue.schema.scenarios import Scenario
from scenario_queue.utils.ids import generate_scenario_id

logger = logging.getLogger(__name__)

SCENARIO_CATEGORIES: tuple[str, ...] = ("learning-path", "custom")


class ScenarioStore(Protocol):
  """Collaborator that keeps generated scenarios and hands back their id."""

  async def save(self, job: QueueJob, context: GenerationContext, draft: ScenarioDraft) -> str:
    """Persist the draft produced for a job; saving twice for one job returns the same id."""


def scenario_tags(job: QueueJob) -> list[str]:
  """Tags linking a scenario to its curriculum owner and target."""
  owner_tag = f"path:{job.owner.owner_id}" if job.owner.kind is OwnerKind.PATH else f"week:{job.owner.owner_id}"
  return [owner_tag, job.target.key]


def _search_keywords(context: GenerationContext, draft: ScenarioDraft) -> list[str]:
  words = [context.theme, context.title, draft.title, *context.vocabulary_hints]
  seen: dict[str, None] = {}
  for word in words:
    normalized = word.strip().lower()
    if normalized:
      seen.setdefault(normalized, None)
  return list(seen)


def build_scenario_row(job: QueueJob, context: GenerationContext, draft: ScenarioDraft) -> dict[str, Any]:
  """Flatten a draft and its brief into a `scenarios` row."""
  cefr = draft.cefr_level or context.difficulty
  return {
    "id": generate_scenario_id(),
    "source_job_id": job.id,
    "title": draft.title,
    "description": draft.description,
    "role": "tutor",
    "language_id": context.language_target,
    "difficulty": draft.difficulty or map_cefr_to_difficulty(cefr),
    "difficulty_rating": difficulty_rating(cefr),
    "cefr_level": cefr,
    "cefr_recommendation": context.difficulty_ceiling,
    "learning_goal": draft.learning_goal,
    "instructions": draft.instructions,
    "context": draft.context,
    "expected_outcome": draft.expected_outcome,
    "learning_objectives": list(draft.learning_objectives or context.learning_objectives),
    "persona": draft.persona,
    "categories": list(SCENARIO_CATEGORIES),
    "tags": scenario_tags(job),
    "search_keywords": _search_keywords(context, draft),
    "is_active": True,
  }


def build_save_statement(row: dict[str, Any]) -> Insert:
  """Upsert keyed on source_job_id; the original scenario id survives a repeat save."""
  stmt = pg_insert(Scenario).values(**row)
  updatable = {key: stmt.excluded[key] for key in row if key not in {"id", "source_job_id"}}
  return stmt.on_conflict_do_update(index_elements=[Scenario.source_job_id], set_=updatable).returning(Scenario.id)


class PostgresScenarioStore(ScenarioStore):
  """Persist scenarios to Postgres using SQLAlchemy."""

  def __init__(self, database: Database) -> None:
    self._db = database

  async def save(self, job: QueueJob, context: GenerationContext, draft: ScenarioDraft) -> str:
    row = build_scenario_row(job, context, draft)
    try:
      async with self._db.session() as session:
        scenario_id = (await session.execute(build_save_statement(row))).scalar_one()
        await session.commit()
    except DBAPIError as exc:
      raise ScenarioPersistenceError(f"Saving scenario for job {job.id} failed: {type(exc).__name__}") from exc
    logger.info("Saved scenario id=%s job_id=%s language=%s", scenario_id, job.id, context.language_target)
    return str(scenario_id)
