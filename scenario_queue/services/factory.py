"""Factory helpers wiring the queue components together."""

from __future__ import annotations

from dataclasses import dataclass

from scenario_queue.ai.contracts import ScenarioGenerator
from scenario_queue.ai.generator import build_generator
from scenario_queue.config import Settings
from scenario_queue.core.database import Database
from scenario_queue.jobs.events import QueueEvents
from scenario_queue.jobs.executor import JobExecutor
from scenario_queue.jobs.processor import QueueProcessor
from scenario_queue.storage.postgres_queue_repo import PostgresQueueStore
from scenario_queue.storage.queue_repo import QueueStore
from scenario_queue.storage.scenarios_repo import PostgresScenarioStore, ScenarioStore


@dataclass(frozen=True)
class QueueRuntime:
  """Everything a trigger needs to run passes, built once per process."""

  queue_store: QueueStore
  scenario_store: ScenarioStore
  generator: ScenarioGenerator
  events: QueueEvents
  executor: JobExecutor
  processor: QueueProcessor


def build_queue_runtime(
  settings: Settings,
  *,
  queue_store: QueueStore,
  scenario_store: ScenarioStore,
  generator: ScenarioGenerator | None = None,
  events: QueueEvents | None = None,
) -> QueueRuntime:
  """Assemble executor and processor around the given stores."""
  effective_generator = generator if generator is not None else build_generator(settings)
  effective_events = events if events is not None else QueueEvents()
  executor = JobExecutor.from_settings(settings, queue_store=queue_store, scenario_store=scenario_store, generator=effective_generator, events=effective_events)
  processor = QueueProcessor.from_settings(settings, queue_store=queue_store, executor=executor, events=effective_events)
  return QueueRuntime(queue_store=queue_store, scenario_store=scenario_store, generator=effective_generator, events=effective_events, executor=executor, processor=processor)


def build_postgres_runtime(settings: Settings, database: Database, *, generator: ScenarioGenerator | None = None) -> QueueRuntime:
  """Runtime backed by Postgres stores sharing one open Database handle."""
  return build_queue_runtime(settings, queue_store=PostgresQueueStore(database), scenario_store=PostgresScenarioStore(database), generator=generator)
