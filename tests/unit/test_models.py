from __future__ import annotations

from datetime import UTC, datetime

import pytest

from scenario_queue.jobs.models import ExecutionOutcome, ProcessingResult, QueueJob, QueueOwner, QueueStats, QueueStatus, QueueTarget

NOW = datetime(2026, 3, 2, tzinfo=UTC)


def _job(job_id: str, target: QueueTarget) -> QueueJob:
  return QueueJob(id=job_id, owner=QueueOwner.path("p1"), target=target, status=QueueStatus.PENDING, target_date=NOW, created_at=NOW, updated_at=NOW)


def test_target_needs_exactly_one_identifier() -> None:
  with pytest.raises(ValueError):
    QueueTarget()
  with pytest.raises(ValueError):
    QueueTarget(day_index=1, seed_id="s1")


def test_day_index_is_one_based() -> None:
  with pytest.raises(ValueError):
    QueueTarget.day(0)


@pytest.mark.parametrize(
  ("key", "expected"),
  [
    ("day:3", QueueTarget.day(3)),
    ("seed:greeting-1", QueueTarget.seed("greeting-1")),
  ],
)
def test_target_key_round_trips(key: str, expected: QueueTarget) -> None:
  target = QueueTarget.from_key(key)

  assert target == expected
  assert target.key == key


@pytest.mark.parametrize("key", ["week:1", "seed:", "day"])
def test_malformed_target_key_is_rejected(key: str) -> None:
  with pytest.raises(ValueError):
    QueueTarget.from_key(key)


def test_only_ready_and_skipped_are_terminal() -> None:
  assert {status for status in QueueStatus if status.is_terminal} == {QueueStatus.READY, QueueStatus.SKIPPED}


def test_stats_include_total() -> None:
  stats = QueueStats(pending=2, in_progress=1, ready=4, failed=1)

  assert stats.to_dict() == {"pending": 2, "in_progress": 1, "ready": 4, "failed": 1, "skipped": 0, "total": 8}


def test_processing_result_folds_outcomes() -> None:
  result = ProcessingResult()
  outcomes = [
    ("a", ExecutionOutcome(job_id="a", status="ready", scenario_id="custom-1")),
    ("b", ExecutionOutcome(job_id="b", status="retry", error="Scenario generation request failed: 503")),
    ("c", ExecutionOutcome(job_id="c", status="failed", error="Invalid generation context: 1 validation error(s)")),
    ("d", ExecutionOutcome(job_id="d", status="skipped")),
  ]

  for index, (job_id, outcome) in enumerate(outcomes, start=1):
    result.record(_job(job_id, QueueTarget.day(index)), outcome)

  assert (result.processed, result.succeeded, result.failed, result.skipped) == (4, 1, 2, 1)
  assert [(error.job_id, error.owner_id, error.target_key) for error in result.errors] == [("b", "p1", "day:2"), ("c", "p1", "day:3")]
  summary = result.summary()
  assert summary["errors"][0]["error"] == "Scenario generation request failed: 503"
  assert summary["dry_run"] is False
