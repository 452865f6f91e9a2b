"""Cron trigger endpoints exercised through the ASGI app with in-memory stores."""

from __future__ import annotations

from dataclasses import replace

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from scenario_queue import __version__
from scenario_queue.config import get_settings
from scenario_queue.jobs.models import QueueOwner, QueueStatus
from scenario_queue.main import create_app

PATH = QueueOwner.path("p1")
BEARER = {"authorization": "Bearer test-cron-secret"}


@pytest.fixture
def app(settings, runtime) -> FastAPI:
  application = create_app()
  application.dependency_overrides[get_settings] = lambda: settings
  application.state.queue_runtime = runtime
  return application


def _client(app: FastAPI) -> AsyncClient:
  return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.anyio
async def test_health(app) -> None:
  async with _client(app) as ac:
    response = await ac.get("/health")

  assert response.status_code == 200
  assert response.json() == {"status": "ok", "version": __version__}
  assert response.headers["x-request-id"]


@pytest.mark.anyio
async def test_trigger_rejects_missing_credentials(app, queue_store, day_units) -> None:
  await queue_store.enqueue(PATH, day_units(1))

  async with _client(app) as ac:
    response = await ac.post("/api/cron/process-scenarios")

  assert response.status_code == 401
  body = response.json()
  assert (body["success"], body["detail"]) == (False, "Unauthorized")
  assert body["requestId"] == response.headers["x-request-id"]
  assert queue_store.by_target("day:1").status is QueueStatus.PENDING


@pytest.mark.anyio
async def test_trigger_rejects_wrong_secret(app) -> None:
  async with _client(app) as ac:
    response = await ac.post("/api/cron/process-scenarios", headers={"authorization": "Bearer nope", "x-cron-secret": "also-nope"})

  assert response.status_code == 401


@pytest.mark.anyio
async def test_trigger_runs_a_pass(app, queue_store, day_units) -> None:
  await queue_store.enqueue(PATH, day_units(2, 1))

  async with _client(app) as ac:
    response = await ac.post("/api/cron/process-scenarios", json={"limit": 1}, headers=BEARER)

  assert response.status_code == 200
  body = response.json()
  assert body["success"] is True
  data = body["data"]
  assert (data["processed"], data["succeeded"], data["failed"], data["skipped"]) == (1, 1, 0, 0)
  assert data["errors"] == []
  assert data["dryRun"] is False
  assert data["durationMs"] >= 0
  assert data["queue"]["before"]["pending"] == 2
  assert (data["queue"]["after"]["pending"], data["queue"]["after"]["ready"]) == (1, 1)
  assert queue_store.by_target("day:1").status is QueueStatus.READY


@pytest.mark.anyio
async def test_trigger_accepts_cron_secret_header_and_dry_run(app, queue_store, generator, day_units) -> None:
  await queue_store.enqueue(PATH, day_units(1, 2))

  async with _client(app) as ac:
    response = await ac.post("/api/cron/process-scenarios", json={"dryRun": True}, headers={"x-cron-secret": "test-cron-secret"})

  assert response.status_code == 200
  data = response.json()["data"]
  assert (data["processed"], data["succeeded"], data["dryRun"]) == (2, 2, True)
  assert data["queue"]["before"] == data["queue"]["after"]
  assert generator.calls == []


@pytest.mark.anyio
async def test_trigger_caps_the_batch_size(app, queue_store, day_units) -> None:
  await queue_store.enqueue(PATH, day_units(*range(1, 26)))

  async with _client(app) as ac:
    response = await ac.post("/api/cron/process-scenarios", json={"limit": 100}, headers=BEARER)

  assert response.json()["data"]["processed"] == 20


@pytest.mark.anyio
async def test_trigger_reports_job_errors(app, queue_store, generator, day_units) -> None:
  generator.fail_titles.add("Day 2")
  await queue_store.enqueue(PATH, day_units(1, 2))

  async with _client(app) as ac:
    response = await ac.post("/api/cron/process-scenarios", headers=BEARER)

  data = response.json()["data"]
  assert (data["processed"], data["succeeded"], data["failed"]) == (2, 1, 1)
  [error] = data["errors"]
  assert error["jobId"] == queue_store.by_target("day:2").id
  assert (error["ownerId"], error["targetKey"]) == ("p1", "day:2")
  assert "upstream error" in error["error"]


@pytest.mark.anyio
async def test_store_outage_is_a_500_with_request_id(app, queue_store) -> None:
  queue_store.fail_on.add("get_queue_stats")

  async with _client(app) as ac:
    response = await ac.post("/api/cron/process-scenarios", headers=BEARER)

  assert response.status_code == 500
  body = response.json()
  assert (body["success"], body["detail"]) == (False, "Queue processing failed")
  assert body["requestId"]
  assert "Connection exception" not in response.text


@pytest.mark.anyio
async def test_invalid_body_is_a_422(app) -> None:
  async with _client(app) as ac:
    response = await ac.post("/api/cron/process-scenarios", json={"limit": "many"}, headers=BEARER)

  assert response.status_code == 422
  body = response.json()
  assert body["success"] is False
  assert "many" not in response.text


@pytest.mark.anyio
async def test_queue_status_needs_no_credentials(app, queue_store, day_units) -> None:
  await queue_store.enqueue(PATH, day_units(1, 2, 3))

  async with _client(app) as ac:
    response = await ac.get("/api/cron/process-scenarios")

  assert response.status_code == 200
  body = response.json()
  assert (body["success"], body["status"]) == (True, "healthy")
  assert body["queue"]["pending"] == 3
  assert body["queue"]["total"] == 3
  assert body["timestamp"]


@pytest.mark.anyio
async def test_retry_failed_resets_an_owner(app, queue_store, day_units) -> None:
  [job] = await queue_store.enqueue(PATH, day_units(1))
  [other] = await queue_store.enqueue(QueueOwner.path("p2"), day_units(1))
  for stored in list(queue_store.jobs.values()):
    queue_store.jobs[stored.id] = replace(stored, status=QueueStatus.FAILED, attempts=3, last_error="boom")

  async with _client(app) as ac:
    response = await ac.post("/api/cron/retry-failed", json={"ownerKind": "path", "ownerId": "p1"}, headers=BEARER)

  assert response.status_code == 200
  assert response.json() == {"success": True, "data": {"reset": 1}}
  restored = queue_store.jobs[job.id]
  assert (restored.status, restored.attempts, restored.last_error) == (QueueStatus.PENDING, 0, None)
  assert queue_store.status_of(other.id) is QueueStatus.FAILED


@pytest.mark.anyio
async def test_retry_failed_needs_owner_pairs(app) -> None:
  async with _client(app) as ac:
    response = await ac.post("/api/cron/retry-failed", json={"ownerKind": "path"}, headers=BEARER)

  assert response.status_code == 422


@pytest.mark.anyio
async def test_missing_secret_is_allowed_in_development(app, settings) -> None:
  app.dependency_overrides[get_settings] = lambda: replace(settings, cron_secret=None)

  async with _client(app) as ac:
    response = await ac.post("/api/cron/process-scenarios")

  assert response.status_code == 200


@pytest.mark.anyio
async def test_missing_secret_is_forbidden_outside_development(app, settings) -> None:
  app.dependency_overrides[get_settings] = lambda: replace(settings, cron_secret=None, environment="production")

  async with _client(app) as ac:
    response = await ac.post("/api/cron/process-scenarios", headers=BEARER)

  assert response.status_code == 403


@pytest.mark.anyio
async def test_missing_runtime_is_unavailable(settings) -> None:
  app = create_app()
  app.dependency_overrides[get_settings] = lambda: settings

  async with _client(app) as ac:
    response = await ac.get("/api/cron/process-scenarios")

  assert response.status_code == 503
  assert response.json()["success"] is False


@pytest.mark.anyio
async def test_unknown_route_uses_the_error_shape(app) -> None:
  async with _client(app) as ac:
    missing = await ac.get("/api/cron/nope")
    wrong_method = await ac.delete("/api/cron/process-scenarios")

  assert missing.status_code == 404
  assert missing.json() == {"success": False, "detail": "Not Found", "requestId": missing.headers["x-request-id"]}
  assert wrong_method.status_code == 405
  assert wrong_method.json()["success"] is False
  assert "allow" in wrong_method.headers


@pytest.mark.anyio
async def test_trigger_can_target_one_owner(app, queue_store, generator, day_units) -> None:
  await queue_store.enqueue(QueueOwner.path("p2"), day_units(1))
  await queue_store.enqueue(PATH, day_units(2, 3))

  async with _client(app) as ac:
    response = await ac.post("/api/cron/process-scenarios", json={"ownerKind": "path", "ownerId": "p1", "limit": 10}, headers=BEARER)

  assert response.status_code == 200
  assert response.json()["data"]["succeeded"] == 2
  assert sorted(generator.titles) == ["Day 2", "Day 3"]


@pytest.mark.anyio
async def test_owner_status(app, queue_store, day_units) -> None:
  await queue_store.enqueue(PATH, day_units(1, 2))

  async with _client(app) as ac:
    await ac.post("/api/cron/process-scenarios", json={"limit": 1}, headers=BEARER)
    response = await ac.get("/api/cron/owners/path/p1", headers=BEARER)
    unauthorized = await ac.get("/api/cron/owners/path/p1")
    bad_kind = await ac.get("/api/cron/owners/course/p1", headers=BEARER)

  assert response.status_code == 200
  data = response.json()["data"]
  assert (data["ownerKind"], data["ownerId"]) == ("path", "p1")
  assert (data["counts"]["ready"], data["counts"]["pending"]) == (1, 1)
  assert (data["isComplete"], data["hasFailures"], data["needsGeneration"]) == (False, False, True)
  assert [job["targetKey"] for job in data["jobs"]] == ["day:1", "day:2"]
  assert unauthorized.status_code == 401
  assert bad_kind.status_code == 422
