import pytest
from httpx import ASGITransport, AsyncClient

from backend.app import create_app
from backend.app.core.config_core import get_settings
from backend.app.services.scheduler_service import SchedulerService

from conftest import settle


@pytest.fixture
async def app_scheduler(settings, clock, sleeper, callbacks):
    return SchedulerService(callbacks=callbacks, settings=settings, clock=clock, sleep=sleeper)


@pytest.fixture
async def client(app_scheduler):
    app = create_app(scheduler=app_scheduler)
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers.get("x-request-id")


@pytest.mark.asyncio
async def test_request_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["x-request-id"] == "req-123"


@pytest.mark.asyncio
async def test_status_lists_all_jobs(client):
    response = await client.get("/admin/scheduler")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert set(body["data"]) == {"draw", "notifications", "cleanup"}
    draw = body["data"]["draw"]
    assert draw["name"] == "Prize Draw"
    assert draw["description"] == "Runs scheduled prize draws"
    assert draw["schedule"] == "0 0 * * *"
    assert draw["enabled"] is False
    assert draw["nextRun"] is None
    assert draw["lastRun"] is None


@pytest.mark.asyncio
async def test_enable_job(client, sleeper):
    response = await client.put("/admin/scheduler/draw", json={"enabled": True})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Job draw enabled"
    assert set(body["data"]) == {"name", "enabled", "schedule", "nextRun", "lastRun"}
    assert body["data"]["enabled"] is True
    assert body["data"]["nextRun"] == "2026-03-03T00:00:00+00:00"
    assert body["data"]["lastRun"] is None

    again = await client.put("/admin/scheduler/draw", json={"enabled": True})
    await settle()
    assert again.json()["data"]["nextRun"] == "2026-03-03T00:00:00+00:00"
    assert len(sleeper.pending) == 1


@pytest.mark.asyncio
async def test_disable_job(client, sleeper):
    await client.put("/admin/scheduler/cleanup", json={"enabled": True})

    response = await client.put("/admin/scheduler/cleanup", json={"enabled": False})
    await settle()

    body = response.json()
    assert response.status_code == 200
    assert body["message"] == "Job cleanup disabled"
    assert body["data"]["enabled"] is False
    assert body["data"]["nextRun"] is None
    assert sleeper.pending == []


@pytest.mark.asyncio
async def test_unknown_job_is_404(client):
    response = await client.put("/admin/scheduler/unknown", json={"enabled": True})

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Job not found"


@pytest.mark.asyncio
async def test_toggle_requires_enabled_flag(client):
    response = await client.put("/admin/scheduler/draw", json={})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_manual_run(client, callbacks):
    response = await client.post("/admin/scheduler/cleanup/run")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["ran"] is True
    assert body["data"]["status"]["runs"] == 1
    assert body["data"]["status"]["lastRun"] == "2026-03-02T10:30:00+00:00"
    assert callbacks["cleanup"].calls == 1


@pytest.mark.asyncio
async def test_manual_run_unknown_job(client):
    response = await client.post("/admin/scheduler/unknown/run")

    assert response.status_code == 404
    assert response.json()["message"] == "Job not found"


@pytest.mark.asyncio
async def test_admin_key_is_enforced_when_configured(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "ADMIN_API_KEY", "s3cret")

    denied = await client.get("/admin/scheduler")
    assert denied.status_code == 401
    assert denied.json()["success"] is False
    assert denied.json()["message"] == "Admin API key required"

    allowed = await client.get("/admin/scheduler", headers={"X-Admin-Api-Key": "s3cret"})
    assert allowed.status_code == 200


@pytest.mark.asyncio
async def test_shutdown_clears_scheduler(app_scheduler):
    app = create_app(scheduler=app_scheduler)
    async with app.router.lifespan_context(app):
        assert app_scheduler.initialized is True

    assert app_scheduler.initialized is False


@pytest.mark.asyncio
async def test_database_health(client):
    response = await client.get("/health/db")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
