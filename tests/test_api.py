"""Tests for the FastAPI routes."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from pulseboard.api.server import create_app
from pulseboard.catalog.models import Incident, IncidentImpact, IncidentType, LifecycleStatus, ServiceGroup
from pulseboard.catalog.store import StatusStore
from pulseboard.health.scheduler import HealthScheduler
from pulseboard.health.status import ProbeResult, ProbeStatus, Status
from pulseboard.notifications import NotificationManager
from tests.conftest import ScriptedProbe, make_service


@pytest.fixture
def scheduler(store: StatusStore, notifier: NotificationManager, probe: ScriptedProbe) -> HealthScheduler:
    return HealthScheduler(store, notifier, probe, failure_threshold=3)


@pytest.fixture
def client(store: StatusStore, notifier: NotificationManager, scheduler: HealthScheduler) -> TestClient:
    app = create_app()
    app.state.status_store = store
    app.state.notifier = notifier
    app.state.health_scheduler = scheduler
    return TestClient(app)


@pytest.fixture
def seeded(store: StatusStore) -> StatusStore:
    store.upsert_group(ServiceGroup(id="core", name="Core", display_order=1))
    store.upsert_service(make_service("api", group_id="core", display_order=1))
    store.upsert_service(make_service("db", group_id="core", display_order=2, status=Status.DEGRADED))
    store.upsert_service(make_service("cdn", enabled=False))
    store.upsert_service(make_service("internal", is_monitored_publicly=False, status=Status.MAJOR_OUTAGE))
    return store


class TestStatusRoutes:
    def test_empty(self, client: TestClient) -> None:
        resp = client.get("/api/status")
        assert resp.status_code == 200
        data = resp.json()
        assert data["overall_status"] == {
            "level": "operational",
            "message": "No services are currently monitored.",
        }
        assert data["service_groups"] == []
        assert "generated_at" in data

    def test_document(self, client: TestClient, seeded: StatusStore) -> None:
        data = client.get("/api/status").json()
        assert data["overall_status"]["level"] == "degraded"
        assert data["service_groups"][0]["id"] == "core"
        assert data["service_groups"][0]["status"] == "degraded"
        assert [s["id"] for s in data["ungrouped_services"]] == ["cdn"]
        all_ids = [s["id"] for g in data["service_groups"] for s in g["services"]]
        assert "internal" not in all_ids

    def test_overall_with_incident(self, client: TestClient, seeded: StatusStore) -> None:
        seeded.upsert_incident(Incident(
            id="inc-1", type=IncidentType.INCIDENT, impact=IncidentImpact.CRITICAL,
            lifecycle_status=LifecycleStatus.INVESTIGATING, affected_service_ids=frozenset({"cdn"}),
        ))
        resp = client.get("/api/status/overall")
        assert resp.json() == {
            "level": "major_outage",
            "message": "Major service outage impacting multiple systems.",
        }

    def test_service(self, client: TestClient, seeded: StatusStore) -> None:
        data = client.get("/api/status/services/db").json()
        assert data["status"] == "degraded"
        assert data["uptime_24h"] == 100.0

    def test_service_not_found(self, client: TestClient) -> None:
        assert client.get("/api/status/services/nope").status_code == 404

    def test_group(self, client: TestClient, seeded: StatusStore) -> None:
        data = client.get("/api/status/groups/core").json()
        assert data["status"] == "degraded"
        assert [s["id"] for s in data["services"]] == ["api", "db"]

    def test_group_not_found(self, client: TestClient) -> None:
        assert client.get("/api/status/groups/nope").status_code == 404

    def test_history(self, client: TestClient, seeded: StatusStore) -> None:
        seeded.update_service_status("api", Status.OPERATIONAL, ProbeResult(status=ProbeStatus.ONLINE))
        seeded.update_service_status("api", Status.OPERATIONAL, ProbeResult(status=ProbeStatus.OFFLINE))
        data = client.get("/api/services/api/history").json()
        assert data["uptime_24h"] == 50.0
        assert len(data["history"]) == 2

    def test_history_not_found(self, client: TestClient) -> None:
        assert client.get("/api/services/nope/history").status_code == 404


class TestSchedulerRoutes:
    def test_state(self, client: TestClient, seeded: StatusStore, scheduler: HealthScheduler) -> None:
        asyncio.run(scheduler.tick("api"))
        data = client.get("/api/scheduler").json()
        assert data["running"] is False
        assert data["failure_threshold"] == 3
        assert [e["service_id"] for e in data["entries"]] == ["api"]
        assert data["entries"][0]["consecutive_failures"] == 0

    def test_refresh_drops_ineligible(
        self, client: TestClient, seeded: StatusStore, scheduler: HealthScheduler,
    ) -> None:
        asyncio.run(scheduler.tick("api"))
        seeded.delete_service("api")
        resp = client.post("/api/scheduler/refresh")
        assert resp.status_code == 200
        assert resp.json() == {"started": [], "stopped": ["api"]}
        assert scheduler.get_entry("api") is None


class TestMiscRoutes:
    def test_notifications(self, client: TestClient, seeded: StatusStore, scheduler: HealthScheduler) -> None:
        scheduler.probe = ScriptedProbe([ProbeStatus.OFFLINE])
        for _ in range(3):
            asyncio.run(scheduler.tick("api"))
        data = client.get("/api/notifications").json()
        assert data["channels"]["slack_configured"] is False
        assert [n["title"] for n in data["notifications"]] == ["Service Down"]
        assert data["notifications"][0]["message"] == "API is unreachable after multiple attempts."

    def test_probe(self, client: TestClient) -> None:
        result = ProbeResult(status=ProbeStatus.SLOW, status_code=200, response_time_ms=812.0)

        async def fake_probe(url, timeout_ms=None):
            return result

        with patch("pulseboard.api.status_routes.probe_url", side_effect=fake_probe):
            resp = client.post("/api/probe", json={"url": "https://x.example.com"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "slow"
        assert resp.json()["response_time_ms"] == 812.0

    def test_probe_requires_url(self, client: TestClient) -> None:
        assert client.post("/api/probe", json={}).status_code == 422
