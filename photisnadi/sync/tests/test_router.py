"""Tests for the HTTP surface around the sync engine."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from photisnadi.main import create_app
from photisnadi.sync.codecs import encode_task
from photisnadi.sync.engine import SyncEngine
from photisnadi.sync.tests.conftest import TEST_USER_ID, make_task


@pytest.fixture
def client(make_engine):
    app = create_app(engine=make_engine())
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:
    def test_health_reports_initialized_engine(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["engine"] == "initialized"

    def test_health_degraded_when_engine_failed(
        self, settings, local_store, sync_config, recording_sleep
    ) -> None:
        remote = AsyncMock()
        remote.connect.side_effect = OSError("connection refused")
        engine = SyncEngine(
            settings, remote=remote, store=local_store, sync_config=sync_config, sleep=recording_sleep
        )
        with TestClient(create_app(engine=engine)) as client:
            assert client.get("/health").json()["status"] == "degraded"
            assert client.post("/api/v1/sync").json() == {"success": False}

    def test_refused_listen_connection_does_not_block_startup(
        self, make_engine, fake_remote, settings, monkeypatch
    ) -> None:
        realtime_settings = settings.model_copy(update={"realtime_enabled": True})
        monkeypatch.setattr("photisnadi.main.get_settings", lambda: realtime_settings)
        fake_remote.failing_channels.add(f"projects_changes_{TEST_USER_ID}")

        with TestClient(create_app(engine=make_engine())) as client:
            assert client.get("/health").json()["status"] == "healthy"
            started = client.post("/api/v1/sync/realtime/start")
            assert started.status_code == 200
            assert started.json() == {"realtime": False, "channels": []}

    def test_engine_missing_without_lifespan(self, make_engine) -> None:
        client = TestClient(create_app(engine=make_engine()))
        assert client.get("/health").status_code == 503


class TestSyncRoutes:
    def test_sync_all(self, client: TestClient, fake_remote) -> None:
        fake_remote.seed("tasks", encode_task(make_task("a"), TEST_USER_ID))

        response = client.post("/api/v1/sync")

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert fake_remote.fetch_calls["projects"] == 1

    def test_sync_all_reports_failure(self, client: TestClient, fake_remote) -> None:
        fake_remote.fetch_failures["rituals"] = 3
        assert client.post("/api/v1/sync").json() == {"success": False}

    def test_sync_one_collection(self, client: TestClient, fake_remote) -> None:
        response = client.post("/api/v1/sync/tasks")

        assert response.json() == {"collection": "tasks", "success": True}
        assert fake_remote.fetch_calls["tasks"] == 1
        assert fake_remote.fetch_calls["projects"] == 0

    def test_unknown_collection_is_404(self, client: TestClient) -> None:
        assert client.post("/api/v1/sync/notes").status_code == 404

    def test_realtime_toggle_and_status(self, client: TestClient) -> None:
        stopped = client.post("/api/v1/sync/realtime/stop").json()
        assert stopped == {"realtime": False, "channels": []}

        started = client.post("/api/v1/sync/realtime/start").json()
        assert started["realtime"] is True
        assert f"tasks_changes_{TEST_USER_ID}" in started["channels"]

        status = client.get("/api/v1/sync/status").json()
        assert status["initialized"] is True
        assert status["realtime"] is True
        assert status["collections"] == ["projects", "tasks", "rituals"]
