"""Web API tests for sync endpoints."""

from __future__ import annotations

import pytest
from flask.testing import FlaskClient

from notesync.core.connectivity import ManualConnectivityMonitor
from notesync.core.database import LocalStore
from notesync.core.remote import TransportError
from notesync.core.sync_engine import SyncEngine

from helpers import ScriptedRemote


@pytest.mark.web
class TestSyncStatus:
    """Test GET /api/sync/status."""

    def test_initial_status(self, client: FlaskClient) -> None:
        response = client.get("/api/sync/status")

        assert response.status_code == 200
        status = response.get_json()
        assert status["is_online"] is True
        assert status["pending_count"] == 0
        assert status["status_text"] == "Idle"

    def test_pending_count_follows_edits(self, client: FlaskClient) -> None:
        client.post("/api/notes", json={"title": "A"})
        client.post("/api/notes", json={"title": "B"})

        status = client.get("/api/sync/status").get_json()

        assert status["pending_count"] == 2
        assert status["status_text"] == "2 pending"


@pytest.mark.web
class TestSyncNow:
    """Test POST /api/sync/now."""

    def test_sync_now(self, client: FlaskClient, web_store: LocalStore) -> None:
        note = client.post("/api/notes", json={"title": "A"}).get_json()

        response = client.post("/api/sync/now")

        assert response.status_code == 200
        body = response.get_json()
        assert body["success"] is True
        assert body["sent"] == 1
        assert body["status"]["pending_count"] == 0
        assert body["status"]["status_text"] == "Synced"
        assert web_store.get(note["id"]).is_synced is True

    def test_offline_sync_skipped(
        self, client: FlaskClient, web_engine: SyncEngine
    ) -> None:
        assert isinstance(web_engine.monitor, ManualConnectivityMonitor)
        web_engine.monitor.set_online(False)
        client.post("/api/notes", json={"title": "A"})

        response = client.post("/api/sync/now")

        assert response.status_code == 200
        body = response.get_json()
        assert body["skipped"] is True
        assert body["status"]["status_text"] == "Offline - 1 pending"
        assert body["status"]["pending_count"] == 1

    def test_failed_sync_returns_502(
        self, client: FlaskClient, web_engine: SyncEngine
    ) -> None:
        web_engine.remote = ScriptedRemote(
            web_engine.remote,
            failures=100,
            error_factory=lambda: TransportError("connection refused"),
        )
        web_engine._sleep = lambda delay: None
        client.post("/api/notes", json={"title": "A"})

        response = client.post("/api/sync/now")

        assert response.status_code == 502
        body = response.get_json()
        assert body["success"] is False
        assert body["attempts"] == 4
        assert body["error"] == "Sync failed after 3 attempts."
        assert body["status"]["pending_count"] == 1
