"""Pytest fixtures for sync protocol tests.

This module provides fixtures for:
- A Flask test client for the sync server
- A live threaded sync server on a free local port
"""

from __future__ import annotations

import threading
from typing import Generator

import pytest
from flask import Flask
from flask.testing import FlaskClient
from werkzeug.serving import make_server

from notesync.core.authority import RemoteAuthority
from notesync.core.sync import create_sync_server

from helpers import SyncServer


@pytest.fixture
def sync_app(authority: RemoteAuthority) -> Flask:
    """Sync server app backed by the in-memory authority."""
    app = create_sync_server(authority)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def sync_client(sync_app: Flask) -> FlaskClient:
    """Flask test client for the sync server."""
    return sync_app.test_client()


@pytest.fixture
def running_server(authority: RemoteAuthority) -> Generator[SyncServer, None, None]:
    """Sync server listening on a free local port."""
    server = make_server("127.0.0.1", 0, create_sync_server(authority), threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    node = SyncServer(authority=authority, server=server, thread=thread)
    if not node.wait_for_server():
        pytest.fail("Failed to start sync server")
    yield node
    node.stop_server()
