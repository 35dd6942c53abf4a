"""Pytest fixtures for web API tests.

Provides a Flask test client over a fresh local store that syncs against an
in-process authority.
"""

from __future__ import annotations

from pathlib import Path
from typing import Generator

import pytest
from flask import Flask
from flask.testing import FlaskClient

from notesync.core.database import LocalStore
from notesync.core.sync_engine import SyncEngine
from notesync.web import create_app


@pytest.fixture
def remote_db(tmp_path: Path) -> Path:
    """Authority database the web app syncs against."""
    return tmp_path / "remote" / "authority.db"


@pytest.fixture
def web_app(test_config_dir: Path, remote_db: Path) -> Generator[Flask, None, None]:
    """Create Flask app for testing.

    Yields:
        Flask application instance
    """
    app = create_app(config_dir=test_config_dir, local_remote_db=remote_db)
    app.config["TESTING"] = True
    yield app
    engine: SyncEngine = app.extensions["notesync_engine"]
    engine.remote.close()
    app.extensions["notesync_store"].close()


@pytest.fixture
def client(web_app: Flask) -> FlaskClient:
    """Create Flask test client."""
    return web_app.test_client()


@pytest.fixture
def web_store(web_app: Flask) -> LocalStore:
    """The LocalStore behind the web app."""
    return web_app.extensions["notesync_store"]


@pytest.fixture
def web_engine(web_app: Flask) -> SyncEngine:
    """The SyncEngine behind the web app."""
    return web_app.extensions["notesync_engine"]
