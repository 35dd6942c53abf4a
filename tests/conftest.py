"""Pytest fixtures for notesync tests.

This module provides fixtures for test configuration, the local store, the
remote authority and a sync engine wired to them.
"""

from __future__ import annotations

from pathlib import Path
from typing import Generator, List

import pytest

from notesync.core.authority import RemoteAuthority
from notesync.core.config import Config
from notesync.core.connectivity import ManualConnectivityMonitor
from notesync.core.database import LocalStore
from notesync.core.remote import LocalRemoteClient
from notesync.core.sync_engine import SyncEngine

from helpers import FakeClock, ScriptedRemote


@pytest.fixture
def test_config_dir(tmp_path: Path) -> Path:
    """Create temporary config directory for tests.

    Args:
        tmp_path: pytest temporary directory fixture

    Returns:
        Path to temporary config directory.
    """
    config_dir = tmp_path / "notesync_test"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


@pytest.fixture
def test_config(test_config_dir: Path) -> Config:
    """Create test configuration."""
    return Config(config_dir=test_config_dir)


@pytest.fixture
def test_db_path(test_config_dir: Path) -> Path:
    """Get path for test database."""
    return test_config_dir / "test_notes.db"


@pytest.fixture
def clock() -> FakeClock:
    """Controllable clock shared by the store and the engine."""
    return FakeClock()


@pytest.fixture
def store(test_db_path: Path, clock: FakeClock) -> Generator[LocalStore, None, None]:
    """Create an empty local store driven by the fake clock.

    Yields:
        Empty LocalStore instance.
    """
    local_store = LocalStore(test_db_path, clock=clock)
    yield local_store
    local_store.close()


@pytest.fixture
def authority() -> Generator[RemoteAuthority, None, None]:
    """Create an in-memory remote authority."""
    remote_authority = RemoteAuthority(":memory:")
    yield remote_authority
    remote_authority.close()


@pytest.fixture
def monitor() -> ManualConnectivityMonitor:
    """Connectivity monitor that starts online."""
    return ManualConnectivityMonitor(online=True)


@pytest.fixture
def remote(authority: RemoteAuthority) -> ScriptedRemote:
    """Scripted remote delegating to the in-memory authority."""
    return ScriptedRemote(LocalRemoteClient(authority))


@pytest.fixture
def sleeps() -> List[float]:
    """Backoff delays requested by the engine."""
    return []


@pytest.fixture
def engine(
    store: LocalStore,
    remote: ScriptedRemote,
    monitor: ManualConnectivityMonitor,
    sleeps: List[float],
    clock: FakeClock,
) -> Generator[SyncEngine, None, None]:
    """Create a sync engine whose backoff waits are recorded, not slept."""
    sync_engine = SyncEngine(store, remote, monitor, sleep=sleeps.append, clock=clock)
    yield sync_engine
    sync_engine.stop()
