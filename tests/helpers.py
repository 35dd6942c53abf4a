"""Test helper functions for notesync tests.

This module provides deterministic record IDs, timestamps, a controllable
clock, scripted RemoteClient doubles and a live sync server handle.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence

import requests
from werkzeug.serving import BaseWSGIServer

from notesync.core.authority import RemoteAuthority
from notesync.core.models import Record
from notesync.core.remote import RemoteClient, TransportError

# Pre-generated IDs for consistent test data
NOTE_IDS = {
    1: uuid.UUID("00000000-0000-7000-8000-000000000201").hex,
    2: uuid.UUID("00000000-0000-7000-8000-000000000202").hex,
    3: uuid.UUID("00000000-0000-7000-8000-000000000203").hex,
    4: uuid.UUID("00000000-0000-7000-8000-000000000204").hex,
}

BASE_TIME = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def ts(seconds: float) -> datetime:
    """Timestamp `seconds` after BASE_TIME."""
    return BASE_TIME + timedelta(seconds=seconds)


def make_record(
    key: int = 1,
    title: str = "Note",
    at: float = 0,
    **fields: object,
) -> Record:
    """Build a Record for NOTE_IDS[key] modified at ts(at)."""
    return Record(id=NOTE_IDS[key], title=title, last_modified_at=ts(at), **fields)


class FakeClock:
    """Controllable clock returning BASE_TIME plus an offset."""

    def __init__(self, start: datetime = BASE_TIME) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1.0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class ScriptedRemote(RemoteClient):
    """RemoteClient double that fails a number of times before delegating.

    Attributes:
        calls: Batches passed to batch_sync, in call order
    """

    def __init__(
        self,
        delegate: Optional[RemoteClient] = None,
        failures: int = 0,
        error_factory: Callable[[], Exception] = lambda: TransportError("connection refused"),
    ) -> None:
        self.delegate = delegate
        self.failures = failures
        self.error_factory = error_factory
        self.calls: List[List[Record]] = []
        self.before_return: Optional[Callable[[], None]] = None
        self._lock = threading.Lock()

    def batch_sync(self, records: Sequence[Record]) -> List[Record]:
        with self._lock:
            self.calls.append(list(records))
            if self.failures > 0:
                self.failures -= 1
                raise self.error_factory()
        resolved = self.delegate.batch_sync(records) if self.delegate else list(records)
        if self.before_return is not None:
            self.before_return()
        return resolved

    def fetch_all(self) -> List[Record]:
        if self.delegate is None:
            return []
        return self.delegate.fetch_all()

    def close(self) -> None:
        if self.delegate is not None:
            self.delegate.close()


@dataclass
class SyncServer:
    """A sync server running on a background thread."""

    authority: RemoteAuthority
    server: BaseWSGIServer
    thread: threading.Thread

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.server.server_port}"

    def is_server_running(self) -> bool:
        """Check if the sync server is responding."""
        try:
            resp = requests.get(f"{self.url}/sync/status", timeout=1)
            return resp.status_code == 200
        except requests.exceptions.RequestException:
            return False

    def wait_for_server(self, timeout: float = 10.0) -> bool:
        """Wait for server to become available."""
        start = time.time()
        while time.time() - start < timeout:
            if self.is_server_running():
                return True
            time.sleep(0.1)
        return False

    def stop_server(self) -> None:
        self.server.shutdown()
        self.server.server_close()
        self.thread.join(timeout=5)
