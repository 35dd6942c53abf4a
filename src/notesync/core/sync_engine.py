"""Sync orchestration for notesync.

The SyncEngine decides when to sync and what to send. It reads the pending
queue from the LocalStore, collapses it, proposes the result to the remote
authority, merges the resolved records back and marks what was accepted as
synced. Remote failures are retried with exponential backoff; the local
store stays usable throughout.

Exactly one sync runs at a time. A trigger that arrives while a sync is in
flight is dropped; the running sync or the next trigger picks up whatever
changed in the meantime.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union
from urllib.parse import urlsplit

from .authority import RemoteAuthority
from .collapse import collapse
from .config import Config
from .connectivity import (
    ConnectivityMonitor,
    ManualConnectivityMonitor,
    SocketConnectivityMonitor,
)
from .database import DEFAULT_TOMBSTONE_RETENTION, LocalStore
from .models import Record
from .remote import LocalRemoteClient, RemoteClient, RemoteError
from .sync_client import HttpRemoteClient
from .timestamp_utils import to_iso, utc_now

logger = logging.getLogger(__name__)

__all__ = ["SyncEngine", "SyncState", "SyncStatus", "SyncResult", "build_sync_engine"]

DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 2.0


class SyncState(Enum):
    IDLE = "idle"
    SYNCING = "syncing"


@dataclass(frozen=True)
class SyncStatus:
    """Snapshot of the engine state published to the presentation layer.

    Attributes:
        is_online: Last observed connectivity
        is_syncing: True while a sync is in flight
        last_sync_at: When the last successful sync finished
        pending_count: Number of records waiting to be synced
        last_error: Error text from the last failed attempt, if any
        retry_count: Failed attempts since the last success
    """

    is_online: bool
    is_syncing: bool
    last_sync_at: Optional[datetime]
    pending_count: int
    last_error: Optional[str]
    retry_count: int

    @property
    def status_text(self) -> str:
        if self.is_syncing:
            return "Syncing..."
        if self.last_error:
            return self.last_error
        if not self.is_online:
            return f"Offline - {self.pending_count} pending"
        if self.pending_count:
            return f"{self.pending_count} pending"
        if self.last_sync_at is not None:
            return "Synced"
        return "Idle"

    def to_dict(self) -> Dict[str, object]:
        return {
            "is_online": self.is_online,
            "is_syncing": self.is_syncing,
            "last_sync_at": to_iso(self.last_sync_at),
            "pending_count": self.pending_count,
            "last_error": self.last_error,
            "retry_count": self.retry_count,
            "status_text": self.status_text,
        }


@dataclass
class SyncResult:
    """Result of a sync_now() or full_refresh() call."""

    success: bool
    skipped: bool = False  # Offline or another sync in flight
    sent: int = 0  # Records proposed to the remote
    received: int = 0  # Resolved records merged locally
    attempts: int = 0
    error: Optional[str] = None


StatusListener = Callable[[SyncStatus], None]


class SyncEngine:
    """Single logical sync actor over a store, a remote and a monitor.

    Attributes:
        store: LocalStore holding the local copy
        remote: RemoteClient for the remote authority
        monitor: ConnectivityMonitor reporting reachability
    """

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteClient,
        monitor: ConnectivityMonitor,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        tombstone_retention: timedelta = DEFAULT_TOMBSTONE_RETENTION,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the engine.

        Args:
            store: LocalStore instance
            remote: RemoteClient instance
            monitor: ConnectivityMonitor instance
            max_retries: Retries before a sync is reported as failed
            backoff_base: Backoff delay is backoff_base ** retry_count seconds
            tombstone_retention: Age after which synced tombstones are purged
            sleep: Sleep function used for backoff waits
            clock: Source of "now"
        """
        self.store = store
        self.remote = remote
        self.monitor = monitor
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.tombstone_retention = tombstone_retention
        self._sleep = sleep
        self._clock = clock

        self._lock = threading.Lock()
        self._state = SyncState.IDLE
        self._last_sync_at: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._retry_count = 0
        self._pending_count = store.count_unsynced()

        self._listeners: List[StatusListener] = []
        self._listeners_lock = threading.Lock()
        self._unsubscribe_monitor: Optional[Callable[[], None]] = None
        self._trigger_thread: Optional[threading.Thread] = None
        self._started = False

    # ============================================================================
    # Status surface
    # ============================================================================

    @property
    def state(self) -> SyncState:
        with self._lock:
            return self._state

    @property
    def status(self) -> SyncStatus:
        with self._lock:
            return SyncStatus(
                is_online=self.monitor.is_online,
                is_syncing=self._state is SyncState.SYNCING,
                last_sync_at=self._last_sync_at,
                pending_count=self._pending_count,
                last_error=self._last_error,
                retry_count=self._retry_count,
            )

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener called with the SyncStatus after every change.

        Returns:
            Callable that removes the listener
        """
        with self._listeners_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        status = self.status
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(status)
            except Exception as e:
                logger.error(f"Sync status listener error: {e}")

    def refresh_pending_count(self) -> int:
        """Recompute the pending count from the store and publish it."""
        count = len({record.id for record in self.store.fetch_unsynced()})
        with self._lock:
            self._pending_count = count
        self._emit()
        return count

    # ============================================================================
    # Lifecycle
    # ============================================================================

    def start(self) -> "Future[int]":
        """Run the startup hook and begin reacting to connectivity changes.

        Schedules the tombstone purge in the background, subscribes to the
        monitor once and starts it.

        Returns:
            Future for the scheduled tombstone purge
        """
        purge = self.store.schedule_tombstone_purge(self.tombstone_retention)
        purge.add_done_callback(_log_purge_result)

        if not self._started:
            self.store.add_listener(self._on_store_change)
            self._unsubscribe_monitor = self.monitor.subscribe(self._on_connectivity_change)
            self._started = True
            self.monitor.start()
            logger.info("Sync engine started")
        return purge

    def stop(self) -> None:
        """Stop reacting to connectivity and store changes."""
        if not self._started:
            return
        if self._unsubscribe_monitor is not None:
            self._unsubscribe_monitor()
            self._unsubscribe_monitor = None
        self.store.remove_listener(self._on_store_change)
        self.monitor.stop()
        self._started = False
        logger.info("Sync engine stopped")

    def wait_for_triggered_sync(self, timeout: Optional[float] = None) -> None:
        """Block until the last connectivity-triggered sync has finished."""
        thread = self._trigger_thread
        if thread is not None:
            thread.join(timeout)

    def _on_store_change(self, operation: str, record_ids: List[str]) -> None:
        with self._lock:
            syncing = self._state is SyncState.SYNCING
        if not syncing:
            self.refresh_pending_count()

    def _on_connectivity_change(self, online: bool) -> None:
        self._emit()
        if not online:
            return
        thread = threading.Thread(
            target=self._triggered_sync, name="notesync-sync", daemon=True
        )
        self._trigger_thread = thread
        thread.start()

    def _triggered_sync(self) -> None:
        try:
            result = self.sync_now()
        except Exception as e:
            logger.error(f"Connectivity-triggered sync failed: {e}")
            return
        if result.skipped:
            logger.debug("Connectivity-triggered sync skipped")

    # ============================================================================
    # Sync
    # ============================================================================

    def _begin(self) -> bool:
        with self._lock:
            if self._state is SyncState.SYNCING:
                return False
            self._state = SyncState.SYNCING
            self._last_error = None
        self._emit()
        return True

    def _finish(self, error: Optional[str] = None) -> None:
        count = self.store.count_unsynced()
        with self._lock:
            self._state = SyncState.IDLE
            self._pending_count = count
            if error is None:
                self._retry_count = 0
                self._last_sync_at = self._clock()
            else:
                self._last_error = error
        self._emit()

    def _fail(self, error: RemoteError) -> Optional[float]:
        """Record a failed attempt and go idle.

        Returns:
            Seconds to wait before retrying, or None when retries are exhausted
        """
        count = self.store.count_unsynced()
        with self._lock:
            self._state = SyncState.IDLE
            self._pending_count = count
            self._retry_count += 1
            retry = self._retry_count
            if retry > self.max_retries:
                self._retry_count = 0
                self._last_error = f"Sync failed after {self.max_retries} attempts."
            else:
                self._last_error = str(error)
        self._emit()

        if retry > self.max_retries:
            logger.error(f"Sync failed after {self.max_retries} attempts: {error}")
            return None
        delay = self.backoff_base ** retry
        logger.warning(f"Sync failed (retry {retry}/{self.max_retries}): {error}. Retrying in {delay:g}s")
        return delay

    def _push_pending(self) -> SyncResult:
        pending = self.store.fetch_unsynced()
        if not pending:
            logger.debug("Nothing to sync")
            return SyncResult(success=True)

        batch = collapse(pending)
        batch_ids = {record.id for record in batch}

        # Ids collapse dropped cancelled out; nothing to send for them.
        cancelled: Dict[str, Record] = {}
        for record in pending:
            if record.id in batch_ids:
                continue
            seen = cancelled.get(record.id)
            if seen is None or record.last_modified_at >= seen.last_modified_at:
                cancelled[record.id] = record
        for record in cancelled.values():
            self.store.mark_synced(record.id, version=record.last_modified_at)

        if not batch:
            logger.info(f"Pending changes cancelled out for {len(cancelled)} records")
            return SyncResult(success=True)

        logger.info(f"Syncing {len(batch)} records ({len(pending)} pending versions)")
        resolved = self.remote.batch_sync(batch)
        self.store.merge_from_server(resolved)
        for record in batch:
            self.store.mark_synced(record.id, version=record.last_modified_at)

        return SyncResult(success=True, sent=len(batch), received=len(resolved))

    def sync_now(self) -> SyncResult:
        """Push pending local changes and reconcile with the remote.

        Returns immediately when offline or when another sync is in flight.
        Remote failures are retried after backoff_base ** retry_count
        seconds; once max_retries is exceeded the status reports a terminal
        failure and the caller has to trigger again.

        Returns:
            SyncResult describing the outcome
        """
        attempt = 0
        while True:
            if not self.monitor.is_online:
                self.refresh_pending_count()
                logger.info("Offline, sync skipped")
                return SyncResult(success=False, skipped=True, attempts=attempt)

            if not self._begin():
                logger.debug("Sync already in progress")
                return SyncResult(success=False, skipped=True, attempts=attempt)

            attempt += 1
            try:
                result = self._push_pending()
            except RemoteError as e:
                delay = self._fail(e)
                if delay is None:
                    return SyncResult(success=False, attempts=attempt, error=self.status.last_error)
                self._sleep(delay)
                continue
            except sqlite3.Error as e:
                error_msg = f"Local store error during sync: {e}"
                logger.error(error_msg)
                self._finish(error=error_msg)
                return SyncResult(success=False, attempts=attempt, error=error_msg)
            except BaseException:
                with self._lock:
                    self._state = SyncState.IDLE
                raise

            self._finish()
            result.attempts = attempt
            logger.info(f"Sync complete: {result.sent} sent, {result.received} resolved")
            return result

    def full_refresh(self) -> SyncResult:
        """Bootstrap the local copy from every record the remote holds.

        Follows the same offline and in-flight rules as sync_now(), without
        backoff.
        """
        if not self.monitor.is_online:
            self.refresh_pending_count()
            logger.info("Offline, full refresh skipped")
            return SyncResult(success=False, skipped=True)
        if not self._begin():
            return SyncResult(success=False, skipped=True)

        try:
            records = self.remote.fetch_all()
            changed = self.store.merge_from_server(records)
        except (RemoteError, sqlite3.Error) as e:
            error_msg = f"Full refresh failed: {e}"
            logger.error(error_msg)
            self._finish(error=error_msg)
            return SyncResult(success=False, attempts=1, error=error_msg)
        except BaseException:
            with self._lock:
                self._state = SyncState.IDLE
            raise

        self._finish()
        logger.info(f"Full refresh complete: {len(records)} received, {changed} changed")
        return SyncResult(success=True, received=len(records), attempts=1)


def _log_purge_result(future: "Future[int]") -> None:
    error = future.exception()
    if error is not None:
        logger.error(f"Tombstone purge failed: {error}")
    else:
        logger.debug(f"Tombstone purge removed {future.result()} records")


def build_sync_engine(
    config: Config,
    store: LocalStore,
    local_remote_db: Optional[Union[Path, str]] = None,
    offline: bool = False,
) -> SyncEngine:
    """Wire a SyncEngine from configuration.

    With local_remote_db the engine talks to an in-process authority stored
    in that file; otherwise it uses HTTP against the configured remote_url
    and probes the remote host once to seed the online flag.

    Args:
        config: Config instance
        store: LocalStore instance
        local_remote_db: Authority database for in-process sync, or None
        offline: Force the engine to treat the remote as unreachable

    Returns:
        SyncEngine ready for sync_now() / full_refresh()
    """
    monitor: ConnectivityMonitor
    remote: RemoteClient

    if local_remote_db is not None:
        remote = LocalRemoteClient(RemoteAuthority(local_remote_db), owns_authority=True)
        monitor = ManualConnectivityMonitor(online=not offline)
    else:
        url = config.get_remote_url()
        remote = HttpRemoteClient(url)
        if offline:
            monitor = ManualConnectivityMonitor(online=False)
        else:
            parts = urlsplit(url)
            port = parts.port or (443 if parts.scheme == "https" else 80)
            monitor = SocketConnectivityMonitor(
                parts.hostname or "127.0.0.1",
                port,
                interval=config.get_connectivity_interval(),
                timeout=config.get_connectivity_timeout(),
            )
            monitor.check_now()

    return SyncEngine(
        store,
        remote,
        monitor,
        max_retries=config.get_max_retries(),
        backoff_base=config.get_backoff_base(),
        tombstone_retention=timedelta(days=config.get_tombstone_retention_days()),
    )
