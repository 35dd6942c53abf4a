"""Local record store for notesync.

This module provides all local data access using SQLite. The store is the
always-writable local copy: every user mutation commits locally first,
marks the record unsynced and appends a snapshot of the new version to the
pending-change journal that the sync engine later collapses and sends.

Two execution contexts are available for every mutation:

- IMMEDIATE runs the unit of work on the caller's thread through the
  foreground connection, so the effect is visible on the very next read.
- DEFERRED runs it on a single background writer thread with its own
  connection. Synchronous methods still wait for the commit; use
  schedule_tombstone_purge() for fire-and-forget work.

Each unit of work is one ``BEGIN IMMEDIATE`` transaction, so writers are
serialized and readers (WAL mode) never see a partially-applied record.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from .config import DEFAULT_CONTEXTS
from .models import Record, new_record_id
from .timestamp_utils import (
    datetime_to_micros,
    ensure_utc,
    micros_to_datetime,
    utc_now,
)

logger = logging.getLogger(__name__)

__all__ = ["ExecutionContext", "LocalStore", "DEFAULT_TOMBSTONE_RETENTION"]

DEFAULT_TOMBSTONE_RETENTION = timedelta(days=30)

SCHEMA_VERSION = 1

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS notes (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL DEFAULT '',
        content TEXT NOT NULL DEFAULT '',
        color_hex TEXT NOT NULL DEFAULT '',
        is_deleted INTEGER NOT NULL DEFAULT 0,
        is_synced INTEGER NOT NULL DEFAULT 0,
        last_modified_at INTEGER NOT NULL,
        created_at INTEGER NOT NULL,
        last_synced_at INTEGER
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS pending_changes (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        note_id TEXT NOT NULL,
        operation TEXT NOT NULL,
        title TEXT NOT NULL DEFAULT '',
        content TEXT NOT NULL DEFAULT '',
        color_hex TEXT NOT NULL DEFAULT '',
        is_deleted INTEGER NOT NULL DEFAULT 0,
        last_modified_at INTEGER NOT NULL,
        created_at INTEGER NOT NULL,
        last_synced_at INTEGER
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_notes_visible ON notes(is_deleted, last_modified_at);",
    "CREATE INDEX IF NOT EXISTS idx_notes_unsynced ON notes(is_synced);",
    "CREATE INDEX IF NOT EXISTS idx_pending_changes_note ON pending_changes(note_id);",
)

Listener = Callable[[str, List[str]], None]
UnitOfWork = Callable[[sqlite3.Connection], Tuple[Any, List[str]]]


class ExecutionContext(Enum):
    """How a store mutation is applied."""

    IMMEDIATE = "immediate"
    DEFERRED = "deferred"


class LocalStore:
    """SQLite-backed local copy of the record set.

    Attributes:
        db_path: Path to the SQLite database file
    """

    def __init__(
        self,
        db_path: Union[Path, str],
        contexts: Optional[Dict[str, Union[str, ExecutionContext]]] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Open (and if needed create) the local store.

        Args:
            db_path: Path to the SQLite database file
            contexts: Per-operation execution context overrides
            clock: Source of "now", injectable for tests
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock

        self._contexts: Dict[str, ExecutionContext] = {
            operation: ExecutionContext(name) for operation, name in DEFAULT_CONTEXTS.items()
        }
        for operation, value in (contexts or {}).items():
            if operation not in self._contexts:
                raise ValueError(f"Unknown store operation: {operation}")
            self._contexts[operation] = ExecutionContext(value)

        self._fg_lock = threading.RLock()
        self.conn = self._connect()
        self._init_schema()

        self._bg_conn: Optional[sqlite3.Connection] = None
        self._worker: Optional[threading.Thread] = None
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="notesync-store"
        )

        self._listeners: List[Listener] = []
        self._listeners_lock = threading.Lock()
        self._closed = False

        logger.info(f"Opened local store at {self.db_path}")

    # ============================================================================
    # Connection and transaction plumbing
    # ============================================================================

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=30.0,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    def _init_schema(self) -> None:
        with self._fg_lock:
            for statement in SCHEMA_STATEMENTS:
                self.conn.execute(statement)
            self.conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")

    def context_for(self, operation: str) -> ExecutionContext:
        """Get the configured execution context for an operation."""
        return self._contexts[operation]

    def _on_worker_thread(self) -> bool:
        return self._worker is not None and threading.current_thread() is self._worker

    def _dispatch(
        self,
        operation: str,
        work: UnitOfWork,
        context: Optional[ExecutionContext] = None,
    ) -> "Future[Any]":
        if self._closed:
            raise RuntimeError("LocalStore is closed")

        resolved = context or self._contexts[operation]

        if self._on_worker_thread():
            # Already on the writer thread; queueing would wait on ourselves.
            return _completed(self._run_deferred, operation, work)
        if resolved is ExecutionContext.IMMEDIATE:
            return _completed(self._run_immediate, operation, work)
        return self._executor.submit(self._run_deferred, operation, work)

    def _execute(
        self,
        operation: str,
        work: UnitOfWork,
        context: Optional[ExecutionContext] = None,
    ) -> Any:
        return self._dispatch(operation, work, context).result()

    def _run_immediate(self, operation: str, work: UnitOfWork) -> Any:
        with self._fg_lock:
            result, changed_ids = self._run_unit(self.conn, work)
        # Listeners run after the foreground lock is released.
        if changed_ids:
            self._notify(operation, changed_ids)
        return result

    def _run_deferred(self, operation: str, work: UnitOfWork) -> Any:
        if self._worker is None:
            self._worker = threading.current_thread()
        if self._bg_conn is None:
            self._bg_conn = self._connect()
        result, changed_ids = self._run_unit(self._bg_conn, work)
        if changed_ids:
            self._notify(operation, changed_ids)
        return result

    @staticmethod
    def _run_unit(conn: sqlite3.Connection, work: UnitOfWork) -> Tuple[Any, List[str]]:
        conn.execute("BEGIN IMMEDIATE")
        try:
            result, changed_ids = work(conn)
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
        return result, changed_ids

    # ============================================================================
    # Change listeners
    # ============================================================================

    def add_listener(self, fn: Listener) -> None:
        """Register a callback invoked after every committed change.

        The callback receives ``(operation, record_ids)`` on the thread that
        committed the change.
        """
        with self._listeners_lock:
            self._listeners.append(fn)

    def remove_listener(self, fn: Listener) -> None:
        """Remove a previously registered listener."""
        with self._listeners_lock:
            try:
                self._listeners.remove(fn)
            except ValueError:
                pass

    def _notify(self, operation: str, record_ids: List[str]) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for fn in listeners:
            try:
                fn(operation, list(record_ids))
            except Exception as e:
                logger.error(f"Store listener error after {operation}: {e}")

    # ============================================================================
    # Row helpers
    # ============================================================================

    @staticmethod
    def _row_to_record(row: sqlite3.Row, is_synced: Optional[bool] = None) -> Record:
        return Record(
            id=row["id"] if "id" in row.keys() else row["note_id"],
            title=row["title"],
            content=row["content"],
            color_hex=row["color_hex"],
            is_deleted=bool(row["is_deleted"]),
            is_synced=bool(row["is_synced"]) if is_synced is None else is_synced,
            last_modified_at=micros_to_datetime(row["last_modified_at"]),
            created_at=micros_to_datetime(row["created_at"]),
            last_synced_at=micros_to_datetime(row["last_synced_at"]),
        )

    def _load(self, conn: sqlite3.Connection, record_id: str) -> Optional[Record]:
        row = conn.execute("SELECT * FROM notes WHERE id = ?", (record_id,)).fetchone()
        return self._row_to_record(row) if row else None

    @staticmethod
    def _write_row(conn: sqlite3.Connection, record: Record) -> None:
        conn.execute(
            """
            INSERT INTO notes (
                id, title, content, color_hex, is_deleted, is_synced,
                last_modified_at, created_at, last_synced_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                content = excluded.content,
                color_hex = excluded.color_hex,
                is_deleted = excluded.is_deleted,
                is_synced = excluded.is_synced,
                last_modified_at = excluded.last_modified_at,
                last_synced_at = excluded.last_synced_at
            """,
            (
                record.id,
                record.title,
                record.content,
                record.color_hex,
                int(record.is_deleted),
                int(record.is_synced),
                datetime_to_micros(record.last_modified_at),
                datetime_to_micros(record.created_at),
                datetime_to_micros(record.last_synced_at),
            ),
        )

    @staticmethod
    def _append_change(conn: sqlite3.Connection, record: Record, operation: str) -> None:
        conn.execute(
            """
            INSERT INTO pending_changes (
                note_id, operation, title, content, color_hex, is_deleted,
                last_modified_at, created_at, last_synced_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                operation,
                record.title,
                record.content,
                record.color_hex,
                int(record.is_deleted),
                datetime_to_micros(record.last_modified_at),
                datetime_to_micros(record.created_at),
                datetime_to_micros(record.last_synced_at),
            ),
        )

    @staticmethod
    def _drop_changes(
        conn: sqlite3.Connection, record_id: str, up_to: Optional[datetime] = None
    ) -> None:
        if up_to is None:
            conn.execute("DELETE FROM pending_changes WHERE note_id = ?", (record_id,))
        else:
            conn.execute(
                "DELETE FROM pending_changes WHERE note_id = ? AND last_modified_at <= ?",
                (record_id, datetime_to_micros(up_to)),
            )

    def _next_timestamp(self, previous: Optional[datetime] = None) -> datetime:
        """Current time, bumped past previous so the clock never goes backwards."""
        now = ensure_utc(self._clock())
        if previous is not None and now <= previous:
            return previous + timedelta(microseconds=1)
        return now

    # ============================================================================
    # Reads
    # ============================================================================

    def fetch_visible(self) -> List[Record]:
        """Get all non-deleted records, most recently modified first."""
        with self._fg_lock:
            rows = self.conn.execute(
                "SELECT * FROM notes WHERE is_deleted = 0 "
                "ORDER BY last_modified_at DESC, id"
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def fetch_unsynced(self) -> List[Record]:
        """Get the pending versions of every unsynced record.

        Each unsynced id contributes its journal snapshots in mutation order
        (the newest equals the current row). An unsynced row with no journal
        entry contributes its current row.
        """
        with self._fg_lock:
            self.conn.execute("BEGIN")
            try:
                rows = self.conn.execute(
                    "SELECT * FROM notes WHERE is_synced = 0"
                ).fetchall()
                changes = self.conn.execute(
                    """
                    SELECT pc.* FROM pending_changes pc
                    JOIN notes n ON n.id = pc.note_id
                    WHERE n.is_synced = 0
                    ORDER BY pc.seq
                    """
                ).fetchall()
            finally:
                self.conn.execute("COMMIT")

        pending = [self._row_to_record(row, is_synced=False) for row in changes]
        journaled = {record.id for record in pending}
        pending.extend(
            self._row_to_record(row) for row in rows if row["id"] not in journaled
        )
        return pending

    def count_unsynced(self) -> int:
        """Count distinct records waiting to be synced."""
        with self._fg_lock:
            row = self.conn.execute(
                "SELECT COUNT(*) FROM notes WHERE is_synced = 0"
            ).fetchone()
        return int(row[0])

    def get(self, record_id: str) -> Optional[Record]:
        """Get a record by ID, including tombstones."""
        with self._fg_lock:
            return self._load(self.conn, record_id)

    # ============================================================================
    # Local mutations
    # ============================================================================

    def create(
        self,
        title: str,
        content: str = "",
        color_hex: str = "",
        context: Optional[ExecutionContext] = None,
    ) -> Record:
        """Create a new record.

        The row and its journal entry commit in one transaction, so the
        record is either fully persisted or not visible at all.

        Returns:
            The created record
        """
        now = self._next_timestamp()
        record = Record(
            id=new_record_id(),
            title=title,
            content=content,
            color_hex=color_hex,
            is_deleted=False,
            is_synced=False,
            last_modified_at=now,
            created_at=now,
        )

        def work(conn: sqlite3.Connection) -> Tuple[Record, List[str]]:
            self._write_row(conn, record)
            self._append_change(conn, record, "create")
            return record, [record.id]

        created = self._execute("create", work, context)
        logger.info(f"Created record {created.id}")
        return created

    def update(
        self,
        record_id: str,
        title: Optional[str] = None,
        content: Optional[str] = None,
        color_hex: Optional[str] = None,
        context: Optional[ExecutionContext] = None,
    ) -> bool:
        """Update a record's fields.

        Only the fields that are not None change. A missing (or deleted)
        record is a logged no-op.

        Returns:
            True if the record was updated, False if it was not found
        """

        def work(conn: sqlite3.Connection) -> Tuple[bool, List[str]]:
            current = self._load(conn, record_id)
            if current is None or current.is_deleted:
                return False, []

            changes: Dict[str, Any] = {}
            if title is not None:
                changes["title"] = title
            if content is not None:
                changes["content"] = content
            if color_hex is not None:
                changes["color_hex"] = color_hex

            updated = current.with_changes(
                last_modified_at=self._next_timestamp(current.last_modified_at),
                is_synced=False,
                **changes,
            )
            self._write_row(conn, updated)
            self._append_change(conn, updated, "update")
            return True, [record_id]

        updated = self._execute("update", work, context)
        if updated:
            logger.info(f"Updated record {record_id}")
        else:
            logger.warning(f"Update skipped, record not found: {record_id}")
        return updated

    def soft_delete(
        self, record_id: str, context: Optional[ExecutionContext] = None
    ) -> bool:
        """Mark a record deleted (tombstone) without removing it.

        Returns:
            True if the record is now deleted, False if it was not found
        """

        def work(conn: sqlite3.Connection) -> Tuple[bool, List[str]]:
            current = self._load(conn, record_id)
            if current is None:
                return False, []
            if current.is_deleted:
                return True, []

            deleted = current.with_changes(
                is_deleted=True,
                is_synced=False,
                last_modified_at=self._next_timestamp(current.last_modified_at),
            )
            self._write_row(conn, deleted)
            self._append_change(conn, deleted, "delete")
            return True, [record_id]

        deleted = self._execute("soft_delete", work, context)
        if deleted:
            logger.info(f"Soft deleted record {record_id}")
        else:
            logger.warning(f"Delete skipped, record not found: {record_id}")
        return deleted

    # ============================================================================
    # Sync-driven mutations
    # ============================================================================

    def _merge_one(self, server: Record) -> UnitOfWork:
        def work(conn: sqlite3.Connection) -> Tuple[bool, List[str]]:
            local = self._load(conn, server.id)
            synced_at = ensure_utc(self._clock())

            if local is None:
                self._write_row(
                    conn, server.with_changes(is_synced=True, last_synced_at=synced_at)
                )
                return True, [server.id]

            # A later local delete must not be resurrected by a stale payload.
            if local.is_deleted and local.last_modified_at > server.last_modified_at:
                return False, []

            if server.last_modified_at > local.last_modified_at:
                merged = server.with_changes(
                    created_at=local.created_at,
                    is_synced=True,
                    last_synced_at=synced_at,
                )
                self._write_row(conn, merged)
                self._drop_changes(conn, server.id, up_to=server.last_modified_at)
                return True, [server.id]

            return False, []

        return work

    def merge_from_server(
        self,
        server_records: Iterable[Record],
        context: Optional[ExecutionContext] = None,
    ) -> int:
        """Apply resolved server records with last-writer-wins.

        - No local row: insert the server record, marked synced.
        - Local tombstone newer than the server record: ignore it.
        - Server strictly newer: overwrite local and mark synced.
        - Otherwise local is at least as fresh and stays unchanged.

        Each record commits in its own transaction.

        Returns:
            Number of local rows changed
        """
        changed = 0
        for server in server_records:
            if self._execute("merge_from_server", self._merge_one(server), context):
                changed += 1
        logger.debug(f"Merged server records, {changed} rows changed")
        return changed

    def mark_synced(
        self,
        record_id: str,
        version: Optional[datetime] = None,
        context: Optional[ExecutionContext] = None,
    ) -> bool:
        """Mark a record as synced without altering its fields.

        Idempotent. When version (the last_modified_at that was sent) is
        given and the row has moved past it, the row stays unsynced and only
        the journal entries up to version are dropped.

        Returns:
            True if the record is now synced
        """
        sent_version = ensure_utc(version) if version is not None else None

        def work(conn: sqlite3.Connection) -> Tuple[bool, List[str]]:
            local = self._load(conn, record_id)
            if local is None:
                return False, []

            if sent_version is not None and local.last_modified_at > sent_version:
                self._drop_changes(conn, record_id, up_to=sent_version)
                return local.is_synced, []

            self._drop_changes(conn, record_id)
            if local.is_synced:
                return True, []

            conn.execute(
                "UPDATE notes SET is_synced = 1, last_synced_at = ? WHERE id = ?",
                (datetime_to_micros(self._clock()), record_id),
            )
            return True, [record_id]

        return self._execute("mark_synced", work, context)

    # ============================================================================
    # Tombstone cleanup
    # ============================================================================

    def _purge_work(self, retention: timedelta) -> UnitOfWork:
        def work(conn: sqlite3.Connection) -> Tuple[int, List[str]]:
            cutoff = datetime_to_micros(ensure_utc(self._clock()) - retention)
            ids = [
                row["id"]
                for row in conn.execute(
                    """
                    SELECT id FROM notes
                    WHERE is_deleted = 1 AND is_synced = 1 AND last_modified_at < ?
                    """,
                    (cutoff,),
                ).fetchall()
            ]
            for record_id in ids:
                conn.execute("DELETE FROM notes WHERE id = ?", (record_id,))
                conn.execute("DELETE FROM pending_changes WHERE note_id = ?", (record_id,))
            if ids:
                logger.info(f"Purged {len(ids)} expired tombstones")
            return len(ids), ids

        return work

    def purge_expired_tombstones(
        self,
        retention: timedelta = DEFAULT_TOMBSTONE_RETENTION,
        context: Optional[ExecutionContext] = None,
    ) -> int:
        """Physically delete synced tombstones older than the retention window.

        Unsynced tombstones are never purged: they are pending deletes the
        remote has not seen yet.

        Returns:
            Number of rows purged
        """
        return self._execute("purge_expired_tombstones", self._purge_work(retention), context)

    def schedule_tombstone_purge(
        self, retention: timedelta = DEFAULT_TOMBSTONE_RETENTION
    ) -> "Future[int]":
        """Queue a tombstone purge without waiting for it."""
        return self._dispatch("purge_expired_tombstones", self._purge_work(retention))

    # ============================================================================
    # Lifecycle
    # ============================================================================

    def close(self) -> None:
        """Wait for queued work, then close both connections."""
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=True)
        if self._bg_conn is not None:
            self._bg_conn.close()
            self._bg_conn = None
        with self._fg_lock:
            self.conn.close()
        logger.info(f"Closed local store at {self.db_path}")

    def __enter__(self) -> "LocalStore":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def _completed(fn: Callable[..., Any], *args: Any) -> "Future[Any]":
    future: "Future[Any]" = Future()
    try:
        future.set_result(fn(*args))
    except Exception as e:
        future.set_exception(e)
    return future
