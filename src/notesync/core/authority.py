"""Remote authority for notesync.

The authority is the server-side store and the single source of truth for
conflict outcomes. It accepts an incoming record when it is at least as new
as the stored one and otherwise answers with its stored version.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .models import Record
from .timestamp_utils import datetime_to_micros, micros_to_datetime

logger = logging.getLogger(__name__)

__all__ = ["RemoteAuthority"]

SCHEMA = """
CREATE TABLE IF NOT EXISTS remote_notes (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL DEFAULT '',
    color_hex TEXT NOT NULL DEFAULT '',
    is_deleted INTEGER NOT NULL DEFAULT 0,
    last_modified_at INTEGER NOT NULL,
    created_at INTEGER NOT NULL
);
"""


class RemoteAuthority:
    """Last-writer-wins record store backing the sync server.

    Attributes:
        db_path: SQLite database path, or ":memory:"
    """

    def __init__(self, db_path: Union[Path, str] = ":memory:") -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self.conn = sqlite3.connect(
            self.db_path, isolation_level=None, check_same_thread=False
        )
        self.conn.row_factory = sqlite3.Row
        self.conn.execute(SCHEMA)

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> Record:
        return Record(
            id=row["id"],
            title=row["title"],
            content=row["content"],
            color_hex=row["color_hex"],
            is_deleted=bool(row["is_deleted"]),
            is_synced=True,
            last_modified_at=micros_to_datetime(row["last_modified_at"]),
            created_at=micros_to_datetime(row["created_at"]),
        )

    def _load(self, record_id: str) -> Optional[Record]:
        row = self.conn.execute(
            "SELECT * FROM remote_notes WHERE id = ?", (record_id,)
        ).fetchone()
        return self._row_to_record(row) if row else None

    def _store(self, record: Record) -> None:
        self.conn.execute(
            """
            INSERT OR REPLACE INTO remote_notes (
                id, title, content, color_hex, is_deleted,
                last_modified_at, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.title,
                record.content,
                record.color_hex,
                int(record.is_deleted),
                datetime_to_micros(record.last_modified_at),
                datetime_to_micros(record.created_at),
            ),
        )

    def batch_sync(self, records: Iterable[Record]) -> List[Record]:
        """Resolve a batch of proposed records.

        For each record: unknown ids are accepted; known ids are accepted
        when the incoming last_modified_at is >= the stored one, otherwise
        the stored version is returned instead.

        Returns:
            One resolved record per input record
        """
        resolved: List[Record] = []
        accepted = rejected = 0
        with self._lock:
            self.conn.execute("BEGIN IMMEDIATE")
            try:
                for incoming in records:
                    stored = self._load(incoming.id)
                    if stored is not None and incoming.same_content(stored):
                        # Re-sent after a lost response: already accepted.
                        winner = stored
                        accepted += 1
                    elif stored is None or incoming.last_modified_at >= stored.last_modified_at:
                        winner = incoming.with_changes(is_synced=True, last_synced_at=None)
                        self._store(winner)
                        accepted += 1
                    else:
                        winner = stored
                        rejected += 1
                    resolved.append(winner)
            except BaseException:
                self.conn.execute("ROLLBACK")
                raise
            self.conn.execute("COMMIT")

        logger.info(f"Batch resolved: {accepted} accepted, {rejected} rejected")
        return resolved

    def fetch_all(self) -> List[Record]:
        """Return every non-deleted record, most recently modified first."""
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM remote_notes WHERE is_deleted = 0 "
                "ORDER BY last_modified_at DESC, id"
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def get(self, record_id: str) -> Optional[Record]:
        """Return the stored record for an id, including tombstones."""
        with self._lock:
            return self._load(record_id)

    def count(self) -> int:
        """Count stored records, including tombstones."""
        with self._lock:
            row = self.conn.execute("SELECT COUNT(*) FROM remote_notes").fetchone()
        return int(row[0])

    def close(self) -> None:
        with self._lock:
            self.conn.close()
