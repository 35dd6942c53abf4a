"""Unit tests for pending queue collapsing."""

from __future__ import annotations

import pytest

from notesync.core.collapse import collapse

from helpers import NOTE_IDS, make_record, ts


@pytest.mark.unit
class TestCollapse:
    """Tests for collapse()."""

    def test_empty_input(self) -> None:
        assert collapse([]) == []

    def test_single_record_passes_through(self) -> None:
        record = make_record(1, at=1)
        assert collapse([record]) == [record]

    def test_latest_version_wins(self) -> None:
        v1 = make_record(1, title="v1", at=1)
        v2 = make_record(1, title="v2", at=2)
        v3 = make_record(1, title="v3", at=3)
        assert collapse([v1, v3, v2]) == [v3]

    def test_equal_timestamps_later_input_wins(self) -> None:
        first = make_record(1, title="first", at=5)
        second = make_record(1, title="second", at=5)
        assert collapse([first, second]) == [second]

    def test_one_record_per_id_in_first_seen_order(self) -> None:
        pending = [
            make_record(2, at=1),
            make_record(1, at=2),
            make_record(2, title="newer", at=3),
        ]
        result = collapse(pending)
        assert [r.id for r in result] == [NOTE_IDS[2], NOTE_IDS[1]]
        assert result[0].title == "newer"

    def test_created_then_deleted_is_dropped(self) -> None:
        """A record the remote never saw has nothing to transmit."""
        created = make_record(1, title="draft", at=1)
        deleted = make_record(1, title="draft", at=2, is_deleted=True)
        assert collapse([created, deleted]) == []

    def test_created_edited_then_deleted_is_dropped(self) -> None:
        pending = [
            make_record(1, at=1),
            make_record(1, title="edit", at=2),
            make_record(1, at=3, is_deleted=True),
        ]
        assert collapse(pending) == []

    def test_previously_synced_delete_is_kept(self) -> None:
        edited = make_record(1, at=1, last_synced_at=ts(0))
        deleted = make_record(1, at=2, is_deleted=True, last_synced_at=ts(0))
        assert collapse([edited, deleted]) == [deleted]

    def test_lone_tombstone_is_kept(self) -> None:
        deleted = make_record(1, at=2, is_deleted=True)
        assert collapse([deleted]) == [deleted]

    def test_dropped_id_does_not_affect_others(self) -> None:
        kept = make_record(2, title="kept", at=1)
        pending = [
            make_record(1, at=1),
            kept,
            make_record(1, at=2, is_deleted=True),
        ]
        assert collapse(pending) == [kept]

    def test_accepts_iterators(self) -> None:
        records = (make_record(k, at=k) for k in (1, 2, 3))
        assert len(collapse(records)) == 3
