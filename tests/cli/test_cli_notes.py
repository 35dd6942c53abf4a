"""CLI tests for note commands.

Tests list-notes, show-note, new-note, edit-note and delete-note.
"""

from __future__ import annotations

import json

import pytest

from helpers import NOTE_IDS


@pytest.mark.cli
class TestNewNote:
    """Test new-note CLI command."""

    def test_create_text_output(self, run_cli) -> None:
        result = run_cli("new-note", "Groceries", "--content", "milk, eggs")
        assert result.returncode == 0
        assert result.stdout.startswith("Created note #")

    def test_create_json_output(self, run_cli) -> None:
        result = run_cli("--format", "json", "new-note", "Groceries", "--color", "#00ff00")
        assert result.returncode == 0
        note = json.loads(result.stdout)
        assert note["title"] == "Groceries"
        assert note["color_hex"] == "#00ff00"
        assert note["is_synced"] is False
        assert len(note["id"]) == 32

    def test_content_from_stdin(self, run_cli) -> None:
        result = run_cli("--format", "json", "new-note", "Piped", input="from stdin\n")
        note = json.loads(result.stdout)
        assert note["content"] == "from stdin"

    def test_invalid_color_rejected(self, run_cli) -> None:
        result = run_cli("new-note", "X", "--color", "green")
        assert result.returncode == 1
        assert "Error: Invalid color_hex" in result.stderr


@pytest.mark.cli
class TestListAndShow:
    """Test list-notes and show-note CLI commands."""

    def test_empty_list(self, run_cli) -> None:
        result = run_cli("list-notes")
        assert result.returncode == 0
        assert "No notes found." in result.stdout

    def test_list_text_marks_unsynced(self, run_cli, new_note) -> None:
        new_note("First", "--content", "one")
        new_note("Second", "--content", "two")

        result = run_cli("list-notes")

        assert result.returncode == 0
        assert result.stdout.count("ID:") == 2
        assert result.stdout.count(" *") == 2
        assert "Title: First" in result.stdout

    def test_list_json(self, run_cli, new_note) -> None:
        new_note("First")
        new_note("Second")

        result = run_cli("--format", "json", "list-notes")

        notes = json.loads(result.stdout)
        assert {n["title"] for n in notes} == {"First", "Second"}

    def test_show_note(self, run_cli, new_note) -> None:
        note_id = new_note("Shown", "--content", "details here")

        result = run_cli("show-note", note_id)

        assert result.returncode == 0
        assert f"ID: {note_id}" in result.stdout
        assert "Title: Shown" in result.stdout
        assert "Synced: no" in result.stdout
        assert "details here" in result.stdout

    def test_show_note_json(self, run_cli, new_note) -> None:
        note_id = new_note("Shown")
        result = run_cli("--format", "json", "show-note", note_id)
        assert json.loads(result.stdout)["id"] == note_id

    def test_show_missing_note(self, run_cli) -> None:
        result = run_cli("show-note", NOTE_IDS[1])
        assert result.returncode == 1
        assert "not found" in result.stderr

    def test_show_invalid_id(self, run_cli) -> None:
        result = run_cli("show-note", "123")
        assert result.returncode == 1
        assert "Error: Invalid record_id" in result.stderr


@pytest.mark.cli
class TestEditAndDelete:
    """Test edit-note and delete-note CLI commands."""

    def test_edit_note(self, run_cli, new_note) -> None:
        note_id = new_note("Before", "--content", "kept")

        result = run_cli("edit-note", note_id, "--title", "After")
        assert result.returncode == 0
        assert f"Updated note #{note_id}" in result.stdout

        note = json.loads(run_cli("--format", "json", "show-note", note_id).stdout)
        assert note["title"] == "After"
        assert note["content"] == "kept"

    def test_edit_requires_a_field(self, run_cli, new_note) -> None:
        note_id = new_note("X")
        result = run_cli("edit-note", note_id)
        assert result.returncode == 1
        assert "Nothing to change" in result.stderr

    def test_edit_missing_note(self, run_cli) -> None:
        result = run_cli("edit-note", NOTE_IDS[2], "--title", "Y")
        assert result.returncode == 1
        assert "not found" in result.stderr

    def test_delete_note(self, run_cli, new_note) -> None:
        note_id = new_note("Doomed")

        result = run_cli("--format", "json", "delete-note", note_id)
        assert json.loads(result.stdout) == {"id": note_id, "deleted": True}

        assert "No notes found." in run_cli("list-notes").stdout
        assert run_cli("show-note", note_id).returncode == 1

    def test_edit_deleted_note_fails(self, run_cli, new_note) -> None:
        note_id = new_note("Doomed")
        run_cli("delete-note", note_id)
        result = run_cli("edit-note", note_id, "--content", "too late")
        assert result.returncode == 1

    def test_delete_missing_note(self, run_cli) -> None:
        result = run_cli("delete-note", NOTE_IDS[3])
        assert result.returncode == 1
        assert "not found" in result.stderr
