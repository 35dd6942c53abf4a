"""Command-line interface for notesync.

This module provides CLI commands for working with the local copy of the
notes and for driving synchronization with the remote authority.

Commands:
    list-notes                  List all visible notes
    show-note <id>              Show details of a specific note
    new-note <title>            Create a new note
    edit-note <id>              Edit an existing note
    delete-note <id>            Soft-delete a note
    sync status                 Show sync status
    sync now                    Push pending changes to the remote
    sync refresh                Pull every record from the remote
    sync serve                  Run the sync server
    maintenance purge-tombstones  Remove expired synced tombstones
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from datetime import timedelta
from pathlib import Path
from typing import Optional

from notesync.core.authority import RemoteAuthority
from notesync.core.config import Config
from notesync.core.database import LocalStore
from notesync.core.models import Record
from notesync.core.sync import create_sync_server
from notesync.core.sync_engine import SyncEngine, build_sync_engine
from notesync.core.timestamp_utils import format_timestamp
from notesync.core.validation import (
    ValidationError,
    validate_color_hex,
    validate_content,
    validate_record_id,
    validate_title,
)


def format_note(note: Record, format_type: str = "text") -> str:
    """Format a single note for display.

    Args:
        note: Record from the local store
        format_type: Output format (text, json)

    Returns:
        Formatted note string
    """
    if format_type == "json":
        return json.dumps(note.to_dict(), indent=2, ensure_ascii=False)

    lines = [
        f"ID: {note.id}",
        f"Title: {note.title}",
        f"Created: {format_timestamp(note.created_at)}",
        f"Modified: {format_timestamp(note.last_modified_at)}",
        f"Synced: {'yes' if note.is_synced else 'no'}",
    ]
    if note.color_hex:
        lines.append(f"Color: {note.color_hex}")
    if note.is_deleted:
        lines.append("Deleted: yes")
    lines.append(f"\n{note.content}")
    return "\n".join(lines)


def _read_stdin_content() -> str:
    if sys.stdin is not None and not sys.stdin.isatty():
        return sys.stdin.read().strip()
    return ""


def cmd_list_notes(store: LocalStore, args: argparse.Namespace) -> int:
    """List all visible notes.

    Args:
        store: LocalStore instance
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    notes = store.fetch_visible()

    if args.format == "json":
        print(json.dumps([note.to_dict() for note in notes], indent=2, ensure_ascii=False))
        return 0

    if not notes:
        print("No notes found.")
        return 0

    for i, note in enumerate(notes):
        if i > 0:
            print("\n" + "=" * 60 + "\n")
        # Show truncated version in list
        content = note.content
        if len(content) > 100:
            content = content[:100] + "..."
        marker = "" if note.is_synced else " *"
        print(f"ID: {note.id} | Modified: {format_timestamp(note.last_modified_at)}{marker}")
        print(f"Title: {note.title}")
        if content:
            print(content)

    return 0


def cmd_show_note(store: LocalStore, args: argparse.Namespace) -> int:
    """Show details of a specific note.

    Returns:
        Exit code (0 for success, 1 for not found)
    """
    note_id = validate_record_id(args.note_id)
    note = store.get(note_id)
    if note is None or note.is_deleted:
        print(f"Error: Note with ID {note_id} not found.", file=sys.stderr)
        return 1

    print(format_note(note, args.format))
    return 0


def cmd_new_note(store: LocalStore, args: argparse.Namespace) -> int:
    """Create a new note.

    Content comes from --content, or from stdin when it is piped.

    Returns:
        Exit code (0 for success)
    """
    content = args.content if args.content is not None else _read_stdin_content()
    color = args.color or ""

    validate_title(args.title)
    validate_content(content)
    validate_color_hex(color)

    note = store.create(args.title, content=content, color_hex=color)
    if args.format == "json":
        print(json.dumps(note.to_dict(), ensure_ascii=False))
    else:
        print(f"Created note #{note.id}")
    return 0


def cmd_edit_note(store: LocalStore, args: argparse.Namespace) -> int:
    """Edit an existing note.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    note_id = validate_record_id(args.note_id)

    if args.title is None and args.content is None and args.color is None:
        print("Error: Nothing to change. Use --title, --content or --color.", file=sys.stderr)
        return 1

    if args.title is not None:
        validate_title(args.title)
    if args.content is not None:
        validate_content(args.content)
    if args.color is not None:
        validate_color_hex(args.color)

    if not store.update(note_id, title=args.title, content=args.content, color_hex=args.color):
        print(f"Error: Note with ID {note_id} not found.", file=sys.stderr)
        return 1

    if args.format == "json":
        print(json.dumps({"id": note_id, "updated": True}))
    else:
        print(f"Updated note #{note_id}")
    return 0


def cmd_delete_note(store: LocalStore, args: argparse.Namespace) -> int:
    """Soft-delete a note.

    Returns:
        Exit code (0 for success, 1 for not found)
    """
    note_id = validate_record_id(args.note_id)
    if not store.soft_delete(note_id):
        print(f"Error: Note with ID {note_id} not found.", file=sys.stderr)
        return 1

    if args.format == "json":
        print(json.dumps({"id": note_id, "deleted": True}))
    else:
        print(f"Deleted note #{note_id}")
    return 0


def cmd_sync_status(engine: SyncEngine, config: Config, args: argparse.Namespace) -> int:
    """Show sync status.

    Returns:
        Exit code (0 for success)
    """
    engine.refresh_pending_count()
    status = engine.status

    if args.format == "json":
        output = status.to_dict()
        output["remote_url"] = config.get_remote_url()
        print(json.dumps(output, indent=2))
    else:
        print(f"Remote: {config.get_remote_url()}")
        print(f"Online: {'yes' if status.is_online else 'no'}")
        print(f"Pending Changes: {status.pending_count}")
        print(f"Status: {status.status_text}")

    return 0


def cmd_sync_now(engine: SyncEngine, args: argparse.Namespace) -> int:
    """Push pending changes to the remote authority.

    Returns:
        Exit code (0 for success or offline skip, 1 for failure)
    """
    result = engine.sync_now()
    status = engine.status

    if args.format == "json":
        output = asdict(result)
        output["pending_count"] = status.pending_count
        print(json.dumps(output, indent=2))
    elif result.skipped:
        print(f"Sync skipped. Status: {status.status_text}")
    elif result.success:
        print("Sync completed:")
        print(f"  Sent: {result.sent} records")
        print(f"  Resolved: {result.received} records")
    else:
        print(f"Sync failed: {result.error}")
        print(f"Pending changes: {status.pending_count}")

    return 0 if result.success or result.skipped else 1


def cmd_sync_refresh(engine: SyncEngine, args: argparse.Namespace) -> int:
    """Pull every record from the remote authority.

    Returns:
        Exit code (0 for success or offline skip, 1 for failure)
    """
    result = engine.full_refresh()

    if args.format == "json":
        print(json.dumps(asdict(result), indent=2))
    elif result.skipped:
        print(f"Refresh skipped ({engine.status.status_text}).")
    elif result.success:
        print(f"Refresh completed: {result.received} records received")
    else:
        print(f"Refresh failed: {result.error}")

    return 0 if result.success or result.skipped else 1


def cmd_sync_serve(config: Config, args: argparse.Namespace) -> int:
    """Start the sync server.

    Returns:
        Exit code (0 for success)
    """
    host = args.host or config.get_server_host()
    port = args.port or config.get_server_port()
    authority_db = args.authority_db or config.get_authority_db()

    authority = RemoteAuthority(authority_db)
    app = create_sync_server(authority)

    print(f"Starting sync server on http://{host}:{port}")
    print("Press Ctrl+C to stop.")
    print()

    try:
        app.run(host=host, port=port, threaded=True)
    finally:
        authority.close()
    return 0


def cmd_maintenance_purge_tombstones(store: LocalStore, args: argparse.Namespace) -> int:
    """Remove synced tombstones older than the retention window.

    Returns:
        Exit code (0 for success)
    """
    purged = store.purge_expired_tombstones(timedelta(days=args.days))
    if args.format == "json":
        print(json.dumps({"purged": purged, "days": args.days}))
    else:
        print(f"Purged {purged} tombstone(s) older than {args.days} days.")
    return 0


def add_cli_subparser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    """Add CLI subparser and its nested subcommands.

    Args:
        subparsers: Parent subparsers object to add CLI parser to
    """
    cli_parser = subparsers.add_parser(
        "cli",
        help="Command-line interface",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    cli_parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)"
    )

    cli_parser.add_argument(
        "--local-remote",
        dest="local_remote",
        type=Path,
        default=None,
        metavar="DB",
        help="Sync against an in-process authority stored in DB instead of over HTTP"
    )

    cli_subparsers = cli_parser.add_subparsers(dest="cli_command", help="CLI commands")

    cli_subparsers.add_parser("list-notes", help="List all notes")

    show_parser = cli_subparsers.add_parser("show-note", help="Show details of a specific note")
    show_parser.add_argument("note_id", type=str, help="ID of the note to show (UUID hex string)")

    new_note_parser = cli_subparsers.add_parser("new-note", help="Create a new note")
    new_note_parser.add_argument("title", type=str, help="Note title")
    new_note_parser.add_argument(
        "--content",
        type=str,
        default=None,
        help="Note content (reads from stdin if not provided)"
    )
    new_note_parser.add_argument("--color", type=str, default=None, help="Colour tag (#RRGGBB)")

    edit_note_parser = cli_subparsers.add_parser("edit-note", help="Edit an existing note")
    edit_note_parser.add_argument("note_id", type=str, help="ID of the note to edit (UUID hex string)")
    edit_note_parser.add_argument("--title", type=str, default=None, help="New title")
    edit_note_parser.add_argument("--content", type=str, default=None, help="New content")
    edit_note_parser.add_argument("--color", type=str, default=None, help="New colour tag ('' clears it)")

    delete_note_parser = cli_subparsers.add_parser("delete-note", help="Delete a note")
    delete_note_parser.add_argument("note_id", type=str, help="ID of the note to delete (UUID hex string)")

    # sync command with subcommands
    sync_parser = cli_subparsers.add_parser(
        "sync",
        help="Sync operations (status, now, refresh, serve)"
    )
    sync_subparsers = sync_parser.add_subparsers(dest="sync_command", help="Sync commands")

    sync_subparsers.add_parser("status", help="Show sync status")

    sync_now_parser = sync_subparsers.add_parser("now", help="Push pending changes to the remote")
    sync_now_parser.add_argument(
        "--offline",
        action="store_true",
        help="Treat the remote as unreachable (only recount pending changes)"
    )

    sync_subparsers.add_parser("refresh", help="Pull every record from the remote")

    serve_parser = sync_subparsers.add_parser("serve", help="Start the sync server")
    serve_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: from config)"
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind to (default: 8384 or from config)"
    )
    serve_parser.add_argument(
        "--authority-db",
        dest="authority_db",
        type=Path,
        default=None,
        help="Authority database file (default: from config)"
    )

    # maintenance command with subcommands
    maintenance_parser = cli_subparsers.add_parser(
        "maintenance",
        help="Database maintenance operations"
    )
    maintenance_subparsers = maintenance_parser.add_subparsers(
        dest="maintenance_command", help="Maintenance commands"
    )

    purge_parser = maintenance_subparsers.add_parser(
        "purge-tombstones",
        help="Remove synced tombstones older than the retention window"
    )
    purge_parser.add_argument(
        "--days",
        type=int,
        default=None,
        help="Retention window in days (default: from config, 30)"
    )


def _run_sync_command(
    store: LocalStore, config: Config, args: argparse.Namespace
) -> int:
    sync_cmd = getattr(args, "sync_command", None)
    if not sync_cmd:
        print("Error: No sync command specified. Use 'sync --help'.", file=sys.stderr)
        return 1

    if sync_cmd == "serve":
        return cmd_sync_serve(config, args)
    if sync_cmd not in ("status", "now", "refresh"):
        print(f"Error: Unknown sync command '{sync_cmd}'", file=sys.stderr)
        return 1

    engine = build_sync_engine(
        config,
        store,
        local_remote_db=args.local_remote,
        offline=getattr(args, "offline", False),
    )
    try:
        if sync_cmd == "status":
            return cmd_sync_status(engine, config, args)
        if sync_cmd == "now":
            return cmd_sync_now(engine, args)
        return cmd_sync_refresh(engine, args)
    finally:
        engine.remote.close()


def run(config_dir: Optional[Path], args: argparse.Namespace) -> int:
    """Run CLI with given arguments.

    Args:
        config_dir: Custom configuration directory or None for default
        args: Parsed command-line arguments (should have cli_command attribute)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    if not hasattr(args, "cli_command") or not args.cli_command:
        print("Error: No CLI command specified. Use --help for available commands.", file=sys.stderr)
        return 1

    config = Config(config_dir=config_dir)
    try:
        contexts = config.get_execution_contexts()
    except ValidationError as e:
        print(f"Error: Invalid {e.field} - {e.message}", file=sys.stderr)
        return 1
    store = LocalStore(config.get_database_file(), contexts=contexts)

    try:
        # Expired synced tombstones are purged on every launch.
        store.purge_expired_tombstones(timedelta(days=config.get_tombstone_retention_days()))

        if args.cli_command == "list-notes":
            return cmd_list_notes(store, args)
        elif args.cli_command == "show-note":
            return cmd_show_note(store, args)
        elif args.cli_command == "new-note":
            return cmd_new_note(store, args)
        elif args.cli_command == "edit-note":
            return cmd_edit_note(store, args)
        elif args.cli_command == "delete-note":
            return cmd_delete_note(store, args)
        elif args.cli_command == "sync":
            return _run_sync_command(store, config, args)
        elif args.cli_command == "maintenance":
            maint_cmd = getattr(args, "maintenance_command", None)
            if not maint_cmd:
                print("Error: No maintenance command specified. Use 'maintenance --help'.", file=sys.stderr)
                return 1
            if maint_cmd == "purge-tombstones":
                if args.days is None:
                    args.days = config.get_tombstone_retention_days()
                return cmd_maintenance_purge_tombstones(store, args)
            print(f"Error: Unknown maintenance command '{maint_cmd}'", file=sys.stderr)
            return 1
        else:
            print(f"Error: Unknown command '{args.cli_command}'", file=sys.stderr)
            return 1
    except ValidationError as e:
        print(f"Error: Invalid {e.field} - {e.message}", file=sys.stderr)
        return 1
    finally:
        store.close()
