#!/usr/bin/env python3
"""Web API for notesync.

This module provides a RESTful HTTP API over the local copy of the notes
and the sync engine, for presentation layers that poll over HTTP.

Endpoints:
    GET    /api/notes            List all visible notes
    POST   /api/notes            Create a new note
    GET    /api/notes/<id>       Get specific note
    PUT    /api/notes/<id>       Update a note
    DELETE /api/notes/<id>       Soft-delete a note
    GET    /api/sync/status      Current sync status
    POST   /api/sync/now         Run a sync and return its result
    GET    /api/health           Health check

All endpoints return JSON responses.
IDs are UUID7 hex strings (32 characters, no hyphens).

POST /api/notes body:
    - title: Note title (string, required)
    - content: Note content (string, optional)
    - color_hex: Colour tag, "" or "#RRGGBB" (optional)

PUT /api/notes/<id> body:
    - any of title, content, color_hex
"""

from __future__ import annotations

import argparse
import functools
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from notesync.core.config import Config
from notesync.core.database import LocalStore
from notesync.core.sync_engine import build_sync_engine
from notesync.core.validation import (
    ValidationError,
    validate_color_hex,
    validate_content,
    validate_record_id,
    validate_title,
)

logger = logging.getLogger(__name__)

NOTE_FIELDS = ("title", "content", "color_hex")


def api_endpoint(func: Callable) -> Callable:
    """Decorator for consistent API error handling.

    Catches ValidationError (400) and Exception (500) with proper
    JSON error responses and logging.
    """
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except ValidationError as e:
            logger.warning(f"Validation error in {func.__name__}: {e}")
            return jsonify({"error": f"Invalid {e.field}: {e.message}"}), 400
        except Exception as e:
            logger.error(f"Error in {func.__name__}: {e}")
            return jsonify({"error": str(e)}), 500
    return wrapper


def _note_fields(data: Dict[str, Any]) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    if "title" in data:
        validate_title(data["title"])
        fields["title"] = data["title"]
    if "content" in data:
        validate_content(data["content"])
        fields["content"] = data["content"]
    if "color_hex" in data:
        validate_color_hex(data["color_hex"])
        fields["color_hex"] = data["color_hex"]
    return fields


def create_app(
    config_dir: Optional[Path] = None,
    local_remote_db: Optional[Path] = None,
    offline: bool = False,
    start_engine: bool = False,
) -> Flask:
    """Create and configure Flask application.

    Args:
        config_dir: Custom configuration directory (default: None)
        local_remote_db: Sync against an in-process authority in this file
        offline: Treat the remote as unreachable
        start_engine: Start connectivity monitoring and the startup purge

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)
    CORS(app)  # Enable CORS for all routes

    config = Config(config_dir=config_dir)
    store = LocalStore(
        config.get_database_file(), contexts=config.get_execution_contexts()
    )
    engine = build_sync_engine(
        config, store, local_remote_db=local_remote_db, offline=offline
    )
    if start_engine:
        engine.start()

    app.extensions["notesync_store"] = store
    app.extensions["notesync_engine"] = engine

    logger.info(f"Web API initialized with database: {store.db_path}")

    # Error handlers
    @app.errorhandler(404)
    def not_found(error: Any) -> tuple[Response, int]:
        """Handle 404 errors."""
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def internal_error(error: Any) -> tuple[Response, int]:
        """Handle 500 errors."""
        logger.error(f"Internal error: {error}")
        return jsonify({"error": "Internal server error"}), 500

    # Routes
    @app.route("/api/notes", methods=["GET"])
    @api_endpoint
    def get_notes() -> Response:
        """Get all visible notes."""
        return jsonify([note.to_dict() for note in store.fetch_visible()])

    @app.route("/api/notes", methods=["POST"])
    @api_endpoint
    def create_note() -> tuple[Response, int]:
        """Create a new note."""
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or not data:
            return jsonify({"error": "Request body is required"}), 400
        if "title" not in data:
            return jsonify({"error": "Title is required"}), 400

        fields = _note_fields(data)
        note = store.create(
            fields["title"],
            content=fields.get("content", ""),
            color_hex=fields.get("color_hex", ""),
        )
        logger.info(f"Created note {note.id} via API")
        return jsonify(note.to_dict()), 201

    @app.route("/api/notes/<note_id>", methods=["GET"])
    @api_endpoint
    def get_note(note_id: str) -> tuple[Response, int]:
        """Get specific note by ID."""
        note_id = validate_record_id(note_id)
        note = store.get(note_id)
        if note is None or note.is_deleted:
            return jsonify({"error": f"Note {note_id} not found"}), 404
        return jsonify(note.to_dict()), 200

    @app.route("/api/notes/<note_id>", methods=["PUT"])
    @api_endpoint
    def update_note(note_id: str) -> tuple[Response, int]:
        """Update a note."""
        note_id = validate_record_id(note_id)
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or not data:
            return jsonify({"error": "Request body is required"}), 400

        fields = _note_fields(data)
        if not fields:
            return jsonify({"error": f"Provide at least one of {', '.join(NOTE_FIELDS)}"}), 400

        if not store.update(note_id, **fields):
            return jsonify({"error": f"Note {note_id} not found"}), 404

        logger.info(f"Updated note {note_id} via API")
        note = store.get(note_id)
        if note is None:
            return jsonify({"error": f"Note {note_id} not found"}), 404
        return jsonify(note.to_dict()), 200

    @app.route("/api/notes/<note_id>", methods=["DELETE"])
    @api_endpoint
    def delete_note(note_id: str) -> tuple[Response, int]:
        """Delete a note (soft delete)."""
        note_id = validate_record_id(note_id)
        if store.soft_delete(note_id):
            return jsonify({"message": f"Note {note_id} deleted"}), 200
        return jsonify({"error": f"Note {note_id} not found"}), 404

    @app.route("/api/sync/status", methods=["GET"])
    @api_endpoint
    def sync_status() -> tuple[Response, int]:
        """Get the current sync status."""
        engine.refresh_pending_count()
        return jsonify(engine.status.to_dict()), 200

    @app.route("/api/sync/now", methods=["POST"])
    @api_endpoint
    def sync_now() -> tuple[Response, int]:
        """Run a sync and report its outcome."""
        result = engine.sync_now()
        body = asdict(result)
        body["status"] = engine.status.to_dict()
        if result.success or result.skipped:
            return jsonify(body), 200
        return jsonify(body), 502

    @app.route("/api/health", methods=["GET"])
    def health_check() -> tuple[Response, int]:
        """Health check endpoint.

        Returns:
            JSON response indicating service health
        """
        return jsonify({"status": "ok"}), 200

    return app


def add_web_subparser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    """Add web subparser and its arguments.

    Args:
        subparsers: Parent subparsers object to add web parser to
    """
    web_parser = subparsers.add_parser(
        "web",
        help="Start web API server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    web_parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)"
    )

    web_parser.add_argument(
        "--port",
        type=int,
        default=5000,
        help="Port to bind to (default: 5000)"
    )

    web_parser.add_argument(
        "--local-remote",
        dest="local_remote",
        type=Path,
        default=None,
        metavar="DB",
        help="Sync against an in-process authority stored in DB instead of over HTTP"
    )

    web_parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode"
    )


def run(config_dir: Optional[Path], args: argparse.Namespace) -> int:
    """Run web server with given arguments.

    Args:
        config_dir: Custom configuration directory or None for default
        args: Parsed command-line arguments (should have host, port, debug attributes)

    Returns:
        Exit code (0 for success)
    """
    logger.info("Starting notesync Web API")
    if config_dir:
        logger.info(f"Using custom config directory: {config_dir}")

    app = create_app(
        config_dir=config_dir,
        local_remote_db=args.local_remote,
        start_engine=True,
    )

    try:
        app.run(
            host=args.host,
            port=args.port,
            debug=args.debug,
            threaded=True,
        )
    finally:
        engine = app.extensions["notesync_engine"]
        engine.stop()
        engine.remote.close()
        app.extensions["notesync_store"].close()

    return 0
