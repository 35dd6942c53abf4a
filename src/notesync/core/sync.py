"""Sync server for notesync.

This module exposes a RemoteAuthority over HTTP so that clients running
HttpRemoteClient can reconcile with it.

Sync Protocol:
1. Batch: POST proposed records, receive one resolved record per id
2. Records: GET every non-deleted record for bootstrap / full refresh
3. Status: GET server liveness and record count
"""

from __future__ import annotations

import logging
from typing import Any, List, Tuple

from flask import Blueprint, Flask, jsonify, request

from .authority import RemoteAuthority
from .models import Record
from .timestamp_utils import to_iso, utc_now
from .validation import ValidationError

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "1.0"


def create_sync_blueprint(authority: RemoteAuthority) -> Blueprint:
    """Create Flask blueprint for sync endpoints.

    Args:
        authority: RemoteAuthority that resolves proposed records

    Returns:
        Flask Blueprint with sync routes
    """
    sync_bp = Blueprint("sync", __name__, url_prefix="/sync")

    @sync_bp.route("/batch", methods=["POST"])
    def batch() -> Tuple[Any, int]:
        """Resolve a batch of proposed records.

        Request body:
            {
                "records": [{"id": "...", "last_modified_at": "...", ...}]
            }

        Response:
            {
                "records": [...],
                "timestamp": "..."
            }
        """
        try:
            data = request.get_json(silent=True)
            if not data:
                error_msg = "Missing JSON request body in batch"
                logger.warning(f"Batch rejected: {error_msg}")
                return jsonify({"error": error_msg}), 400

            records_data = data.get("records") if isinstance(data, dict) else None
            if not isinstance(records_data, list):
                error_msg = "Missing records list in batch request"
                logger.warning(f"Batch rejected: {error_msg}")
                return jsonify({"error": error_msg}), 400

            records: List[Record] = []
            for i, item in enumerate(records_data):
                try:
                    records.append(Record.from_dict(item))
                except ValidationError as e:
                    error_msg = f"Invalid record at index {i}: {e}"
                    logger.warning(f"Batch rejected: {error_msg}")
                    return jsonify({"error": error_msg}), 400

            logger.info(f"Resolving batch of {len(records)} records")
            resolved = authority.batch_sync(records)

            return jsonify({
                "records": [record.to_dict() for record in resolved],
                "timestamp": to_iso(utc_now()),
            }), 200

        except Exception as e:
            error_msg = f"Internal server error resolving batch: {e}"
            logger.error(error_msg)
            return jsonify({"error": error_msg}), 500

    @sync_bp.route("/records", methods=["GET"])
    def records() -> Tuple[Any, int]:
        """Get every non-deleted record.

        Response:
            {
                "records": [...],
                "timestamp": "..."
            }
        """
        try:
            all_records = authority.fetch_all()
            logger.info(f"Full refresh requested: returning {len(all_records)} records")
            return jsonify({
                "records": [record.to_dict() for record in all_records],
                "timestamp": to_iso(utc_now()),
            }), 200

        except Exception as e:
            error_msg = f"Internal server error listing records: {e}"
            logger.error(error_msg)
            return jsonify({"error": error_msg}), 500

    @sync_bp.route("/status", methods=["GET"])
    def status() -> Tuple[Any, int]:
        """Get sync server status.

        Response:
            {
                "status": "ok",
                "protocol_version": "1.0",
                "record_count": 42
            }
        """
        return jsonify({
            "status": "ok",
            "protocol_version": PROTOCOL_VERSION,
            "record_count": authority.count(),
        }), 200

    return sync_bp


def create_sync_server(authority: RemoteAuthority) -> Flask:
    """Create a standalone Flask sync server.

    Args:
        authority: RemoteAuthority instance

    Returns:
        Flask application instance
    """
    app = Flask(__name__)
    app.json.sort_keys = False
    app.register_blueprint(create_sync_blueprint(authority))
    return app
