"""HTTP sync client for notesync.

This module provides the client side of the sync protocol served by
notesync.core.sync, allowing this device to:
- Propose its collapsed pending changes in one batch
- Read back every record for bootstrap / full refresh
- Check whether the sync server is reachable
"""

from __future__ import annotations

import json
import logging
import http.client
import urllib.error
import urllib.request
from typing import Any, Dict, List, Optional, Sequence

from .models import Record
from .remote import DecodeError, RemoteClient, TransportError, check_resolved
from .validation import ValidationError

logger = logging.getLogger(__name__)


class HttpRemoteClient(RemoteClient):
    """RemoteClient that talks to a notesync sync server over HTTP.

    Attributes:
        base_url: Base URL of the sync server, without trailing slash
        timeout: Socket timeout in seconds for every request
    """

    def __init__(self, base_url: str, timeout: float = 30) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def batch_sync(self, records: Sequence[Record]) -> List[Record]:
        """POST records to /sync/batch and decode the resolved versions."""
        logger.info(f"Sending batch of {len(records)} records to {self.base_url}")
        data = self._make_request(
            f"{self.base_url}/sync/batch",
            method="POST",
            data={"records": [record.to_dict() for record in records]},
        )
        resolved = self._decode_records(data)
        return check_resolved(records, resolved)

    def fetch_all(self) -> List[Record]:
        """GET every non-deleted record from /sync/records."""
        data = self._make_request(f"{self.base_url}/sync/records")
        records = self._decode_records(data)
        logger.info(f"Fetched {len(records)} records from {self.base_url}")
        return records

    def check_status(self) -> Dict[str, Any]:
        """Check if the sync server is reachable and get its status.

        Returns:
            Dict with status info or error
        """
        try:
            data = self._make_request(f"{self.base_url}/sync/status")
        except (TransportError, DecodeError) as e:
            return {"reachable": False, "error": str(e)}
        return {
            "reachable": True,
            "protocol_version": data.get("protocol_version"),
            "record_count": data.get("record_count"),
        }

    @staticmethod
    def _decode_records(data: Dict[str, Any]) -> List[Record]:
        items = data.get("records")
        if not isinstance(items, list):
            raise DecodeError("Response is missing the records list")

        records = []
        for i, item in enumerate(items):
            try:
                records.append(Record.from_dict(item))
            except ValidationError as e:
                raise DecodeError(f"Invalid record at index {i}: {e}") from e
        return records

    def _make_request(
        self,
        url: str,
        method: str = "GET",
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Make an HTTP request to the sync server.

        Args:
            url: Full URL to request
            method: HTTP method
            data: JSON data to send (for POST)

        Returns:
            Decoded JSON response object

        Raises:
            TransportError: On connection failure, timeout or non-2xx status
            DecodeError: If the body is not a JSON object
        """
        if data is not None:
            request = urllib.request.Request(
                url,
                data=json.dumps(data).encode("utf-8"),
                method=method,
                headers={"Content-Type": "application/json"},
            )
        else:
            request = urllib.request.Request(url, method=method)

        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                body = response.read()

        except urllib.error.HTTPError as e:
            try:
                error_data = json.loads(e.read().decode("utf-8"))
                error_msg = error_data.get("error", f"HTTP {e.code}: {e.reason}")
            except (ValueError, AttributeError):
                error_msg = f"HTTP {e.code}: {e.reason}"
            logger.error(f"Request to {url} failed: {error_msg}")
            raise TransportError(f"Server error: {error_msg}", status_code=e.code) from e

        except urllib.error.URLError as e:
            error_msg = f"Connection failed to {url}: {e.reason}"
            logger.error(error_msg)
            raise TransportError(error_msg) from e

        except (http.client.HTTPException, OSError) as e:
            error_msg = f"Request to {url} failed: {e}"
            logger.error(error_msg)
            raise TransportError(error_msg) from e

        try:
            decoded = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise DecodeError(f"Malformed JSON from {url}: {e}") from e
        if not isinstance(decoded, dict):
            raise DecodeError(f"Expected a JSON object from {url}")
        return decoded
