"""Data models for notesync.

This module defines the immutable Record dataclass, the unit of
synchronization (a note), together with its JSON wire form.

All IDs are UUID7 stored as 32-character hex strings.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional

from uuid6 import uuid7

from .timestamp_utils import ensure_utc, parse_iso, to_iso, utc_now
from .validation import (
    ValidationError,
    validate_bool,
    validate_color_hex,
    validate_content,
    validate_record_id,
    validate_title,
)

WIRE_FIELDS = (
    "id",
    "title",
    "content",
    "color_hex",
    "is_deleted",
    "is_synced",
    "last_modified_at",
    "created_at",
)


def new_record_id() -> str:
    """Allocate a fresh record ID (UUID7 hex)."""
    return uuid7().hex


@dataclass(frozen=True)
class Record:
    """Represents a note in the system.

    Attributes:
        id: Unique identifier for the record (UUID7 hex, never reused)
        title: Note title
        content: Note text content
        color_hex: Opaque display tag, "" for none
        is_deleted: Soft-delete flag (tombstone)
        is_synced: True iff the local copy equals the last remote-accepted copy
        last_modified_at: Logical clock for ordering and conflict resolution
        created_at: When the record was created (informational)
        last_synced_at: When the remote last accepted this id (None if never)
    """

    id: str
    title: str = ""
    content: str = ""
    color_hex: str = ""
    is_deleted: bool = False
    is_synced: bool = False
    last_modified_at: datetime = None  # type: ignore[assignment]
    created_at: datetime = None  # type: ignore[assignment]
    last_synced_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        now = utc_now()
        modified = self.last_modified_at if self.last_modified_at is not None else now
        created = self.created_at if self.created_at is not None else modified
        object.__setattr__(self, "last_modified_at", ensure_utc(modified))
        object.__setattr__(self, "created_at", ensure_utc(created))
        if self.last_synced_at is not None:
            object.__setattr__(self, "last_synced_at", ensure_utc(self.last_synced_at))

    @property
    def was_ever_synced(self) -> bool:
        """Whether the remote authority has accepted any version of this id."""
        return self.is_synced or self.last_synced_at is not None

    def with_changes(self, **changes: Any) -> "Record":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def same_content(self, other: "Record") -> bool:
        """Compare user-visible fields and the logical clock."""
        return (
            self.id == other.id
            and self.title == other.title
            and self.content == other.content
            and self.color_hex == other.color_hex
            and self.is_deleted == other.is_deleted
            and self.last_modified_at == other.last_modified_at
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON wire form."""
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "color_hex": self.color_hex,
            "is_deleted": self.is_deleted,
            "is_synced": self.is_synced,
            "last_modified_at": to_iso(self.last_modified_at),
            "created_at": to_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Record":
        """Build a Record from its JSON wire form.

        Raises:
            ValidationError: If a field is missing or malformed
        """
        if not isinstance(data, dict):
            raise ValidationError("record", f"must be an object, got {type(data).__name__}")

        for key in ("id", "last_modified_at"):
            if key not in data:
                raise ValidationError(key, "is required")

        record_id = validate_record_id(data["id"])
        title = data.get("title", "")
        content = data.get("content", "")
        color_hex = data.get("color_hex", "")
        validate_title(title)
        validate_content(content)
        validate_color_hex(color_hex)

        last_modified_at = _parse_wire_time(data["last_modified_at"], "last_modified_at")
        created_raw = data.get("created_at")
        created_at = (
            _parse_wire_time(created_raw, "created_at")
            if created_raw is not None
            else last_modified_at
        )

        return cls(
            id=record_id,
            title=title,
            content=content,
            color_hex=color_hex,
            is_deleted=validate_bool(data.get("is_deleted", False), "is_deleted"),
            is_synced=validate_bool(data.get("is_synced", False), "is_synced"),
            last_modified_at=last_modified_at,
            created_at=created_at,
        )


def _parse_wire_time(value: Any, field_name: str) -> datetime:
    try:
        return parse_iso(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(field_name, f"invalid timestamp: {e}") from None
