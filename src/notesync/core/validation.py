"""Input validation for notesync.

This module provides validation functions for user input arriving through
the CLI and web API, and for records arriving over the wire.
All validators raise ValidationError with descriptive messages.
"""

from __future__ import annotations

import re
import uuid
from typing import Any

__all__ = [
    "ValidationError",
    "validate_uuid_hex",
    "uuid_to_hex",
    "validate_record_id",
    "validate_title",
    "validate_content",
    "validate_color_hex",
    "validate_bool",
    "MAX_TITLE_LENGTH",
    "MAX_CONTENT_LENGTH",
]

MAX_TITLE_LENGTH = 500
MAX_CONTENT_LENGTH = 100_000
UUID_HEX_LENGTH = 32

_COLOR_HEX_RE = re.compile(r"^#(?:[0-9A-Fa-f]{3}|[0-9A-Fa-f]{6})$")


class ValidationError(ValueError):
    """Validation error with field and message attributes."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"

    def __repr__(self) -> str:
        return f"ValidationError(field='{self.field}', message='{self.message}')"


def validate_uuid_hex(value: str, field_name: str = "id") -> str:
    """Validate a UUID hex string and return it normalized.

    Hyphenated UUIDs are accepted; the result is always 32 lowercase hex
    characters.
    """
    if not isinstance(value, str):
        raise ValidationError(
            field_name, f"must be a string, got {type(value).__name__}"
        )
    compact = value.replace("-", "").strip().lower()
    if len(compact) != UUID_HEX_LENGTH:
        raise ValidationError(
            field_name,
            f"must be {UUID_HEX_LENGTH} hex characters, got {len(compact)}",
        )
    try:
        return uuid.UUID(hex=compact).hex
    except ValueError as e:
        raise ValidationError(field_name, f"invalid UUID format: {e}") from None


def uuid_to_hex(value: uuid.UUID) -> str:
    """Convert a UUID to hex string (32 chars, no hyphens)."""
    return value.hex


def validate_record_id(record_id: str) -> str:
    """Validate a record ID."""
    return validate_uuid_hex(record_id, "record_id")


def validate_title(title: Any) -> None:
    """Validate a record title."""
    if not isinstance(title, str):
        raise ValidationError("title", f"must be a string, got {type(title).__name__}")
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(
            "title", f"cannot exceed {MAX_TITLE_LENGTH} characters (got {len(title)})"
        )


def validate_content(content: Any) -> None:
    """Validate record content."""
    if not isinstance(content, str):
        raise ValidationError(
            "content", f"must be a string, got {type(content).__name__}"
        )
    if len(content) > MAX_CONTENT_LENGTH:
        raise ValidationError(
            "content",
            f"cannot exceed {MAX_CONTENT_LENGTH} characters (got {len(content)})",
        )


def validate_color_hex(color_hex: Any) -> None:
    """Validate a colour tag: empty string or #RGB / #RRGGBB."""
    if not isinstance(color_hex, str):
        raise ValidationError(
            "color_hex", f"must be a string, got {type(color_hex).__name__}"
        )
    if color_hex and not _COLOR_HEX_RE.match(color_hex):
        raise ValidationError("color_hex", f"must be '' or '#RRGGBB', got '{color_hex}'")


def validate_bool(value: Any, field_name: str) -> bool:
    """Validate that a wire value is a real boolean."""
    if not isinstance(value, bool):
        raise ValidationError(
            field_name, f"must be a boolean, got {type(value).__name__}"
        )
    return value
