"""Timestamp utilities for notesync.

Record timestamps are timezone-aware UTC datetimes with microsecond
precision. The local store keeps them as integer microseconds since the
epoch so that SQL ordering and comparison stay exact; the wire format is
ISO 8601.
"""

from datetime import datetime, timezone
from typing import Optional

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Return dt as an aware UTC datetime.

    Naive datetimes are taken to be UTC already.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def datetime_to_micros(dt: Optional[datetime]) -> Optional[int]:
    """Convert datetime to integer microseconds since the epoch.

    Args:
        dt: datetime object or None

    Returns:
        Microseconds since epoch or None
    """
    if dt is None:
        return None
    delta = ensure_utc(dt) - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


def micros_to_datetime(micros: Optional[int]) -> Optional[datetime]:
    """Convert integer microseconds since the epoch to an aware UTC datetime."""
    if micros is None:
        return None
    seconds, remainder = divmod(int(micros), 1_000_000)
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(
        microsecond=remainder
    )


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime as an ISO 8601 UTC string for the wire."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat(timespec="microseconds")


def parse_iso(value: str) -> datetime:
    """Parse an ISO 8601 string into an aware UTC datetime.

    A trailing ``Z`` is accepted.

    Raises:
        ValueError: If value is not a valid ISO 8601 timestamp
    """
    if not isinstance(value, str):
        raise ValueError(f"expected an ISO 8601 string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def format_timestamp(dt: Optional[datetime]) -> str:
    """Format a datetime in the local timezone for display.

    Returns:
        Formatted string "YYYY-MM-DD HH:MM:SS" in local timezone,
        or empty string if dt is None
    """
    if dt is None:
        return ""
    return ensure_utc(dt).astimezone().strftime("%Y-%m-%d %H:%M:%S")
