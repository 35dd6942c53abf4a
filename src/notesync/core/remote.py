"""Remote client contract for notesync.

A RemoteClient proposes local changes to the remote authority in one batch
and reads back the authority's resolved versions. The authority is the
single source of truth for conflict outcomes.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, List, Optional, Sequence

from .models import Record

if TYPE_CHECKING:
    from .authority import RemoteAuthority

logger = logging.getLogger(__name__)

__all__ = [
    "RemoteError",
    "TransportError",
    "DecodeError",
    "RemoteClient",
    "LocalRemoteClient",
    "check_resolved",
]


class RemoteError(Exception):
    """Base class for failures talking to the remote authority."""


class TransportError(RemoteError):
    """The remote could not be reached or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DecodeError(RemoteError):
    """The remote answered, but the payload was malformed."""


class RemoteClient(ABC):
    """Abstract batch synchronization RPC against a remote authority."""

    @abstractmethod
    def batch_sync(self, records: Sequence[Record]) -> List[Record]:
        """Propose records and return the authority's resolved versions.

        The result holds exactly one record per input id.

        Raises:
            TransportError: If the remote is unreachable
            DecodeError: If the response cannot be decoded
        """

    @abstractmethod
    def fetch_all(self) -> List[Record]:
        """Return every non-deleted record held by the authority."""

    def close(self) -> None:
        """Release resources held by the client."""


def check_resolved(sent: Sequence[Record], resolved: Sequence[Record]) -> List[Record]:
    """Verify that resolved answers sent one-to-one by id.

    Raises:
        DecodeError: If ids are missing, duplicated or unexpected
    """
    sent_ids = {record.id for record in sent}
    resolved_ids = [record.id for record in resolved]
    if len(resolved_ids) != len(set(resolved_ids)):
        raise DecodeError("Resolved batch contains duplicate ids")
    if set(resolved_ids) != sent_ids:
        missing = sent_ids - set(resolved_ids)
        extra = set(resolved_ids) - sent_ids
        raise DecodeError(
            f"Resolved batch does not match request "
            f"(missing {len(missing)}, unexpected {len(extra)})"
        )
    return list(resolved)


class LocalRemoteClient(RemoteClient):
    """In-process client that talks to a RemoteAuthority directly."""

    def __init__(self, authority: "RemoteAuthority", owns_authority: bool = False) -> None:
        self.authority = authority
        self._owns_authority = owns_authority

    def batch_sync(self, records: Sequence[Record]) -> List[Record]:
        logger.debug(f"Local batch sync of {len(records)} records")
        return check_resolved(records, self.authority.batch_sync(records))

    def fetch_all(self) -> List[Record]:
        return self.authority.fetch_all()

    def close(self) -> None:
        if self._owns_authority:
            self.authority.close()
