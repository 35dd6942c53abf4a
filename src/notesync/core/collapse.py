"""Pending queue collapsing for notesync.

Successive local edits made before a sync succeeds leave several versions
of the same record in the pending queue. collapse() reduces them to the
single net change per record that has to be transmitted.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List

from .models import Record

logger = logging.getLogger(__name__)

__all__ = ["collapse"]


def collapse(pending: Iterable[Record]) -> List[Record]:
    """Reduce a pending-change set to a minimal equivalent set.

    Within each id the version with the greatest last_modified_at wins; on
    equal timestamps the later entry in the input wins. An id is dropped
    entirely when a never-synced live version is followed by a deleted one:
    the remote has never seen the record, so there is nothing to send.

    Args:
        pending: Record versions, possibly several per id

    Returns:
        At most one record per id, in first-seen order
    """
    groups: Dict[str, List[Record]] = {}
    for record in pending:
        groups.setdefault(record.id, []).append(record)

    collapsed: List[Record] = []
    for record_id, versions in groups.items():
        if _created_then_deleted(versions):
            logger.debug(f"Dropping never-synced deleted record {record_id}")
            continue
        collapsed.append(_latest(versions))
    return collapsed


def _latest(versions: List[Record]) -> Record:
    winner = versions[0]
    for version in versions[1:]:
        if version.last_modified_at >= winner.last_modified_at:
            winner = version
    return winner


def _created_then_deleted(versions: List[Record]) -> bool:
    live = [v for v in versions if not v.is_deleted and not v.was_ever_synced]
    if not live:
        return False
    first_live = min(v.last_modified_at for v in live)
    return any(
        v.is_deleted and v.last_modified_at > first_live for v in versions
    )
