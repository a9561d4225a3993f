# state.py
"""Compare workshop snapshots between polling cycles."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from .dates import is_resolved
from .models import ItemRecord

LOGGER = logging.getLogger(__name__)


def _index_by_id(snapshot: Sequence[ItemRecord]) -> Dict[str, ItemRecord]:
    # First occurrence wins if the listing ever repeats an id.
    index: Dict[str, ItemRecord] = {}
    for record in snapshot:
        index.setdefault(record.id, record)
    return index


def diff_snapshots(
    previous: Optional[Sequence[ItemRecord]],
    current: Sequence[ItemRecord],
) -> List[ItemRecord]:
    """Return the records in ``current`` that are new or updated.

    A record counts as changed when ``previous`` has no record with the same
    id and the same ``last_updated`` instant. Records without a resolved
    timestamp are never returned.

    Args:
        previous: snapshot from the last cycle (``None`` or empty on start)
        current: snapshot fetched this cycle

    Returns:
        changed records, in ``current`` order
    """
    known = _index_by_id(previous or [])

    changes: List[ItemRecord] = []
    for record in current:
        if not is_resolved(record.last_updated):
            LOGGER.debug("Item %s: timestamp unresolved -> skip", record.id)
            continue

        old = known.get(record.id)
        if old is not None and old.last_updated == record.last_updated:
            continue

        LOGGER.debug(
            "Item %s: changed (title: %s, updated: %s)",
            record.id,
            record.title,
            record.last_updated,
        )
        changes.append(record)

    LOGGER.info(
        "%d items now, %d items before, %d changed",
        len(current),
        len(known),
        len(changes),
    )
    return changes


def merge_snapshots(
    previous: Optional[Sequence[ItemRecord]],
    current: Sequence[ItemRecord],
) -> List[ItemRecord]:
    """Build the snapshot to keep for the next cycle.

    Items whose fetch failed this cycle keep their last known-good record so
    that a later successful fetch with an unchanged timestamp is not reported
    as an update. Items that have never been fetched successfully stay as
    placeholders.
    """
    known = _index_by_id(previous or [])

    merged: List[ItemRecord] = []
    for record in current:
        if not record.is_complete and record.id in known:
            LOGGER.debug("Item %s: fetch failed, carrying previous record forward", record.id)
            merged.append(known[record.id])
        else:
            merged.append(record)
    return merged
