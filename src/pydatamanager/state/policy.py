"""Deterministic expiry and ordering policy.

Pure functions shared by the cache and the subscription hub; no state.
"""

from __future__ import annotations

from collections.abc import Sequence

#: Priority given to ``subscribe`` calls that do not pass one.
DEFAULT_PRIORITY = 10

#: Priority of autorun rerun wrappers; they fire after regular callbacks
#: of default priority.
AUTORUN_PRIORITY = 0


def expiry_for(now: float, ttl: float | None) -> float | None:
    """Absolute expiry time for an entry written at *now*.

    ``None`` means the entry never expires; a ``ttl`` of ``0`` yields an
    entry that is already stale.
    """
    if ttl is None:
        return None
    return now + ttl


def is_expired(now: float, expires_at: float | None) -> bool:
    if expires_at is None:
        return False
    return now >= expires_at


def insertion_index(priorities: Sequence[int], priority: int) -> int:
    """Index at which to insert *priority* into a descending list.

    Equal priorities keep registration order: the new item goes after
    every existing item with the same priority.
    """
    for index, existing in enumerate(priorities):
        if existing < priority:
            return index
    return len(priorities)
