"""Process-wide response cache keyed by request signature."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydatamanager._signature import RequestSignature
from pydatamanager.state.policy import expiry_for, is_expired


@dataclass(slots=True)
class CacheEntry:
    """Raw data and in-flight marker for a single signature."""

    signature: RequestSignature
    data: Any = None
    has_data: bool = False
    expires_at: float | None = None
    pending: asyncio.Task[Any] | None = None


class CacheRegistry:
    """Time-bounded cache of raw responses.

    Entries are created on first access and never deleted; expiry is
    checked lazily on read.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[RequestSignature, CacheEntry] = {}

    def __contains__(self, signature: object) -> bool:
        return signature in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def _entry(self, signature: RequestSignature) -> CacheEntry:
        entry = self._entries.get(signature)
        if entry is None:
            entry = CacheEntry(signature=signature)
            self._entries[signature] = entry
        return entry

    def read(self, signature: RequestSignature) -> CacheEntry | None:
        """Return the entry for *signature* if it ever received data."""
        entry = self._entries.get(signature)
        if entry is None or not entry.has_data:
            return None
        return entry

    def write(self, signature: RequestSignature, data: Any, ttl: float | None) -> None:
        """Store *data*; ``ttl`` of ``None`` never expires, ``0`` is never valid."""
        entry = self._entry(signature)
        entry.data = data
        entry.has_data = True
        entry.expires_at = expiry_for(self._clock(), ttl)

    def is_valid(self, signature: RequestSignature) -> bool:
        entry = self.read(signature)
        if entry is None:
            return False
        return not is_expired(self._clock(), entry.expires_at)

    def expires_at(self, signature: RequestSignature) -> float | None:
        entry = self._entries.get(signature)
        return entry.expires_at if entry is not None else None

    def pending(self, signature: RequestSignature) -> asyncio.Task[Any] | None:
        entry = self._entries.get(signature)
        return entry.pending if entry is not None else None

    def set_pending(self, signature: RequestSignature, task: asyncio.Task[Any]) -> None:
        entry = self._entry(signature)
        if entry.pending is not None and not entry.pending.done():
            raise RuntimeError(f"A fetch is already in flight for {signature}")
        entry.pending = task

    def clear_pending(self, signature: RequestSignature) -> None:
        entry = self._entries.get(signature)
        if entry is not None:
            entry.pending = None
