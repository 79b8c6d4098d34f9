"""Outcome of a ``get`` call.

A read either hits the cache (:class:`Cached`), joins or starts a
background fetch whose result arrives through subscriptions
(:class:`Pending`), or, when forced, hands back an awaitable that
resolves once the cache is updated and subscribers are notified
(:class:`Refreshing`).
"""

from __future__ import annotations

import asyncio
from collections.abc import Generator
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Cached:
    """Valid cached data, returned synchronously without network I/O."""

    data: Any


@dataclass(frozen=True, slots=True)
class Pending:
    """No valid data yet; a fetch is in flight."""


@dataclass(frozen=True, slots=True)
class Refreshing:
    """A forced refresh; await it (or ``.future``) for the fresh data."""

    future: asyncio.Future[Any]

    def __await__(self) -> Generator[Any, None, Any]:
        return self.future.__await__()


ReadResult = Cached | Pending | Refreshing
