"""Process-wide shared state.

Every :class:`~pydatamanager.DataManager` works against one
:class:`DataRegistry`. By default all instances share the lazily created
process-wide registry returned by :func:`default_registry`; passing an
explicit registry isolates a group of instances (tests do this).
The default registry lives for the whole process and is never torn down.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from pydatamanager._batcher import SaveTransactionBatcher
from pydatamanager._cache import CacheRegistry
from pydatamanager._coordinator import RequestCoordinator
from pydatamanager.state.reactive import ReactiveRunner
from pydatamanager.state.subscriptions import SubscriptionHub


class DataRegistry:
    """Cache, subscriptions, in-flight fetches, save batches and autoruns."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.cache = CacheRegistry(clock=clock)
        self.subscriptions = SubscriptionHub()
        self.coordinator = RequestCoordinator(self.cache, self.subscriptions)
        self.saves = SaveTransactionBatcher()
        self.reactive = ReactiveRunner(self.subscriptions)


_default_registry: DataRegistry | None = None


def default_registry() -> DataRegistry:
    """Return the process-wide registry, creating it on first use."""
    global _default_registry
    if _default_registry is None:
        _default_registry = DataRegistry()
    return _default_registry
