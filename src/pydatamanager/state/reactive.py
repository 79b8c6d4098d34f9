"""Dependency-tracked re-execution (``autorun``/``autofree``).

While an autorun function executes, every ``get`` records the signature it
resolved into the innermost recording context. After the run the function
is subscribed to exactly the signatures it touched; when any of them is
dispatched it runs again and its subscriptions are diffed against the new
set, so conditional reads are tracked correctly.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

from pydatamanager._signature import RequestSignature
from pydatamanager.state.policy import AUTORUN_PRIORITY
from pydatamanager.state.subscriptions import Callback, Subscription, SubscriptionHub

_logger = logging.getLogger(__name__)

AutorunFn = Callable[[], Any]


@dataclass(eq=False)
class _Autorun:
    fn: AutorunFn
    owner_id: int
    wrapper: Callback
    signatures: set[RequestSignature] = field(default_factory=set)
    runs: int = 0


class ReactiveRunner:
    """Tracks autorun functions and the signatures they depend on."""

    def __init__(self, hub: SubscriptionHub) -> None:
        self._hub = hub
        self._contexts: list[set[RequestSignature]] = []
        self._runs: dict[tuple[int, AutorunFn], _Autorun] = {}

    @contextlib.contextmanager
    def recording(self) -> Iterator[set[RequestSignature]]:
        """Open a recording context; nested contexts do not leak into outer ones."""
        touched: set[RequestSignature] = set()
        self._contexts.append(touched)
        try:
            yield touched
        finally:
            self._contexts.pop()

    def record(self, signature: RequestSignature) -> None:
        if self._contexts:
            self._contexts[-1].add(signature)

    def dependencies(self, fn: AutorunFn, owner_id: int) -> frozenset[RequestSignature]:
        run = self._runs.get((owner_id, fn))
        return frozenset(run.signatures) if run is not None else frozenset()

    def is_running(self, fn: AutorunFn, owner_id: int) -> bool:
        return (owner_id, fn) in self._runs

    def autorun(self, fn: AutorunFn, owner_id: int) -> None:
        key = (owner_id, fn)
        if key in self._runs:
            _logger.debug("Autorun %r already active", fn)
            return
        run = _Autorun(fn=fn, owner_id=owner_id, wrapper=self._make_wrapper(key))
        self._runs[key] = run
        try:
            self._execute(run)
        except Exception:
            self._runs.pop(key, None)
            raise

    def autofree(self, fn: AutorunFn, owner_id: int) -> bool:
        run = self._runs.pop((owner_id, fn), None)
        if run is None:
            return False
        for signature in run.signatures:
            self._hub.unsubscribe(signature, owner_id, None, run.wrapper)
        run.signatures = set()
        return True

    def _make_wrapper(self, key: tuple[int, AutorunFn]) -> Callback:
        def wrapper(_data: Any, _params: dict[str, Any]) -> None:
            # Freed runs are gone from the table; a stale wrapper does nothing.
            run = self._runs.get(key)
            if run is not None and run.wrapper is wrapper:
                self._execute(run)

        return wrapper

    def _execute(self, run: _Autorun) -> None:
        with self.recording() as touched:
            run.fn()
        run.runs += 1

        wrapper = run.wrapper
        for signature in touched - run.signatures:
            self._hub.subscribe(
                signature,
                Subscription(
                    signature=signature,
                    owner_id=run.owner_id,
                    datasource_id=None,
                    registration=None,
                    callback=wrapper,
                    priority=AUTORUN_PRIORITY,
                ),
            )
        for signature in run.signatures - touched:
            self._hub.unsubscribe(signature, run.owner_id, None, wrapper)
        run.signatures = touched
