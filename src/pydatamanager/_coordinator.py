"""Single-flight fetch execution per request signature."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pydatamanager._cache import CacheRegistry
from pydatamanager._signature import RequestSignature
from pydatamanager._transport import Middleware, Requester, send
from pydatamanager.exceptions import ConfigError, DataManagerError, TransportError
from pydatamanager.models import Request
from pydatamanager.results import Cached, Pending, ReadResult, Refreshing
from pydatamanager.state.subscriptions import SubscriptionHub

_logger = logging.getLogger(__name__)


def consume_exception(task: asyncio.Task[Any]) -> None:
    # Failures reach callers through the error channel or an awaited
    # result; mark them retrieved so dropped tasks stay quiet.
    if not task.cancelled():
        task.exception()


class RequestCoordinator:
    """Guarantees at most one in-flight transport call per signature.

    ``fetch`` never suspends: it returns :class:`Cached` for a valid cache
    entry, :class:`Pending` when a background fetch was started or joined,
    and :class:`Refreshing` for forced reads. A ``Refreshing`` future
    resolves only after the cache was written and every subscriber was
    dispatched to.
    """

    def __init__(self, cache: CacheRegistry, hub: SubscriptionHub) -> None:
        self._cache = cache
        self._hub = hub
        self._inflight: set[asyncio.Task[Any]] = set()

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    def fetch(
        self,
        signature: RequestSignature,
        requester: Requester | None,
        *,
        ttl: float | None,
        force: bool = False,
        headers: Mapping[str, str] | None = None,
        middlewares: Sequence[Middleware] = (),
    ) -> ReadResult:
        if not force:
            entry = self._cache.read(signature)
            if entry is not None and self._cache.is_valid(signature):
                _logger.debug("Cache hit for %s", signature)
                return Cached(entry.data)

        pending = self._cache.pending(signature)
        if pending is None:
            pending = self._start(signature, requester, ttl=ttl, headers=headers, middlewares=middlewares)
        else:
            _logger.debug("Joining in-flight fetch for %s", signature)

        if force:
            # Callers giving up on a forced refresh must not cancel the fetch.
            return Refreshing(asyncio.shield(pending))
        return Pending()

    def _start(
        self,
        signature: RequestSignature,
        requester: Requester | None,
        *,
        ttl: float | None,
        headers: Mapping[str, str] | None,
        middlewares: Sequence[Middleware],
    ) -> asyncio.Task[Any]:
        if requester is None:
            raise ConfigError("No requester configured; pass one via DataManagerConfig(requester=...)")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise DataManagerError("Fetching requires a running event loop") from exc

        request = Request(
            url=signature.url,
            method=signature.method,
            body=signature.payload(),
            headers=dict(headers or {}),
        )
        task = loop.create_task(self._run(signature, request, requester, ttl, middlewares))
        self._cache.set_pending(signature, task)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        task.add_done_callback(consume_exception)
        return task

    async def _run(
        self,
        signature: RequestSignature,
        request: Request,
        requester: Requester,
        ttl: float | None,
        middlewares: Sequence[Middleware],
    ) -> Any:
        try:
            raw = await send(requester, request, middlewares)
        except TransportError as exc:
            self._cache.clear_pending(signature)
            _logger.warning("Fetch failed for %s: %s", signature, exc)
            self._hub.dispatch_error(signature, exc)
            raise
        except BaseException:
            # Cancellation or an error send() did not translate; the marker
            # must not outlive the task.
            self._cache.clear_pending(signature)
            raise

        self._cache.write(signature, raw, ttl)
        self._cache.clear_pending(signature)
        self._hub.dispatch(signature, raw)
        return raw
