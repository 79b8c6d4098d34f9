"""Coalescing of concurrent ``save`` calls into one request per signature."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydatamanager._redact import redact_for_log
from pydatamanager._signature import RequestSignature
from pydatamanager._transport import Middleware, Requester, send
from pydatamanager.config import DEFAULT_SAVE_WINDOW
from pydatamanager.exceptions import DataManagerError
from pydatamanager.models import Request

_logger = logging.getLogger(__name__)


@dataclass(eq=False, slots=True)
class SaveBatch:
    """Writes collected for one signature during the coalescing window."""

    signature: RequestSignature
    requester: Requester
    merged_body: dict[str, Any] = field(default_factory=dict)
    futures: list[asyncio.Future[Any]] = field(default_factory=list)
    headers: dict[str, str] = field(default_factory=dict)
    middlewares: Sequence[Middleware] = ()
    timer: asyncio.TimerHandle | None = None


class SaveTransactionBatcher:
    """Merges saves to the same signature into a single transport call.

    Every call shallow-merges its body into the open batch (last arrival
    wins per key) and restarts the debounce timer. When the timer fires,
    one request is sent with the merged body and the last caller's
    requester, headers and middlewares; all callers receive the same
    response or the same error.

    Saves never touch the read cache: callers re-fetch to observe the
    effect of a write.
    """

    def __init__(self) -> None:
        self._batches: dict[RequestSignature, SaveBatch] = {}
        self._inflight: set[asyncio.Task[None]] = set()

    def __contains__(self, signature: object) -> bool:
        return signature in self._batches

    def queued(self, signature: RequestSignature) -> int:
        """Number of callers waiting on the open batch for *signature*."""
        batch = self._batches.get(signature)
        return len(batch.futures) if batch is not None else 0

    def save(
        self,
        signature: RequestSignature,
        body: Mapping[str, Any],
        requester: Requester,
        *,
        headers: Mapping[str, str] | None = None,
        middlewares: Sequence[Middleware] = (),
        window: float = DEFAULT_SAVE_WINDOW,
    ) -> asyncio.Future[Any]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise DataManagerError("Saving requires a running event loop") from exc

        batch = self._batches.get(signature)
        if batch is None:
            batch = SaveBatch(
                signature=signature,
                requester=requester,
                merged_body=dict(signature.payload() or {}),
            )
            self._batches[signature] = batch
            _logger.debug("Opened save batch for %s", signature)
        elif batch.timer is not None:
            batch.timer.cancel()

        batch.merged_body.update(body)
        batch.requester = requester
        batch.headers = dict(headers or {})
        batch.middlewares = middlewares

        future: asyncio.Future[Any] = loop.create_future()
        batch.futures.append(future)
        batch.timer = loop.call_later(window, self._flush, signature)
        return future

    def _flush(self, signature: RequestSignature) -> None:
        batch = self._batches.pop(signature, None)
        if batch is None:
            return
        _logger.debug(
            "Flushing %d save(s) for %s body=%s",
            len(batch.futures),
            signature,
            redact_for_log(batch.merged_body),
        )
        task = asyncio.get_running_loop().create_task(self._send(batch))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _send(self, batch: SaveBatch) -> None:
        request = Request(
            url=batch.signature.url,
            method=batch.signature.method,
            body=batch.merged_body,
            headers=batch.headers,
        )
        try:
            response = await send(batch.requester, request, batch.middlewares)
        except asyncio.CancelledError:
            for future in batch.futures:
                future.cancel()
            raise
        except Exception as exc:
            _logger.debug("Save failed for %s: %s", batch.signature, exc)
            for future in batch.futures:
                if not future.done():
                    future.set_exception(exc)
            return

        for future in batch.futures:
            if not future.done():
                future.set_result(response)
