"""Requester interface, middleware chain and the aiohttp-backed requester."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from typing import Any, Protocol

import aiohttp

from pydatamanager._redact import redact_request
from pydatamanager.exceptions import TransportError
from pydatamanager.models import Request

_logger = logging.getLogger(__name__)

Middleware = Callable[[Request, Callable[[], None]], None]
"""``(request, next)``: mutate *request*, then call ``next()`` to continue.

Not calling ``next`` stops the chain; the request is sent as currently
mutated.
"""


class Requester(Protocol):
    """Structural requester interface.

    Any async callable with this shape can be configured, which keeps
    test doubles trivial while :class:`AiohttpRequester` stays concrete.
    """

    async def __call__(self, url: str, request: Request) -> Any:
        ...


def run_middlewares(middlewares: Sequence[Middleware], request: Request) -> Request:
    """Run *middlewares* in order against *request* and return it."""

    def _step(index: int) -> None:
        if index >= len(middlewares):
            return
        middlewares[index](request, lambda: _step(index + 1))

    _step(0)
    return request


async def send(
    requester: Requester,
    request: Request,
    middlewares: Sequence[Middleware] = (),
) -> Any:
    """Pass *request* through *middlewares* and hand it to *requester*.

    Any failure, including one raised by a middleware, is reported as
    :class:`TransportError`.
    """
    try:
        run_middlewares(middlewares, request)
        _logger.debug("Sending %s", redact_request(request))
        return await requester(request.url, request)
    except TransportError:
        raise
    except Exception as exc:
        raise TransportError(
            f"{request.method} {request.url} failed: {exc}",
            url=request.url,
        ) from exc


class AiohttpRequester:
    """Requester performing HTTP I/O with :mod:`aiohttp`.

    JSON bodies are sent for every method except ``GET``/``HEAD``.
    Responses are decoded as JSON when possible, otherwise returned as
    text.

    Usage::

        async with AiohttpRequester() as requester:
            configure(host="https://api.example.com", requester=requester)
            ...
    """

    def __init__(
        self,
        *,
        session: aiohttp.ClientSession | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._external_session = session is not None
        self._http = session
        self._headers = dict(headers or {})

    async def __aenter__(self) -> AiohttpRequester:
        if self._http is None:
            self._http = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if not self._external_session and self._http is not None:
            await self._http.close()
        self._http = None

    def _require_session(self) -> aiohttp.ClientSession:
        if self._http is None:
            raise TransportError("Requester not initialized. Use 'async with AiohttpRequester() as requester:'")
        return self._http

    async def __call__(self, url: str, request: Request) -> Any:
        http = self._require_session()
        headers = {**self._headers, **request.headers}
        kwargs: dict[str, Any] = {"headers": headers}
        if request.body is not None and request.method not in ("GET", "HEAD"):
            kwargs["json"] = request.body

        try:
            async with http.request(request.method, url, **kwargs) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise TransportError(
                        f"HTTP {resp.status} from {url}: {text[:200]}",
                        status_code=resp.status,
                        url=url,
                    )
        except TransportError:
            raise
        except aiohttp.ClientError as exc:
            raise TransportError(f"Request to {url} failed: {exc}", url=url) from exc

        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text
