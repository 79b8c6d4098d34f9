from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import aiohttp
import pytest

from pydatamanager._transport import AiohttpRequester, run_middlewares, send
from pydatamanager.exceptions import TransportError
from pydatamanager.models import Request

URL = "https://api.test/items"


@dataclass
class _FakeResponse:
    status: int = 200
    body: str = ""

    async def text(self) -> str:
        return self.body

    async def __aenter__(self) -> _FakeResponse:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None


@dataclass
class _FakeSession:
    response: _FakeResponse = field(default_factory=_FakeResponse)
    error: Exception | None = None
    calls: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)
    closed: bool = False

    def request(self, method: str, url: str, **kwargs: Any) -> _FakeResponse:
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response

    async def close(self) -> None:
        self.closed = True


def _requester(session: _FakeSession, **kwargs: Any) -> AiohttpRequester:
    return AiohttpRequester(session=session, **kwargs)  # type: ignore[arg-type]


def test_middlewares_run_in_order() -> None:
    order: list[str] = []

    def first(request: Request, next_: Callable[[], None]) -> None:
        order.append("first")
        request.headers["X-First"] = "1"
        next_()

    def second(request: Request, next_: Callable[[], None]) -> None:
        order.append("second")
        request.url += "?page=2"
        next_()

    request = run_middlewares([first, second], Request(url=URL, method="GET"))

    assert order == ["first", "second"]
    assert request.url == f"{URL}?page=2"
    assert request.headers == {"X-First": "1"}


def test_middleware_not_calling_next_stops_chain() -> None:
    reached: list[str] = []

    def stop(request: Request, _next: Callable[[], None]) -> None:
        request.method = "HEAD"

    def never(_request: Request, next_: Callable[[], None]) -> None:
        reached.append("never")
        next_()

    request = run_middlewares([stop, never], Request(url=URL, method="GET"))

    assert reached == []
    assert request.method == "HEAD"


@pytest.mark.asyncio
async def test_send_wraps_unexpected_errors() -> None:
    async def broken(_url: str, _request: Request) -> Any:
        raise ValueError("boom")

    with pytest.raises(TransportError) as exc_info:
        await send(broken, Request(url=URL, method="GET"))

    assert exc_info.value.url == URL
    assert isinstance(exc_info.value.__cause__, ValueError)


@pytest.mark.asyncio
async def test_send_wraps_middleware_errors_without_calling_requester() -> None:
    called: list[str] = []

    async def requester(url: str, _request: Request) -> Any:
        called.append(url)

    def explode(_request: Request, _next: Callable[[], None]) -> None:
        raise KeyError("tenant")

    with pytest.raises(TransportError) as exc_info:
        await send(requester, Request(url=URL, method="GET"), [explode])

    assert called == []
    assert exc_info.value.url == URL
    assert isinstance(exc_info.value.__cause__, KeyError)


@pytest.mark.asyncio
async def test_send_passes_transport_errors_through() -> None:
    original = TransportError("HTTP 404", status_code=404, url=URL)

    async def missing(_url: str, _request: Request) -> Any:
        raise original

    with pytest.raises(TransportError) as exc_info:
        await send(missing, Request(url=URL, method="GET"))

    assert exc_info.value is original


@pytest.mark.asyncio
async def test_aiohttp_requester_sends_json_body_for_writes() -> None:
    session = _FakeSession(response=_FakeResponse(body='{"ok": true}'))
    requester = _requester(session, headers={"User-Agent": "pydatamanager"})

    result = await requester(URL, Request(url=URL, method="POST", body={"a": 1}, headers={"X-Req": "1"}))

    assert result == {"ok": True}
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", URL)
    assert kwargs["json"] == {"a": 1}
    assert kwargs["headers"] == {"User-Agent": "pydatamanager", "X-Req": "1"}


@pytest.mark.asyncio
async def test_aiohttp_requester_omits_body_for_get() -> None:
    session = _FakeSession(response=_FakeResponse(body="[1, 2]"))

    result = await _requester(session)(URL, Request(url=URL, method="GET", body={"ignored": True}))

    assert result == [1, 2]
    assert "json" not in session.calls[0][2]


@pytest.mark.asyncio
async def test_aiohttp_requester_decodes_text_and_empty_bodies() -> None:
    session = _FakeSession(response=_FakeResponse(body="plain text"))
    requester = _requester(session)

    assert await requester(URL, Request(url=URL, method="GET")) == "plain text"

    session.response = _FakeResponse(status=204, body="")
    assert await requester(URL, Request(url=URL, method="DELETE")) is None


@pytest.mark.asyncio
async def test_aiohttp_requester_raises_on_error_status() -> None:
    session = _FakeSession(response=_FakeResponse(status=503, body="unavailable"))

    with pytest.raises(TransportError) as exc_info:
        await _requester(session)(URL, Request(url=URL, method="GET"))

    assert exc_info.value.status_code == 503
    assert exc_info.value.url == URL


@pytest.mark.asyncio
async def test_aiohttp_requester_wraps_client_errors() -> None:
    session = _FakeSession(error=aiohttp.ClientConnectionError("refused"))

    with pytest.raises(TransportError) as exc_info:
        await _requester(session)(URL, Request(url=URL, method="GET"))

    assert exc_info.value.status_code is None
    assert isinstance(exc_info.value.__cause__, aiohttp.ClientError)


@pytest.mark.asyncio
async def test_aiohttp_requester_requires_session() -> None:
    requester = AiohttpRequester()

    with pytest.raises(TransportError):
        await requester(URL, Request(url=URL, method="GET"))


@pytest.mark.asyncio
async def test_aiohttp_requester_leaves_external_session_open() -> None:
    session = _FakeSession()

    async with _requester(session):
        pass

    assert not session.closed
