from __future__ import annotations

from collections.abc import Callable

import pytest
from fakes import HOST, FakeBackend, settle

from pydatamanager._signature import RequestSignature
from pydatamanager.manager import DataManager
from pydatamanager.registry import DataRegistry
from pydatamanager.results import Cached

FLAG = RequestSignature(method="GET", url=f"{HOST}/flag")
A = RequestSignature(method="GET", url=f"{HOST}/a")
B = RequestSignature(method="GET", url=f"{HOST}/b")


def _manager(make_manager: Callable[..., DataManager]) -> DataManager:
    dm = make_manager()
    dm.register(id="flag", url="/flag")
    dm.register(id="a", url="/a")
    dm.register(id="b", url="/b")
    return dm


@pytest.mark.asyncio
async def test_autorun_tracks_conditional_dependencies(
    backend: FakeBackend,
    make_manager: Callable[..., DataManager],
) -> None:
    backend.responses.update({f"{HOST}/flag": True, f"{HOST}/a": "A", f"{HOST}/b": "B"})
    dm = _manager(make_manager)
    seen: list[object] = []

    def view() -> None:
        flag = dm.get("flag")
        branch = dm.get("b") if isinstance(flag, Cached) and flag.data else dm.get("a")
        seen.append(branch.data if isinstance(branch, Cached) else None)

    dm.autorun(view)
    assert dm.dependencies(view) == {FLAG, A}

    await settle()

    assert dm.dependencies(view) == {FLAG, B}
    assert seen[-1] == "B"

    backend.responses[f"{HOST}/flag"] = False
    await dm.get("flag", force=True)

    assert dm.dependencies(view) == {FLAG, A}
    assert seen[-1] == "A"


@pytest.mark.asyncio
async def test_autofree_stops_reruns(
    backend: FakeBackend,
    registry: DataRegistry,
    make_manager: Callable[..., DataManager],
) -> None:
    backend.responses[f"{HOST}/a"] = 1
    dm = _manager(make_manager)
    runs: list[int] = []

    def view() -> None:
        dm.get("a")
        runs.append(1)

    dm.autorun(view)
    await settle()
    assert len(runs) == 2

    dm.autofree(view)
    await dm.get("a", force=True)

    assert len(runs) == 2
    assert dm.dependencies(view) == frozenset()
    assert registry.subscriptions.subscriptions(A) == []


@pytest.mark.asyncio
async def test_autorun_twice_is_a_no_op(
    backend: FakeBackend,
    make_manager: Callable[..., DataManager],
) -> None:
    backend.responses[f"{HOST}/a"] = 1
    dm = _manager(make_manager)
    runs: list[int] = []

    def view() -> None:
        dm.get("a")
        runs.append(1)

    dm.autorun(view)
    dm.autorun(view)
    await settle()

    # One initial run plus one rerun when the fetch lands.
    assert len(runs) == 2


@pytest.mark.asyncio
async def test_autorun_accepts_several_functions(
    backend: FakeBackend,
    make_manager: Callable[..., DataManager],
) -> None:
    dm = _manager(make_manager)
    ran: list[str] = []

    def first() -> None:
        dm.get("a")
        ran.append("first")

    def second() -> None:
        dm.get("b")
        ran.append("second")

    dm.autorun([first, second])

    assert ran == ["first", "second"]
    assert dm.dependencies(first) == {A}
    assert dm.dependencies(second) == {B}

    dm.autofree([first, second])
    assert dm.dependencies(first) == frozenset()
    await settle()


@pytest.mark.asyncio
async def test_autorun_runs_after_regular_subscribers(
    backend: FakeBackend,
    make_manager: Callable[..., DataManager],
) -> None:
    backend.responses[f"{HOST}/a"] = 1
    dm = _manager(make_manager)
    order: list[str] = []

    dm.subscribe("a", lambda _d, _p: order.append("subscriber"))

    def view() -> None:
        dm.get("a")
        order.append("autorun")

    dm.autorun(view)
    await settle()

    assert order == ["autorun", "subscriber", "autorun"]


def test_failing_first_run_is_not_registered(
    registry: DataRegistry,
    make_manager: Callable[..., DataManager],
) -> None:
    dm = make_manager()

    def broken() -> None:
        raise RuntimeError("render failed")

    with pytest.raises(RuntimeError):
        dm.autorun(broken)

    assert not registry.reactive.is_running(broken, dm.instance_id)


def test_nested_recording_contexts_are_isolated(registry: DataRegistry) -> None:
    reactive = registry.reactive

    with reactive.recording() as outer:
        reactive.record(FLAG)
        with reactive.recording() as inner:
            reactive.record(A)
        reactive.record(B)

    assert outer == {FLAG, B}
    assert inner == {A}

    # Outside any context, recording is a no-op.
    reactive.record(A)
    assert outer == {FLAG, B}
