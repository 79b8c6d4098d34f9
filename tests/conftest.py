from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

import pytest
from fakes import HOST, FakeBackend, FakeClock

from pydatamanager import config as config_module
from pydatamanager.config import DataManagerConfig
from pydatamanager.manager import DataManager
from pydatamanager.registry import DataRegistry


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock: FakeClock) -> DataRegistry:
    return DataRegistry(clock=clock)


@pytest.fixture
def config(backend: FakeBackend) -> DataManagerConfig:
    return DataManagerConfig(host=HOST, expires=30.0, requester=backend)


@pytest.fixture
def make_manager(
    config: DataManagerConfig,
    registry: DataRegistry,
) -> Callable[..., DataManager]:
    def _make(**kwargs: Any) -> DataManager:
        kwargs.setdefault("config", config)
        kwargs.setdefault("registry", registry)
        return DataManager(**kwargs)

    return _make


@pytest.fixture
def restore_default_config() -> Iterator[None]:
    saved = config_module.get_default_config()
    try:
        yield
    finally:
        config_module.set_default_config(saved)
