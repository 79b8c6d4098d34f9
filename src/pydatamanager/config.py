"""Client configuration for pydatamanager."""

from __future__ import annotations

import dataclasses
import os
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pydatamanager._transport import Middleware, Requester

#: Default cache time-to-live in seconds.
DEFAULT_EXPIRES: float = 60.0

#: Default save coalescing window in seconds (10 ms).
DEFAULT_SAVE_WINDOW: float = 0.010


def _env_float(value: str | None) -> float | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in {"", "none", "never"}:
        return None
    return float(normalized)


@dataclasses.dataclass(frozen=True)
class DataManagerConfig:
    """Configuration shared by every :class:`~pydatamanager.DataManager`.

    Parameters
    ----------
    host : str
        Prefix applied to relative datasource URLs
        (e.g. ``"https://api.example.com"``).
    expires : float or None
        Default cache time-to-live in seconds for definitions that do not
        set their own ``ttl``. ``None`` means entries never expire and
        ``0`` disables caching (every read refetches).
    requester : Requester or None
        Async callable ``(url, request) -> raw`` performing network I/O.
        See :class:`~pydatamanager.AiohttpRequester` for the default
        implementation.
    middlewares : tuple of Middleware
        Callables ``(request, next)`` run in order before the requester.
    save_window : float
        Coalescing window in seconds for batched ``save`` calls.
    """

    host: str = ""
    expires: float | None = DEFAULT_EXPIRES
    requester: Requester | None = None
    middlewares: tuple[Middleware, ...] = ()
    save_window: float = DEFAULT_SAVE_WINDOW

    def __post_init__(self) -> None:
        # Accept any iterable of middlewares but store an immutable tuple.
        if not isinstance(self.middlewares, tuple):
            object.__setattr__(self, "middlewares", tuple(self.middlewares))

    @classmethod
    def from_env(cls, **overrides: Any) -> DataManagerConfig:
        """Create configuration from environment variables.

        Reads ``DATAMANAGER_HOST``, ``DATAMANAGER_EXPIRES`` and
        ``DATAMANAGER_SAVE_WINDOW``. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        DataManagerConfig
            Populated configuration.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        host = env.get("DATAMANAGER_HOST")
        if host is not None:
            config_kwargs["host"] = host

        if "DATAMANAGER_EXPIRES" in env and "expires" not in overrides:
            config_kwargs["expires"] = _env_float(env["DATAMANAGER_EXPIRES"])

        window = _env_float(env.get("DATAMANAGER_SAVE_WINDOW"))
        if window is not None and "save_window" not in overrides:
            config_kwargs["save_window"] = window

        config_kwargs.update(overrides)
        return cls(**config_kwargs)


_default_config = DataManagerConfig()


def get_default_config() -> DataManagerConfig:
    """Return the process-wide default configuration."""
    return _default_config


def set_default_config(config: DataManagerConfig) -> None:
    """Replace the process-wide default configuration.

    Instances snapshot the default when constructed, so the change only
    affects instances created afterwards.
    """
    global _default_config
    _default_config = config


def configure(**overrides: Any) -> DataManagerConfig:
    """Update selected fields of the default configuration and return it."""
    config = dataclasses.replace(_default_config, **overrides)
    set_default_config(config)
    return config
