"""Datasource definitions and request models.

:class:`DatasourceDefinition` and :class:`RequestOptions` are Pydantic
models validated at the public boundary (``register``/``get``/``save``).
Field names are snake_case; the camelCase spellings (``defaultBody``,
``immediateParams``) are accepted as aliases.

:class:`Request` is the mutable object handed to middlewares and to the
requester.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Transformer = Callable[[Any], Any]
"""A single pipeline step: receives the previous step's output."""


def _normalize_method(value: str | None) -> str | None:
    if value is None:
        return None
    method = value.strip().upper()
    return method or None


class DatasourceDefinition(BaseModel):
    """A datasource declared by one :class:`~pydatamanager.DataManager`.

    Parameters
    ----------
    id : str
        Identifier, private to the registering instance.
    url : str
        URL template with ``{name}`` placeholders.
    method : str or None
        HTTP method. When set it wins over per-call overrides.
    default_body : dict or None
        Body merged under any per-call ``options.body``.
    transformers : tuple of callables
        Ordered pipeline applied to raw responses for this registration.
    ttl : float or None
        Cache time-to-live in seconds. ``None`` uses the instance
        configuration's ``expires``; ``0`` disables caching.
    immediate_params : dict or None
        When set, ``register`` immediately issues ``get`` with these params.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
        arbitrary_types_allowed=True,
    )

    id: str
    url: str
    method: str | None = None
    default_body: dict[str, Any] | None = None
    transformers: tuple[Transformer, ...] = ()
    ttl: float | None = Field(default=None, ge=0)
    immediate_params: dict[str, Any] | None = None

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        ident = value.strip()
        if not ident:
            raise ValueError("id must be non-empty")
        return ident

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str | None) -> str | None:
        return _normalize_method(value)


class RequestOptions(BaseModel):
    """Per-call overrides accepted by ``get`` and ``save``.

    Only ``method`` and ``body`` take part in the request signature;
    ``headers`` are forwarded to the requester untouched.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: str | None = None
    body: dict[str, Any] | None = None
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str | None) -> str | None:
        return _normalize_method(value)


@dataclass
class Request:
    """Outgoing request as seen by middlewares and the requester.

    Middlewares may mutate any field in place.
    """

    url: str
    method: str
    body: dict[str, Any] | None = None
    headers: dict[str, str] = field(default_factory=dict)
