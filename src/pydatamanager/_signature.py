"""Canonical request identity.

A :class:`RequestSignature` is derived from a datasource definition plus
per-call parameters and options. It depends only on the resolved method,
URL and body, never on the datasource id, so identical requests issued by
different registrations (or different instances) share cache entries,
in-flight fetches and subscriber lists.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydatamanager.exceptions import InterpolationError
from pydatamanager.models import DatasourceDefinition, RequestOptions

_PLACEHOLDER = re.compile(r"\{(\w+)\}")
_ABSOLUTE_URL = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://|^//")


@dataclass(frozen=True, slots=True)
class RequestSignature:
    """Cache/coordination key: ``(method, url, body)``.

    ``body`` holds the canonical JSON text of the resolved body (keys
    sorted), or ``None`` when there is no body.
    """

    method: str
    url: str
    body: str | None = None

    def payload(self) -> dict[str, Any] | None:
        """Decode the canonical body back into a mapping."""
        if self.body is None:
            return None
        result: dict[str, Any] = json.loads(self.body)
        return result

    def __str__(self) -> str:
        if self.body is None:
            return f"{self.method} {self.url}"
        return f"{self.method} {self.url} {self.body}"


def canonical_body(body: Mapping[str, Any] | None) -> str | None:
    """Order-independent JSON encoding of *body*."""
    if body is None:
        return None
    return json.dumps(body, sort_keys=True, separators=(",", ":"), default=str)


def interpolate(template: str, params: Mapping[str, Any]) -> str:
    """Replace every ``{name}`` in *template* with ``str(params[name])``."""

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in params:
            raise InterpolationError(
                f"Missing parameter {name!r} for URL template {template!r}",
                placeholder=name,
                template=template,
            )
        return str(params[name])

    return _PLACEHOLDER.sub(_replace, template)


def join_host(host: str, url: str) -> str:
    """Prefix *host* onto relative *url*; absolute URLs pass through."""
    if not host or _ABSOLUTE_URL.match(url):
        return url
    return f"{host.rstrip('/')}/{url.lstrip('/')}"


def resolve_method(
    definition: DatasourceDefinition,
    options: RequestOptions,
    default_method: str = "GET",
) -> str:
    # An explicit definition method wins; overrides only fill the gap.
    return definition.method or options.method or default_method


def resolve_body(definition: DatasourceDefinition, options: RequestOptions) -> dict[str, Any] | None:
    if definition.default_body is None and options.body is None:
        return None
    return {**(definition.default_body or {}), **(options.body or {})}


def resolve(
    definition: DatasourceDefinition,
    params: Mapping[str, Any] | None = None,
    options: RequestOptions | None = None,
    *,
    host: str = "",
    default_method: str = "GET",
) -> RequestSignature:
    """Compute the signature of a request.

    Raises
    ------
    InterpolationError
        If the URL template references a parameter missing from *params*.
    """
    options = options or RequestOptions()
    url = join_host(host, interpolate(definition.url, params or {}))
    return RequestSignature(
        method=resolve_method(definition, options, default_method),
        url=url,
        body=canonical_body(resolve_body(definition, options)),
    )
