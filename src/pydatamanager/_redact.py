"""Helpers for safe debug logging.

Outgoing requests routinely carry credentials: bearer tokens and cookies
in headers, passwords in JSON bodies, API keys in query strings. The
helpers here produce log-friendly copies with those values replaced.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydatamanager.models import Request

REDACTED = "<redacted>"

# Compared after lower-casing and mapping "-" to "_".
_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "passwd",
        "secret",
        "client_secret",
        "token",
        "access_token",
        "accesstoken",
        "refresh_token",
        "refreshtoken",
        "id_token",
        "api_key",
        "apikey",
        "x_api_key",
        "x_auth_token",
        "authorization",
        "proxy_authorization",
        "cookie",
        "set_cookie",
    }
)


def _is_sensitive(key: str) -> bool:
    return key.lower().replace("-", "_") in _SENSITIVE_KEYS


def redact_url(url: str) -> str:
    """Mask sensitive query parameters (``?access_token=...``) in *url*."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [
        (name, REDACTED if _is_sensitive(name) else value)
        for name, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(query, safe="<>")))


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {name: REDACTED if _is_sensitive(name) else value for name, value in headers.items()}


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a redacted copy of a JSON-like body suitable for debug logs."""
    if _depth > 20:
        return "<max-depth>"

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, Mapping):
        return {
            str(key): REDACTED
            if _is_sensitive(str(key))
            else redact_for_log(item, max_string=max_string, _depth=_depth + 1)
            for key, item in value.items()
        }

    if isinstance(value, (list, tuple)):
        return [redact_for_log(item, max_string=max_string, _depth=_depth + 1) for item in value]

    if value is None or isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    return repr(value)


def redact_request(request: Request, *, max_string: int = 512) -> dict[str, Any]:
    """Log-friendly view of *request* with URL, headers and body redacted."""
    return {
        "method": request.method,
        "url": redact_url(request.url),
        "headers": redact_headers(request.headers),
        "body": redact_for_log(request.body, max_string=max_string),
    }
