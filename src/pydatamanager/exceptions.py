"""Custom exception hierarchy for pydatamanager."""

from __future__ import annotations


class DataManagerError(Exception):
    """Base exception for all pydatamanager errors."""


class ConfigError(DataManagerError):
    """Invalid or missing configuration (e.g. unknown datasource id)."""


class InterpolationError(DataManagerError):
    """A URL template placeholder has no matching parameter."""

    def __init__(
        self,
        message: str,
        *,
        placeholder: str = "",
        template: str = "",
    ) -> None:
        self.placeholder = placeholder
        self.template = template
        super().__init__(message)


class TransportError(DataManagerError):
    """Requester failure (network error, non-2xx, invalid payload)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class TransformError(DataManagerError):
    """A transformer raised while deriving data for one registration.

    Only the read or subscription that produced the error is affected;
    sibling subscriptions in the same dispatch still receive their data.
    """

    def __init__(
        self,
        message: str,
        *,
        datasource_id: str | None = None,
        index: int = -1,
    ) -> None:
        self.datasource_id = datasource_id
        self.index = index
        super().__init__(message)
