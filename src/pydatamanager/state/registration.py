"""Per-instance registration of a datasource definition."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydatamanager._pipeline import TransformPipeline
from pydatamanager._signature import RequestSignature
from pydatamanager.models import DatasourceDefinition

if TYPE_CHECKING:
    from pydatamanager.state.subscriptions import Subscription

_UNSET: Any = object()


class Registration:
    """A definition as owned by one instance, plus its read-side state.

    Holds the private transform pipeline, the parameters most recently
    passed to ``get``, the signature those parameters resolve to and the
    latest derived value.
    """

    def __init__(self, definition: DatasourceDefinition, owner_id: int) -> None:
        self.definition = definition
        self.owner_id = owner_id
        self.pipeline = TransformPipeline(definition.transformers, datasource_id=definition.id)
        self.last_params: dict[str, Any] = {}
        self.signature: RequestSignature | None = None
        # Subscriptions made before the URL template could be resolved.
        self.parked: list[Subscription] = []
        self._latest_raw: Any = _UNSET
        self._latest: Any = None

    @property
    def id(self) -> str:
        return self.definition.id

    @property
    def latest(self) -> Any:
        """Most recently derived data, or ``None`` if nothing was derived."""
        return self._latest

    def derive(self, raw: Any) -> Any:
        """Run the pipeline on *raw* and remember the result."""
        data = self.pipeline.apply(raw)
        self._latest_raw = raw
        self._latest = data
        return data

    def read(self, raw: Any) -> Any:
        """Return derived data for *raw*, reusing the last result for the same object."""
        if raw is self._latest_raw:
            return self._latest
        return self.derive(raw)

    def __repr__(self) -> str:
        return f"Registration(id={self.id!r}, owner={self.owner_id}, signature={self.signature})"
