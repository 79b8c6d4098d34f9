"""Per-registration transform pipeline."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pydatamanager.exceptions import TransformError
from pydatamanager.models import Transformer


class TransformPipeline:
    """Ordered sequence of pure ``raw -> data`` functions.

    Each step receives the previous step's output. The pipeline is re-run
    on every dispatch; results are never cached across dispatches.
    """

    __slots__ = ("_steps", "_datasource_id")

    def __init__(self, steps: Iterable[Transformer] = (), *, datasource_id: str | None = None) -> None:
        self._steps = tuple(steps)
        self._datasource_id = datasource_id

    def __len__(self) -> int:
        return len(self._steps)

    def apply(self, raw: Any) -> Any:
        data = raw
        for index, step in enumerate(self._steps):
            try:
                data = step(data)
            except Exception as exc:
                raise TransformError(
                    f"Transformer #{index} of {self._datasource_id!r} failed: {exc}",
                    datasource_id=self._datasource_id,
                    index=index,
                ) from exc
        return data
