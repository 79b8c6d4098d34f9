from __future__ import annotations

from typing import Any

import pytest

from pydatamanager._pipeline import TransformPipeline
from pydatamanager.exceptions import TransformError
from pydatamanager.models import DatasourceDefinition
from pydatamanager.state.registration import Registration


def test_steps_run_in_order() -> None:
    pipeline = TransformPipeline([lambda raw: raw["items"], sorted, lambda items: items[:2]])

    assert pipeline.apply({"items": [3, 1, 2]}) == [1, 2]
    assert len(pipeline) == 3


def test_empty_pipeline_is_identity() -> None:
    raw = {"x": 1}
    assert TransformPipeline().apply(raw) is raw


def test_failure_names_datasource_and_step() -> None:
    pipeline = TransformPipeline([lambda raw: raw, lambda raw: raw["missing"]], datasource_id="users")

    with pytest.raises(TransformError) as exc_info:
        pipeline.apply({})

    assert exc_info.value.datasource_id == "users"
    assert exc_info.value.index == 1
    assert isinstance(exc_info.value.__cause__, KeyError)


def test_registration_reuses_result_for_same_raw_object() -> None:
    calls: list[Any] = []

    def count(raw: Any) -> Any:
        calls.append(raw)
        return len(raw)

    reg = Registration(DatasourceDefinition(id="n", url="/n", transformers=[count]), owner_id=1)
    raw = [1, 2, 3]

    assert reg.read(raw) == 3
    assert reg.read(raw) == 3
    assert len(calls) == 1

    # A new raw object is always re-derived, even if equal.
    assert reg.derive([1, 2, 3]) == 3
    assert len(calls) == 2
