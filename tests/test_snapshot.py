from __future__ import annotations

import pytest

from reactive_aggregate.exceptions import AggregationError
from reactive_aggregate.ingestion.snapshot import split_snapshot


def test_records_are_documents_without_docs_prop() -> None:
    snapshot = split_snapshot([{"_id": 1}, {"_id": 2}])

    assert snapshot.docs == [{"_id": 1}, {"_id": 2}]
    assert snapshot.extras is None


def test_docs_prop_splits_documents_and_extras() -> None:
    snapshot = split_snapshot([{"items": [{"_id": 1}], "total": 5, "page": 2}], "items")

    assert snapshot.docs == [{"_id": 1}]
    assert snapshot.extras == {"total": 5, "page": 2}


def test_docs_prop_with_no_other_fields_gives_empty_extras() -> None:
    snapshot = split_snapshot([{"items": []}], "items")

    assert snapshot.docs == []
    assert snapshot.extras == {}


@pytest.mark.parametrize(
    "result",
    [
        [],
        [{"items": []}, {"items": []}],
        [{"other": []}],
        [{"items": {"_id": 1}}],
        [{"items": ["not a doc"]}],
    ],
)
def test_bad_wrapper_shapes_raise(result: list) -> None:
    with pytest.raises(AggregationError):
        split_snapshot(result, "items")


@pytest.mark.parametrize("result", [None, {"_id": 1}, "records", [1, 2]])
def test_non_record_results_raise(result: object) -> None:
    with pytest.raises(AggregationError):
        split_snapshot(result)


@pytest.mark.parametrize(
    ("result", "docs_prop_name"),
    [
        ([{"_id": 1, 2: "x"}], None),
        ([{"items": [{"_id": 1, (1, 2): "x"}]}], "items"),
    ],
)
def test_non_string_field_names_raise(result: list, docs_prop_name: str | None) -> None:
    with pytest.raises(AggregationError):
        split_snapshot(result, docs_prop_name)
