from __future__ import annotations

import pytest

from reactive_aggregate.exceptions import AggregationError
from reactive_aggregate.ingestion.snapshot import Snapshot
from reactive_aggregate.state.differ import diff_snapshot
from reactive_aggregate.state.events import OperationKind
from reactive_aggregate.state.store import SubscriptionState


def _diff(state: SubscriptionState, docs: list[dict], extras: dict | None = None) -> list[tuple[str, object]]:
    ops = diff_snapshot(
        state,
        Snapshot(docs=docs, extras=extras),
        collection="items",
        extras_collection="ReactiveAggregate",
        subscription_id="sub-1",
    )
    return [(op.kind.value, op.id) for op in ops]


def test_initial_snapshot_adds_every_document() -> None:
    state = SubscriptionState()

    ops = _diff(state, [{"_id": 1, "v": 10}, {"_id": 2, "v": 20}])

    assert ops == [("added", 1), ("added", 2)]
    assert state.ids == {1: 1, 2: 1}
    assert state.iteration == 1


def test_second_snapshot_changes_adds_then_removes() -> None:
    state = SubscriptionState()
    _diff(state, [{"_id": 1, "v": 10}, {"_id": 2, "v": 20}])

    ops = _diff(state, [{"_id": 2, "v": 21}, {"_id": 3, "v": 30}])

    assert ops == [("changed", 2), ("added", 3), ("removed", 1)]
    assert state.published_ids == {2, 3}
    assert state.ids == {2: 2, 3: 2}


def test_unchanged_document_is_still_reported_as_changed() -> None:
    state = SubscriptionState()
    _diff(state, [{"_id": "a", "v": 1}])

    ops = diff_snapshot(
        state,
        Snapshot(docs=[{"_id": "a", "v": 1}]),
        collection="items",
        extras_collection="ReactiveAggregate",
        subscription_id="sub-1",
    )

    assert len(ops) == 1
    assert ops[0].kind == OperationKind.CHANGED
    assert ops[0].document == {"_id": "a", "v": 1}


def test_empty_snapshot_removes_everything_exactly_once() -> None:
    state = SubscriptionState()
    _diff(state, [{"_id": i} for i in range(5)])

    ops = _diff(state, [])

    assert sorted(doc_id for kind, doc_id in ops if kind == "removed") == [0, 1, 2, 3, 4]
    assert len(ops) == 5
    assert state.ids == {}
    assert _diff(state, []) == []


def test_missing_identity_leaves_state_untouched() -> None:
    state = SubscriptionState()
    _diff(state, [{"_id": 1}, {"_id": 2}])
    before = state.model_copy(deep=True)

    with pytest.raises(AggregationError):
        _diff(state, [{"_id": 3}, {"v": "no id"}])

    assert state == before
    # The next good snapshot diffs against the last published state.
    assert _diff(state, [{"_id": 2}]) == [("changed", 2), ("removed", 1)]


def test_unhashable_identity_is_rejected() -> None:
    state = SubscriptionState()

    with pytest.raises(AggregationError):
        _diff(state, [{"_id": ["not", "hashable"]}])

    assert state.iteration == 0


def test_custom_identity_field() -> None:
    state = SubscriptionState()

    ops = diff_snapshot(
        state,
        Snapshot(docs=[{"sku": "A-1"}, {"sku": "B-2"}]),
        collection="stock",
        extras_collection="ReactiveAggregate",
        subscription_id="sub-1",
        id_field="sku",
    )

    assert [op.id for op in ops] == ["A-1", "B-2"]


def test_extras_added_once_then_changed() -> None:
    state = SubscriptionState()

    first = diff_snapshot(
        state,
        Snapshot(docs=[{"_id": 1}], extras={"total": 5}),
        collection="items",
        extras_collection="Totals",
        subscription_id="sub-9",
    )
    second = diff_snapshot(
        state,
        Snapshot(docs=[], extras={"total": 0}),
        collection="items",
        extras_collection="Totals",
        subscription_id="sub-9",
    )

    assert (first[0].kind, first[0].collection, first[0].id, first[0].document) == (
        OperationKind.ADDED,
        "Totals",
        "sub-9",
        {"total": 5},
    )
    assert (second[0].kind, second[0].id, second[0].document) == (OperationKind.CHANGED, "sub-9", {"total": 0})
    assert [op.kind for op in second[1:]] == [OperationKind.REMOVED]
    assert state.extras_published is True


def test_iteration_counter_increases_on_every_successful_diff() -> None:
    state = SubscriptionState()
    for expected in range(1, 4):
        _diff(state, [{"_id": "x"}])
        assert state.iteration == expected
        assert state.ids == {"x": expected}


def test_unpublishable_document_is_aggregation_error() -> None:
    state = SubscriptionState()
    _diff(state, [{"_id": 1}])

    with pytest.raises(AggregationError):
        _diff(state, [{"_id": 2, 3: "numeric field name"}])

    assert state.ids == {1: 1}
    assert state.iteration == 1
