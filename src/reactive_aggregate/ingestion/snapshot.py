"""Validation of raw aggregation results.

``split_snapshot`` is the boundary between whatever the aggregation engine
returned and the differ: it checks the result shape and separates the
document list from the extras record.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from reactive_aggregate.exceptions import AggregationError


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Result of one aggregation run, ready for diffing."""

    docs: list[dict[str, Any]] = field(default_factory=list)
    extras: dict[str, Any] | None = None


def _as_document(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise AggregationError(f"{where} is not a document: {type(value).__name__}")
    for key in value:
        if not isinstance(key, str):
            raise AggregationError(f"{where} has a non-string field name: {key!r}")
    return dict(value)


def split_snapshot(result: Any, docs_prop_name: str | None = None) -> Snapshot:
    """Turn a raw aggregation result into a :class:`Snapshot`.

    Without *docs_prop_name* every record is a document. With it, the result
    must be exactly one record whose *docs_prop_name* field holds the
    documents; its other fields become the extras record.
    """
    if isinstance(result, (str, bytes, Mapping)) or not isinstance(result, Sequence):
        raise AggregationError(f"Aggregation returned {type(result).__name__}, expected a list of records")

    if docs_prop_name is None:
        return Snapshot(docs=[_as_document(rec, f"record {i}") for i, rec in enumerate(result)])

    if len(result) != 1:
        raise AggregationError(
            f'Expected exactly one record holding "{docs_prop_name}", got {len(result)}'
        )
    wrapper = _as_document(result[0], "record 0")
    if docs_prop_name not in wrapper:
        raise AggregationError(f'Aggregation result has no "{docs_prop_name}" field')

    nested = wrapper[docs_prop_name]
    if isinstance(nested, (str, bytes, Mapping)) or not isinstance(nested, Sequence):
        raise AggregationError(f'"{docs_prop_name}" is not a list of documents')

    docs = [_as_document(doc, f"{docs_prop_name}[{i}]") for i, doc in enumerate(nested)]
    extras = {key: value for key, value in wrapper.items() if key != docs_prop_name}
    return Snapshot(docs=docs, extras=extras)
