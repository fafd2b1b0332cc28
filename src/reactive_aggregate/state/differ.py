"""Snapshot differ.

Compares a fresh snapshot against the identity map of a publication and
produces the added/changed/removed operations that bring the subscriber in
line with it. The map is only committed once the whole snapshot has been
processed, so a bad record never leaves it half-updated.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from reactive_aggregate.exceptions import AggregationError
from reactive_aggregate.ingestion.snapshot import Snapshot
from reactive_aggregate.state.events import OperationKind, SinkOperation
from reactive_aggregate.state.store import SubscriptionState


def _identity(doc: dict[str, Any], id_field: str, position: int) -> Any:
    if id_field not in doc:
        raise AggregationError(f'Document {position} has no "{id_field}" field')
    doc_id = doc[id_field]
    try:
        hash(doc_id)
    except TypeError as exc:
        raise AggregationError(
            f'Document {position} has an unhashable "{id_field}": {type(doc_id).__name__}'
        ) from exc
    return doc_id


def _operation(
    kind: OperationKind,
    collection: str,
    doc_id: Any,
    document: dict[str, Any] | None = None,
) -> SinkOperation:
    try:
        return SinkOperation(kind=kind, collection=collection, id=doc_id, document=document)
    except ValidationError as exc:
        raise AggregationError(f"Cannot publish {doc_id!r} to {collection!r}: {exc}") from exc


def diff_snapshot(
    state: SubscriptionState,
    snapshot: Snapshot,
    *,
    collection: str,
    extras_collection: str,
    subscription_id: str,
    id_field: str = "_id",
) -> list[SinkOperation]:
    """Diff *snapshot* against *state* and commit the new identity map.

    Operations come out as: the extras singleton (when the snapshot carries
    extras), one added/changed per document in snapshot order, then one
    removal per identity that did not appear in this snapshot.

    Raises
    ------
    AggregationError
        A document lacks a usable identity or cannot be published as is.
        *state* is left unchanged.
    """
    iteration = state.iteration + 1
    ids = dict(state.ids)
    operations: list[SinkOperation] = []

    if snapshot.extras is not None:
        operations.append(
            _operation(
                OperationKind.CHANGED if state.extras_published else OperationKind.ADDED,
                extras_collection,
                subscription_id,
                snapshot.extras,
            )
        )

    for position, doc in enumerate(snapshot.docs):
        doc_id = _identity(doc, id_field, position)
        # Always a full replacement, even if the document is unchanged.
        kind = OperationKind.CHANGED if doc_id in ids else OperationKind.ADDED
        operations.append(_operation(kind, collection, doc_id, doc))
        ids[doc_id] = iteration

    stale = [doc_id for doc_id, seen in ids.items() if seen != iteration]
    for doc_id in stale:
        del ids[doc_id]
        operations.append(_operation(OperationKind.REMOVED, collection, doc_id))

    state.ids = ids
    state.iteration = iteration
    if snapshot.extras is not None:
        state.extras_published = True
    return operations
