"""Capabilities consumed by the publication layer.

The aggregation engine, the change-notification sources and the subscription
sink all live outside this package. They are described here as structural
protocols so hosts (and tests) can pass any object with the right shape, and
so the publication can validate them once at construction.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class ChangeCallbacks:
    """Callbacks a publication registers with one watched source."""

    added: Callable[[Hashable, Mapping[str, Any]], None]
    changed: Callable[[Hashable, Mapping[str, Any]], None]
    removed: Callable[[Hashable], None]
    error: Callable[[BaseException], None]


@runtime_checkable
class ObserveHandle(Protocol):
    """Detachable registration returned by :meth:`Watchable.observe_changes`."""

    def stop(self) -> None:
        ...


@runtime_checkable
class Watchable(Protocol):
    """Something whose changes can be observed."""

    def observe_changes(self, callbacks: ChangeCallbacks) -> ObserveHandle:
        ...


@runtime_checkable
class AggregationSource(Protocol):
    """Primary data source: runs pipelines and can be watched through ``find``."""

    name: str

    async def aggregate(
        self,
        pipeline: Sequence[Mapping[str, Any]],
        options: Mapping[str, Any],
    ) -> Sequence[Mapping[str, Any]]:
        ...

    def find(self, selector: Mapping[str, Any], options: Mapping[str, Any]) -> Watchable:
        ...


@runtime_checkable
class SubscriptionSink(Protocol):
    """Host-provided subscription receiving the published documents."""

    subscription_id: str

    def added(self, collection: str, doc_id: Hashable, fields: Mapping[str, Any]) -> None:
        ...

    def changed(self, collection: str, doc_id: Hashable, fields: Mapping[str, Any]) -> None:
        ...

    def removed(self, collection: str, doc_id: Hashable) -> None:
        ...

    def ready(self) -> None:
        ...

    def stop(self) -> None:
        ...

    def on_stop(self, callback: Callable[[], None]) -> None:
        ...


__all__ = [
    "AggregationSource",
    "ChangeCallbacks",
    "ObserveHandle",
    "SubscriptionSink",
    "Watchable",
]
