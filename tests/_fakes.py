"""In-memory doubles for the publication's external collaborators."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Hashable, Mapping, Sequence
from typing import Any

from reactive_aggregate.sources import ChangeCallbacks


class RecordingSink:
    """Subscription double recording every call in order."""

    def __init__(self, subscription_id: str = "sub-1") -> None:
        self.subscription_id = subscription_id
        self.calls: list[tuple[Any, ...]] = []
        self.ready_calls = 0
        self.stop_calls = 0
        self._stop_callbacks: list[Callable[[], None]] = []

    def added(self, collection: str, doc_id: Hashable, fields: Mapping[str, Any]) -> None:
        self.calls.append(("added", collection, doc_id, dict(fields)))

    def changed(self, collection: str, doc_id: Hashable, fields: Mapping[str, Any]) -> None:
        self.calls.append(("changed", collection, doc_id, dict(fields)))

    def removed(self, collection: str, doc_id: Hashable) -> None:
        self.calls.append(("removed", collection, doc_id))

    def ready(self) -> None:
        self.ready_calls += 1
        self.calls.append(("ready",))

    def stop(self) -> None:
        self.stop_calls += 1
        callbacks, self._stop_callbacks = self._stop_callbacks, []
        for callback in callbacks:
            callback()

    def on_stop(self, callback: Callable[[], None]) -> None:
        self._stop_callbacks.append(callback)

    def doc_calls(self) -> list[tuple[str, Any]]:
        return [(call[0], call[2]) for call in self.calls if call[0] != "ready"]

    def visible_ids(self, collection: str) -> set[Any]:
        """Identities the client would hold after replaying every call."""
        ids: set[Any] = set()
        for call in self.calls:
            if call[0] == "ready" or call[1] != collection:
                continue
            if call[0] == "added":
                assert call[2] not in ids, f"duplicate add for {call[2]!r}"
                ids.add(call[2])
            elif call[0] == "removed":
                assert call[2] in ids, f"orphan remove for {call[2]!r}"
                ids.discard(call[2])
        return ids


class FakeHandle:
    def __init__(self, watchable: FakeWatchable) -> None:
        self._watchable = watchable
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True
        self._watchable.callbacks = None


class FakeWatchable:
    """Watchable double; ``initial`` ids are reported while attaching."""

    def __init__(self, initial: Sequence[Hashable] = ()) -> None:
        self.initial = list(initial)
        self.callbacks: ChangeCallbacks | None = None
        self.handles: list[FakeHandle] = []

    def observe_changes(self, callbacks: ChangeCallbacks) -> FakeHandle:
        self.callbacks = callbacks
        for doc_id in self.initial:
            callbacks.added(doc_id, {})
        handle = FakeHandle(self)
        self.handles.append(handle)
        return handle

    def emit(self, count: int = 1) -> None:
        for _ in range(count):
            if self.callbacks is not None:
                self.callbacks.changed("x", {})

    def fail(self, exc: BaseException) -> None:
        if self.callbacks is not None:
            self.callbacks.error(exc)


class FakeSource:
    """Aggregation source double returning queued results."""

    def __init__(self, *results: Any, name: str = "orders") -> None:
        self.name = name
        self.results: list[Any] = list(results)
        self.last: Any = []
        self.calls: list[tuple[list[dict[str, Any]], dict[str, Any]]] = []
        self.find_calls: list[tuple[Mapping[str, Any], Mapping[str, Any]]] = []
        self.watch = FakeWatchable()
        self.gate: asyncio.Event | None = None
        self.in_flight = 0
        self.max_in_flight = 0

    def push(self, result: Any) -> None:
        self.results.append(result)

    def find(self, selector: Mapping[str, Any], options: Mapping[str, Any]) -> FakeWatchable:
        self.find_calls.append((selector, options))
        return self.watch

    async def aggregate(
        self,
        pipeline: Sequence[Mapping[str, Any]],
        options: Mapping[str, Any],
    ) -> Any:
        self.calls.append((list(pipeline), dict(options)))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            result = self.results.pop(0) if self.results else self.last
            if isinstance(result, Exception):
                raise result
            self.last = result
            return result
        finally:
            self.in_flight -= 1
