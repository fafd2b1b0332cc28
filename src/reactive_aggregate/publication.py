"""Reactive publication of an aggregation result.

Usage::

    publication = ReactiveAggregate(sub, orders, pipeline, {"debounceCount": 10, "debounceDelay": 0.5})
    await publication.start()

The publication watches its sources, debounces their change signals,
re-runs the pipeline and mirrors the result into the subscription with
added/changed/removed calls.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Hashable, Mapping, Sequence
from typing import Any

from reactive_aggregate._debounce import DebounceScheduler
from reactive_aggregate._redact import redact_for_log
from reactive_aggregate.config import AggregateOptions
from reactive_aggregate.exceptions import (
    AggregationError,
    ConfigurationError,
    ObserverError,
    ReactiveAggregateError,
)
from reactive_aggregate.ingestion.snapshot import split_snapshot
from reactive_aggregate.sources import (
    AggregationSource,
    ChangeCallbacks,
    ObserveHandle,
    SubscriptionSink,
    Watchable,
)
from reactive_aggregate.state.differ import diff_snapshot
from reactive_aggregate.state.events import OperationKind, SinkOperation
from reactive_aggregate.state.store import SubscriptionState

_logger = logging.getLogger(__name__)

ErrorCallback = Callable[[ReactiveAggregateError], None]


class ReactiveAggregate:
    """Keeps one subscription in sync with the result of an aggregation.

    Parameters
    ----------
    sub
        Subscription receiving added/changed/removed/ready calls.
    collection
        Primary source. Runs the pipeline and, unless disabled, is watched
        for changes.
    pipeline
        Aggregation stages, forwarded untouched.
    options
        :class:`AggregateOptions` or a mapping of its fields.
    on_error
        Called with every error raised by a background recompute and with
        the fatal :class:`ObserverError` if a source fails.
    loop
        Event loop owning the publication. Defaults to the running loop
        when :meth:`start` is awaited.
    """

    def __init__(
        self,
        sub: SubscriptionSink,
        collection: AggregationSource,
        pipeline: Sequence[Mapping[str, Any]],
        options: AggregateOptions | Mapping[str, Any] | None = None,
        *,
        on_error: ErrorCallback | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        if not isinstance(sub, SubscriptionSink):
            raise ConfigurationError('unexpected context - "sub" must be a subscription', option="sub")
        collection_name = getattr(collection, "name", None)
        if (
            not isinstance(collection, AggregationSource)
            or not isinstance(collection_name, str)
            or not collection_name.strip()
        ):
            raise ConfigurationError('"collection" must be an aggregation source with a name', option="collection")
        if isinstance(pipeline, (str, bytes)) or not isinstance(pipeline, Sequence):
            raise ConfigurationError('"pipeline" must be a list of stages', option="pipeline")
        for index, stage in enumerate(pipeline):
            if not isinstance(stage, Mapping):
                raise ConfigurationError(f'"pipeline[{index}]" must be a mapping', option="pipeline")

        self._options = AggregateOptions.parse(options)
        if self._options.uses_deprecated_observe_args:
            for name in ("observe_selector", "observe_options"):
                if getattr(self._options, name):
                    _logger.warning("reactive_aggregate: %s is deprecated", name)

        self._sub = sub
        self._collection = collection
        self._pipeline = [dict(stage) for stage in pipeline]
        self._collection_name = self._options.client_collection or collection.name
        self._on_error = on_error
        self._loop = loop

        self._state = SubscriptionState()
        self._scheduler: DebounceScheduler | None = None
        self._handles: list[ObserveHandle] = []
        self._lock = asyncio.Lock()
        self._drain_task: asyncio.Task[None] | None = None
        self._rerun = False
        self._started = False
        self._stopped = False
        self._stopped_event = asyncio.Event()
        self._recomputes = 0
        self.error: ObserverError | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def options(self) -> AggregateOptions:
        return self._options

    @property
    def collection_name(self) -> str:
        return self._collection_name

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def recompute_count(self) -> int:
        """Number of recomputes that reached the sink."""
        return self._recomputes

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Attach observers, publish the initial result and mark the sub ready."""
        if self._started:
            raise ReactiveAggregateError("Publication already started")
        self._started = True
        loop = self._loop or asyncio.get_running_loop()
        self._loop = loop
        self._scheduler = DebounceScheduler(
            loop=loop,
            on_trigger=self._request_recompute,
            count=self._options.debounce_count,
            delay=self._options.debounce_delay,
        )

        observers: list[Watchable] = list(self._options.observers)
        if not self._options.no_automatic_observer:
            observers.append(self._collection.find(self._options.observe_selector, self._options.observe_options))

        for index, observer in enumerate(observers):
            try:
                handle = observer.observe_changes(self._callbacks_for(index))
            except Exception as exc:
                self._stop_after_failure()
                raise ObserverError(f"Observer {index} could not be attached: {exc}", observer_index=index) from exc
            self._handles.append(handle)
        _logger.debug(
            "Publication for %s wired to %d observer(s) (debounce count=%d delay=%ss)",
            self._collection_name,
            len(self._handles),
            self._options.debounce_count,
            self._options.debounce_delay,
        )

        # The sub may be stopped while the initial aggregation is still pending.
        self._sub.on_stop(self.stop)

        # Signals raised while attaching are ignored; the initial result comes from here.
        self._scheduler.activate()
        try:
            await self.recompute()
        except ReactiveAggregateError as exc:
            _logger.warning("Initial aggregation for %s failed", self._collection_name, exc_info=True)
            self._report(exc)
        except Exception:
            self._stop_after_failure()
            raise

        if self._stopped:
            return
        self._sub.ready()

    def stop(self) -> None:
        """Detach every observer and stop publishing. Idempotent."""
        if self._stopped:
            return
        self._stopped = True
        self._rerun = False
        scheduler = self._scheduler
        if scheduler is not None:
            self._call_in_loop(scheduler.cancel)
        self._call_in_loop(self._stopped_event.set)

        handles, self._handles = self._handles, []
        first_error: Exception | None = None
        for handle in handles:
            try:
                handle.stop()
            except Exception as exc:
                _logger.debug("Observer handle stop failed", exc_info=True)
                if first_error is None:
                    first_error = exc
        _logger.debug("Publication for %s stopped", self._collection_name)
        if first_error is not None:
            raise first_error

    def _stop_after_failure(self) -> None:
        try:
            self.stop()
        except Exception:
            _logger.debug("Cleanup after failed start of %s raised", self._collection_name, exc_info=True)

    async def wait_stopped(self) -> None:
        """Wait until the publication stops; raise its fatal error if any."""
        await self._stopped_event.wait()
        if self.error is not None:
            raise self.error

    # ------------------------------------------------------------------
    # Recompute
    # ------------------------------------------------------------------

    async def recompute(self) -> None:
        """Run the pipeline now and publish the difference.

        Serialized with scheduled recomputes. Does nothing once stopped.

        Raises
        ------
        AggregationError
            The aggregation failed or returned an unusable result. The
            published state is unchanged.
        """
        async with self._lock:
            await self._recompute_locked()

    async def _recompute_locked(self) -> None:
        if self._stopped:
            return
        try:
            result = await self._collection.aggregate(self._pipeline, self._options.aggregation_options)
        except AggregationError:
            raise
        except Exception as exc:
            raise AggregationError(f"Aggregation on {self._collection.name} failed: {exc}") from exc

        if self._stopped:
            _logger.debug("Discarding aggregation result for stopped publication %s", self._collection_name)
            return

        snapshot = split_snapshot(result, self._options.docs_prop_name)
        operations = diff_snapshot(
            self._state,
            snapshot,
            collection=self._collection_name,
            extras_collection=self._options.client_extras_collection,
            subscription_id=self._sub.subscription_id,
            id_field=self._options.id_field,
        )
        self._apply(operations)
        self._recomputes += 1

    def _apply(self, operations: list[SinkOperation]) -> None:
        for op in operations:
            if op.is_removal:
                self._sub.removed(op.collection, op.id)
            elif op.kind == OperationKind.ADDED:
                self._sub.added(op.collection, op.id, op.document or {})
            else:
                self._sub.changed(op.collection, op.id, op.document or {})
        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug(
                "Recompute %d for %s published %d operation(s): %s",
                self._state.iteration,
                self._collection_name,
                len(operations),
                redact_for_log([(op.kind.value, op.id) for op in operations]),
            )

    def _request_recompute(self) -> None:
        """Debounce trigger. Runs at most one recompute at a time."""
        if self._stopped:
            return
        if self._drain_task is not None and not self._drain_task.done():
            self._rerun = True
            return
        assert self._loop is not None  # noqa: S101
        self._drain_task = self._loop.create_task(self._drain())

    async def _drain(self) -> None:
        while True:
            self._rerun = False
            try:
                await self.recompute()
            except Exception as exc:
                _logger.warning("Recompute for %s failed", self._collection_name, exc_info=True)
                self._report(exc)
            if self._stopped or not self._rerun:
                return

    # ------------------------------------------------------------------
    # Observer callbacks
    # ------------------------------------------------------------------

    def _callbacks_for(self, index: int) -> ChangeCallbacks:
        def added(_doc_id: Hashable, _fields: Mapping[str, Any]) -> None:
            self._on_signal()

        def changed(_doc_id: Hashable, _fields: Mapping[str, Any]) -> None:
            self._on_signal()

        def removed(_doc_id: Hashable) -> None:
            self._on_signal()

        def error(exc: BaseException) -> None:
            self._on_observer_error(index, exc)

        return ChangeCallbacks(added=added, changed=changed, removed=removed, error=error)

    def _on_signal(self) -> None:
        scheduler = self._scheduler
        if self._stopped or scheduler is None:
            return
        self._call_in_loop(scheduler.signal)

    def _on_observer_error(self, index: int, exc: BaseException) -> None:
        if self._stopped:
            return
        error = ObserverError(f"Observer {index} failed: {exc}", observer_index=index)
        error.__cause__ = exc
        self._call_in_loop(self._fail, error)

    def _fail(self, error: ObserverError) -> None:
        if self._stopped:
            return
        _logger.warning("Stopping publication for %s: %s", self._collection_name, error)
        self.error = error
        try:
            self.stop()
        finally:
            self._report(error)
            self._sub.stop()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _in_loop_thread(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _call_in_loop(self, fn: Callable[..., None], *args: Any) -> None:
        loop = self._loop
        if loop is None or self._in_loop_thread() or loop.is_closed():
            fn(*args)
            return
        loop.call_soon_threadsafe(fn, *args)

    def _report(self, exc: Exception) -> None:
        if self._on_error is None:
            return
        error = exc if isinstance(exc, ReactiveAggregateError) else ReactiveAggregateError(str(exc))
        try:
            self._on_error(error)
        except Exception:
            _logger.debug("on_error callback failed", exc_info=True)


async def reactive_aggregate(
    sub: SubscriptionSink,
    collection: AggregationSource,
    pipeline: Sequence[Mapping[str, Any]],
    options: AggregateOptions | Mapping[str, Any] | None = None,
    **kwargs: Any,
) -> ReactiveAggregate:
    """Create and start a :class:`ReactiveAggregate` in one call."""
    publication = ReactiveAggregate(sub, collection, pipeline, options, **kwargs)
    await publication.start()
    return publication
