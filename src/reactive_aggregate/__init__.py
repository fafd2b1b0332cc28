"""reactive_aggregate - Publish aggregation results reactively."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("reactive-aggregate")
except PackageNotFoundError:
    __version__ = "0+local"
from reactive_aggregate.config import AggregateOptions
from reactive_aggregate.exceptions import (
    AggregationError,
    ConfigurationError,
    ObserverError,
    ReactiveAggregateError,
)
from reactive_aggregate.ingestion.snapshot import Snapshot, split_snapshot
from reactive_aggregate.publication import ReactiveAggregate, reactive_aggregate
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

__all__ = [
    "__version__",
    "AggregateOptions",
    "AggregationError",
    "AggregationSource",
    "ChangeCallbacks",
    "ConfigurationError",
    "ObserveHandle",
    "ObserverError",
    "OperationKind",
    "ReactiveAggregate",
    "ReactiveAggregateError",
    "SinkOperation",
    "Snapshot",
    "SubscriptionSink",
    "SubscriptionState",
    "Watchable",
    "diff_snapshot",
    "reactive_aggregate",
    "split_snapshot",
]
