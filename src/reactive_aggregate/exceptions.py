"""Custom exception hierarchy for reactive_aggregate."""

from __future__ import annotations

from typing import ClassVar


class ReactiveAggregateError(Exception):
    """Base exception for all reactive_aggregate errors."""

    kind: ClassVar[str] = "reactive-aggregate"


class ConfigurationError(ReactiveAggregateError):
    """Malformed setup parameters.

    Raised synchronously while constructing a publication; nothing is wired
    when this is raised.
    """

    kind: ClassVar[str] = "configuration"

    def __init__(self, message: str, *, option: str = "") -> None:
        self.option = option
        super().__init__(message)


class AggregationError(ReactiveAggregateError):
    """The aggregation call failed or returned an unexpected shape.

    The published identity map is left untouched and the publication keeps
    waiting for the next change.
    """

    kind: ClassVar[str] = "aggregation"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class ObserverError(ReactiveAggregateError):
    """A watched change source reported an error.

    Fatal: the publication is stopped when this is raised.
    """

    kind: ClassVar[str] = "observer"

    def __init__(self, message: str, *, observer_index: int | None = None) -> None:
        self.observer_index = observer_index
        super().__init__(message)
