"""Publication options for reactive_aggregate."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from reactive_aggregate.exceptions import ConfigurationError
from reactive_aggregate.sources import Watchable

_logger = logging.getLogger(__name__)

DEFAULT_EXTRAS_COLLECTION = "ReactiveAggregate"


class AggregateOptions(BaseModel):
    """Options accepted when setting up a publication.

    Both snake_case names and the camelCase names used by the original
    publish helpers (``debounceCount``, ``docsPropName``...) are accepted.

    Parameters
    ----------
    aggregation_options : dict
        Forwarded untouched to ``AggregationSource.aggregate``.
    observers : list
        Extra :class:`~reactive_aggregate.sources.Watchable` sources whose
        changes trigger a recompute.
    no_automatic_observer : bool
        Do not watch the primary source automatically.
    observe_selector, observe_options : dict
        Deprecated. Passed to ``find`` when building the automatic observer.
    debounce_count : int
        Number of change signals tolerated before forcing a recompute.
        ``0`` recomputes on every signal.
    debounce_delay : float
        Seconds to wait before recomputing once a batch has started.
        Only used when ``debounce_count`` is positive.
    client_collection : str or None
        Target collection for document calls. Defaults to the source name.
    docs_prop_name : str or None
        Field holding the document list when the pipeline returns a single
        wrapper record. Remaining fields are published as extras.
    client_extras_collection : str
        Target collection for the extras singleton.
    id_field : str
        Field carrying each document's identity.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    aggregation_options: dict[str, Any] = Field(default_factory=dict)
    observers: list[Any] = Field(default_factory=list)
    no_automatic_observer: bool = Field(default=False, strict=True)
    observe_selector: dict[str, Any] = Field(default_factory=dict)
    observe_options: dict[str, Any] = Field(default_factory=dict)
    debounce_count: int = 0
    debounce_delay: float = 0.0
    client_collection: str | None = None
    docs_prop_name: str | None = None
    client_extras_collection: str = DEFAULT_EXTRAS_COLLECTION
    id_field: str = "_id"

    @field_validator("observers", mode="before")
    @classmethod
    def _check_observers(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            raise ValueError("must be a list of watchable sources")
        for index, observer in enumerate(value):
            if not isinstance(observer, Watchable):
                raise ValueError(f"item {index} does not provide observe_changes()")
        return list(value)

    @field_validator("debounce_count", mode="before")
    @classmethod
    def _check_debounce_count(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("must be a non-negative integer")
        if value < 0:
            raise ValueError("must be a non-negative integer")
        return value

    @field_validator("debounce_delay", mode="before")
    @classmethod
    def _check_debounce_delay(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("must be a non-negative number of seconds")
        if value < 0:
            raise ValueError("must be a non-negative number of seconds")
        return float(value)

    @field_validator("client_collection", "docs_prop_name", "client_extras_collection", "id_field")
    @classmethod
    def _non_empty(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            raise ValueError("must be a non-empty string")
        return value

    @property
    def uses_deprecated_observe_args(self) -> bool:
        return bool(self.observe_selector or self.observe_options)

    @classmethod
    def parse(cls, options: AggregateOptions | Mapping[str, Any] | None = None) -> AggregateOptions:
        """Validate *options*, raising :class:`ConfigurationError` on bad input."""
        if options is None:
            return cls()
        if isinstance(options, AggregateOptions):
            return options
        if not isinstance(options, Mapping):
            raise ConfigurationError('"options" must be a mapping')
        try:
            return cls.model_validate(dict(options))
        except ValidationError as exc:
            raise _to_configuration_error(exc) from exc

    @classmethod
    def from_env(cls, **overrides: Any) -> AggregateOptions:
        """Create options from environment variables.

        Reads ``REACTIVE_AGGREGATE_DEBOUNCE_COUNT``,
        ``REACTIVE_AGGREGATE_DEBOUNCE_DELAY`` and
        ``REACTIVE_AGGREGATE_EXTRAS_COLLECTION``. Explicit keyword arguments
        override environment values.
        """
        env = os.environ
        values: dict[str, Any] = {}

        count_env = env.get("REACTIVE_AGGREGATE_DEBOUNCE_COUNT")
        if count_env is not None:
            try:
                values["debounce_count"] = int(count_env)
            except ValueError as exc:
                raise ConfigurationError(
                    f"REACTIVE_AGGREGATE_DEBOUNCE_COUNT is not an integer: {count_env!r}",
                    option="debounce_count",
                ) from exc

        delay_env = env.get("REACTIVE_AGGREGATE_DEBOUNCE_DELAY")
        if delay_env is not None:
            try:
                values["debounce_delay"] = float(delay_env)
            except ValueError as exc:
                raise ConfigurationError(
                    f"REACTIVE_AGGREGATE_DEBOUNCE_DELAY is not a number: {delay_env!r}",
                    option="debounce_delay",
                ) from exc

        extras_env = env.get("REACTIVE_AGGREGATE_EXTRAS_COLLECTION")
        if extras_env is not None:
            values["client_extras_collection"] = extras_env

        values.update(overrides)
        return cls.parse(values)


def _field_for_alias(alias: str) -> str:
    for name, info in AggregateOptions.model_fields.items():
        if alias in (name, info.alias):
            return name
    return alias


def _to_configuration_error(exc: ValidationError) -> ConfigurationError:
    first = exc.errors()[0]
    loc = first.get("loc") or ()
    option = _field_for_alias(str(loc[0])) if loc else ""
    message = first.get("msg", "invalid value")
    _logger.debug("Rejected publication options: %s", exc)
    return ConfigurationError(f'"options.{option}" {message}', option=option)
