"""Aggregation source backed by an HTTP endpoint."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any

import aiohttp

from reactive_aggregate._redact import redact_for_log
from reactive_aggregate.exceptions import AggregationError, ConfigurationError
from reactive_aggregate.sources import Watchable

_logger = logging.getLogger(__name__)

_USER_AGENT = "reactive-aggregate"


class HttpAggregationSource:
    """Runs pipelines by POSTing them to an aggregation endpoint.

    The request body is ``{"pipeline": [...], "options": {...}}``. The
    endpoint must answer ``200`` with either a JSON array of records or an
    object carrying that array under ``"result"``.

    An HTTP endpoint cannot be watched by itself; pass *watch* to give the
    publication an automatic observer, or publish with
    ``no_automatic_observer=True`` and explicit observers.
    """

    def __init__(
        self,
        url: str,
        *,
        session: aiohttp.ClientSession,
        name: str,
        headers: Mapping[str, str] | None = None,
        watch: Watchable | None = None,
    ) -> None:
        self.url = url
        self.name = name
        self._http = session
        self._headers = dict(headers or {})
        self._watch = watch

    def find(self, selector: Mapping[str, Any], options: Mapping[str, Any]) -> Watchable:
        if self._watch is None:
            raise ConfigurationError(
                f'"{self.name}" cannot be watched; set noAutomaticObserver and pass observers',
                option="no_automatic_observer",
            )
        return self._watch

    async def aggregate(
        self,
        pipeline: Sequence[Mapping[str, Any]],
        options: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        headers: dict[str, str] = {
            "accept": "application/json",
            "content-type": "application/json; charset=UTF-8",
            "user-agent": _USER_AGENT,
            **self._headers,
        }
        body = json.dumps(
            {"pipeline": list(pipeline), "options": dict(options)},
            separators=(",", ":"),
            default=str,
        )

        _logger.debug("POST %s pipeline=%s", self.url, redact_for_log(list(pipeline)))

        try:
            async with self._http.post(self.url, data=body, headers=headers) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise AggregationError(
                        f"HTTP {resp.status} from {self.url}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=self.url,
                    )
        except AggregationError:
            raise
        except aiohttp.ClientError as exc:
            raise AggregationError(f"Request to {self.url} failed: {exc}", endpoint=self.url) from exc

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise AggregationError(f"Invalid JSON from {self.url}: {text[:200]}", endpoint=self.url) from exc

        if isinstance(payload, dict):
            payload = payload.get("result")
        if not isinstance(payload, list):
            raise AggregationError(f"Missing result array from {self.url}", endpoint=self.url)
        return payload
