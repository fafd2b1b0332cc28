"""Debounce scheduler: coalesces bursts of change signals into recomputes."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

_logger = logging.getLogger(__name__)


class DebounceScheduler:
    """Count- and time-based batching of change signals.

    Every signal bumps a counter. Once the counter exceeds *count* the
    trigger fires immediately. When *count* is positive the first signal of
    a batch also arms a timer for *delay* seconds, so a batch that never
    reaches the threshold still fires once the delay expires.

    Signals are ignored until :meth:`activate` is called and after
    :meth:`cancel`. Must be used from the thread running *loop*.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        on_trigger: Callable[[], None],
        count: int = 0,
        delay: float = 0.0,
    ) -> None:
        self._loop = loop
        self._on_trigger = on_trigger
        self._count = count
        self._delay = delay
        self._timer: asyncio.TimerHandle | None = None
        self._signals = 0
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def pending(self) -> bool:
        """Whether a delayed trigger is armed."""
        return self._timer is not None

    @property
    def count(self) -> int:
        """Signals accumulated in the current batch."""
        return self._signals

    def activate(self) -> None:
        self._active = True

    def signal(self) -> None:
        """Record one change signal."""
        if not self._active:
            return
        if self._timer is None and self._count > 0:
            self._timer = self._loop.call_later(self._delay, self._on_timer)
        self._signals += 1
        if self._signals > self._count:
            self._signals = 0
            self._clear_timer()
            self._fire()

    def cancel(self) -> None:
        """Disarm any pending trigger and ignore further signals."""
        self._active = False
        self._signals = 0
        self._clear_timer()

    def _on_timer(self) -> None:
        self._timer = None
        self._signals = 0
        if not self._active:
            return
        _logger.debug("Debounce delay of %ss expired", self._delay)
        self._fire()

    def _clear_timer(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is not None:
            timer.cancel()

    def _fire(self) -> None:
        self._on_trigger()
