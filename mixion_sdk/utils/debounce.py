"""
Debounce gate with a minimum interval between executions.

The gate owns exactly one timer handle and one "last started at" timestamp.
All scheduling decisions happen on the event loop thread, which makes the
gate a single-writer actor: `trigger()` must be called from the loop, other
threads go through `trigger_threadsafe()`.

Semantics
---------
- Each trigger (re)arms the timer `delay` seconds after the most recent one,
  so a burst of triggers collapses into one execution.
- An execution never starts sooner than `min_interval` after the previous
  execution started. If the timer fires too early the execution is deferred
  to the earliest allowed instant instead of being queued.
- While an execution is running, further triggers only re-arm the timer; when
  it fires and the previous run is still going, it is deferred again. So at
  most one execution is in flight and at most one is pending.
- `close()` cancels the pending timer and the running execution before it
  returns. Triggers after `close()` are ignored.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

log = logging.getLogger("mixion.debounce")

Action = Callable[[], Awaitable[None]]

DEBOUNCE_DELAY = 1.0
MIN_INTERVAL = 2.0


class DebounceGate:
    def __init__(
        self,
        action: Action,
        *,
        delay: float = DEBOUNCE_DELAY,
        min_interval: float = MIN_INTERVAL,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        name: str = "debounce",
    ) -> None:
        if delay < 0 or min_interval < 0:
            raise ValueError("delay and min_interval must be non-negative")
        self._action = action
        self._delay = float(delay)
        self._min_interval = float(min_interval)
        self._loop = loop
        self._name = name
        self._timer: Optional[asyncio.TimerHandle] = None
        self._running: Optional[asyncio.Task] = None
        self._last_started: Optional[float] = None
        self._closed = False
        self.executions = 0

    # ------------- public API -------------------

    @property
    def pending(self) -> bool:
        return self._timer is not None

    @property
    def running(self) -> bool:
        return self._running is not None and not self._running.done()

    @property
    def closed(self) -> bool:
        return self._closed

    def trigger(self) -> None:
        """Record a trigger; (re)arms the single pending timer."""
        if self._closed:
            return
        loop = self._get_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self._delay, self._fire)

    def trigger_threadsafe(self) -> None:
        self._get_loop().call_soon_threadsafe(self.trigger)

    def touch(self) -> None:
        """Count an execution that ran outside the gate towards `min_interval`."""
        if not self._closed:
            self._last_started = self._get_loop().time()

    def close(self) -> None:
        """Cancel the pending timer and any running execution. Idempotent."""
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._running is not None and not self._running.done():
            self._running.cancel()
        self._running = None

    # ------------- internals --------------------

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _fire(self) -> None:
        self._timer = None
        if self._closed:
            return
        loop = self._get_loop()
        now = loop.time()

        if self.running:
            # Previous execution still in flight: look again after another delay.
            self._timer = loop.call_later(max(self._delay, 0.001), self._fire)
            return

        if self._last_started is not None:
            wait = self._last_started + self._min_interval - now
            if wait > 0:
                self._timer = loop.call_later(wait, self._fire)
                return

        self._last_started = now
        self.executions += 1
        self._running = loop.create_task(self._run(), name=f"{self._name}.run")

    async def _run(self) -> None:
        try:
            await self._action()
        except asyncio.CancelledError:
            raise
        except Exception:  # noqa: BLE001
            log.warning("%s: action failed", self._name, exc_info=True)


__all__ = ["DebounceGate", "DEBOUNCE_DELAY", "MIN_INTERVAL"]
