"""
Cooperative scheduling primitives for the recognition loop.

The loop never sleeps to keep cadence. Every iteration samples a monotonic
clock once at entry and asks rate gates whether enough time has passed, so
a slow frame simply skips work instead of drifting. The clock is injected,
which lets tests advance a ManualClock instead of waiting on real time.
"""

import time
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)


class MonotonicClock:
    """Milliseconds from time.monotonic()."""

    def now(self) -> float:
        return time.monotonic() * 1000.0


class ManualClock:
    """Clock advanced explicitly by the caller (tests, replay)."""

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)

    def now(self) -> float:
        return self._now

    def advance(self, ms: float) -> float:
        self._now += ms
        return self._now

    def set(self, ms: float):
        self._now = float(ms)


class RateGate:
    """Lets an action through at most once per interval.

    Args:
        interval_ms: minimum spacing between passes
        fire_first: if True the very first call passes; otherwise the first
            call only arms the gate and the first pass happens one full
            interval later.
    """

    def __init__(self, interval_ms: float, fire_first: bool = True):
        self._interval = float(interval_ms)
        self._fire_first = fire_first
        self._last: Optional[float] = None

    def ready(self, now: float) -> bool:
        if self._last is None:
            self._last = now
            return self._fire_first
        if now - self._last >= self._interval:
            self._last = now
            return True
        return False

    @property
    def interval_ms(self) -> float:
        return self._interval

    def reset(self):
        self._last = None


class CancellationToken:
    """One-shot cancellation flag shared by a session and its loop."""

    def __init__(self):
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def on_cancel(self, callback: Callable[[], None]):
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def cancel(self):
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error("Cancellation callback failed: %s", e)


async def run_cooperative(step: Callable[[], Awaitable[None]],
                          token: CancellationToken,
                          idle_sleep_ms: float = 5.0,
                          on_error: Optional[Callable[[Exception], None]] = None) -> int:
    """Run `step` repeatedly until `token` is cancelled.

    A failing iteration is reported through `on_error` and the loop
    reschedules itself for the next frame; it never stops on its own.

    Returns:
        Number of iterations executed.
    """
    iterations = 0
    while not token.cancelled:
        try:
            await step()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if on_error is not None:
                on_error(e)
            else:
                logger.warning("Loop iteration failed: %s", e)
        iterations += 1
        await asyncio.sleep(idle_sleep_ms / 1000.0)
    logger.debug("Cooperative loop stopped after %d iterations", iterations)
    return iterations
