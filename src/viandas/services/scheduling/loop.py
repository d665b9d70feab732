"""Periodic worker loop with cooperative cancellation.

Each engine (archival, notifications) gets one `PeriodicLoop`: wake, run the
tick to completion, wait `interval` on the stop event, repeat. A tick never
overlaps the previous one. Exceptions raised by a tick are logged and the loop
keeps going; only the stop event ends it.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import timedelta
from typing import Callable, Optional, Union

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_RUNNING = "running"
STATE_STOPPED = "stopped"

Tick = Callable[[threading.Event], object]


class CycleCancelled(Exception):
    """Raised inside a cycle when the stop event was set between steps."""


def raise_if_cancelled(stop_event: Optional[threading.Event]) -> None:
    if stop_event is not None and stop_event.is_set():
        raise CycleCancelled()


class PeriodicLoop:
    def __init__(
        self,
        name: str,
        interval: Union[timedelta, float],
        tick: Tick,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.name = name
        self.interval_seconds = (
            interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
        )
        self.tick = tick
        self.stop_event = stop_event or threading.Event()
        self.state = STATE_IDLE
        self.ticks = 0
        self.failures = 0
        self.last_error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> bool:
        """Run a single tick. Returns False if it raised."""
        self.state = STATE_RUNNING
        started = time.monotonic()
        try:
            self.tick(self.stop_event)
            return True
        except CycleCancelled:
            logger.info(f"{self.name}: cycle cancelled")
            return False
        except Exception as e:
            self.failures += 1
            self.last_error = e
            logger.exception(f"{self.name}: error in cycle: {type(e).__name__}: {e}")
            return False
        finally:
            self.ticks += 1
            self.state = STATE_IDLE
            logger.debug(f"{self.name}: tick {self.ticks} took {(time.monotonic() - started) * 1000:.1f}ms")

    def run(self, max_ticks: Optional[int] = None) -> None:
        """Block until the stop event is set (or `max_ticks` ticks ran)."""
        logger.info(f"{self.name}: starting, interval={self.interval_seconds:.0f}s")
        while not self.stop_event.is_set():
            self.run_once()
            if max_ticks is not None and self.ticks >= max_ticks:
                break
            if self.stop_event.wait(self.interval_seconds):
                break
        self.state = STATE_STOPPED
        logger.info(f"{self.name}: stopped after {self.ticks} ticks ({self.failures} failed)")

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self.run, name=self.name, daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None) -> None:
        self.stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
