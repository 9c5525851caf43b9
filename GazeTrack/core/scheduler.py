"""
Deferred-action schedulers.

Calibration dwell/capture steps and short UI acknowledgements are expressed
as callbacks scheduled on a Scheduler instead of blocking waits, so the same
state machines run against Qt timers in the app and a virtual clock in tests.

Interface:
- now() -> float seconds
- call_later(delay_s, callback) -> handle
- cancel(handle)

PyQt6 is only imported once a QtScheduler schedules something.
"""
from __future__ import annotations

import heapq
import itertools
import time
from typing import Callable, Dict, List, Set, Tuple


class VirtualScheduler:
    """Manual clock. advance() fires due callbacks in deadline order."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._queue: List[Tuple[float, int, Callable[[], None]]] = []
        self._live: Set[int] = set()
        self._ids = itertools.count(1)

    def now(self) -> float:
        return self._now

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> int:
        handle = next(self._ids)
        heapq.heappush(self._queue, (self._now + max(0.0, float(delay_s)), handle, callback))
        self._live.add(handle)
        return handle

    def cancel(self, handle: int) -> None:
        # the heap entry stays until its deadline and is skipped then
        self._live.discard(handle)
        if not self._live:
            self._queue.clear()

    def pending(self) -> int:
        return len(self._live)

    def advance(self, seconds: float) -> None:
        end = self._now + max(0.0, float(seconds))
        while self._queue and self._queue[0][0] <= end:
            due, handle, callback = heapq.heappop(self._queue)
            if handle not in self._live:
                continue
            self._live.discard(handle)
            self._now = max(self._now, due)
            callback()
        self._now = end


class QtScheduler:
    """Single-shot QTimers on the Qt event loop; monotonic clock."""

    def __init__(self) -> None:
        self._timers: Dict[int, "QTimer"] = {}
        self._ids = itertools.count(1)

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> int:
        from PyQt6.QtCore import QTimer

        handle = next(self._ids)
        timer = QTimer()
        timer.setSingleShot(True)
        timer.setInterval(max(0, int(round(float(delay_s) * 1000.0))))

        def fire() -> None:
            self._timers.pop(handle, None)
            callback()

        timer.timeout.connect(fire)  # type: ignore[attr-defined]
        self._timers[handle] = timer
        timer.start()
        return handle

    def cancel(self, handle: int) -> None:
        timer = self._timers.pop(handle, None)
        if timer is not None:
            timer.stop()

    def pending(self) -> int:
        return len(self._timers)

    def cancel_all(self) -> None:
        for handle in list(self._timers):
            self.cancel(handle)
