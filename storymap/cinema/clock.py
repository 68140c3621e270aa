"""Timers for the playback core.

All orchestration is single-threaded: callbacks scheduled with ``call_later`` or
``call_every`` run one at a time, in time order. ``VirtualClock`` drives them
deterministically, which is what rehearsals, the MCP server and the tests use.
"""

import heapq
import itertools
from typing import Callable, Protocol


class TimerHandle:
    """A scheduled callback. Periodic timers reuse the same handle for every tick."""

    def __init__(
        self,
        when: float,
        callback: Callable[[], None],
        interval: float | None = None,
    ) -> None:
        self.when = when
        self.callback = callback
        self.interval = interval
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self) -> str:
        kind = f"every {self.interval}ms" if self.interval else "once"
        state = " cancelled" if self._cancelled else ""
        return f"TimerHandle(at={self.when}ms {kind}{state})"


class Clock(Protocol):
    @property
    def now_ms(self) -> float: ...

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle: ...

    def call_every(self, interval_ms: float, callback: Callable[[], None]) -> TimerHandle: ...


class VirtualClock:
    """Deterministic clock: time only moves when ``advance`` is called."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = start_ms
        self._queue: list[tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    @property
    def now_ms(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(self._now + max(0.0, delay_ms), callback)
        self._push(handle)
        return handle

    def call_every(self, interval_ms: float, callback: Callable[[], None]) -> TimerHandle:
        if interval_ms <= 0:
            raise ValueError(f"interval must be positive, got {interval_ms}")
        handle = TimerHandle(self._now + interval_ms, callback, interval=interval_ms)
        self._push(handle)
        return handle

    def advance(self, ms: float) -> int:
        """Move time forward, running every callback that falls due. Returns callbacks run."""
        if ms < 0:
            raise ValueError("Cannot move a clock backwards")
        target = self._now + ms
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = when
            if handle.interval is not None:
                # Re-arm first so the callback can cancel its own timer
                handle.when = when + handle.interval
                self._push(handle)
            handle.callback()
            ran += 1
        self._now = target
        return ran

    def advance_to(self, when_ms: float) -> int:
        return self.advance(max(0.0, when_ms - self._now))

    def pending(self) -> int:
        """Number of live (not cancelled) timers."""
        return sum(1 for _, _, h in self._queue if not h.cancelled)

    def next_due(self) -> float | None:
        live = [when for when, _, h in self._queue if not h.cancelled]
        return min(live) if live else None

    def _push(self, handle: TimerHandle) -> None:
        heapq.heappush(self._queue, (handle.when, next(self._seq), handle))
