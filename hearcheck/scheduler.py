from __future__ import annotations

import heapq
import itertools
from typing import Callable, List, Optional, Protocol, Tuple


class TimerHandle(Protocol):
    """Handle of a single-shot timer returned by ``Scheduler.call_later``."""

    @property
    def active(self) -> bool:
        ...

    def cancel(self) -> None:
        """Cancel the timer; safe to call more than once."""


class Scheduler(Protocol):
    """Single-threaded timer source.

    Controllers never sleep: every wait (inter-trial delay, response window,
    feedback pause) is a callback scheduled here.
    """

    def now(self) -> float:
        """Return monotonic seconds."""

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class VirtualTimer:
    def __init__(self, due_s: float, callback: Callable[[], None]) -> None:
        self.due_s = due_s
        self._callback: Optional[Callable[[], None]] = callback

    @property
    def active(self) -> bool:
        return self._callback is not None

    def cancel(self) -> None:
        self._callback = None

    def _fire(self) -> None:
        callback = self._callback
        self._callback = None
        if callback is not None:
            callback()


class VirtualScheduler:
    """Deterministic scheduler driven by explicit calls to ``advance``.

    Used by the headless simulation and by the tests: nothing happens until
    virtual time is moved forward, and due callbacks run in (time, insertion)
    order.
    """

    def __init__(self, start_s: float = 0.0) -> None:
        self._now = float(start_s)
        self._queue: List[Tuple[float, int, VirtualTimer]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> VirtualTimer:
        timer = VirtualTimer(self._now + max(0.0, float(delay_s)), callback)
        heapq.heappush(self._queue, (timer.due_s, next(self._seq), timer))
        return timer

    def pending(self) -> int:
        return sum(1 for _due, _seq, timer in self._queue if timer.active)

    def next_due(self) -> Optional[float]:
        self._drop_cancelled()
        if not self._queue:
            return None
        return self._queue[0][0]

    def advance(self, dt: float) -> None:
        """Move time forward by *dt* seconds, firing every timer that falls due."""
        target = self._now + max(0.0, float(dt))
        while True:
            due = self.next_due()
            if due is None or due > target:
                break
            _due, _seq, timer = heapq.heappop(self._queue)
            self._now = max(self._now, _due)
            timer._fire()
        self._now = target

    def run_until_idle(self, max_steps: int = 100000) -> int:
        """Fire timers one after another until none is pending.

        Returns the number of timers fired. Raises ``RuntimeError`` when
        *max_steps* is exceeded, which means something keeps rescheduling
        itself forever.
        """
        fired = 0
        while True:
            due = self.next_due()
            if due is None:
                return fired
            if fired >= max_steps:
                raise RuntimeError(f"Scheduler still busy after {max_steps} timers.")
            _due, _seq, timer = heapq.heappop(self._queue)
            self._now = max(self._now, _due)
            timer._fire()
            fired += 1

    def _drop_cancelled(self) -> None:
        while self._queue and not self._queue[0][2].active:
            heapq.heappop(self._queue)
