"""Timer backends driving the cooperative reveal timeline.

Two backends share the ITimerBackend interface:

* ThreadingTimerBackend schedules callbacks on real ``threading.Timer``
  threads and is what interactive front ends use.
* ManualTimerBackend keeps a virtual clock that only moves when
  ``advance()`` or ``run_until_idle()`` is called. Replays are
  deterministic, which is what tests and instant previews need.
"""

import heapq
import itertools
import logging
import threading
import time
from typing import Callable, List, Optional, Tuple

from .interfaces import ITimerBackend, ITimerHandle


logger = logging.getLogger(__name__)


class TimerHandle(ITimerHandle):
    """Cancellable reference to a scheduled callback."""

    def __init__(self, callback: Callable[[], None], due: float):
        self.callback = callback
        self.due = due
        self._cancelled = False
        self._timer: Optional[threading.Timer] = None

    def cancel(self) -> None:
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self) -> str:
        return f"TimerHandle(due={self.due:.1f}, cancelled={self._cancelled})"


def _run_callback(handle: TimerHandle) -> None:
    if handle.cancelled:
        return
    try:
        handle.callback()
    except Exception as e:
        logger.error(f"Timer callback raised: {e}", exc_info=True)


class ThreadingTimerBackend(ITimerBackend):
    """Runs callbacks on daemon ``threading.Timer`` threads."""

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        delay_ms = max(0.0, delay_ms)
        handle = TimerHandle(callback, self.now() + delay_ms)
        timer = threading.Timer(delay_ms / 1000.0, _run_callback, args=(handle,))
        timer.daemon = True
        handle._timer = timer
        timer.start()
        return handle

    def now(self) -> float:
        return time.monotonic() * 1000.0


class ManualTimerBackend(ITimerBackend):
    """Virtual clock whose timers fire only when time is advanced explicitly."""

    def __init__(self, start_ms: float = 0.0):
        self._now = start_ms
        self._queue: List[Tuple[float, int, TimerHandle]] = []
        self._counter = itertools.count()
        self.fired = 0

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        delay_ms = max(0.0, delay_ms)
        handle = TimerHandle(callback, self._now + delay_ms)
        heapq.heappush(self._queue, (handle.due, next(self._counter), handle))
        return handle

    def now(self) -> float:
        return self._now

    @property
    def pending_count(self) -> int:
        """Number of scheduled callbacks that have not been cancelled."""
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)

    def _pop_next(self, until: Optional[float]) -> Optional[TimerHandle]:
        while self._queue:
            due, _, handle = self._queue[0]
            if until is not None and due > until:
                return None
            heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            return handle
        return None

    def advance(self, ms: float) -> int:
        """Move the clock forward by ms, firing every timer that comes due.

        Timers scheduled by callbacks during the advance fire too if they
        fall inside the window.

        Returns:
            Number of callbacks fired
        """
        target = self._now + ms
        count = 0
        while True:
            handle = self._pop_next(target)
            if handle is None:
                break
            self._now = max(self._now, handle.due)
            _run_callback(handle)
            count += 1
        self._now = target
        self.fired += count
        return count

    def run_until_idle(self, max_callbacks: int = 1_000_000) -> int:
        """Fire timers in due order until none remain.

        Raises:
            RuntimeError: If more than max_callbacks fire, which indicates
                a timeline that never settles
        """
        count = 0
        while True:
            handle = self._pop_next(None)
            if handle is None:
                break
            if count >= max_callbacks:
                raise RuntimeError(f"Timeline did not settle after {max_callbacks} callbacks")
            self._now = max(self._now, handle.due)
            _run_callback(handle)
            count += 1
        self.fired += count
        return count
