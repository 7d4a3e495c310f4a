"""Reveal scheduler: converges a cursor toward a target string over timed ticks."""

import logging
import threading
from typing import Callable, Optional

from .config import RevealConfig
from .interfaces import ITimerBackend, ITimerHandle


logger = logging.getLogger(__name__)


UpdateCallback = Callable[[str, bool], None]
ErrorCallback = Callable[[Exception], None]


class CancellationToken:
    """Explicit cancellation flag shared between a handle and its timers."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"


def _next_cursor(target: str, cursor: int, config: RevealConfig) -> int:
    if config.mode == "lines":
        newline = target.find("\n", cursor)
        return len(target) if newline == -1 else newline + 1
    return min(cursor + config.chars_per_tick, len(target))


def _delay_after(chunk: str, config: RevealConfig) -> float:
    if "\n" in chunk:
        return config.tick_interval_ms + config.newline_extra_delay_ms
    return config.tick_interval_ms


class RevealHandle:
    """Tracks one running reveal and lets the caller cancel it."""

    def __init__(self, target: str, config: RevealConfig,
                 on_update: UpdateCallback, on_error: Optional[ErrorCallback]):
        self.target = target
        self.config = config
        self.on_update = on_update
        self.on_error = on_error
        self.token = CancellationToken()
        self.cursor = 0
        self.ticks = 0
        self.completed = False
        self.error: Optional[Exception] = None
        self._timer: Optional[ITimerHandle] = None
        # Held across a tick so cancel() cannot interleave with an update
        self._lock = threading.RLock()

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    @property
    def active(self) -> bool:
        return not (self.completed or self.token.cancelled)

    @property
    def progress(self) -> float:
        """Revealed share of the target, 0-100."""
        if not self.target:
            return 100.0 if self.completed else 0.0
        return self.cursor / len(self.target) * 100.0

    def cancel(self) -> None:
        """Stop the reveal. No further updates are delivered after this returns."""
        with self._lock:
            if self.token.cancelled:
                return
            self.token.cancel()
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        logger.debug(f"Reveal cancelled at {self.cursor}/{len(self.target)} chars")


class RevealScheduler:
    """Schedules the incremental disclosure of one string at a time.

    Each tick advances the cursor by ``chars_per_tick`` (or by one whole
    line in ``lines`` mode) and calls ``on_update(partial, is_complete)``.
    Ticks are strictly sequential: the next one is only scheduled after the
    current callback has returned.
    """

    def __init__(self, backend: ITimerBackend, config: Optional[RevealConfig] = None):
        """Initialize reveal scheduler.

        Args:
            backend: Timer backend providing delayed callbacks
            config: Default pacing, used when start() is not given one
        """
        self.backend = backend
        self.config = config or RevealConfig()

    def start(self, target: str, on_update: UpdateCallback,
              config: Optional[RevealConfig] = None,
              on_error: Optional[ErrorCallback] = None) -> RevealHandle:
        """Begin revealing target.

        The first tick runs before this method returns, so an empty target
        reports ``("", True)`` immediately.

        Args:
            target: Final text to converge to
            on_update: Called with the revealed prefix and a completion flag
            config: Pacing for this reveal (defaults to the scheduler's)
            on_error: Receives any exception raised by on_update; the reveal
                stops when that happens

        Returns:
            Handle used to cancel the reveal

        Raises:
            ConfigurationError: If the pacing is invalid; nothing is scheduled
            TypeError: If target is not a string
        """
        config = config or self.config
        config.validate()
        if not isinstance(target, str):
            raise TypeError(f"Reveal target must be a string, got {type(target).__name__}")

        handle = RevealHandle(target, config, on_update, on_error)
        logger.debug(f"Starting reveal of {len(target)} chars "
                     f"(mode={config.mode}, chars_per_tick={config.chars_per_tick}, "
                     f"interval={config.tick_interval_ms}ms)")
        self._tick(handle)
        return handle

    def _tick(self, handle: RevealHandle) -> None:
        with handle._lock:
            self._run_tick(handle)

    def _run_tick(self, handle: RevealHandle) -> None:
        if handle.token.cancelled:
            logger.debug("Discarding tick from cancelled reveal")
            return

        handle._timer = None
        start = handle.cursor
        cursor = _next_cursor(handle.target, start, handle.config)
        chunk = handle.target[start:cursor]
        is_complete = cursor >= len(handle.target)

        handle.cursor = cursor
        handle.ticks += 1
        if is_complete:
            handle.completed = True

        try:
            handle.on_update(handle.target[:cursor], is_complete)
        except Exception as e:
            handle.error = e
            handle.token.cancel()
            if handle.on_error is None:
                logger.error(f"Reveal update callback failed: {e}", exc_info=True)
                return
            try:
                handle.on_error(e)
            except Exception as inner:
                logger.error(f"Reveal error callback failed: {inner}", exc_info=True)
            return

        if is_complete or handle.token.cancelled:
            return

        delay = _delay_after(chunk, handle.config)
        handle._timer = self.backend.call_later(delay, lambda: self._tick(handle))


def estimate_reveal_duration(target: str, config: Optional[RevealConfig] = None) -> float:
    """Estimate how long revealing target takes, in milliseconds.

    The first tick is immediate; every later tick waits the interval of the
    chunk before it.
    """
    config = config or RevealConfig()
    config.validate()

    total = 0.0
    cursor = 0
    while cursor < len(target):
        nxt = _next_cursor(target, cursor, config)
        if nxt < len(target):
            total += _delay_after(target[cursor:nxt], config)
        cursor = nxt
    return total
