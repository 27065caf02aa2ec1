"""
Admission control for the submission gateway.

A FairTokenBucket hands out at most `limit` admissions per window, serving
blocked callers strictly in arrival order. A Timekeeper thread marks window
boundaries and refills the bucket on each one. The timekeeper is the only
source of replenishment: finished submissions do not give their token back.
"""
import logging
import threading
import time
from collections import deque
from enum import Enum
from typing import Callable, Deque, Optional

from crpt_tools.errors import Interrupted, LimitExceeded, Stopped

logger = logging.getLogger(__name__)

# How often a waiter with a cancel event re-checks it
CANCEL_POLL_SECONDS = 0.05

# Shortest sleep between timekeeper ticks
MIN_TICK_SECONDS = 0.001


class TimeUnit(Enum):
    """Window designators. The value is the window length in seconds."""
    NANOSECONDS = 1e-9
    MICROSECONDS = 1e-6
    MILLISECONDS = 1e-3
    SECONDS = 1.0
    MINUTES = 60.0
    HOURS = 3600.0
    DAYS = 86400.0

    @property
    def seconds(self) -> float:
        return self.value

    @classmethod
    def parse(cls, value) -> "TimeUnit":
        """Accept a TimeUnit or its name in any case ("seconds", "MINUTES")."""
        if isinstance(value, cls):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            names = ", ".join(u.name.lower() for u in cls)
            raise ValueError(f"Unknown time unit: '{value}'. Must be one of: {names}.") from None


class FairTokenBucket:
    """
    FIFO-fair bucket of admission tokens.

    Starts full. acquire() takes one token, blocking behind earlier callers
    when the bucket is empty. refill() tops it back up to `limit` and resets
    the per-window admission counter.
    """

    def __init__(self, limit: int):
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        self.limit = limit
        self._cond = threading.Condition(threading.Lock())
        self._available = limit
        self._admitted = 0
        self._waiters: Deque[object] = deque()
        self._closed = False

    @property
    def available(self) -> int:
        with self._cond:
            return self._available

    @property
    def admitted(self) -> int:
        """Admissions counted since the last refill."""
        with self._cond:
            return self._admitted

    @property
    def waiting(self) -> int:
        with self._cond:
            return len(self._waiters)

    def acquire(self, cancel: Optional[threading.Event] = None) -> None:
        """
        Take one admission token.

        Args:
            cancel: Optional event; setting it while waiting abandons the wait

        Raises:
            Stopped: bucket closed before or during the wait
            Interrupted: `cancel` was set before a token was granted
            LimitExceeded: admission counter went past the limit this window
        """
        ticket = object()
        with self._cond:
            if self._closed:
                raise Stopped()
            self._waiters.append(ticket)
            try:
                while True:
                    if self._closed:
                        raise Stopped()
                    if cancel is not None and cancel.is_set():
                        raise Interrupted()
                    if self._waiters[0] is ticket and self._available > 0:
                        break
                    self._cond.wait(CANCEL_POLL_SECONDS if cancel is not None else None)
            except BaseException:
                # Leaving the queue without a token; let the next caller re-check
                self._waiters.remove(ticket)
                self._cond.notify_all()
                raise

            self._waiters.popleft()
            self._available -= 1
            self._admitted += 1
            admitted = self._admitted
            self._cond.notify_all()

        if admitted > self.limit:
            raise LimitExceeded(admitted, self.limit)
        logger.debug("Admission granted (%d/%d this window)", admitted, self.limit)

    def refill(self) -> int:
        """Restore the bucket to `limit` tokens. Returns how many were added."""
        with self._cond:
            if self._closed:
                return 0
            added = self.limit - self._available
            self._available = self.limit
            self._admitted = 0
            if added:
                self._cond.notify_all()
        if added:
            logger.debug("Window opened, released %d admissions", added)
        return added

    def close(self) -> None:
        """Refuse further admissions and wake every waiter with Stopped."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()


class Timekeeper:
    """
    Background thread calling `on_tick` once per `interval` seconds.

    Ticks are scheduled at a fixed rate from start(): the first fires one
    interval after start. If the thread falls behind, missed boundaries are
    collapsed into a single tick and the phase set by start() is kept.

    Intervals shorter than MIN_TICK_SECONDS (nanosecond and microsecond
    windows) tick at most once per MIN_TICK_SECONDS, with the boundaries
    passed in between collapsed into that tick.
    """

    def __init__(self, interval: float, on_tick: Callable[[], object], name: str = "crpt-timekeeper"):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.interval = interval
        self.ticks = 0
        self.window_started: Optional[float] = None
        self._on_tick = on_tick
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        self.window_started = time.monotonic()
        self._thread.start()

    def _run(self) -> None:
        next_tick = self.window_started + self.interval
        while not self._stop_event.wait(max(MIN_TICK_SECONDS, next_tick - time.monotonic())):
            try:
                self._on_tick()
            except Exception:
                logger.exception("Timekeeper tick failed")
            self.ticks += 1
            self.window_started = next_tick
            next_tick += self.interval

            now = time.monotonic()
            if next_tick <= now:
                skipped = int((now - next_tick) // self.interval) + 1
                next_tick += skipped * self.interval
                self.window_started = next_tick - self.interval

    def stop(self, timeout: float = 1.0) -> bool:
        """Signal the thread and wait up to `timeout`. Returns True once it has exited."""
        self._stop_event.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        return not self._thread.is_alive()
