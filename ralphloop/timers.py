"""
timers.py — review countdown and inactivity watchdog
=====================================================
Both timers own one background thread per run plus a per-run
threading.Event used to cancel it. The current callback is held under a
lock and cleared on stop(). Once stop() returns, that run delivers no
new callback (an inactivity callback already in flight still completes).

Countdown callbacks run on the timer's thread while its lock is held.
They may call back into the same timer (stop, restart) but must not block
on another thread that is itself waiting on this timer. The inactivity
callback runs with the lock released; an exception from it is reported
on stderr and the monitor keeps checking.
"""

import sys
import threading
import time
from collections.abc import Callable

from .models import INACTIVITY_CHECK_INTERVAL_MS, INACTIVITY_TIMEOUT_MS


def format_duration(ms: float) -> str:
    """45000 → '45s', 90000 → '1m 30s', 5400000 → '1h 30m'."""
    seconds = int(ms // 1000)
    if seconds < 60:
        return f"{seconds}s"
    minutes, seconds = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {seconds}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"


class CountdownTimer:
    """
    One-shot countdown with second resolution.

    start(n, on_tick) calls on_tick(n) before returning, then on_tick(n-1),
    ..., on_tick(0) once per tick interval. stop() delivers a final
    on_tick(0) if the countdown was still running.
    """

    def __init__(self, tick_interval: float = 1.0):
        self._tick_interval = tick_interval
        self._lock          = threading.RLock()
        self._on_tick: Callable[[int], None] | None = None
        self._cancel: threading.Event | None = None
        self._remaining     = 0

    def is_active(self) -> bool:
        with self._lock:
            return self._cancel is not None

    def start(self, initial_seconds: int, on_tick: Callable[[int], None]) -> None:
        with self._lock:
            self.stop()
            cancel = threading.Event()
            self._cancel    = cancel
            self._on_tick   = on_tick
            self._remaining = initial_seconds

            try:
                on_tick(initial_seconds)
            except Exception:
                if self._cancel is cancel:
                    self._clear()
                raise

            if self._cancel is not cancel:
                # on_tick stopped or restarted us
                return
            if initial_seconds <= 0:
                # Completion was reported by the first call.
                self._clear()
                return
            threading.Thread(
                target=self._run, args=(cancel,), name="ralph-countdown", daemon=True
            ).start()

    def stop(self) -> None:
        with self._lock:
            if self._cancel is None:
                return
            on_tick = self._on_tick
            self._clear()
            self._remaining = 0
            on_tick(0)

    def _clear(self) -> None:
        self._cancel.set()
        self._cancel  = None
        self._on_tick = None

    def _run(self, cancel: threading.Event) -> None:
        while not cancel.wait(self._tick_interval):
            with self._lock:
                if cancel.is_set():
                    return
                self._remaining -= 1
                remaining = self._remaining
                on_tick   = self._on_tick
                if remaining <= 0:
                    self._clear()
                on_tick(remaining)
                if remaining <= 0:
                    return


class InactivityMonitor:
    """
    Watchdog over a single last-activity timestamp.

    Every check interval, if the monitor is active and not paused and no
    activity has been recorded for at least the timeout, on_timeout() is
    called. Firing does not stop the monitor; callers react by stopping or
    recording activity.
    """

    def __init__(
        self,
        timeout_ms: int = INACTIVITY_TIMEOUT_MS,
        check_interval_ms: int = INACTIVITY_CHECK_INTERVAL_MS,
        clock: Callable[[], float] = time.time,
    ):
        self._timeout_ms        = timeout_ms
        self._check_interval_ms = check_interval_ms
        self._clock             = clock
        self._lock              = threading.RLock()
        self._on_timeout: Callable[[], None] | None = None
        self._cancel: threading.Event | None = None
        self._last_activity     = 0.0
        self._paused            = False
        self._waiting           = False

    # ── State ──────────────────────────────────────────────────────────────

    def is_active(self) -> bool:
        with self._lock:
            return self._cancel is not None

    def is_paused(self) -> bool:
        with self._lock:
            return self._paused

    def is_waiting(self) -> bool:
        with self._lock:
            return self._waiting

    def get_last_activity_time(self) -> float:
        """Last activity as wall-clock milliseconds."""
        with self._lock:
            return self._last_activity

    # ── Lifecycle ──────────────────────────────────────────────────────────

    def start(self, on_timeout: Callable[[], None]) -> None:
        with self._lock:
            self.stop()
            cancel = threading.Event()
            self._cancel     = cancel
            self._on_timeout = on_timeout
            self._paused     = False
            self._waiting    = False
            self._touch()
            threading.Thread(
                target=self._run, args=(cancel,), name="ralph-inactivity", daemon=True
            ).start()

    def stop(self) -> None:
        with self._lock:
            if self._cancel is None:
                return
            self._cancel.set()
            self._cancel     = None
            self._on_timeout = None
            self._paused     = False

    def pause(self) -> None:
        with self._lock:
            if self._cancel is not None:
                self._paused = True

    def resume(self) -> None:
        with self._lock:
            if self._cancel is None:
                return
            self._paused = False
            self._touch()

    # ── Activity ───────────────────────────────────────────────────────────

    def record_activity(self) -> None:
        with self._lock:
            if self._cancel is not None:
                self._touch()

    def set_waiting(self, waiting: bool) -> None:
        with self._lock:
            self._waiting = waiting
            if waiting:
                self.record_activity()

    def check(self) -> bool:
        """Evaluate the timeout once. Returns True if on_timeout was called."""
        return self._check(None)

    def _check(self, run: threading.Event | None) -> bool:
        with self._lock:
            cancel = self._cancel
            if cancel is None or self._paused:
                return False
            if run is not None and cancel is not run:
                return False  # a newer run owns the monitor
            if self._now() - self._last_activity < self._timeout_ms:
                return False
            on_timeout = self._on_timeout
        # Lock released: the callback may be slow or call stop().
        if cancel.is_set():
            return False
        on_timeout()
        return True

    def _now(self) -> float:
        return self._clock() * 1000

    def _touch(self) -> None:
        # Never move backwards, even if the wall clock does.
        self._last_activity = max(self._now(), self._last_activity)

    def _run(self, cancel: threading.Event) -> None:
        interval = self._check_interval_ms / 1000
        while not cancel.wait(interval):
            try:
                self._check(cancel)
            except Exception as e:
                print(f"ralph: inactivity callback failed: {e!r}", file=sys.stderr)
