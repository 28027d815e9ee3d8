"""Single-threaded callback loop with cancellable timers.

Reader threads and the UI never touch scanner state directly; they post
callbacks here with ``call_soon`` and the loop runs them one at a time.
"""
from __future__ import annotations

import heapq
import itertools
import logging
import queue
import threading
import time
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class TimerHandle:
    def __init__(self, when: float, callback: Callback) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class EventLoop:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._inbox: "queue.Queue[Callback]" = queue.Queue()
        self._timers: List[Tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def call_soon(self, callback: Callback) -> None:
        """Thread-safe: schedule ``callback`` on the loop thread."""
        self._inbox.put(callback)

    def call_later(self, delay_s: float, callback: Callback) -> TimerHandle:
        handle = TimerHandle(self._clock() + max(0.0, delay_s), callback)
        # Timers are only armed from the loop thread, or before it starts.
        heapq.heappush(self._timers, (handle.when, next(self._seq), handle))
        self._inbox.put(_wake)
        return handle

    def _run_due_timers(self) -> None:
        now = self._clock()
        while self._timers and self._timers[0][0] <= now:
            _, _, handle = heapq.heappop(self._timers)
            if not handle.cancelled:
                self._invoke(handle.callback)

    def _next_timeout(self) -> Optional[float]:
        while self._timers and self._timers[0][2].cancelled:
            heapq.heappop(self._timers)
        if not self._timers:
            return None
        return max(0.0, self._timers[0][0] - self._clock())

    def _invoke(self, callback: Callback) -> None:
        try:
            callback()
        except Exception:
            # One bad callback must not kill the scanner loop.
            logger.exception("Unhandled error in event loop callback")

    def run_forever(self) -> None:
        self._stop_event.clear()
        while not self._stop_event.is_set():
            self._run_due_timers()
            try:
                callback = self._inbox.get(timeout=self._next_timeout())
            except queue.Empty:
                continue
            self._invoke(callback)

    def start(self) -> threading.Thread:
        """Run the loop on a daemon thread (used when tkinter owns the main thread)."""
        self._thread = threading.Thread(target=self.run_forever, name="event-loop", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self) -> None:
        """Stop after every callback posted so far has run."""
        self._inbox.put(self._stop_event.set)
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)


def _wake() -> None:
    """No-op used to wake a blocked ``get``."""
