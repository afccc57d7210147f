"""
Sleep/resume and clock-change detection.

There is no portable power-notification API, so a background thread samples
the wall clock and the monotonic clock. A sampling gap much longer than the
sampling period means the process was suspended; a wall-clock step that the
monotonic clock did not see means someone changed the time.
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from config import SystemEventSettings

logger = logging.getLogger(__name__)

EVENT_RESUME = "resume"
EVENT_TIME_CHANGED = "time_changed"
EVENTS = (EVENT_RESUME, EVENT_TIME_CHANGED)


class SystemEventMonitor:
    def __init__(
        self,
        check_seconds: float = SystemEventSettings["check_seconds"],
        threshold_seconds: float = SystemEventSettings["threshold_seconds"],
        wall_clock: Callable[[], float] = time.time,
        monotonic_clock: Callable[[], float] = time.monotonic,
    ):
        self.check_seconds = check_seconds
        self.threshold_seconds = threshold_seconds
        self._wall_clock = wall_clock
        self._monotonic_clock = monotonic_clock
        self._listeners: Dict[str, List[Callable[[], None]]] = {event: [] for event in EVENTS}
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._last_wall = 0.0
        self._last_mono = 0.0

    def subscribe(self, event: str, callback: Callable[[], None]) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown system event '{event}'. Use one of: {', '.join(EVENTS)}.")
        with self._lock:
            self._listeners[event].append(callback)
            start = self._thread is None
        if start:
            self._start()

    def unsubscribe(self, event: str, callback: Callable[[], None]) -> None:
        with self._lock:
            listeners = self._listeners.get(event, [])
            if callback in listeners:
                listeners.remove(callback)
            idle = not any(self._listeners.values())
        if idle:
            self.stop()

    def _start(self) -> None:
        self.reset()
        self._stop_event.clear()
        thread = threading.Thread(target=self._run, name="SystemEventMonitor", daemon=True)
        with self._lock:
            self._thread = thread
        thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        with self._lock:
            thread, self._thread = self._thread, None
        if thread and thread is not threading.current_thread():
            thread.join(timeout=2)

    def reset(self) -> None:
        self._last_wall = self._wall_clock()
        self._last_mono = self._monotonic_clock()

    def _run(self) -> None:
        while not self._stop_event.wait(timeout=self.check_seconds):
            self.check()

    def check(self) -> Optional[str]:
        """Compare both clocks with the previous sample and notify listeners. Returns the event fired."""
        wall, mono = self._wall_clock(), self._monotonic_clock()
        wall_delta = wall - self._last_wall
        mono_delta = mono - self._last_mono
        self._last_wall, self._last_mono = wall, mono

        event = None
        if mono_delta > self.check_seconds + self.threshold_seconds:
            event = EVENT_RESUME
        elif abs(wall_delta - mono_delta) > self.threshold_seconds:
            # Linux's monotonic clock stops during suspend, so a forward jump may be a resume
            event = EVENT_RESUME if wall_delta > mono_delta else EVENT_TIME_CHANGED

        if event:
            logger.info("System event detected: %s (wall %+.0fs, monotonic %+.0fs)", event, wall_delta, mono_delta)
            self._notify(event)
        return event

    def _notify(self, event: str) -> None:
        with self._lock:
            listeners = list(self._listeners.get(event, []))
        for callback in listeners:
            try:
                callback()
            except Exception as e:
                logger.error("System event listener for %s failed: %s", event, e)
