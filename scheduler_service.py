import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from config import SchedulerPollSeconds
from system_events import EVENT_RESUME, EVENT_TIME_CHANGED, SystemEventMonitor

logger = logging.getLogger(__name__)


class RotationScheduler:
    """
    Runs one recurring job against the wall clock.

    The poll loop only wakes up every few seconds and compares now with
    next_run_time, so time spent asleep is noticed on the next wake-up.
    next_run_time is always moved forward before the job runs.
    """

    def __init__(
        self,
        action: Callable[[], object],
        interval: timedelta,
        event_monitor: Optional[SystemEventMonitor] = None,
        clock: Callable[[], datetime] = datetime.now,
        poll_seconds: float = SchedulerPollSeconds,
    ):
        self.action = action
        self._interval = interval
        self.event_monitor = event_monitor
        self._clock = clock
        self.poll_seconds = poll_seconds
        self._next_run_time = clock() + interval
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._state_lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._subscribed = False

    @property
    def interval(self) -> timedelta:
        return self._interval

    @property
    def next_run_time(self) -> datetime:
        with self._state_lock:
            return self._next_run_time

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        with self._state_lock:
            self._next_run_time = self._clock() + self._interval
        self._running = True
        # a loop left over from an earlier start keeps its own, already set, event
        self._stop_event = threading.Event()
        if self.event_monitor and not self._subscribed:
            self.event_monitor.subscribe(EVENT_RESUME, self.handle_resume)
            self.event_monitor.subscribe(EVENT_TIME_CHANGED, self.handle_time_change)
            self._subscribed = True
        self._thread = threading.Thread(
            target=self._run, args=(self._stop_event,), name="RotationScheduler", daemon=True
        )
        self._thread.start()
        logger.info("[Scheduler] Started. Expected next run: %s", f"{self.next_run_time:%H:%M:%S}")

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread and thread is not threading.current_thread():
            thread.join(timeout=self.poll_seconds + 2)
        logger.info("[Scheduler] Stopped.")

    def dispose(self) -> None:
        self.stop()
        if self.event_monitor and self._subscribed:
            self.event_monitor.unsubscribe(EVENT_RESUME, self.handle_resume)
            self.event_monitor.unsubscribe(EVENT_TIME_CHANGED, self.handle_time_change)
            self._subscribed = False

    def update_interval(self, interval: timedelta) -> None:
        with self._state_lock:
            self._interval = interval
            self._next_run_time = self._clock() + interval
        logger.info("[Scheduler] Interval updated. Next run pushed to: %s", f"{self.next_run_time:%H:%M:%S}")

    def manual_trigger(self) -> None:
        with self._state_lock:
            self._next_run_time = self._clock() + self._interval
        logger.info("[Scheduler] Manual run. Next background run pushed to: %s", f"{self.next_run_time:%H:%M:%S}")

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(timeout=self.poll_seconds):
            self.run_pending()

    def run_pending(self) -> bool:
        """Run the job if it is due. Returns True if it ran."""
        return self._run_if_due("Scheduled time reached")

    def _run_if_due(self, reason: str) -> bool:
        if not self._run_lock.acquire(blocking=False):
            logger.debug("[Scheduler] %s, but a run is already in progress", reason)
            return False
        try:
            with self._state_lock:
                now = self._clock()
                if now < self._next_run_time:
                    return False
                missed = self._next_run_time
                self._next_run_time = now + self._interval
            logger.info("[Scheduler] %s (target was %s). Executing...", reason, f"{missed:%H:%M:%S}")
            try:
                self.action()
            except Exception as exc:
                logger.error("[Scheduler] Background execution failed: %s", exc)
            return True
        finally:
            self._run_lock.release()

    def handle_resume(self) -> Optional[threading.Thread]:
        logger.info("[Scheduler] System wake detected. Resolving missed background scheduling...")
        return self._evaluate_misfire()

    def handle_time_change(self) -> Optional[threading.Thread]:
        logger.info("[Scheduler] System time change detected. Re-evaluating schedule...")
        return self._evaluate_misfire()

    def _evaluate_misfire(self) -> Optional[threading.Thread]:
        """Catch up with exactly one run if the schedule was missed. Any backlog is dropped."""
        if not self._running or self._clock() < self.next_run_time:
            return None
        thread = threading.Thread(
            target=self._run_if_due,
            args=("Missed interval during sleep/downtime",),
            name="RotationSchedulerMisfire",
            daemon=True,
        )
        thread.start()
        return thread
