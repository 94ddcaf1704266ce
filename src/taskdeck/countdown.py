from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
import logging
import threading

from .models import Task
from .ports import TimerHandle
from .timeutils import ensure_aware, utc_now

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Countdown:
    overdue: bool
    days: int = 0
    hours: int = 0
    minutes: int = 0
    seconds: int = 0


OVERDUE = Countdown(overdue=True)


def remaining(due_date: datetime, now: datetime) -> Countdown:
    due_date = ensure_aware(due_date)
    now = ensure_aware(now)
    if now >= due_date:
        return OVERDUE
    total = int((due_date - now).total_seconds())
    minutes, seconds = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    return Countdown(overdue=False, days=days, hours=hours, minutes=minutes, seconds=seconds)


def format_countdown(countdown: Countdown) -> str:
    if countdown.overdue:
        return "Overdue"
    parts: list[str] = []
    if countdown.days:
        parts.append(f"{countdown.days}d")
    if countdown.days or countdown.hours:
        parts.append(f"{countdown.hours:02d}h" if parts else f"{countdown.hours}h")
    parts.append(f"{countdown.minutes:02d}m" if parts else f"{countdown.minutes}m")
    parts.append(f"{countdown.seconds:02d}s")
    return " ".join(parts)


def needs_countdown(task: Task) -> bool:
    return task.is_pending and task.due_date is not None


class RepeatingTimer:
    """Calls ``callback`` every ``interval`` seconds on a daemon thread."""

    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name="taskdeck-clock")
        self._thread.start()

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            self.callback()

    def stop(self) -> None:
        self._stopped.set()


def thread_scheduler(callback: Callable[[], None]) -> TimerHandle:
    return RepeatingTimer(1.0, callback)


CountdownListener = Callable[[str, Countdown], None]


class CountdownTracker:
    """One ticking timer per visible, pending task that has a due date.

    ``schedule(callback)`` must start a one-second periodic timer and return a
    handle with ``stop()``. ``sync`` is called with the displayed rows after
    every snapshot or filter change; ``stop_all`` on teardown.
    """

    def __init__(
        self,
        on_update: CountdownListener,
        schedule: Callable[[Callable[[], None]], TimerHandle] = thread_scheduler,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._on_update = on_update
        self._schedule = schedule
        self._now = now
        self._timers: dict[str, TimerHandle] = {}
        self._due: dict[str, datetime] = {}
        self._lock = threading.Lock()

    @property
    def tracked(self) -> frozenset[str]:
        return frozenset(self._timers)

    def sync(self, visible: Iterable[Task]) -> None:
        wanted = {task.id: task.due_date for task in visible if needs_countdown(task)}
        started: list[str] = []
        stopped: list[TimerHandle] = []
        with self._lock:
            for task_id in list(self._timers):
                if task_id not in wanted:
                    stopped.append(self._timers.pop(task_id))
                    self._due.pop(task_id, None)
            for task_id, due in wanted.items():
                self._due[task_id] = due
                if task_id not in self._timers:
                    self._timers[task_id] = self._schedule(self._ticker(task_id))
                    started.append(task_id)
        for handle in stopped:
            handle.stop()
        for task_id in wanted:
            # Changed due dates and new timers both get a fresh value now.
            self.tick(task_id)
        if started or stopped:
            logger.debug("Countdown timers: +%d -%d (%d running)", len(started), len(stopped), len(self._timers))

    def tick(self, task_id: str) -> Countdown | None:
        due = self._due.get(task_id)
        if due is None:
            return None
        countdown = remaining(due, self._now())
        self._on_update(task_id, countdown)
        return countdown

    def stop(self, task_id: str) -> None:
        with self._lock:
            handle = self._timers.pop(task_id, None)
            self._due.pop(task_id, None)
        if handle is not None:
            handle.stop()

    def stop_all(self) -> None:
        with self._lock:
            handles = list(self._timers.values())
            self._timers.clear()
            self._due.clear()
        for handle in handles:
            handle.stop()

    def _ticker(self, task_id: str) -> Callable[[], None]:
        def _tick() -> None:
            self.tick(task_id)

        return _tick
