"""
Live mirror of one owner's task collection.

Every snapshot from the store is a complete result set; the engine swaps its
whole collection for the new contents (no incremental merge) and re-sorts it:
pending before completed, newest first within each group.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
import logging
import threading

from .errors import SubscriptionError
from .models import Task, TaskStatus
from .ports import ListenerHandle, RemoteTaskStore, SnapshotRecord

logger = logging.getLogger(__name__)

TasksListener = Callable[[tuple[Task, ...]], None]
ErrorListener = Callable[[SubscriptionError], None]


def _sort_key(task: Task) -> tuple[int, int, float, str]:
    rank = 0 if task.status is TaskStatus.PENDING else 1
    if task.created_at is None:
        # Server timestamp not assigned yet: newest of its group, ordered by id.
        return rank, 0, 0.0, task.id
    return rank, 1, -task.created_at.timestamp(), ""


def order_tasks(tasks: Iterable[Task]) -> tuple[Task, ...]:
    """Pending first, then ``created_at`` descending; equal keys keep store order."""
    return tuple(sorted(tasks, key=_sort_key))


def collect_snapshot(records: Sequence[SnapshotRecord], owner_id: str) -> tuple[Task, ...]:
    by_id: dict[str, Task] = {}
    for task_id, payload in records:
        task = Task.from_record(task_id, payload)
        if task.owner_id != owner_id:
            logger.warning("Dropping task %s owned by %r from %r snapshot", task_id, task.owner_id, owner_id)
            continue
        if task_id in by_id:
            logger.debug("Duplicate task id %s in snapshot; keeping the last record", task_id)
            by_id.pop(task_id)
        by_id[task_id] = task
    return order_tasks(by_id.values())


class Subscription:
    """Handle for one live listen. ``cancel()`` may be called any number of times."""

    def __init__(self, owner_id: str) -> None:
        self.owner_id = owner_id
        self._handle: ListenerHandle | None = None
        self._cancelled = False
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return not self._cancelled

    def _attach(self, handle: ListenerHandle) -> None:
        with self._lock:
            if not self._cancelled:
                self._handle = handle
                return
        # Cancelled while the listen was being opened.
        handle.cancel()

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            handle, self._handle = self._handle, None
        if handle is not None:
            logger.debug("Releasing task listener for %s", self.owner_id)
            handle.cancel()


class SyncEngine:
    def __init__(self, store: RemoteTaskStore) -> None:
        self.store = store
        self._tasks: tuple[Task, ...] = ()
        self._subscription: Subscription | None = None
        self._loaded = False
        self._lock = threading.RLock()
        self._listeners: list[TasksListener] = []
        self._error_listeners: list[ErrorListener] = []

    @property
    def tasks(self) -> tuple[Task, ...]:
        return self._tasks

    @property
    def owner_id(self) -> str | None:
        subscription = self._subscription
        return subscription.owner_id if subscription is not None else None

    @property
    def active(self) -> bool:
        subscription = self._subscription
        return subscription is not None and subscription.active

    @property
    def loaded(self) -> bool:
        return self._loaded

    def get(self, task_id: str) -> Task | None:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def add_listener(self, callback: TasksListener) -> None:
        self._listeners.append(callback)

    def add_error_listener(self, callback: ErrorListener) -> None:
        self._error_listeners.append(callback)

    def subscribe(self, owner_id: str) -> Subscription:
        if not owner_id:
            raise ValueError("owner_id is required to subscribe")
        with self._lock:
            current = self._subscription
            if current is not None and current.active and current.owner_id == owner_id:
                return current
            if current is not None:
                current.cancel()
            if current is None or current.owner_id != owner_id:
                self._tasks = ()
            subscription = Subscription(owner_id)
            self._subscription = subscription
            self._loaded = False
        logger.info("Subscribing to tasks of %s", owner_id)
        try:
            query = self.store.query(owner_id)
            handle = self.store.listen(
                query,
                lambda records: self._on_snapshot(subscription, records),
                lambda exc: self._on_listen_error(subscription, exc),
            )
        except Exception as exc:
            self._on_listen_error(subscription, exc)
            return subscription
        subscription._attach(handle)
        return subscription

    def cancel(self) -> None:
        with self._lock:
            subscription = self._subscription
        if subscription is not None:
            subscription.cancel()

    def reset(self) -> None:
        """Cancel and forget everything, e.g. after sign-out."""
        with self._lock:
            subscription, self._subscription = self._subscription, None
            self._tasks = ()
            self._loaded = False
        if subscription is not None:
            subscription.cancel()
        self._notify(())

    def _on_snapshot(self, subscription: Subscription, records: Sequence[SnapshotRecord]) -> None:
        with self._lock:
            if subscription is not self._subscription or not subscription.active:
                logger.debug("Ignoring snapshot from a stale subscription for %s", subscription.owner_id)
                return
            tasks = collect_snapshot(records, subscription.owner_id)
            self._tasks = tasks
            self._loaded = True
        logger.debug("Snapshot for %s: %d tasks", subscription.owner_id, len(tasks))
        self._notify(tasks)

    def _on_listen_error(self, subscription: Subscription, exc: BaseException) -> None:
        with self._lock:
            if subscription is not self._subscription or not subscription.active:
                return
            subscription.cancel()
        error = SubscriptionError(subscription.owner_id, exc)
        logger.error("%s", error)
        for callback in list(self._error_listeners):
            callback(error)

    def _notify(self, tasks: tuple[Task, ...]) -> None:
        for callback in list(self._listeners):
            callback(tasks)
