from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import Future
from datetime import datetime
import logging

from .countdown import Countdown, CountdownTracker, needs_countdown, thread_scheduler
from .errors import SubscriptionError
from .models import Identity, Task, TaskFilter
from .mutator import MutationResult, TaskMutator
from .ports import AuthProvider, RemoteTaskStore, TimerHandle
from .session import ConfirmationGate, DeleteTask, EditSession, PendingAction, SignOut
from .sync import SyncEngine
from .timeutils import utc_now
from .view import ViewState

logger = logging.getLogger(__name__)

ChangeListener = Callable[[], None]


def _call_now(callback: Callable[[], None]) -> None:
    callback()


class TaskDashboard:
    """Everything one signed-in client shows, minus the drawing.

    Owns the sync engine, the filter, the edit slot, the confirmation slot
    and the countdown timers, and keeps them consistent whenever a new
    snapshot arrives or the identity changes.
    """

    def __init__(
        self,
        store: RemoteTaskStore,
        auth: AuthProvider,
        *,
        mutator: TaskMutator | None = None,
        task_filter: TaskFilter = TaskFilter.ALL,
        schedule: Callable[[Callable[[], None]], TimerHandle] = thread_scheduler,
        now: Callable[[], datetime] = utc_now,
        on_countdown: Callable[[str, Countdown], None] | None = None,
        dispatch: Callable[[Callable[[], None]], None] | None = None,
    ) -> None:
        self.auth = auth
        self._dispatch = dispatch or _call_now
        self.identity: Identity | None = None
        self.engine = SyncEngine(store)
        self.view = ViewState(task_filter)
        self.mutator = mutator or TaskMutator(store, lambda: self.identity)
        self.edit = EditSession(self.mutator)
        self.gate: ConfirmationGate[object] = ConfirmationGate(self._execute)
        self.countdowns: dict[str, Countdown] = {}
        self._on_countdown = on_countdown
        self.countdown = CountdownTracker(self._record_countdown, schedule=schedule, now=now)
        self.last_error: SubscriptionError | None = None
        self._listeners: list[ChangeListener] = []
        # Snapshots and listen errors arrive on the store's thread.
        self.engine.add_listener(lambda tasks: self._dispatch(lambda: self._on_tasks(tasks)))
        self.engine.add_error_listener(lambda error: self._dispatch(lambda: self._on_subscription_error(error)))

    # Identity ---------------------------------------------------------------
    def attach(self, identity: Identity | None) -> None:
        """Follow an identity change: re-subscribe for a user, tear down for None."""
        if identity is None:
            self.detach()
            return
        if self.identity is not None and self.identity.uid != identity.uid:
            self._clear_overlays()
        self.identity = identity
        self.last_error = None
        self.engine.subscribe(identity.uid)
        self._changed()

    def detach(self) -> None:
        self.identity = None
        self._clear_overlays()
        self.engine.reset()
        self._changed()

    def resubscribe(self) -> bool:
        if self.identity is None or self.engine.active:
            return False
        self.last_error = None
        self.engine.subscribe(self.identity.uid)
        self._changed()
        return True

    def close(self) -> None:
        self._clear_overlays()
        self.engine.cancel()
        self.mutator.shutdown()

    # Reading ----------------------------------------------------------------
    @property
    def tasks(self) -> tuple[Task, ...]:
        return self.engine.tasks

    @property
    def loading(self) -> bool:
        return self.engine.active and not self.engine.loaded

    @property
    def welcome(self) -> str:
        if self.identity is None:
            return "Not signed in"
        return f"Welcome, {self.identity.email or self.identity.uid}"

    def rows(self) -> tuple[Task, ...]:
        return self.view.rows(self.engine.tasks)

    def counts(self) -> dict[TaskFilter, int]:
        return self.view.counts(self.engine.tasks)

    def add_listener(self, callback: ChangeListener) -> None:
        self._listeners.append(callback)

    def set_filter(self, task_filter: TaskFilter | str) -> TaskFilter:
        chosen = self.view.set_filter(task_filter)
        self._refresh_countdowns()
        self._changed()
        return chosen

    def cycle_filter(self) -> TaskFilter:
        return self.set_filter(self.view.filter.next())

    # Writing ----------------------------------------------------------------
    def add_task(self, text: str, due_date: datetime | None = None) -> Future[MutationResult]:
        return self.mutator.add_task(text, due_date)

    def toggle(self, task_id: str) -> Future[MutationResult] | None:
        task = self.engine.get(task_id)
        if task is None:
            return None
        return self.mutator.toggle_status(task)

    def start_edit(self, task_id: str) -> bool:
        task = self.engine.get(task_id)
        if task is None:
            return False
        self.edit.start_edit(task)
        self._changed()
        return True

    def request_delete(self, task_id: str) -> None:
        self.gate.request_confirmation(DeleteTask(task_id))
        self._changed()

    def request_sign_out(self) -> None:
        self.gate.request_confirmation(SignOut())
        self._changed()

    def confirm(self) -> object | None:
        result = self.gate.confirm()
        self._changed()
        return result

    def cancel_confirmation(self) -> None:
        self.gate.cancel()
        self._changed()

    def _execute(self, action: PendingAction) -> object:
        if isinstance(action, DeleteTask):
            return self.mutator.delete_task(action.task_id)
        logger.info("Signing out %s", self.identity.uid if self.identity else "<nobody>")
        self.auth.sign_out()
        self.detach()
        return None

    # Snapshot plumbing ------------------------------------------------------
    def _on_tasks(self, tasks: tuple[Task, ...]) -> None:
        self.edit.reconcile(tasks)
        self.gate.reconcile(tasks)
        self._refresh_countdowns()
        self._changed()

    def _on_subscription_error(self, error: SubscriptionError) -> None:
        self.last_error = error
        self._changed()

    def _refresh_countdowns(self) -> None:
        rows = self.rows()
        ticking = {task.id for task in rows if needs_countdown(task)}
        for task_id in list(self.countdowns):
            if task_id not in ticking:
                self.countdowns.pop(task_id, None)
        self.countdown.sync(rows)

    def _record_countdown(self, task_id: str, countdown: Countdown) -> None:
        self.countdowns[task_id] = countdown
        if self._on_countdown is not None:
            self._on_countdown(task_id, countdown)

    def _clear_overlays(self) -> None:
        self.edit.cancel_edit()
        self.gate.cancel()
        self.countdown.stop_all()
        self.countdowns.clear()

    def _changed(self) -> None:
        for callback in list(self._listeners):
            callback()
