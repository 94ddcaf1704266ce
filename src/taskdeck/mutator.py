"""
Write side: add, toggle, update and delete requests against the store.

Requests are fire-and-forget. Nothing is applied to the local collection; a
change becomes visible only when the next snapshot carries it.
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import logging
from typing import Any

from .errors import NotAuthenticatedError, StoreError, TaskValidationError
from .models import Identity, Task, TaskStatus
from .ports import RemoteTaskStore
from .timeutils import to_iso

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    ADD = "add"
    TOGGLE = "toggle"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(slots=True, frozen=True)
class MutationResult:
    operation: Operation
    task_id: str | None
    ok: bool
    error: StoreError | None = None


ResultListener = Callable[[MutationResult], None]


def clean_text(text: str | None) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise TaskValidationError()
    return cleaned


class TaskMutator:
    def __init__(
        self,
        store: RemoteTaskStore,
        identity: Callable[[], Identity | None],
        executor: Executor | None = None,
    ) -> None:
        self.store = store
        self._identity = identity
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="taskdeck-mutation")
        self._listeners: list[ResultListener] = []

    def add_result_listener(self, callback: ResultListener) -> None:
        self._listeners.append(callback)

    def add_task(self, text: str, due_date: datetime | None = None) -> Future[MutationResult]:
        cleaned = clean_text(text)
        owner = self._require_identity()
        fields = Task(id="", text=cleaned, status=TaskStatus.PENDING, due_date=due_date, owner_id=owner.uid).to_fields()
        return self._submit(Operation.ADD, None, lambda: self.store.create(fields))

    def toggle_status(self, task: Task) -> Future[MutationResult]:
        fields = {"status": task.status.toggled().value}
        return self._submit(Operation.TOGGLE, task.id, lambda: self.store.update(task.id, fields))

    def update_task(self, task_id: str, text: str, due_date: datetime | None = None) -> Future[MutationResult]:
        cleaned = clean_text(text)
        # A None dueDate asks the store to drop the field.
        fields: dict[str, Any] = {
            "text": cleaned,
            "dueDate": to_iso(due_date) if due_date is not None else None,
        }
        return self._submit(Operation.UPDATE, task_id, lambda: self.store.update(task_id, fields))

    def delete_task(self, task_id: str) -> Future[MutationResult]:
        return self._submit(Operation.DELETE, task_id, lambda: self.store.remove(task_id))

    def shutdown(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    def _require_identity(self) -> Identity:
        identity = self._identity()
        if identity is None:
            raise NotAuthenticatedError("Sign in before adding tasks")
        return identity

    def _submit(self, operation: Operation, task_id: str | None, request: Callable[[], object]) -> Future[MutationResult]:
        logger.debug("Queueing %s for task %s", operation.value, task_id or "<new>")
        return self._executor.submit(self._run, operation, task_id, request)

    def _run(self, operation: Operation, task_id: str | None, request: Callable[[], object]) -> MutationResult:
        try:
            outcome = request()
        except Exception as exc:
            error = exc if isinstance(exc, StoreError) else StoreError(str(exc))
            logger.error("Task %s failed for %s: %s", operation.value, task_id or "<new>", exc)
            result = MutationResult(operation=operation, task_id=task_id, ok=False, error=error)
        else:
            if operation is Operation.ADD and isinstance(outcome, str):
                task_id = outcome
            logger.info("Task %s accepted for %s", operation.value, task_id)
            result = MutationResult(operation=operation, task_id=task_id, ok=True)
        for callback in list(self._listeners):
            callback(result)
        return result
