"""
Single-slot overlays on top of the displayed rows.

``EditSession`` tracks the one task being edited in place and
``ConfirmationGate`` holds the one destructive action awaiting a yes/no.
Each slot holds exactly one state object, so two simultaneous edits or two
armed actions cannot be represented.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import Future
from dataclasses import dataclass, replace
from datetime import datetime
import logging
from typing import Generic, TypeVar

from .models import Task
from .mutator import MutationResult, TaskMutator, clean_text

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Idle:
    pass


@dataclass(slots=True, frozen=True)
class Editing:
    task_id: str
    draft_text: str
    draft_due: datetime | None = None


IDLE = Idle()
EditState = Idle | Editing


class EditSession:
    def __init__(self, mutator: TaskMutator) -> None:
        self.mutator = mutator
        self.state: EditState = IDLE

    @property
    def editing(self) -> Editing | None:
        state = self.state
        return state if isinstance(state, Editing) else None

    def start_edit(self, task: Task) -> Editing:
        previous = self.editing
        if previous is not None and previous.task_id != task.id:
            logger.debug("Dropping edit of %s to edit %s", previous.task_id, task.id)
        self.state = Editing(task_id=task.id, draft_text=task.text, draft_due=task.due_date)
        return self.state

    def update_draft(self, *, text: str | None = None, due: datetime | None = None, clear_due: bool = False) -> None:
        current = self.editing
        if current is None:
            return
        changes: dict[str, object] = {}
        if text is not None:
            changes["draft_text"] = text
        if due is not None or clear_due:
            changes["draft_due"] = due
        if changes:
            self.state = replace(current, **changes)

    def cancel_edit(self) -> None:
        self.state = IDLE

    def save_edit(self, task_id: str) -> Future[MutationResult] | None:
        """Send the drafts as an update and return to idle.

        Raises ``TaskValidationError`` (and stays in editing) when the draft
        text is blank. The session does not wait for the store's answer.
        """
        current = self.editing
        if current is None or current.task_id != task_id:
            return None
        text = clean_text(current.draft_text)
        self.state = IDLE
        return self.mutator.update_task(current.task_id, text, current.draft_due)

    def reconcile(self, tasks: Iterable[Task]) -> bool:
        """Drop the session if its task left the collection. Returns True if dropped."""
        current = self.editing
        if current is None:
            return False
        if any(task.id == current.task_id for task in tasks):
            return False
        logger.info("Task %s disappeared while being edited; closing the editor", current.task_id)
        self.state = IDLE
        return True


@dataclass(slots=True, frozen=True)
class DeleteTask:
    task_id: str


@dataclass(slots=True, frozen=True)
class SignOut:
    pass


PendingAction = DeleteTask | SignOut


@dataclass(slots=True, frozen=True)
class Armed:
    action: PendingAction


GateState = Idle | Armed
T = TypeVar("T")


class ConfirmationGate(Generic[T]):
    def __init__(self, execute: Callable[[PendingAction], T]) -> None:
        self._execute = execute
        self.state: GateState = IDLE

    @property
    def armed(self) -> PendingAction | None:
        state = self.state
        return state.action if isinstance(state, Armed) else None

    def request_confirmation(self, action: PendingAction) -> None:
        previous = self.armed
        if previous is not None and previous != action:
            logger.debug("Replacing armed action %r with %r", previous, action)
        self.state = Armed(action)

    def confirm(self) -> T | None:
        action = self.armed
        if action is None:
            return None
        # Disarm before running so a re-entrant confirm finds nothing to do.
        self.state = IDLE
        logger.info("Confirmed %r", action)
        return self._execute(action)

    def cancel(self) -> None:
        self.state = IDLE

    def reconcile(self, tasks: Iterable[Task]) -> bool:
        action = self.armed
        if not isinstance(action, DeleteTask):
            return False
        if any(task.id == action.task_id for task in tasks):
            return False
        self.state = IDLE
        return True
