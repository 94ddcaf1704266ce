from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import logging

from .timeutils import ensure_aware, from_iso, to_iso

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"

    def toggled(self) -> "TaskStatus":
        if self is TaskStatus.PENDING:
            return TaskStatus.COMPLETED
        return TaskStatus.PENDING


class TaskFilter(str, Enum):
    ALL = "all"
    PENDING = "pending"
    COMPLETED = "completed"

    def matches(self, task: "Task") -> bool:
        if self is TaskFilter.ALL:
            return True
        return task.status.value == self.value

    def next(self) -> "TaskFilter":
        order = list(TaskFilter)
        return order[(order.index(self) + 1) % len(order)]


@dataclass(slots=True, frozen=True)
class Identity:
    uid: str
    email: str | None = None


@dataclass(slots=True, frozen=True)
class Task:
    id: str
    text: str
    status: TaskStatus = TaskStatus.PENDING
    due_date: datetime | None = None
    created_at: datetime | None = None
    owner_id: str = ""

    @property
    def is_pending(self) -> bool:
        return self.status is TaskStatus.PENDING

    @classmethod
    def from_record(cls, task_id: str, payload: Mapping[str, object]) -> "Task":
        """Build a task from the persisted field contract.

        The store is the source of truth, so malformed values are mirrored as
        best we can rather than rejected.
        """
        raw_status = payload.get("status", TaskStatus.PENDING.value)
        try:
            status = TaskStatus(raw_status)
        except ValueError:
            logger.warning("Task %s has unknown status %r; treating as pending", task_id, raw_status)
            status = TaskStatus.PENDING
        due_date: datetime | None = None
        raw_due = payload.get("dueDate")
        if isinstance(raw_due, datetime):
            # Written as a timestamp by another client.
            due_date = ensure_aware(raw_due)
        elif isinstance(raw_due, str) and raw_due:
            try:
                due_date = from_iso(raw_due)
            except ValueError:
                logger.warning("Task %s has unparseable dueDate %r", task_id, raw_due)
        elif raw_due not in (None, ""):
            logger.warning("Task %s has unsupported dueDate %r", task_id, raw_due)
        created_at = payload.get("createdAt")
        if isinstance(created_at, str):
            try:
                created_at = from_iso(created_at)
            except ValueError:
                created_at = None
        if not isinstance(created_at, datetime):
            created_at = None
        text = payload.get("text")
        owner = payload.get("userId")
        return cls(
            id=task_id,
            text=text if isinstance(text, str) else "",
            status=status,
            due_date=due_date,
            created_at=created_at,
            owner_id=owner if isinstance(owner, str) else "",
        )

    def to_fields(self) -> dict[str, object]:
        # createdAt is never written by the client; the store stamps it.
        fields: dict[str, object] = {
            "text": self.text,
            "status": self.status.value,
            "userId": self.owner_id,
        }
        if self.due_date is not None:
            fields["dueDate"] = to_iso(self.due_date)
        return fields
