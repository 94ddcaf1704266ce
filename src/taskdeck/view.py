from __future__ import annotations

from collections.abc import Iterable, Sequence

from .models import Task, TaskFilter


def project(tasks: Iterable[Task], task_filter: TaskFilter) -> tuple[Task, ...]:
    """Rows shown for ``task_filter``, in the order the sync engine produced."""
    if task_filter is TaskFilter.ALL:
        return tuple(tasks)
    return tuple(task for task in tasks if task_filter.matches(task))


class ViewState:
    """Holds the selected filter; everything else is derived on demand."""

    def __init__(self, task_filter: TaskFilter = TaskFilter.ALL) -> None:
        self.filter = task_filter

    def set_filter(self, task_filter: TaskFilter | str) -> TaskFilter:
        self.filter = TaskFilter(task_filter)
        return self.filter

    def cycle_filter(self) -> TaskFilter:
        self.filter = self.filter.next()
        return self.filter

    def rows(self, tasks: Sequence[Task]) -> tuple[Task, ...]:
        return project(tasks, self.filter)

    @staticmethod
    def counts(tasks: Sequence[Task]) -> dict[TaskFilter, int]:
        return {option: sum(1 for task in tasks if option.matches(task)) for option in TaskFilter}
