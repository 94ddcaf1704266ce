from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from datetime import tzinfo
import logging

from rich.markup import escape
from rich.text import Text
from textual.app import App, ComposeResult  # type: ignore[import]
from textual.binding import Binding  # type: ignore[import]
from textual.containers import Vertical  # type: ignore[import]
from textual.widgets import DataTable, Footer, Header, Static  # type: ignore[import]

from ..countdown import Countdown, format_countdown
from ..dashboard import TaskDashboard
from ..errors import NotAuthenticatedError, TaskValidationError
from ..models import Identity, Task, TaskFilter, TaskStatus
from ..mutator import MutationResult
from ..ports import AuthProvider, RemoteTaskStore, TimerHandle
from ..session import DeleteTask, SignOut
from ..timeutils import format_due, parse_due, resolve_timezone
from .screens import ConfirmScreen, ErrorScreen, TaskEditScreen

logger = logging.getLogger(__name__)

EMPTY_MESSAGES = {
    TaskFilter.ALL: "You have no tasks. Add one to get started!",
    TaskFilter.PENDING: "Nothing pending. Nice work!",
    TaskFilter.COMPLETED: "No completed tasks yet.",
}


class StatusLine(Static):
    def show(self, dashboard: TaskDashboard, note: str | None = None) -> None:
        counts = dashboard.counts()
        parts = [
            escape(dashboard.welcome),
            f"Filter: {dashboard.view.filter.value}",
            f"{counts[TaskFilter.PENDING]} pending / {counts[TaskFilter.COMPLETED]} done",
        ]
        if dashboard.last_error is not None:
            parts.append("[red]Sync stopped, press r to reconnect[/red]")
        elif dashboard.loading:
            parts.append("Loading tasks...")
        if note:
            parts.append(note)
        self.update(" • ".join(parts))


class TaskTable(DataTable):
    BINDINGS = [
        Binding("space", "toggle_selected", "Toggle", show=False),
        Binding("enter", "toggle_selected", "Toggle"),
        Binding("x", "delete_selected", "Delete Task", show=False),
        Binding("delete", "delete_selected", "Delete Task", show=False),
    ]

    def __init__(self) -> None:
        super().__init__(zebra_stripes=True, id="task-table")
        self.cursor_type = "row"
        self._row_ids: list[str] = []
        self._columns_ready = False

    def _ensure_columns(self) -> None:
        if self._columns_ready:
            return
        self.add_column("Done", key="done")
        self.add_column("Task", key="task")
        self.add_column("Due", key="due")
        self.add_column("Countdown", key="countdown")
        self._columns_ready = True

    @property
    def row_ids(self) -> list[str]:
        return list(self._row_ids)

    def selected_task_id(self) -> str | None:
        row = self.cursor_row
        if row is None or row < 0 or row >= len(self._row_ids):
            return None
        return self._row_ids[row]

    def show_tasks(
        self,
        rows: Sequence[Task],
        countdowns: dict[str, Countdown],
        tz: tzinfo,
        placeholder: str,
    ) -> None:
        self._ensure_columns()
        selected = self.selected_task_id()
        self.clear()
        self._row_ids = []
        if not rows:
            self.add_row("", Text(placeholder, style="dim"), "", "")
            self.show_cursor = False
            return
        self.show_cursor = True
        for task in rows:
            if task.status is TaskStatus.COMPLETED:
                done = Text(" ✓ ", style="bold white on green")
                label = Text(task.text, style="strike dim")
            else:
                done = Text("[ ]")
                label = Text(task.text)
            countdown = countdowns.get(task.id)
            self.add_row(
                done,
                label,
                format_due(task.due_date, tz),
                self._format_countdown(countdown),
                key=task.id,
            )
            self._row_ids.append(task.id)
        if selected in self._row_ids:
            self.move_cursor(row=self._row_ids.index(selected))

    def update_countdown(self, task_id: str, countdown: Countdown) -> None:
        if task_id not in self._row_ids:
            return
        self.update_cell(task_id, "countdown", self._format_countdown(countdown))

    @staticmethod
    def _format_countdown(countdown: Countdown | None) -> Text:
        if countdown is None:
            return Text("")
        if countdown.overdue:
            return Text(format_countdown(countdown), style="bold red")
        return Text(format_countdown(countdown))

    def action_toggle_selected(self) -> None:
        self.app.action_toggle_task()

    def action_delete_selected(self) -> None:
        self.app.action_delete_task()


class TaskDeckApp(App):
    CSS = """
    Screen {
        background: $surface;
    }

    .panel {
        border: round $accent;
        padding: 1 2;
        background: $boost;
        layout: vertical;
        height: 1fr;
    }

    #task-table {
        height: 1fr;
    }

    .dialog-title {
        text-style: bold;
        margin-bottom: 1;
    }

    .dialog-help {
        color: $text-muted;
        margin-top: 1;
    }

    .dialog-error {
        color: $error;
    }

    #task-edit-dialog, #confirm-dialog, #error-dialog {
        width: 70;
        height: auto;
        border: round $accent;
        background: $panel;
        padding: 1 2;
    }

    TaskEditScreen, ConfirmScreen, ErrorScreen {
        align: center middle;
    }
    """
    TITLE = "Taskdeck"

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("a", "add_task", "Add"),
        Binding("e", "edit_task", "Edit"),
        Binding("d", "delete_task", "Delete"),
        Binding("f", "cycle_filter", "Filter"),
        Binding("1", "show_filter('all')", "All", show=False),
        Binding("2", "show_filter('pending')", "Pending", show=False),
        Binding("3", "show_filter('completed')", "Completed", show=False),
        Binding("r", "resubscribe", "Reconnect"),
        Binding("L", "sign_out", "Sign Out"),
    ]

    def __init__(
        self,
        store: RemoteTaskStore,
        auth: AuthProvider,
        *,
        identity: Identity | None = None,
        timezone: str | None = None,
        default_filter: TaskFilter = TaskFilter.ALL,
    ) -> None:
        super().__init__()
        self.identity = identity
        self.tz = resolve_timezone(timezone)
        self._ui_loop: asyncio.AbstractEventLoop | None = None
        self.dashboard = TaskDashboard(
            store,
            auth,
            task_filter=default_filter,
            schedule=self._schedule_tick,
            dispatch=self._call_on_ui,
            on_countdown=self._on_countdown,
        )
        self.dashboard.add_listener(self._redraw)
        self.dashboard.mutator.add_result_listener(lambda result: self._call_on_ui(lambda: self._on_mutation_result(result)))
        self.status_line = StatusLine()
        self.task_table = TaskTable()
        self._note: str | None = None
        self._edit_screen: TaskEditScreen | None = None
        self._confirm_screen: ConfirmScreen | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Vertical(self.status_line, self.task_table, classes="panel")
        yield Footer()

    async def on_mount(self) -> None:
        self._ui_loop = asyncio.get_running_loop()
        self.task_table.focus()
        self.dashboard.attach(self.identity)
        self._redraw()

    # Thread plumbing --------------------------------------------------------
    def _call_on_ui(self, callback: Callable[[], None]) -> None:
        loop = self._ui_loop
        if loop is None:
            # Not running yet (tests or startup): run inline.
            callback()
            return
        loop.call_soon_threadsafe(callback)

    def _schedule_tick(self, callback: Callable[[], None]) -> TimerHandle:
        return self.set_interval(1.0, callback)

    # Rendering ----------------------------------------------------------------
    def _redraw(self) -> None:
        dashboard = self.dashboard
        if dashboard.loading:
            placeholder = "Loading tasks..."
        else:
            placeholder = EMPTY_MESSAGES[dashboard.view.filter]
        self.task_table.show_tasks(dashboard.rows(), dashboard.countdowns, self.tz, placeholder)
        self.status_line.show(dashboard, self._note)
        self._close_stale_dialogs()

    def _close_stale_dialogs(self) -> None:
        # dismiss() pops whatever screen is on top, so a stale dialog covered by
        # another one stays until it is uncovered again.
        edit_screen = self._edit_screen
        if edit_screen is not None and self.dashboard.edit.editing is None and self.screen is edit_screen:
            self._edit_screen = None
            edit_screen.dismiss(None)
            self._set_note("The task you were editing was removed")
        confirm_screen = self._confirm_screen
        if confirm_screen is not None and self.dashboard.gate.armed is None and self.screen is confirm_screen:
            self._confirm_screen = None
            confirm_screen.dismiss(False)

    def _on_error_closed(self, _result: object = None) -> None:
        self.call_after_refresh(self._close_stale_dialogs)

    def _set_note(self, note: str | None) -> None:
        self._note = note
        self.status_line.show(self.dashboard, note)

    def _on_countdown(self, task_id: str, countdown: Countdown) -> None:
        self.task_table.update_countdown(task_id, countdown)

    def _on_mutation_result(self, result: MutationResult) -> None:
        if result.ok:
            return
        self._display_error(f"Could not {result.operation.value} task", str(result.error))

    def _display_error(self, prefix: str, detail: str) -> None:
        try:
            self.push_screen(ErrorScreen(prefix, detail), self._on_error_closed)
        except Exception:
            # Not running (tests); the status line is enough.
            logger.debug("Could not open error dialog for %s", prefix)
        self._set_note(f"[red]{escape(prefix)}: {escape(detail)}[/red]")

    # Actions ------------------------------------------------------------------
    def action_cycle_filter(self) -> None:
        chosen = self.dashboard.cycle_filter()
        self._set_note(f"Showing {chosen.value} tasks")

    def action_show_filter(self, name: str) -> None:
        self.dashboard.set_filter(name)

    def action_toggle_task(self) -> None:
        task_id = self.task_table.selected_task_id()
        if task_id is None or self.dashboard.toggle(task_id) is None:
            self.bell()

    def action_add_task(self) -> None:
        self.push_screen(TaskEditScreen("New task"), self._on_new_task)

    def _on_new_task(self, data: dict | None) -> None:
        if not data:
            return
        text = data.get("text", "")
        try:
            due = parse_due(data.get("due"), self.tz)
        except ValueError as exc:
            self.push_screen(TaskEditScreen("New task", text=text, due=data.get("due"), error=str(exc)), self._on_new_task)
            return
        try:
            self.dashboard.add_task(text, due)
        except TaskValidationError as exc:
            self._set_note(escape(str(exc)))
            return
        except NotAuthenticatedError as exc:
            self._display_error("Add task", str(exc))
            return
        self._set_note("Task sent")

    def action_edit_task(self) -> None:
        task_id = self.task_table.selected_task_id()
        if task_id is None or not self.dashboard.start_edit(task_id):
            self.bell()
            return
        self._open_editor()

    def _open_editor(self, error: str | None = None, due_text: str | None = None) -> None:
        editing = self.dashboard.edit.editing
        if editing is None:
            return
        if due_text is None:
            due_text = format_due(editing.draft_due, self.tz)
        self._edit_screen = TaskEditScreen("Edit task", text=editing.draft_text, due=due_text, error=error)
        self.push_screen(self._edit_screen, self._on_task_edited)

    def _on_task_edited(self, data: dict | None) -> None:
        self._edit_screen = None
        session = self.dashboard.edit
        editing = session.editing
        if editing is None:
            return
        if data is None:
            session.cancel_edit()
            return
        session.update_draft(text=data.get("text", ""))
        try:
            due = parse_due(data.get("due"), self.tz)
        except ValueError as exc:
            self._open_editor(error=str(exc), due_text=data.get("due"))
            return
        session.update_draft(due=due, clear_due=due is None)
        try:
            session.save_edit(editing.task_id)
        except TaskValidationError as exc:
            self._open_editor(error=str(exc))
            return
        self._set_note("Changes sent")

    def action_delete_task(self) -> None:
        task_id = self.task_table.selected_task_id()
        task = self.dashboard.engine.get(task_id) if task_id else None
        if task is None:
            self.bell()
            return
        self.dashboard.request_delete(task.id)
        self._ask_confirmation("Delete task", f"Delete \"{task.text}\"? This cannot be undone.")

    def action_sign_out(self) -> None:
        if self.dashboard.identity is None:
            self.bell()
            return
        self.dashboard.request_sign_out()
        self._ask_confirmation("Sign out", "Sign out and forget the cached Google token?")

    def _ask_confirmation(self, title: str, message: str) -> None:
        self._confirm_screen = ConfirmScreen(title, message)
        self.push_screen(self._confirm_screen, self._on_confirmation)

    def _on_confirmation(self, confirmed: bool | None) -> None:
        self._confirm_screen = None
        action = self.dashboard.gate.armed
        if not confirmed:
            self.dashboard.cancel_confirmation()
            return
        try:
            self.dashboard.confirm()
        except Exception as exc:
            logger.exception("Confirmed action %r failed", action)
            self._display_error("Action failed", str(exc))
            return
        if isinstance(action, SignOut):
            self.exit()
        elif isinstance(action, DeleteTask):
            self._set_note("Delete sent")

    def action_resubscribe(self) -> None:
        if not self.dashboard.resubscribe():
            self.bell()
            return
        self._set_note("Reconnecting...")
