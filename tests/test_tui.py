from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from fakes import FakeAuth, FakeTaskStore, InlineExecutor
from taskdeck.models import Identity, TaskFilter
from taskdeck.tui.app import EMPTY_MESSAGES, TaskDeckApp
from taskdeck.tui.screens import ConfirmScreen, ErrorScreen, TaskEditScreen

ADA = Identity("u1", "ada@example.com")


class Harness:
    """A TaskDeckApp that is never run: widgets are replaced by recorders."""

    def __init__(self, monkeypatch, selected: str | None = None) -> None:
        self.store = FakeTaskStore()
        self.auth = FakeAuth(ADA)
        self.app = TaskDeckApp(self.store, self.auth, identity=ADA, timezone="UTC")
        self.app.dashboard.mutator._executor = InlineExecutor()
        self.drawn: list[tuple[list[str], str]] = []
        self.notes: list[str | None] = []
        self.pushed: list[tuple[object, object]] = []
        self.exits = 0
        self.selected = selected
        self.app.task_table = SimpleNamespace(
            show_tasks=lambda rows, countdowns, tz, placeholder: self.drawn.append(([t.text for t in rows], placeholder)),
            update_countdown=lambda task_id, countdown: None,
            selected_task_id=lambda: self.selected,
        )
        self.app.status_line = SimpleNamespace(show=lambda dashboard, note=None: self.notes.append(note))
        monkeypatch.setattr(self.app, "push_screen", lambda screen, callback=None: self.pushed.append((screen, callback)))
        monkeypatch.setattr(self.app, "exit", self._exit)
        self.app.dashboard.attach(ADA)

    def _exit(self, *args, **kwargs) -> None:
        self.exits += 1


@pytest.fixture
def harness(monkeypatch) -> Harness:
    return Harness(monkeypatch)


def test_redraw_shows_loading_then_empty_message(harness: Harness) -> None:
    assert harness.drawn[-1] == ([], "Loading tasks...")
    harness.store.push()
    assert harness.drawn[-1] == ([], EMPTY_MESSAGES[TaskFilter.ALL])
    harness.app.action_show_filter("pending")
    assert harness.drawn[-1] == ([], EMPTY_MESSAGES[TaskFilter.PENDING])


def test_new_task_dialog_sends_create(harness: Harness) -> None:
    harness.store.push()
    harness.app.action_add_task()
    screen, callback = harness.pushed[-1]
    assert isinstance(screen, TaskEditScreen)
    callback({"text": "Buy milk", "due": ""})
    assert harness.store.requests == [("create", {"text": "Buy milk", "status": "pending", "userId": "u1"})]
    harness.store.push()
    assert harness.drawn[-1][0] == ["Buy milk"]


def test_bad_due_date_reopens_dialog_with_error(harness: Harness) -> None:
    harness.app._on_new_task({"text": "Buy milk", "due": "whenever"})
    screen, _ = harness.pushed[-1]
    assert isinstance(screen, TaskEditScreen)
    assert "Unsupported due date" in (screen._error or "")
    assert harness.store.requests == []


def test_blank_task_only_sets_note(harness: Harness) -> None:
    harness.app._on_new_task({"text": "   ", "due": ""})
    assert harness.store.requests == []
    assert harness.notes[-1] == "Task text must not be empty"


def test_edit_dialog_sends_update(monkeypatch) -> None:
    h = Harness(monkeypatch, selected="t")
    h.store.seed("t", "Old text", "u1")
    h.store.push()
    h.app.action_edit_task()
    screen, callback = h.pushed[-1]
    assert isinstance(screen, TaskEditScreen)
    callback({"text": "New text", "due": ""})
    assert h.store.requests == [("update", "t", {"text": "New text", "dueDate": None})]
    assert h.app.dashboard.edit.editing is None


def _screen_names(app: TaskDeckApp) -> list[str]:
    return [type(screen).__name__ for screen in app.screen_stack]


async def _running_app_with_task(pilot_body) -> None:
    store = FakeTaskStore()
    store.seed("t1", "Doomed", "u1")
    app = TaskDeckApp(store, FakeAuth(ADA), identity=ADA, timezone="UTC")
    app.dashboard.mutator._executor = InlineExecutor()
    async with app.run_test() as pilot:
        store.push()
        await pilot.pause()
        await pilot_body(app, store, pilot)
    app.dashboard.close()


def test_edit_dialog_closes_when_task_vanishes() -> None:
    async def body(app: TaskDeckApp, store: FakeTaskStore, pilot) -> None:
        app.action_edit_task()
        await pilot.pause()
        assert _screen_names(app)[-1] == "TaskEditScreen"
        del store.docs["t1"]
        store.push()
        await pilot.pause()
        assert "TaskEditScreen" not in _screen_names(app)
        assert app._note == "The task you were editing was removed"

    asyncio.run(_running_app_with_task(body))


def test_stale_editor_under_error_dialog_closes_after_it() -> None:
    async def body(app: TaskDeckApp, store: FakeTaskStore, pilot) -> None:
        app.action_edit_task()
        await pilot.pause()
        app._display_error("Could not toggle task", "denied")
        await pilot.pause()
        del store.docs["t1"]
        store.push()
        await pilot.pause()
        # The error stays readable; the editor below it is not popped instead.
        assert _screen_names(app)[-2:] == ["TaskEditScreen", "ErrorScreen"]
        assert app.dashboard.edit.editing is None

        await pilot.press("escape")
        await pilot.pause()
        await pilot.pause()
        assert "ErrorScreen" not in _screen_names(app)
        assert "TaskEditScreen" not in _screen_names(app)

    asyncio.run(_running_app_with_task(body))


def test_stale_confirmation_under_error_dialog_closes_after_it() -> None:
    async def body(app: TaskDeckApp, store: FakeTaskStore, pilot) -> None:
        app.action_delete_task()
        await pilot.pause()
        app._display_error("Could not toggle task", "denied")
        await pilot.pause()
        del store.docs["t1"]
        store.push()
        await pilot.pause()
        assert _screen_names(app)[-2:] == ["ConfirmScreen", "ErrorScreen"]
        assert app.dashboard.gate.armed is None

        await pilot.press("escape")
        await pilot.pause()
        await pilot.pause()
        assert "ConfirmScreen" not in _screen_names(app)
        assert "remove" not in store.request_kinds()

    asyncio.run(_running_app_with_task(body))


def test_delete_requires_confirmation(monkeypatch) -> None:
    h = Harness(monkeypatch, selected="t")
    h.store.seed("t", "Maybe", "u1")
    h.store.push()

    h.app.action_delete_task()
    screen, callback = h.pushed[-1]
    assert isinstance(screen, ConfirmScreen)
    callback(False)
    assert h.store.requests == []
    assert h.app.dashboard.gate.armed is None

    h.app.action_delete_task()
    _, callback = h.pushed[-1]
    callback(True)
    assert h.store.request_kinds() == ["remove"]


def test_confirmed_sign_out_exits(harness: Harness) -> None:
    harness.app.action_sign_out()
    _, callback = harness.pushed[-1]
    callback(True)
    assert harness.auth.sign_out_calls == 1
    assert harness.exits == 1
    assert harness.app.dashboard.identity is None


def test_failed_mutation_opens_error_dialog(monkeypatch) -> None:
    h = Harness(monkeypatch, selected="t")
    h.store.seed("t", "Task", "u1")
    h.store.push()
    h.store.fail_with = PermissionError("denied")
    h.app.action_toggle_task()
    screen, _ = h.pushed[-1]
    assert isinstance(screen, ErrorScreen)
    assert "denied" in (h.notes[-1] or "")
