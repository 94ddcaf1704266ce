from __future__ import annotations

from datetime import timedelta

import pytest

from fakes import BASE_TIME, FakeAuth, FakeClock, FakeScheduler, FakeTaskStore, InlineExecutor
from taskdeck.countdown import OVERDUE
from taskdeck.dashboard import TaskDashboard
from taskdeck.models import Identity, TaskFilter, TaskStatus
from taskdeck.mutator import TaskMutator
from taskdeck.session import DeleteTask, SignOut

ADA = Identity("u1", "ada@example.com")
BOB = Identity("u2", "bob@example.com")


class Harness:
    def __init__(self, identity: Identity | None = ADA) -> None:
        self.store = FakeTaskStore()
        self.auth = FakeAuth(identity)
        self.scheduler = FakeScheduler()
        self.clock = FakeClock()
        self.changes = 0
        self.dashboard = TaskDashboard(
            self.store,
            self.auth,
            mutator=TaskMutator(self.store, lambda: self.dashboard.identity, InlineExecutor()),
            schedule=self.scheduler,
            now=self.clock,
        )
        self.dashboard.add_listener(self._count)

    def _count(self) -> None:
        self.changes += 1

    def texts(self) -> list[str]:
        return [task.text for task in self.dashboard.rows()]


@pytest.fixture
def harness() -> Harness:
    h = Harness()
    h.dashboard.attach(ADA)
    return h


def test_added_task_appears_first_only_after_snapshot(harness: Harness) -> None:
    harness.store.seed("old", "Older chore", "u1", created_offset=-60)
    harness.store.push()
    harness.dashboard.add_task("Buy milk")
    assert harness.texts() == ["Older chore"]

    harness.store.push()
    assert harness.texts() == ["Buy milk", "Older chore"]
    harness.dashboard.set_filter(TaskFilter.PENDING)
    assert harness.texts() == ["Buy milk", "Older chore"]
    harness.dashboard.set_filter(TaskFilter.COMPLETED)
    assert harness.texts() == []


def test_toggle_moves_task_between_filters(harness: Harness) -> None:
    harness.store.seed("t", "Write report", "u1")
    harness.store.push()
    harness.dashboard.toggle("t")
    harness.store.push()
    harness.dashboard.set_filter(TaskFilter.COMPLETED)
    assert harness.texts() == ["Write report"]
    harness.dashboard.set_filter(TaskFilter.PENDING)
    assert harness.texts() == []
    assert harness.dashboard.tasks[0].status is TaskStatus.COMPLETED


def test_delete_then_cancel_keeps_task(harness: Harness) -> None:
    harness.store.seed("t", "Keep me", "u1")
    harness.store.push()
    harness.dashboard.request_delete("t")
    assert harness.dashboard.gate.armed == DeleteTask("t")
    harness.dashboard.cancel_confirmation()
    harness.store.push()
    assert "remove" not in harness.store.request_kinds()
    assert harness.texts() == ["Keep me"]


def test_delete_then_confirm_removes_task(harness: Harness) -> None:
    harness.store.seed("t", "Drop me", "u1")
    harness.store.push()
    harness.dashboard.request_delete("t")
    harness.dashboard.confirm()
    harness.dashboard.confirm()
    assert harness.store.request_kinds() == ["remove"]
    harness.store.push()
    assert harness.texts() == []


def test_toggle_unknown_task_is_ignored(harness: Harness) -> None:
    assert harness.dashboard.toggle("ghost") is None
    assert harness.store.requests == []


def test_loading_and_welcome(harness: Harness) -> None:
    assert harness.dashboard.loading
    assert harness.dashboard.welcome == "Welcome, ada@example.com"
    harness.store.push()
    assert not harness.dashboard.loading


def test_sign_out_goes_through_the_gate(harness: Harness) -> None:
    harness.store.seed("t", "Private", "u1")
    harness.store.push()
    harness.dashboard.request_sign_out()
    assert harness.auth.sign_out_calls == 0
    harness.dashboard.confirm()
    assert harness.auth.sign_out_calls == 1
    assert harness.dashboard.identity is None
    assert harness.dashboard.tasks == ()
    assert harness.store.active_listeners() == []
    assert harness.dashboard.welcome == "Not signed in"


def test_identity_change_drops_previous_owner_state(harness: Harness) -> None:
    harness.store.seed("a", "Ada's", "u1", dueDate="2025-01-02T12:00:00.000Z")
    harness.store.seed("b", "Bob's", "u2")
    harness.store.push()
    harness.dashboard.start_edit("a")
    harness.dashboard.request_delete("a")
    assert harness.dashboard.countdown.tracked == frozenset({"a"})

    harness.dashboard.attach(BOB)
    assert harness.dashboard.tasks == ()
    assert harness.dashboard.edit.editing is None
    assert harness.dashboard.gate.armed is None
    assert harness.dashboard.countdown.tracked == frozenset()
    assert harness.scheduler.running() == []
    harness.store.push()
    assert harness.texts() == ["Bob's"]


def test_attach_none_tears_down(harness: Harness) -> None:
    harness.dashboard.attach(None)
    assert harness.dashboard.identity is None
    assert harness.store.active_listeners() == []


def test_edit_closes_when_task_vanishes(harness: Harness) -> None:
    harness.store.seed("t", "Soon gone", "u1")
    harness.store.push()
    assert harness.dashboard.start_edit("t")
    harness.dashboard.request_delete("t")
    del harness.store.docs["t"]
    harness.store.push()
    assert harness.dashboard.edit.editing is None
    assert harness.dashboard.gate.armed is None
    assert not harness.dashboard.start_edit("t")


def test_subscription_error_then_resubscribe(harness: Harness) -> None:
    harness.store.seed("t", "Cached", "u1")
    harness.store.push()
    harness.store.fail_listen(PermissionError("rules changed"))
    assert harness.dashboard.last_error is not None
    assert not harness.dashboard.loading
    assert harness.texts() == ["Cached"]

    assert harness.dashboard.resubscribe()
    assert harness.dashboard.last_error is None
    assert not harness.dashboard.resubscribe()
    assert len(harness.store.listeners) == 2


def test_countdowns_follow_visible_pending_tasks(harness: Harness) -> None:
    due = (BASE_TIME + timedelta(seconds=30)).isoformat()
    harness.store.seed("t", "Deadline", "u1", dueDate=due)
    harness.store.push()
    assert harness.dashboard.countdowns["t"].seconds == 30
    harness.clock.advance(31)
    harness.scheduler.fire()
    assert harness.dashboard.countdowns["t"] == OVERDUE

    harness.dashboard.set_filter(TaskFilter.COMPLETED)
    assert harness.dashboard.countdowns == {}
    assert harness.scheduler.running() == []

    harness.dashboard.set_filter(TaskFilter.ALL)
    harness.dashboard.toggle("t")
    harness.store.push()
    assert "t" not in harness.dashboard.countdowns
    assert harness.dashboard.countdown.tracked == frozenset()


def test_dispatch_hook_receives_store_callbacks() -> None:
    queued: list = []
    store = FakeTaskStore()
    dashboard = TaskDashboard(
        store,
        FakeAuth(ADA),
        schedule=FakeScheduler(),
        now=FakeClock(),
        dispatch=queued.append,
    )
    dashboard.attach(ADA)
    store.seed("t", "x", "u1")
    store.push()
    assert len(queued) == 1
    assert dashboard.rows() == dashboard.tasks  # engine already updated
    queued.pop()()
    dashboard.close()
