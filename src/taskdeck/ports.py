"""
Boundaries the core talks to.

The engine depends on these Protocols instead of concrete services, so the
Firestore adapter, the Google sign-in and the test fakes are interchangeable.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol

from .models import Identity

# One snapshot: the complete result set as (document id, persisted fields).
SnapshotRecord = tuple[str, Mapping[str, Any]]
SnapshotCallback = Callable[[Sequence[SnapshotRecord]], None]
ErrorCallback = Callable[[BaseException], None]


class ListenerHandle(Protocol):
    def cancel(self) -> None: ...


class TimerHandle(Protocol):
    def stop(self) -> None: ...


class RemoteTaskStore(Protocol):
    """Queryable, subscribable task collection."""

    def query(self, owner_id: str) -> Any: ...

    def listen(
            self,
            query: Any,
            on_snapshot: SnapshotCallback,
            on_error: ErrorCallback,
    ) -> ListenerHandle: ...

    def create(self, fields: Mapping[str, Any]) -> str: ...

    def update(self, task_id: str, fields: Mapping[str, Any]) -> None: ...

    def remove(self, task_id: str) -> None: ...


class AuthProvider(Protocol):
    def current_user(self) -> Identity | None: ...

    def sign_out(self) -> None: ...
