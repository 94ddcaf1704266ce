from __future__ import annotations


class TaskValidationError(ValueError):
    """Rejected locally before any request reaches the store."""

    def __init__(self, message: str = "Task text must not be empty") -> None:
        super().__init__(message)


class NotAuthenticatedError(RuntimeError):
    pass


class StoreError(RuntimeError):
    """A create/update/remove request failed at the store or in transport."""


class SubscriptionError(RuntimeError):
    """The live listen failed; the subscription is finished."""

    def __init__(self, owner_id: str | None, cause: BaseException | None = None) -> None:
        self.owner_id = owner_id
        self.cause = cause
        detail = str(cause) if cause is not None else "listener stopped"
        super().__init__(f"Task subscription for {owner_id or 'unknown owner'} failed: {detail}")
