from __future__ import annotations

from textual.app import ComposeResult  # type: ignore[import]
from textual.binding import Binding  # type: ignore[import]
from textual.containers import Vertical  # type: ignore[import]
from textual.screen import ModalScreen  # type: ignore[import]
from textual.widgets import Input, Static  # type: ignore[import]


class TaskEditScreen(ModalScreen[dict | None]):
    """Modal that asks for a task's text and optional due date.

    The caller receives ``{"text": ..., "due": ...}`` (raw strings) or None
    when the user pressed Escape. Due accepts ``YYYY-MM-DD``,
    ``YYYY-MM-DD HH:MM``, ISO-8601 or ``+30m``/``+2h``/``+1d``.
    """

    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def __init__(self, prompt: str, text: str | None = None, due: str | None = None, error: str | None = None) -> None:
        super().__init__()
        self.prompt = prompt
        self._text = text or ""
        self._due = due or ""
        self._error = error
        self._text_id = "task-edit-text"
        self._due_id = "task-edit-due"

    def compose(self) -> ComposeResult:
        title = Static(self.prompt, classes="dialog-title")
        inp_text = Input(placeholder="What needs doing?", id=self._text_id, value=self._text)
        inp_due = Input(placeholder="Due (optional): 2025-12-31 18:00 or +2h", id=self._due_id, value=self._due)
        widgets = [title, inp_text, inp_due]
        if self._error:
            widgets.append(Static(self._error, classes="dialog-error", markup=False))
        help_text = Static("Enter to save • Esc = Cancel", classes="dialog-help")
        yield Vertical(*widgets, help_text, id="task-edit-dialog")

    def on_mount(self) -> None:
        self.query_one(f"#{self._text_id}", Input).focus()

    def action_cancel(self) -> None:
        self.dismiss(None)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        text = self.query_one(f"#{self._text_id}", Input).value
        due = self.query_one(f"#{self._due_id}", Input).value
        self.dismiss({"text": text, "due": due})


class ConfirmScreen(ModalScreen[bool]):
    """Yes/no question guarding an irreversible action."""

    BINDINGS = [
        Binding("y", "confirm", "Yes"),
        Binding("enter", "confirm", "Yes", show=False),
        Binding("n", "cancel", "No"),
        Binding("escape", "cancel", "No", show=False),
    ]

    def __init__(self, title: str, message: str) -> None:
        super().__init__()
        self.title_text = title
        self.message = message

    def compose(self) -> ComposeResult:
        yield Vertical(
            Static(self.title_text, classes="dialog-title"),
            Static(self.message, classes="dialog-item", markup=False),
            Static("Y/Enter = Confirm • N/Esc = Cancel", classes="dialog-help"),
            id="confirm-dialog",
        )

    def action_confirm(self) -> None:
        self.dismiss(True)

    def action_cancel(self) -> None:
        self.dismiss(False)


class ErrorScreen(ModalScreen[None]):
    """Modal screen to display a brief error message with dismiss action.

    Shows a title (prefix) and the error detail. Dismiss with Enter or
    Esc.
    """

    BINDINGS = [
        Binding("escape", "close", "Close"),
        Binding("enter", "close", "OK"),
    ]

    def __init__(self, prefix: str, message: str | list[str]) -> None:
        super().__init__()
        self.prefix = prefix
        # Normalize message(s) to a list for uniform rendering
        if isinstance(message, list):
            self.messages = list(message)
        else:
            self.messages = [str(message)]

    def compose(self) -> ComposeResult:
        title = Static(f"{self.prefix}", classes="dialog-title")
        help_text = Static("Enter = OK • Esc = Close", classes="dialog-help")
        items = [Static(msg, classes="dialog-item", markup=False) for msg in self.messages]
        yield Vertical(title, *items, help_text, id="error-dialog")

    def action_close(self) -> None:
        self.dismiss(None)
