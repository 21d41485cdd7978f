from typing import Dict, Literal, Tuple

from typing_extensions import override

from textual.app import ComposeResult
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label

from utils.messages import QuitRequestedMessage

Tone = Literal["default", "positive", "warning", "error"]


class DialogModal(ModalScreen[bool]):
    """
    Yes/no confirmation. Dismisses with True for the primary button.
    """

    # (primary variant, secondary variant)
    VARIANT_MAP: Dict[str, Tuple[str, str]] = {
        "default": ("primary", "default"),
        "positive": ("success", "default"),
        "warning": ("warning", "default"),
        "error": ("error", "primary"),
    }

    def __init__(
        self,
        caption: str,
        primary_text: str = "OK",
        secondary_text: str = "",
        tone: Tone = "default",
    ):
        super().__init__()
        self.caption = caption
        self.primary_text = primary_text
        self.secondary_text = secondary_text
        self.tone = tone

    def compose(self) -> ComposeResult:
        primary, secondary = DialogModal.VARIANT_MAP[self.tone]
        with Container(classes="dialog"):
            yield Label(self.caption, classes="dialog-caption")
            with Horizontal(classes="dialog-buttons"):
                if self.secondary_text:
                    yield Button(self.secondary_text, variant=secondary, id="btn-secondary")
                yield Button(self.primary_text, variant=primary, id="btn-primary")

    def on_mount(self):
        # destructive prompts focus the safe choice
        if self.secondary_text and self.tone == "error":
            self.query_one("#btn-secondary").focus()
        else:
            self.query_one("#btn-primary").focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "btn-primary")


class QuitDialogModal(DialogModal):
    """Confirms leaving the app; the cart is saved on every change, so nothing is lost."""

    def __init__(self):
        super().__init__("Quit the storefront?", "Quit", "Keep shopping", "error")

    @override
    def on_button_pressed(self, event: Button.Pressed) -> None:
        leaving = event.button.id == "btn-primary"
        if leaving:
            self.post_message(QuitRequestedMessage())
        self.dismiss(leaving)


class TrackingNumberModal(ModalScreen[str | None]):
    """
    Asks for the carrier tracking number before an order is marked shipped.
    Dismisses with the number, or None when cancelled.
    """

    def __init__(self, ono: int):
        super().__init__()
        self.ono = ono

    def compose(self) -> ComposeResult:
        with Container(classes="dialog"):
            yield Label(f"Tracking number for order #{self.ono}", classes="dialog-caption")
            yield Input(placeholder="1Z999AA10123456784", id="input-tracking")
            with Horizontal(classes="dialog-buttons"):
                yield Button("Cancel", id="btn-secondary")
                yield Button("Mark Shipped", variant="success", id="btn-primary", disabled=True)

    def on_mount(self):
        self.query_one("#input-tracking").focus()

    def on_input_changed(self, message: Input.Changed) -> None:
        self.query_one("#btn-primary", Button).disabled = not message.value.strip()

    def on_input_submitted(self, message: Input.Submitted) -> None:
        if message.value.strip():
            self.dismiss(message.value.strip())

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn-primary":
            self.dismiss(self.query_one("#input-tracking", Input).value.strip())
        else:
            self.dismiss(None)
