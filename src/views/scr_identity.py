from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import Key
from textual.widgets import Button, Input, Label

from views.base_screen import BaseScreen
from views.modal_dialog import QuitDialogModal


class IdentityScreen(BaseScreen):
    """
    Choose who is shopping: a guest, or an existing user id.
    Credentials are checked by the auth service in front of this app, not here.
    """

    def __init__(self):
        super().__init__()
        self.configure(header_sub_title="Welcome", show_sidebar=False)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-identity"):
            yield Label("User ID (leave blank to shop as a guest)")
            yield Input(placeholder="1001", id="input-uid", type="integer")
            with Horizontal(id="div-identity-btns"):
                yield Button("Quit", id="btn-quit")
                yield Button("Continue as Guest", id="btn-guest")
                yield Button("Sign in", id="btn-signin", variant="primary")

    def on_mount(self):
        self.query_one("#input-uid").focus()

    def on_key(self, event: Key) -> None:
        if event.key == "enter" and self.focused == self.query_one("#input-uid"):
            self.handle_sign_in()

    @on(Button.Pressed, "#btn-signin")
    @work(exclusive=True)
    async def handle_sign_in(self) -> None:
        raw = self.query_one("#input-uid", Input).value.strip()
        if not raw:
            self.handle_guest()
            return

        user = await self.app.state.sign_in(int(raw)) if raw.isdigit() else None
        if user is None:
            self.notify("Unknown user id.", severity="error")
            uid_input = self.query_one("#input-uid", Input)
            uid_input.focus()
            uid_input.add_class("-invalid")
            return

        self.notify(f"Hello {user.name}!")
        self.dismiss()

    @on(Button.Pressed, "#btn-guest")
    def handle_guest(self) -> None:
        self.app.state.continue_as_guest()
        self.dismiss()

    @on(Button.Pressed, "#btn-quit")
    def handle_quit_(self) -> None:
        self.app.push_screen(QuitDialogModal())
