from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.events import ScreenResume
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Label, ListItem, ListView, Markdown

from utils.messages import ModeSwitchedMessage, UserLogoutMessage
from utils.pure import generate_markdown_table
from views.modal_dialog import DialogModal, QuitDialogModal

MENU_PREFIX = "menu-"


class Sidebar(Container):
    """Who is shopping, a sign-out button and the menu for their role."""

    home_mode = ""

    def compose(self) -> ComposeResult:
        yield Label("Session", classes="sidebar-heading")
        yield Markdown("", id="md-session")
        yield Button("Sign out", id="btn-sign-out", variant="error")
        yield Label("Menu", classes="sidebar-heading")
        yield ListView(id="list-modes")

    def on_mount(self):
        self.home_mode = self.app.current_mode
        self.render_session()

    @work(exclusive=True)
    async def render_session(self):
        state = self.app.state
        rows = [["Role", "Guest"]]
        if state.user is not None:
            rows = [
                ["User ID", state.user.uid],
                ["Name", state.user.name],
                ["Role", state.role.capitalize()],
            ]
        await self.query_one("#md-session", Markdown).update(
            generate_markdown_table(None, rows, ["l", "l"])
        )

        menu = self.app.ADMIN_MODES if state.role == "admin" else self.app.SHOPPER_MODES
        modes = self.query_one("#list-modes", ListView)
        await modes.clear()
        await modes.extend(
            ListItem(Label(title), id=MENU_PREFIX + mode) for mode, title in menu.items()
        )
        self.mark_current()

    def mark_current(self) -> None:
        for item in self.query_one("#list-modes", ListView).children:
            item.highlighted = item.id == MENU_PREFIX + self.home_mode

    async def on_list_view_selected(self, event: ListView.Selected):
        target = event.item.id.removeprefix(MENU_PREFIX)
        self.mark_current()
        if target == self.app.current_mode:
            return
        self.post_message(ModeSwitchedMessage(self.app.current_mode, target))
        await self.app.switch_mode(target)

    @on(Button.Pressed, "#btn-sign-out")
    @work()
    async def sign_out(self):
        confirmed = await self.app.push_screen_wait(
            DialogModal(
                "Sign out of the storefront?",
                primary_text="Sign out",
                secondary_text="Stay",
                tone="warning",
            )
        )
        if confirmed:
            self.post_message(UserLogoutMessage())


class BaseScreen(Screen):
    """
    Frame shared by every screen: header, footer, the session sidebar
    and the quit key.
    """

    BINDINGS = [
        Binding("ctrl+z", "quit", "Quit App", show=True),
    ]

    def __init__(self):
        super().__init__()
        self.configure()

    def configure(self, header_sub_title: str = "Storefront", show_sidebar: bool = True) -> None:
        self.app.title = "Storefront"
        titles = {**self.app.SHOPPER_MODES, **self.app.ADMIN_MODES}
        mode = next(
            (k for k, cls in self.app.MODES.items() if isinstance(self, cls) and k in titles),
            None,
        )
        self.sub_title = titles[mode] if mode else header_sub_title
        self._show_sidebar = show_sidebar

    def compose(self) -> ComposeResult:
        if self._show_sidebar:
            yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    @on(ScreenResume)
    def refresh_session(self):
        # sign-in or sign-out may have happened on another screen
        if self._show_sidebar:
            self.query_one(Sidebar).render_session()

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal())
