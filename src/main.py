from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from utils.messages import ModeSwitchedMessage, QuitRequestedMessage, UserLogoutMessage
from utils.state import SessionState
from views.scr_admin_inventory import AdminInventoryScreen
from views.scr_admin_orders import AdminOrdersScreen
from views.scr_cart import CartScreen
from views.scr_catalog import CatalogScreen
from views.scr_identity import IdentityScreen
from views.scr_past_orders import PastOrdersScreen

DARK_THEME = "textual-dark"
LIGHT_THEME = "solarized-light"


class StorefrontApp(App):
    BINDINGS = [
        Binding("ctrl+t", "toggle_theme", "Theme", show=True),
    ]

    MODES = {
        "catalog": CatalogScreen,
        "cart": CartScreen,
        "past_orders": PastOrdersScreen,
        "admin_orders": AdminOrdersScreen,
        "admin_inventory": AdminInventoryScreen,
    }

    ADMIN_MODES = {"admin_orders": "Manage Orders", "admin_inventory": "Inventory"}
    SHOPPER_MODES = {
        "catalog": "Browse Products",
        "cart": "Cart",
        "past_orders": "Order History",
    }

    CSS_PATH = [
        "styles/index.tcss",
        "styles/shop.tcss",
        "styles/admin.tcss",
    ]

    state: SessionState

    def __init__(self):
        super().__init__()
        self.state = SessionState()

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.start_session()

    def action_toggle_theme(self):
        self.theme = LIGHT_THEME if self.theme == DARK_THEME else DARK_THEME
        self.notify(f"Theme: {self.theme}")

    @on(UserLogoutMessage)
    def handle_user_logout(self):
        self.state.sign_out()
        self.notify("Signed out.")
        self.start_session()

    @on(QuitRequestedMessage)
    def handle_quit_requested(self):
        self.exit()

    @work
    async def start_session(self):
        await self.push_screen_wait(IdentityScreen())
        new_mode = "admin_orders" if self.state.role == "admin" else "catalog"
        self.post_message(ModeSwitchedMessage(self.current_mode, new_mode))
        await self.switch_mode(new_mode)


def main() -> None:
    StorefrontApp().run()


if __name__ == "__main__":
    main()
