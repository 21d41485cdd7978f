from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, HorizontalGroup, VerticalScroll
from textual.events import ScreenResume
from textual.message import Message
from textual.widgets import Button, Input, Label, Markdown, Rule

from db.models import CartItem
from shop.pricing import calculate, format_money, line_total
from utils.messages import CartChangedMessage, ModeSwitchedMessage, NewOrderMessage
from utils.pure import breakdown_markdown
from views.base_screen import BaseScreen
from views.modal_checkout import CheckoutModal
from views.modal_dialog import DialogModal


class CartItemRemoveMessage(Message):
    bubble = True

    def __init__(self, item: CartItem) -> None:
        super().__init__()
        self.item = item


class CartItemWidget(HorizontalGroup):
    """One cart line: name, size, editable quantity, line total."""

    def __init__(self, item: CartItem):
        super().__init__(classes="cart-item")
        self.item = item

    def compose(self) -> ComposeResult:
        size = f" [{self.item.selected_size}]" if self.item.selected_size else ""
        yield Label(self.item.name + size, classes="cart-item-name")
        yield Input(str(self.item.quantity), type="integer", classes="cart-item-qty")
        yield Label(format_money(line_total(self.item)), classes="cart-item-total")
        yield Button("Remove", variant="warning", classes="cart-item-remove")

    @on(Input.Submitted, ".cart-item-qty")
    @work(exclusive=True)
    async def handle_qty_submit(self, message: Input.Submitted) -> None:
        state = self.app.state
        product = await state.catalog.get_product(self.item.product_id)
        changed = state.cart.update_quantity(
            self.item.product_id, self.item.selected_size, message.value, product=product
        )
        if not changed:
            current = state.cart.get(self.item.product_id, self.item.selected_size)
            if current is not None and str(current.quantity) != message.value.strip():
                self.notify("Quantity not available.", severity="warning")
                message.input.value = str(current.quantity)
            return
        self.post_message(CartChangedMessage())

    @on(Button.Pressed, ".cart-item-remove")
    def handle_remove(self) -> None:
        self.post_message(CartItemRemoveMessage(self.item))


class CartScreen(BaseScreen):
    """
    Cart lines with edit/remove, the price breakdown and checkout.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield VerticalScroll(id="vertscroll-content")
        yield Markdown("", id="md-cart-total")
        yield Rule(line_style="dashed")
        with Horizontal(id="hort-buttons"):
            yield Button("Clear Cart", id="btn-clear-cart")
            yield Button("Checkout", id="btn-checkout", variant="primary")

    async def on_mount(self):
        self.handle_cart_change()

    @on(CartChangedMessage)
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @work(exclusive=True)  # exclusive, else overlapping refreshes mount duplicates
    async def handle_cart_change(self):
        cart = self.app.state.cart
        content = self.query_one("#vertscroll-content")
        await content.remove_children()
        await content.mount_all([CartItemWidget(item) for item in cart.items])
        content.set_class(cart.is_empty, "no-items")

        md = f"{cart.count()} item(s)\n\n" + breakdown_markdown(calculate(cart.items))
        await self.query_one("#md-cart-total", Markdown).update(md)
        self.query_one("#btn-checkout", Button).disabled = cart.is_empty

    @on(CartItemRemoveMessage)
    @work()
    async def handle_remove_item(self, message: CartItemRemoveMessage):
        if not await self.app.push_screen_wait(
            DialogModal(
                f"Remove {message.item.name} from your cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        ):
            return
        self.app.state.cart.remove(message.item.product_id, message.item.selected_size)
        self.post_message(CartChangedMessage())
        self.notify("Item removed from cart.")

    @on(Button.Pressed, "#btn-clear-cart")
    @work()
    async def handle_clear_cart(self) -> None:
        cart = self.app.state.cart
        if cart.is_empty:
            self.app.notify("Cart is empty.", severity="warning")
            return
        if await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove all items from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="error",
            )
        ):
            cart.clear()
            self.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-checkout")
    @work()
    async def handle_checkout(self) -> None:
        if self.app.state.cart.is_empty:
            self.app.notify("Cart is empty.", severity="warning")
            return
        ono = await self.app.push_screen_wait(CheckoutModal())
        if ono:
            self.app.post_message(NewOrderMessage(ono))
        self.post_message(CartChangedMessage())
