from typing import Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Markdown, Select

from db.models import Product
from shop.pricing import effective_unit_price, format_money
from shop.stock import available_stock, can_fulfill
from utils.pure import generate_markdown_table


class ProdDetailModal(ModalScreen[bool]):
    """
    Product detail with size and quantity pickers.
    Returns True if the cart changed, False if not.
    """

    order_qty = reactive(1)

    def __init__(self, pid: int) -> None:
        super().__init__()
        self._pid = pid
        self._prod: Optional[Product] = None

    def compose(self) -> ComposeResult:
        with Horizontal(id="hort-prod-detail"):
            yield Markdown("", id="md-prod")
            with Vertical(id="div-prod-order"):
                yield Label("Size")
                yield Select([], id="select-size", prompt="Choose a size")
                yield Label("Quantity")
                with Horizontal():
                    yield Button("-", id="btn-sub-qty")
                    yield Input(value="1", id="input-order-qty", type="integer")
                    yield Button("+", id="btn-add-qty")
                yield Label("", id="label-availability")
                with Horizontal():
                    yield Button("Go Back", id="btn-quit")
                    yield Button("Add to Cart", id="btn-addcart", variant="primary")

    async def on_mount(self):
        self._prod = await self.app.state.catalog.get_product(self._pid)
        if self._prod is None:
            self.notify("This product is no longer available.", severity="error")
            self.dismiss(False)
            return
        prod = self._prod

        rows = [
            ["Price", format_money(effective_unit_price(prod.price, prod.discount_percentage))],
            ["Category", prod.category or "-"],
            ["Description", prod.descr or "-"],
        ]
        if prod.discount_percentage:
            rows.insert(1, ["Discount", f"{prod.discount_percentage}% off {format_money(prod.price)}"])
        await self.query_one("#md-prod", Markdown).update(
            f"### {prod.name}\n\n" + generate_markdown_table(["Attribute", "Value"], rows, ["l", "l"])
        )

        select = self.query_one("#select-size", Select)
        if prod.has_sizes:
            select.set_options(
                [
                    (f"{s.size} ({available_stock(prod, s.size)} left)", s.size)
                    for s in prod.sizes
                ]
            )
        else:
            select.disabled = True
        self.refresh_controls()
        self.query_one("#input-order-qty").focus()

    @property
    def selected_size(self) -> Optional[str]:
        value = self.query_one("#select-size", Select).value
        return value if isinstance(value, str) else None

    def _in_cart(self) -> int:
        item = self.app.state.cart.get(self._pid, self.selected_size)
        return item.quantity if item else 0

    def refresh_controls(self) -> None:
        """Enable add-to-cart only when the stock check passes."""
        if self._prod is None:
            return
        size = self.selected_size
        in_cart = self._in_cart()
        ok = can_fulfill(self._prod, in_cart + self.order_qty, size)

        btn = self.query_one("#btn-addcart", Button)
        btn.disabled = not ok
        label = self.query_one("#label-availability", Label)
        if self._prod.has_sizes and size is None:
            label.update("Select a size.")
        else:
            left = available_stock(self._prod, size)
            label.update(f"{left} available, {in_cart} in your cart.")
            btn.label = "Add to Cart" if left > 0 else "Out of Stock"
        self.query_one("#btn-sub-qty", Button).disabled = self.order_qty <= 1

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    @on(Select.Changed, "#select-size")
    def handle_size_change(self) -> None:
        self.refresh_controls()

    @on(Input.Changed, "#input-order-qty")
    def handle_qty_input(self, message: Input.Changed) -> None:
        if message.value.isdigit() and int(message.value) >= 1:
            self.order_qty = int(message.value)

    def watch_order_qty(self, qty: int):
        qty_input = self.query_one("#input-order-qty", Input)
        if qty_input.value != str(qty):
            qty_input.value = str(qty)
        self.refresh_controls()

    @on(Button.Pressed, "#btn-add-qty")
    def handle_add_qty(self):
        self.order_qty += 1

    @on(Button.Pressed, "#btn-sub-qty")
    def handle_sub_qty(self):
        if self.order_qty > 1:
            self.order_qty -= 1

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)

    @on(Button.Pressed, "#btn-addcart")
    @work(exclusive=True)
    async def handle_addcart(self):
        # re-read stock; the catalog may have moved since the modal opened
        self._prod = await self.app.state.catalog.get_product(self._pid)
        if self._prod is None:
            self.notify("This product is no longer available.", severity="error")
            self.dismiss(False)
            return
        item = self.app.state.cart.add(self._prod, self.order_qty, self.selected_size)
        if item is None:
            self.notify("Not enough stock for that quantity.", severity="error")
            self.refresh_controls()
            return
        self.app.notify(f"{item.name} x{item.quantity} in cart.")
        self.dismiss(True)
