from math import ceil
from typing import Dict

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.reactive import reactive
from textual.validation import Number
from textual.widgets import Button, DataTable, Input, Label, MarkdownViewer

from db.models import Order
from shop.pricing import format_money
from utils.messages import ModeSwitchedMessage, NewOrderMessage
from utils.pure import order_markdown
from views.base_screen import BaseScreen

PAGE_SIZE = 5

NO_SELECTION = "### Select an order to view its details."


class PastOrdersScreen(BaseScreen):
    """
    Order history for the signed-in customer, newest first.

    The highlighted order is rendered above the table; the pager underneath
    steps through PAGE_SIZE orders at a time.
    """

    BINDINGS = [
        Binding("enter", "noop", "Order Detail", show=True, key_display="⏎"),
    ]

    page = reactive(1)
    pages = reactive(1)

    def __init__(self) -> None:
        super().__init__()
        self._orders: Dict[int, Order] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
            yield DataTable(id="table-orders", cursor_type="row", zebra_stripes=True)
        with Horizontal(id="div-pager"):
            yield Button("Reload", id="btn-reload")
            yield Button("<", id="btn-page-prev")
            yield Input("1", id="input-page-no", type="integer")
            yield Label(" / 1", id="label-page-count")
            yield Button(">", id="btn-page-next")

    def on_mount(self) -> None:
        self.query_one(DataTable).add_columns("Order No", "Placed", "Status", "Tracking", "Total")
        self.fetch_page(self.page)

    @on(Button.Pressed, "#btn-reload")
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @on(NewOrderMessage)
    def reload(self):
        self.fetch_page(self.page)

    @on(DataTable.RowHighlighted, "#table-orders")
    def show_highlighted(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is None or event.row_key.value is None:
            return
        self.show_order(self._orders.get(int(event.row_key.value)))

    def watch_page(self, page: int) -> None:
        self.query_one("#input-page-no", Input).value = str(page)
        self.fetch_page(page)

    def watch_pages(self, pages: int) -> None:
        self.query_one("#label-page-count", Label).content = f" / {pages}"
        self.query_one("#input-page-no", Input).validators = [Number(minimum=1, maximum=pages)]

    def _sync_pager(self) -> None:
        self.query_one("#btn-page-prev", Button).disabled = self.page <= 1
        self.query_one("#btn-page-next", Button).disabled = self.page >= self.pages

    @on(Button.Pressed, "#btn-page-prev")
    def page_back(self) -> None:
        self.page = max(self.page - 1, 1)

    @on(Button.Pressed, "#btn-page-next")
    def page_forward(self) -> None:
        self.page = min(self.page + 1, self.pages)

    @on(Input.Changed, "#input-page-no")
    def jump_to_page(self, event: Input.Changed) -> None:
        if not event.value.isdigit():
            return
        self.page = max(1, min(int(event.value), self.pages))

    @work(exclusive=True, group="orders")
    async def fetch_page(self, page: int) -> None:
        state = self.app.state
        table = self.query_one(DataTable)
        table.clear()
        self._orders = {}

        if state.uid is None:
            self.pages = 1
            self._sync_pager()
            self.show_order(None, "### Sign in to see your order history.")
            return

        orders, total = await state.backend.list_orders(state.uid, page)
        self.pages = max(ceil(total / PAGE_SIZE), 1)
        self._sync_pager()

        for o in orders:
            self._orders[o.ono] = o
            table.add_row(
                o.ono,
                f"{o.created_at:%Y-%m-%d %H:%M}",
                o.status.value,
                o.tracking_number or "-",
                format_money(o.total),
                key=str(o.ono),
            )

        if not orders:
            self.show_order(None, "### You have not placed any orders yet.")
            return
        table.move_cursor(row=0)
        self.show_order(orders[0])

    def show_order(self, order: Order | None, placeholder: str = NO_SELECTION) -> None:
        md = order_markdown(order) if order else placeholder
        self.query_one("#md-order-detail", MarkdownViewer).document.update(md)
