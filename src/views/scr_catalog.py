from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.events import ScreenResume
from textual.widgets import Checkbox, DataTable, Input

from shop.catalog import ProductFilter
from shop.pricing import effective_unit_price, format_money
from shop.stock import available_stock
from utils.messages import CartChangedMessage
from views.base_screen import BaseScreen
from views.modal_prod_detail import ProdDetailModal


def _stock_label(product) -> str:
    if product.has_sizes:
        parts = [f"{s.size}:{available_stock(product, s.size)}" for s in product.sizes]
        return " ".join(parts) or "-"
    return str(available_stock(product))


class CatalogScreen(BaseScreen):
    """
    Product browsing; enter on a row opens the detail / add-to-cart modal.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-catalog-filter"):
            yield Input(id="input-search", placeholder="Search name or description...")
            yield Input(id="input-category", placeholder="Category")
            yield Checkbox("In stock only", id="chk-in-stock")
        yield DataTable(id="table-products")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("ID", "Name", "Category", "Price", "Stock")
        self.query_one("#input-search").focus()
        self.reload()

    @on(Input.Changed)
    @on(Checkbox.Changed)
    @on(ScreenResume)
    def handle_filter_change(self) -> None:
        self.reload()

    @work(exclusive=True)
    async def reload(self) -> None:
        product_filter = ProductFilter(
            query=self.query_one("#input-search", Input).value,
            category=self.query_one("#input-category", Input).value.strip() or None,
            in_stock_only=self.query_one("#chk-in-stock", Checkbox).value,
        )
        products = await self.app.state.catalog.list_products(product_filter)

        table = self.query_one(DataTable)
        table.clear()
        for p in products:
            price = format_money(effective_unit_price(p.price, p.discount_percentage))
            if p.discount_percentage:
                price += f" (-{p.discount_percentage}%)"
            table.add_row(
                p.pid, p.name, p.category or "-", price, _stock_label(p), key=str(p.pid)
            )

    @on(DataTable.RowSelected)
    @work()
    async def handle_open_product(self, event: DataTable.RowSelected) -> None:
        pid = int(event.row_key.value)
        if await self.app.push_screen_wait(ProdDetailModal(pid)):
            self.app.post_message(CartChangedMessage())
