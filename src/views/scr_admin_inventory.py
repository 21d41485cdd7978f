from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.validation import Number
from textual.widgets import Button, Input, Label, MarkdownViewer, OptionList, Select
from textual.widgets.option_list import Option

import db.crud as crud
from db.models import Product
from shop.catalog import ProductFilter
from shop.pricing import format_money
from utils.pure import generate_markdown_table
from views.base_screen import BaseScreen


class AdminInventoryScreen(BaseScreen):
    """
    Find a product by name, then change its price or stock.
    Sized products keep stock per size, so a size must be picked first.
    """

    pid: Optional[int] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield Input(id="input-product-query", placeholder="Product name or description...")
            yield OptionList(id="optlist-matches")
            yield MarkdownViewer(id="md-product-card", show_table_of_contents=False)
            with Horizontal(id="div-stock-editor"):
                with Vertical():
                    yield Label("Price ($):")
                    yield Input(
                        id="input-price", type="number", validators=[Number(minimum=0.01)]
                    )
                with Vertical():
                    yield Label("Size:")
                    yield Select([], id="select-size", prompt="-")
                with Vertical():
                    yield Label("Stock:")
                    yield Input(id="input-stock", type="integer", validators=[Number(minimum=0)])
                yield Button("Save", id="btn-save-product", variant="success")

    def on_mount(self) -> None:
        self.query_one("#input-product-query", Input).focus()
        self._toggle(matches=False, editor=False)

    def _toggle(self, matches: bool, editor: bool) -> None:
        self.query_one("#optlist-matches").display = matches
        self.query_one("#md-product-card").display = editor
        self.query_one("#div-stock-editor").display = editor

    @on(Input.Changed, "#input-product-query")
    def handle_query(self, message: Input.Changed) -> None:
        self._toggle(matches=True, editor=self.pid is not None)
        self.search(message.value)

    @on(OptionList.OptionSelected, "#optlist-matches")
    def handle_pick(self, message: OptionList.OptionSelected) -> None:
        self.pid = int(message.option.id)
        self._toggle(matches=False, editor=True)
        self.load_product()

    @work(exclusive=True)
    async def search(self, text: str) -> None:
        products = await self.app.state.catalog.list_products(ProductFilter(query=text))
        matches = self.query_one("#optlist-matches", OptionList)
        matches.clear_options()
        matches.add_options(
            Option(f"{p.pid}  {p.name}  ({format_money(p.price)})", id=str(p.pid))
            for p in products
        )

    @work(exclusive=True)
    async def load_product(self) -> None:
        product = await crud.get_product(self.pid)
        if product is None:
            self.notify("Product not found.", severity="error")
            return

        if product.has_sizes:
            stock_rows = [[f"Stock ({s.size})", s.stock] for s in product.sizes]
        else:
            stock_rows = [["Stock", product.stock]]
        discount = product.discount_percentage
        card = generate_markdown_table(
            ["Attribute", "Value"],
            [
                ["ID", product.pid],
                ["Price", format_money(product.price)],
                ["Discount", f"{discount}%" if discount else "-"],
                ["Category", product.category or "-"],
                *stock_rows,
            ],
            ["l", "l"],
        )
        await self.query_one("#md-product-card", MarkdownViewer).document.update(
            f"### {product.name}\n\n{card}"
        )

        self.query_one("#input-price", Input).value = str(product.price)
        sizes = self.query_one("#select-size", Select)
        sizes.set_options((s.size, s.size) for s in product.sizes)
        sizes.disabled = not product.has_sizes
        if product.sizes:
            sizes.value = product.sizes[0].size
        self._fill_stock(product)

    def _fill_stock(self, product: Product) -> None:
        stock = product.stock
        if product.has_sizes:
            chosen = self.query_one("#select-size", Select).value
            stock = next((s.stock for s in product.sizes if s.size == chosen), "")
        self.query_one("#input-stock", Input).value = str(stock)

    @on(Select.Changed, "#select-size")
    @work(exclusive=True, group="size")
    async def handle_size(self) -> None:
        if self.pid is None:
            return
        product = await crud.get_product(self.pid)
        if product is not None:
            self._fill_stock(product)

    def _read_price(self) -> Optional[Decimal]:
        raw = self.query_one("#input-price", Input).value.strip()
        if not raw:
            return None
        try:
            return Decimal(raw)
        except InvalidOperation:
            return Decimal(0)

    @on(Button.Pressed, "#btn-save-product")
    @work(exclusive=True)
    async def save(self) -> None:
        product = await crud.get_product(self.pid)
        if product is None:
            return

        price = self._read_price()
        if price is not None and price <= 0:
            price_input = self.query_one("#input-price", Input)
            price_input.add_class("-invalid")
            price_input.focus()
            return
        self.query_one("#input-price", Input).remove_class("-invalid")
        raw_stock = self.query_one("#input-stock", Input).value
        stock = int(raw_stock) if raw_stock.isdigit() else None

        changed = False
        if price is not None and price != product.price:
            changed |= await crud.update_product_price_stock(product.pid, price, None)
        if stock is not None and product.has_sizes:
            size = self.query_one("#select-size", Select).value
            if isinstance(size, str):
                changed |= await crud.set_size_stock(product.pid, size, stock)
        elif stock is not None and stock != product.stock:
            changed |= await crud.update_product_price_stock(product.pid, None, stock)

        if changed:
            self.notify(f"Saved {product.name}.")
        else:
            self.notify("Nothing changed.", severity="warning")
        self.load_product()
