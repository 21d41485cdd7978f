from typing import Dict, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Label, MarkdownViewer, Select

import db.crud as crud
from db.models import Order, OrderStatus
from shop.errors import InvalidTransition, OrderNotFound
from shop.lifecycle import allowed_transitions
from shop.pricing import format_money
from utils.messages import ModeSwitchedMessage, NewOrderMessage, OrderStatusChangedMessage
from utils.pure import order_markdown
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal, TrackingNumberModal

_ACTION_LABELS = {
    OrderStatus.PROCESSING: "Start Processing",
    OrderStatus.SHIPPED: "Mark Shipped",
    OrderStatus.DELIVERED: "Mark Delivered",
    OrderStatus.CANCELLED: "Cancel Order",
}


def _customer(order: Order) -> str:
    if order.is_guest:
        return f"{order.guest_name} (guest)"
    return f"user {order.user_id}"


class AdminOrdersScreen(BaseScreen):
    """
    All orders, filterable by status. The buttons under the detail view are
    exactly the transitions the highlighted order allows.
    """

    def __init__(self) -> None:
        super().__init__()
        self._orders: Dict[int, Order] = {}
        self._selected: Optional[int] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-order-filter"):
            yield Select(
                [(s.value.capitalize(), s.value) for s in OrderStatus],
                id="select-status",
                prompt="All statuses",
            )
            yield Label("", id="label-status-counts")
        with Vertical():
            yield DataTable(id="table-orders")
            yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
        yield Horizontal(id="hort-transitions")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Order No", "Placed", "Customer", "Status", "Total")

    @on(Select.Changed, "#select-status")
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @on(NewOrderMessage)
    @on(OrderStatusChangedMessage)
    def handle_refresh(self) -> None:
        self.reload()

    @property
    def status_filter(self) -> Optional[OrderStatus]:
        value = self.query_one("#select-status", Select).value
        return OrderStatus(value) if isinstance(value, str) else None

    @work(exclusive=True, group="admin-orders")
    async def reload(self) -> None:
        counts = await crud.order_status_counts()
        self.query_one("#label-status-counts", Label).update(
            "  ".join(f"{s.value}: {n}" for s, n in counts.items())
        )

        orders, _ = await self.app.state.backend.list_all_orders(self.status_filter)
        self._orders = {o.ono: o for o in orders}

        table = self.query_one(DataTable)
        table.clear()
        for o in orders:
            table.add_row(
                o.ono,
                f"{o.created_at:%Y-%m-%d %H:%M}",
                _customer(o),
                o.status.value,
                format_money(o.total),
                key=str(o.ono),
            )

        if self._selected in self._orders:
            table.move_cursor(row=table.get_row_index(str(self._selected)))
        elif orders:
            table.move_cursor(row=0)
        await self.show_order(self._orders.get(self._selected) or (orders[0] if orders else None))

    @on(DataTable.RowHighlighted)
    async def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is None or event.row_key.value is None:
            return
        await self.show_order(self._orders.get(int(event.row_key.value)))

    async def show_order(self, order: Optional[Order]) -> None:
        self._selected = order.ono if order else None
        md = order_markdown(order) if order else "### No orders."
        if order and order.is_guest:
            md += f"\n\nGuest contact: {order.guest_email}"
        self.query_one("#md-order-detail", MarkdownViewer).document.update(md)

        bar = self.query_one("#hort-transitions")
        await bar.remove_children()
        if order is None:
            return
        await bar.mount_all(
            Button(
                _ACTION_LABELS[s],
                name=s.value,
                variant="error" if s == OrderStatus.CANCELLED else "primary",
                classes="btn-transition",
            )
            for s in allowed_transitions(order.status)
        )

    @on(Button.Pressed, ".btn-transition")
    @work()
    async def handle_transition(self, event: Button.Pressed) -> None:
        ono = self._selected
        if ono is None:
            return
        requested = OrderStatus(event.button.name)
        lifecycle = self.app.state.lifecycle

        try:
            if requested == OrderStatus.SHIPPED:
                tracking = await self.app.push_screen_wait(TrackingNumberModal(ono))
                if not tracking:
                    return
                order = await lifecycle.ship(ono, tracking)
            else:
                if requested == OrderStatus.CANCELLED and not await self.app.push_screen_wait(
                    DialogModal(
                        f"Cancel order #{ono}? This cannot be undone.",
                        primary_text="Cancel Order",
                        secondary_text="Keep",
                        tone="error",
                    )
                ):
                    return
                order = await lifecycle.change_status(ono, requested)
        except (InvalidTransition, OrderNotFound) as e:
            self.notify(str(e), severity="error")
            self.reload()
            return

        self.notify(f"Order #{order.ono} is now {order.status.value}.")
        self.post_message(OrderStatusChangedMessage(order.ono, order.status))
