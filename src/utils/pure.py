# markdown renderers shared by screens; no I/O here

from typing import Iterable, List, Literal, Optional, Sequence

from db.models import Order
from shop.pricing import PriceBreakdown, effective_unit_price, format_money, line_total

Align = Literal["l", "c", "r"]

_ALIGN_MARKERS = {"l": ":---", "c": ":---:", "r": "---:"}


def generate_markdown_table(
    headers: Optional[Sequence],
    rows: Sequence[Sequence],
    aligns: Optional[Sequence[Align]] = None,
) -> str:
    """
    Generate a Markdown table.

    Args:
        headers: column headers, or None to promote the first row.
        rows: table body; cells are converted with str().
        aligns: one of 'l', 'c', 'r' per column, centred by default.

    Returns:
        str: Markdown table, or "" when there are no rows.
    """
    if not rows:
        return ""
    if not headers:
        headers, rows = rows[0], rows[1:]

    header_cells = [str(h) for h in headers]
    aligns = list(aligns or ["c"] * len(header_cells))
    if len(aligns) != len(header_cells):
        raise ValueError("Length of aligns must match number of headers.")

    def line(cells: Iterable) -> str:
        return "| " + " | ".join(str(c) for c in cells) + " |"

    out: List[str] = [line(header_cells), line(_ALIGN_MARKERS[a] for a in aligns)]
    out.extend(line(row) for row in rows)
    return "\n".join(out)


def items_table(items) -> str:
    """Line items (cart or order) as a Markdown table."""
    rows = []
    for item in items:
        size = getattr(item, "selected_size", getattr(item, "size", None))
        unit = effective_unit_price(item.unit_price, item.discount_percentage)
        rows.append(
            [
                item.name,
                size or "-",
                item.quantity,
                format_money(unit),
                format_money(line_total(item)),
            ]
        )
    return generate_markdown_table(
        ["Product", "Size", "Qty", "Unit Price", "Line Total"],
        rows,
        ["l", "c", "r", "r", "r"],
    )


def breakdown_markdown(breakdown: PriceBreakdown) -> str:
    r = breakdown.rounded()
    return (
        f"**Subtotal:** {format_money(r.subtotal)}  \n"
        f"**Shipping:** {format_money(r.shipping)}  \n"
        f"**Tax:** {format_money(r.tax)}  \n"
        f"**Total:** {format_money(r.total)}"
    )


def order_markdown(order: Order) -> str:
    addr = order.shipping_address
    ship_to = ", ".join(
        p for p in [addr.address1, addr.address2, addr.city, addr.state, addr.postal_code] if p
    )
    header = (
        f"### Order #{order.ono}\n"
        f"Placed: {order.created_at:%Y-%m-%d %H:%M}  \n"
        f"Status: **{order.status.value}**  \n"
    )
    if order.tracking_number:
        header += f"Tracking: `{order.tracking_number}`  \n"
    header += f"Ship to: {addr.full_name}, {ship_to}\n\n"
    totals = breakdown_markdown(
        PriceBreakdown(order.subtotal, order.shipping, order.tax, order.total)
    )
    return header + items_table(order.items) + "\n\n" + totals
