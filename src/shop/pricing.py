"""Price derivation for carts and order snapshots.

Everything here is pure: the same items always give the same breakdown. Amounts
stay unrounded Decimals until ``rounded()`` / ``as_payload()`` is called, which
is done only when a value is displayed or sent to the order backend.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, Optional, Union

FREE_SHIPPING_THRESHOLD = Decimal("100")
FLAT_SHIPPING_FEE = Decimal("10")
TAX_RATE = Decimal("0.115")

CENT = Decimal("0.01")
ZERO = Decimal("0")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Optional[Number]) -> Decimal:
    """Convert prices coming from json, sqlite or user input to Decimal."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # go through str so 0.1 stays 0.1
        return Decimal(repr(value))
    return Decimal(str(value).strip())


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Number) -> str:
    return f"${round_money(to_decimal(value)):,.2f}"


def effective_unit_price(
    unit_price: Number, discount_percentage: Optional[Number] = None
) -> Decimal:
    price = to_decimal(unit_price)
    if discount_percentage is None:
        return price
    pct = to_decimal(discount_percentage)
    if pct <= 0:
        return price
    pct = min(pct, Decimal("100"))
    return price * (1 - pct / 100)


def line_total(item) -> Decimal:
    """Total for a CartItem or OrderItem (both carry the same price fields)."""
    return effective_unit_price(item.unit_price, item.discount_percentage) * int(
        item.quantity
    )


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal

    def rounded(self) -> "PriceBreakdown":
        return PriceBreakdown(
            subtotal=round_money(self.subtotal),
            shipping=round_money(self.shipping),
            tax=round_money(self.tax),
            total=round_money(self.total),
        )

    def as_payload(self) -> Dict[str, str]:
        r = self.rounded()
        return {
            "subtotal": str(r.subtotal),
            "shipping": str(r.shipping),
            "tax": str(r.tax),
            "total": str(r.total),
        }


def shipping_for(subtotal: Decimal) -> Decimal:
    if subtotal >= FREE_SHIPPING_THRESHOLD:
        return ZERO
    return FLAT_SHIPPING_FEE


def calculate(items: Iterable) -> PriceBreakdown:
    """
    Derive subtotal, shipping, tax and total for a list of line items.

    Args:
        items: CartItem or OrderItem records.

    Returns:
        PriceBreakdown with unrounded Decimal amounts.
    """
    items = list(items)
    if not items:
        # nothing to ship
        return PriceBreakdown(ZERO, ZERO, ZERO, ZERO)
    subtotal = sum((line_total(i) for i in items), ZERO)
    shipping = shipping_for(subtotal)
    tax = subtotal * TAX_RATE
    return PriceBreakdown(
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        total=subtotal + shipping + tax,
    )
