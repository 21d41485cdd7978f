import os
import sys
import unittest
from decimal import Decimal

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db.models import CartItem, OrderItem  # noqa: E402
from shop.pricing import (  # noqa: E402
    PriceBreakdown,
    calculate,
    effective_unit_price,
    format_money,
    line_total,
    round_money,
    to_decimal,
)


def item(price, qty, discount=None, pid=1):
    return CartItem(
        product_id=pid,
        name=f"P{pid}",
        unit_price=Decimal(price),
        quantity=qty,
        discount_percentage=Decimal(discount) if discount is not None else None,
    )


class PricingTestCase(unittest.TestCase):
    def test_free_shipping_threshold_boundary(self):
        at = calculate([item("100.00", 1)])
        self.assertEqual(at.shipping, Decimal("0"))

        below = calculate([item("99.99", 1)])
        self.assertEqual(below.shipping, Decimal("10"))

    def test_tax_and_total(self):
        r = calculate([item("20.00", 5)]).rounded()
        self.assertEqual(r.subtotal, Decimal("100.00"))
        self.assertEqual(r.shipping, Decimal("0.00"))
        self.assertEqual(r.tax, Decimal("11.50"))
        self.assertEqual(r.total, Decimal("111.50"))

    def test_rounding_only_on_output(self):
        # 89.99 * 0.115 = 10.34885; total keeps the unrounded tax
        b = calculate([item("89.99", 1)])
        self.assertEqual(b.tax, Decimal("10.34885"))
        self.assertEqual(b.total, Decimal("110.33885"))
        r = b.rounded()
        self.assertEqual(r.tax, Decimal("10.35"))
        self.assertEqual(r.total, Decimal("110.34"))
        self.assertEqual(
            b.as_payload(),
            {"subtotal": "89.99", "shipping": "10.00", "tax": "10.35", "total": "110.34"},
        )

    def test_discount_applies_per_item(self):
        self.assertEqual(effective_unit_price("15.00", "10"), Decimal("13.5000"))
        self.assertEqual(line_total(item("15.00", 2, discount="10")), Decimal("27.0000"))
        # out of range discounts
        self.assertEqual(effective_unit_price("15.00", "0"), Decimal("15.00"))
        self.assertEqual(effective_unit_price("15.00", "-5"), Decimal("15.00"))
        self.assertEqual(effective_unit_price("15.00", "150"), Decimal("0"))

    def test_discount_counts_toward_free_shipping(self):
        # 2 x 55.00 at 10% off = 99.00, under the threshold
        b = calculate([item("55.00", 2, discount="10")])
        self.assertEqual(b.subtotal, Decimal("99.00"))
        self.assertEqual(b.shipping, Decimal("10"))

    def test_empty_items_price_to_zero(self):
        b = calculate([])
        self.assertEqual(b, PriceBreakdown(Decimal(0), Decimal(0), Decimal(0), Decimal(0)))

    def test_monotonic_in_quantity(self):
        others = [item("7.25", 1, pid=2), item("12.00", 3, discount="25", pid=3)]
        previous = None
        for qty in range(1, 30):
            b = calculate([item("4.99", qty)] + others)
            if previous is not None:
                self.assertGreaterEqual(b.subtotal, previous.subtotal, f"qty={qty}")
                self.assertGreaterEqual(b.subtotal + b.tax, previous.subtotal + previous.tax)
                if b.shipping == previous.shipping:
                    self.assertGreaterEqual(b.total, previous.total, f"qty={qty}")
            previous = b

    def test_total_drops_when_shipping_becomes_free(self):
        below = calculate([item("99.99", 1)])
        at = calculate([item("100.00", 1)])
        self.assertEqual(below.total, Decimal("121.48885"))
        self.assertEqual(at.total, Decimal("111.500"))
        self.assertLess(at.total, below.total)

    def test_total_is_rounded_from_the_exact_sum(self):
        # 0.505 subtotal: each component rounds up, the exact total does not
        r = calculate([item("1.01", 1, discount="50")]).rounded()
        self.assertEqual(r.subtotal, Decimal("0.51"))
        self.assertEqual(r.shipping, Decimal("10.00"))
        self.assertEqual(r.tax, Decimal("0.06"))
        self.assertEqual(r.total, Decimal("10.56"))
        self.assertEqual(r.subtotal + r.shipping + r.tax - r.total, Decimal("0.01"))

    def test_works_on_order_items(self):
        items = [
            OrderItem(product_id=1, name="A", unit_price=Decimal("30"), quantity=2, size="M"),
            OrderItem(product_id=2, name="B", unit_price=Decimal("40"), quantity=1),
        ]
        self.assertEqual(calculate(items).subtotal, Decimal("100"))

    def test_to_decimal_and_format(self):
        self.assertEqual(to_decimal(0.1), Decimal("0.1"))
        self.assertEqual(to_decimal(" 12.50 "), Decimal("12.50"))
        self.assertEqual(to_decimal(None), Decimal("0"))
        self.assertEqual(round_money(Decimal("2.345")), Decimal("2.35"))
        self.assertEqual(format_money(Decimal("1234.5")), "$1,234.50")


if __name__ == "__main__":
    unittest.main()
