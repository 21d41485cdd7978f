"""Stock checks shared by the cart, the front end and the order backend.

``can_fulfill`` is the single rule for "is there enough stock". Client-side
callers use it advisorily; ``db.crud.create_order`` calls it again on freshly
read rows inside the write transaction, and only that call is authoritative.
"""

from __future__ import annotations

from typing import Iterable, Optional

from db.models import Product
from shop.errors import OutOfStock
from utils.logger import get_logger

_logger = get_logger(__name__)


def available_stock(product: Product, selected_size: Optional[str] = None) -> int:
    """Units on hand for the product, or for one size of a sized product.

    A sized product without a matching size entry has nothing available.
    """
    if product.has_sizes:
        if selected_size is None:
            return 0
        for entry in product.sizes:
            if entry.size == selected_size:
                return max(int(entry.stock), 0)
        return 0
    return max(int(product.stock), 0)


def can_fulfill(
    product: Product, requested_quantity: int, selected_size: Optional[str] = None
) -> bool:
    if product.has_sizes and selected_size is None:
        return False
    return requested_quantity <= available_stock(product, selected_size)


def ensure_can_fulfill(
    product: Product, requested_quantity: int, selected_size: Optional[str] = None
) -> None:
    """Raise OutOfStock when ``can_fulfill`` is False."""
    if not can_fulfill(product, requested_quantity, selected_size):
        raise OutOfStock(
            product.pid,
            selected_size,
            requested_quantity,
            available_stock(product, selected_size),
            name=product.name,
        )


class StockValidator:
    """Advisory re-check of line items against the catalog.

    Used before a submission is sent so that obviously stale carts fail fast;
    the backend still re-validates under its own transaction.
    """

    def __init__(self, catalog):
        self._catalog = catalog

    async def check_items(self, items: Iterable) -> None:
        for item in items:
            size = getattr(item, "selected_size", getattr(item, "size", None))
            product = await self._catalog.get_product(item.product_id)
            if product is None:
                _logger.warning(f"Product {item.product_id} vanished from catalog.")
                raise OutOfStock(item.product_id, size, item.quantity, 0, item.name)
            ensure_can_fulfill(product, item.quantity, size)
