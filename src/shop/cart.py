from __future__ import annotations

import dataclasses
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from db.models import CartItem, Product
from shop.errors import PersistenceFailure
from shop.pricing import ZERO, line_total, to_decimal
from shop.stock import available_stock, can_fulfill
from utils.logger import get_logger

_logger = get_logger(__name__)

GUEST_CART_KEY = "guest-cart"


def user_cart_key(user_id: int) -> str:
    return f"user-cart-{user_id}"


def _to_int(val) -> Optional[int]:
    """Parse free-text quantities; None when the value is not a whole number."""
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, float):
        return int(val) if val.is_integer() else None
    try:
        return int(str(val).strip())
    except (TypeError, ValueError):
        return None


def _first_image(image) -> Optional[str]:
    if isinstance(image, (list, tuple)):
        return str(image[0]) if image else None
    return image or None


def item_to_json(item: CartItem) -> Dict[str, Any]:
    return {
        "productId": item.product_id,
        "name": item.name,
        "unitPrice": str(item.unit_price),
        "quantity": item.quantity,
        "selectedSize": item.selected_size,
        "image": item.image,
        "discountPercentage": (
            str(item.discount_percentage)
            if item.discount_percentage is not None
            else None
        ),
    }


def item_from_json(data: Dict[str, Any]) -> Optional[CartItem]:
    """Rebuild a CartItem from its stored form; None if the entry is unusable."""
    try:
        quantity = _to_int(data.get("quantity"))
        product_id = _to_int(data.get("productId"))
        if quantity is None or quantity < 1 or product_id is None:
            return None
        discount = data.get("discountPercentage")
        return CartItem(
            product_id=product_id,
            name=str(data.get("name", "")),
            unit_price=to_decimal(data["unitPrice"]),
            quantity=quantity,
            selected_size=data.get("selectedSize"),
            image=data.get("image"),
            discount_percentage=to_decimal(discount) if discount is not None else None,
        )
    except (KeyError, TypeError, AttributeError, InvalidOperation):
        return None


class CartStore:
    """
    The shopper's cart for one browsing session.

    Items are kept in insertion order with at most one entry per
    ``(product_id, selected_size)``. Every mutation is written to ``store``
    under ``key``; write failures are logged and otherwise ignored, so none of
    the mutating methods raise.
    """

    def __init__(self, store, key: str = GUEST_CART_KEY, enforce_stock: bool = True):
        self._store = store
        self.key = key
        self.enforce_stock = enforce_stock
        self._items: List[CartItem] = []
        self.restore()

    # ---------- reads ----------

    @property
    def items(self) -> Tuple[CartItem, ...]:
        return tuple(self._items)

    @property
    def is_empty(self) -> bool:
        return not self._items

    def get(self, product_id: int, selected_size: Optional[str] = None) -> Optional[CartItem]:
        idx = self._index_of(product_id, selected_size)
        return self._items[idx] if idx is not None else None

    def total(self) -> Decimal:
        """Sum of line totals, after per-item discounts."""
        return sum((line_total(i) for i in self._items), ZERO)

    def count(self) -> int:
        return sum(i.quantity for i in self._items)

    def _index_of(self, product_id: int, selected_size: Optional[str]) -> Optional[int]:
        for idx, item in enumerate(self._items):
            if item.product_id == product_id and item.selected_size == selected_size:
                return idx
        return None

    # ---------- mutations ----------

    def add(
        self,
        product: Product,
        quantity: Union[int, str, None] = 1,
        selected_size: Optional[str] = None,
    ) -> Optional[CartItem]:
        """
        Add ``quantity`` of a product (and size) to the cart.

        Non-numeric or non-positive quantities count as 1. Returns the
        resulting cart item, or None when there is not enough stock for the
        combined quantity, in which case the cart is left as it was.
        """
        qty = _to_int(quantity)
        if qty is None or qty < 1:
            qty = 1

        idx = self._index_of(product.pid, selected_size)
        current = self._items[idx].quantity if idx is not None else 0

        if self.enforce_stock and not can_fulfill(product, current + qty, selected_size):
            _logger.info(
                f"Rejected add of {qty} x {product.pid} (size={selected_size}): "
                f"{available_stock(product, selected_size)} available, {current} in cart."
            )
            return None

        if idx is not None:
            item = dataclasses.replace(self._items[idx], quantity=current + qty)
            self._items[idx] = item
        else:
            item = CartItem(
                product_id=product.pid,
                name=product.name,
                unit_price=product.price,
                quantity=qty,
                selected_size=selected_size,
                image=_first_image(product.image),
                discount_percentage=product.discount_percentage,
            )
            self._items.append(item)

        self._persist()
        return item

    def update_quantity(
        self,
        product_id: int,
        selected_size: Optional[str],
        new_quantity: Union[int, str, None],
        product: Optional[Product] = None,
    ) -> bool:
        """Set an item's quantity. Returns True when the cart changed.

        Unparseable input is ignored; zero or less removes the item. When
        ``product`` is passed, increases are checked against its stock.
        """
        qty = _to_int(new_quantity)
        if qty is None:
            return False
        if qty <= 0:
            return self.remove(product_id, selected_size)

        idx = self._index_of(product_id, selected_size)
        if idx is None:
            return False
        item = self._items[idx]
        if item.quantity == qty:
            return False

        if (
            self.enforce_stock
            and product is not None
            and qty > item.quantity
            and not can_fulfill(product, qty, selected_size)
        ):
            _logger.info(f"Rejected increase of {product_id} (size={selected_size}) to {qty}.")
            return False

        self._items[idx] = dataclasses.replace(item, quantity=qty)
        self._persist()
        return True

    def remove(self, product_id: int, selected_size: Optional[str] = None) -> bool:
        idx = self._index_of(product_id, selected_size)
        if idx is None:
            return False
        del self._items[idx]
        self._persist()
        return True

    def clear(self) -> None:
        self._items = []
        self._persist()

    def absorb(self, other: Union["CartStore", Iterable[CartItem]]) -> int:
        """
        Merge another cart's items into this one, e.g. a guest cart at sign-in.

        Quantities for the same key are summed; the existing entry keeps its
        price snapshot. Returns the number of items merged.
        """
        incoming = other.items if isinstance(other, CartStore) else tuple(other)
        for item in incoming:
            idx = self._index_of(item.product_id, item.selected_size)
            if idx is None:
                self._items.append(item)
            else:
                existing = self._items[idx]
                self._items[idx] = dataclasses.replace(
                    existing, quantity=existing.quantity + item.quantity
                )
        if incoming:
            self._persist()
        return len(incoming)

    # ---------- persistence ----------

    def restore(self) -> None:
        """Reload items from the store, dropping entries that no longer parse."""
        try:
            data = self._store.load(self.key)
        except PersistenceFailure as e:
            _logger.warning(f"Cart {self.key} could not be loaded: {e}")
            return
        if not isinstance(data, list):
            return

        items: List[CartItem] = []
        for entry in data:
            item = item_from_json(entry) if isinstance(entry, dict) else None
            if item is None:
                _logger.warning(f"Dropping malformed cart entry in {self.key}: {entry!r}")
                continue
            idx = next(
                (i for i, it in enumerate(items) if it.key == item.key), None
            )
            if idx is None:
                items.append(item)
            else:
                items[idx] = dataclasses.replace(
                    items[idx], quantity=items[idx].quantity + item.quantity
                )
        self._items = items

    def _persist(self) -> None:
        try:
            self._store.save(self.key, [item_to_json(i) for i in self._items])
        except (PersistenceFailure, OSError, TypeError, ValueError) as e:
            # the in-memory cart stays authoritative for this session
            _logger.warning(f"Could not persist cart {self.key}: {e}")
