"""Catalog reads, plus canonicalisation of product records at the boundary.

Raw product records arrive in several shapes: sizes as plain strings or as
``{size, stock}`` objects (under ``sizes`` or ``productSizes``), categories as a
name or as ``{name: ...}``, images as a single URL or a list. ``normalize_product``
turns all of them into one ``Product``; nothing past this module sees the raw
shapes.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Mapping, Optional

from db import crud
from db.models import Product, SizeStock
from shop.pricing import to_decimal
from utils.logger import get_logger

_logger = get_logger(__name__)


def _stock(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def _sizes(raw: Mapping[str, Any]) -> tuple:
    entries = raw.get("sizes") or raw.get("productSizes") or []
    sizes: List[SizeStock] = []
    seen = set()
    for entry in entries:
        if isinstance(entry, Mapping):
            size, stock = entry.get("size"), _stock(entry.get("stock"))
        else:
            # bare size labels carry no stock figure; treat them as sold out
            size, stock = entry, 0
        if size is None or str(size).strip() == "":
            continue
        size = str(size).strip()
        if size in seen:
            continue
        seen.add(size)
        sizes.append(SizeStock(size=size, stock=stock))
    return tuple(sizes)


_TRUE_FLAGS = {"true", "yes", "y", "1"}
_FALSE_FLAGS = {"false", "no", "n", "0", ""}


def _flag(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_FLAGS:
            return True
        if text in _FALSE_FLAGS:
            return False
        raise ValueError(f"Not a yes/no value: {value!r}")
    return bool(value)


def _category(raw: Mapping[str, Any]) -> Optional[str]:
    value = raw.get("category", raw.get("categoryName"))
    if isinstance(value, Mapping):
        value = value.get("name")
    if value is None:
        return None
    return str(value).strip() or None


def _image(raw: Mapping[str, Any]) -> Optional[str]:
    for key in ("image", "imageUrl", "images"):
        value = raw.get(key)
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        if value:
            return str(value)
    return None


def normalize_product(raw: Mapping[str, Any]) -> Product:
    """
    Build a canonical Product from a raw catalog record.

    Raises:
        ValueError: the record has no usable id, name or finite positive price,
            or a hasSizes flag that is not a yes/no value.
    """
    pid = raw.get("pid", raw.get("id"))
    try:
        pid = int(pid)
    except (TypeError, ValueError):
        raise ValueError(f"Product id is missing or not numeric: {pid!r}")

    name = str(raw.get("name") or "").strip()
    if not name:
        raise ValueError(f"Product {pid} has no name.")

    try:
        price = to_decimal(raw.get("price"))
    except InvalidOperation:
        raise ValueError(f"Product {pid} has an invalid price: {raw.get('price')!r}")
    if not price.is_finite():
        raise ValueError(f"Product {pid} has a non-finite price: {raw.get('price')!r}")
    if price <= 0:
        raise ValueError(f"Product {pid} must have a positive price.")

    sizes = _sizes(raw)
    try:
        has_sizes = _flag(raw.get("hasSizes", raw.get("has_sizes")), bool(sizes))
    except ValueError as e:
        raise ValueError(f"Product {pid} has a bad hasSizes flag: {e}")

    discount = raw.get("discountPercentage", raw.get("discount_percentage"))
    discount_pct: Optional[Decimal] = None
    if discount not in (None, ""):
        try:
            value = to_decimal(discount)
        except InvalidOperation:
            value = None
        if value is not None and value.is_finite():
            discount_pct = min(max(value, Decimal("0")), Decimal("100"))
        else:
            _logger.warning(f"Ignoring bad discount {discount!r} on product {pid}.")

    return Product(
        pid=pid,
        name=name,
        price=price,
        stock=0 if has_sizes else _stock(raw.get("stock")),
        has_sizes=has_sizes,
        sizes=sizes if has_sizes else (),
        category=_category(raw),
        discount_percentage=discount_pct or None,
        image=_image(raw),
        descr=str(raw.get("description") or raw.get("descr") or ""),
    )


@dataclass(frozen=True)
class ProductFilter:
    query: str = ""
    category: Optional[str] = None
    in_stock_only: bool = False


class CatalogReader:
    """Read-only product access for the engine."""

    async def get_product(self, pid: int) -> Optional[Product]:
        return await crud.get_product(pid)

    async def list_products(self, product_filter: Optional[ProductFilter] = None) -> List[Product]:
        f = product_filter or ProductFilter()
        return await crud.list_products(f.query, f.category, f.in_stock_only)

    async def list_categories(self) -> List[str]:
        return await crud.list_categories()

    async def import_products(self, records: Iterable[Mapping[str, Any]]) -> int:
        """Normalise and store raw records; bad records are logged and skipped."""
        imported = 0
        for raw in records:
            try:
                product = normalize_product(raw)
            except ValueError as e:
                _logger.warning(f"Skipping product record: {e}")
                continue
            await crud.upsert_product(product)
            imported += 1
        _logger.info(f"Imported {imported} product(s).")
        return imported
