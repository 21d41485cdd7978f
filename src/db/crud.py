# src/db/crud.py
from __future__ import annotations

import json
import random
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

import aiosqlite

from db import models
from db.database import connect
from shop.errors import InvalidTransition, OrderNotFound, OutOfStock, ValidationError
from shop.lifecycle import check_transition
from shop.pricing import calculate, round_money, to_decimal
from shop.stock import available_stock
from utils.logger import get_logger

_logger = get_logger(__name__)


def _money(value: Decimal) -> str:
    return str(round_money(value))


def _opt_decimal(val) -> Optional[Decimal]:
    return to_decimal(val) if val is not None else None


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


# ---------------------------
# Users
# ---------------------------


async def get_user(uid: int) -> Optional[models.User]:
    """Return a User object for the given uid, or None if not found."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT uid, name, email, role FROM users WHERE uid = ?;",
            (uid,),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    return models.User(uid=int(row[0]), name=row[1], email=row[2], role=row[3])


# ---------------------------
# Catalog
# ---------------------------

_PRODUCT_COLUMNS = "pid, name, price, stock, has_sizes, category, discount_pct, image, descr"


def _row_to_product(row, sizes: Sequence[models.SizeStock]) -> models.Product:
    return models.Product(
        pid=int(row[0]),
        name=row[1],
        price=to_decimal(row[2]),
        stock=int(row[3]),
        has_sizes=bool(row[4]),
        sizes=tuple(sizes),
        category=row[5],
        discount_percentage=_opt_decimal(row[6]),
        image=row[7],
        descr=row[8] or "",
    )


async def _sizes_for(
    conn: aiosqlite.Connection, pids: Sequence[int]
) -> Dict[int, List[models.SizeStock]]:
    sizes: Dict[int, List[models.SizeStock]] = defaultdict(list)
    if not pids:
        return sizes
    marks = ", ".join("?" * len(pids))
    cur = await conn.execute(
        f"SELECT pid, size, stock FROM product_sizes WHERE pid IN ({marks}) ORDER BY pid, position;",
        tuple(pids),
    )
    for row in await cur.fetchall():
        sizes[int(row[0])].append(models.SizeStock(size=row[1], stock=int(row[2])))
    await cur.close()
    return sizes


async def _fetch_product(conn: aiosqlite.Connection, pid: int) -> Optional[models.Product]:
    cur = await conn.execute(
        f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE pid = ?;", (pid,)
    )
    row = await cur.fetchone()
    await cur.close()
    if not row:
        return None
    sizes = await _sizes_for(conn, [pid])
    return _row_to_product(row, sizes.get(pid, []))


async def get_product(pid: int) -> Optional[models.Product]:
    """Fetch a product by pid, with its size rows."""
    async with connect() as conn:
        return await _fetch_product(conn, pid)


async def list_products(
    query: str = "",
    category: Optional[str] = None,
    in_stock_only: bool = False,
) -> List[models.Product]:
    """
    Case-insensitive search over name/descr, optionally limited to a category.
    An empty query returns every product, ordered by pid.
    """
    conds: List[str] = []
    params: List[str] = []
    phrase = (query or "").strip().lower()
    if phrase:
        like = f"%{phrase}%"
        conds.append("(LOWER(name) LIKE ? OR LOWER(descr) LIKE ?)")
        params.extend([like, like])
    if category:
        conds.append("LOWER(category) = ?")
        params.append(category.strip().lower())
    where = f"WHERE {' AND '.join(conds)}" if conds else ""

    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_PRODUCT_COLUMNS} FROM products {where} ORDER BY pid;",
            tuple(params),
        )
        rows = await cur.fetchall()
        await cur.close()
        sizes = await _sizes_for(conn, [int(r[0]) for r in rows])

    products = [_row_to_product(r, sizes.get(int(r[0]), [])) for r in rows]
    if in_stock_only:
        products = [p for p in products if _has_any_stock(p)]
    return products


def _has_any_stock(product: models.Product) -> bool:
    if product.has_sizes:
        return any(available_stock(product, s.size) > 0 for s in product.sizes)
    return available_stock(product) > 0


async def list_categories() -> List[str]:
    async with connect() as conn:
        cur = await conn.execute("SELECT name FROM categories ORDER BY name;")
        rows = await cur.fetchall()
        await cur.close()
    return [r[0] for r in rows]


async def upsert_product(product: models.Product) -> None:
    """Insert or replace a product and its size rows."""
    async with connect() as conn:
        if product.category:
            await conn.execute(
                "INSERT OR IGNORE INTO categories(name) VALUES (?);",
                (product.category,),
            )
        await conn.execute(
            f"""
            INSERT INTO products({_PRODUCT_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(pid) DO UPDATE SET
                name = excluded.name,
                price = excluded.price,
                stock = excluded.stock,
                has_sizes = excluded.has_sizes,
                category = excluded.category,
                discount_pct = excluded.discount_pct,
                image = excluded.image,
                descr = excluded.descr;
            """,
            (
                product.pid,
                product.name,
                _money(product.price),
                product.stock,
                int(product.has_sizes),
                product.category,
                str(product.discount_percentage)
                if product.discount_percentage is not None
                else None,
                product.image,
                product.descr,
            ),
        )
        await conn.execute("DELETE FROM product_sizes WHERE pid = ?;", (product.pid,))
        await conn.executemany(
            "INSERT INTO product_sizes(pid, position, size, stock) VALUES (?, ?, ?, ?);",
            [(product.pid, i, s.size, s.stock) for i, s in enumerate(product.sizes)],
        )
        await conn.commit()


async def update_product_price_stock(
    pid: int,
    new_price: Optional[Decimal],
    new_stock: Optional[int],
) -> bool:
    """
    Update price and/or top-level stock (only provided fields). Return True if a row was updated.
    """
    if new_price is None and new_stock is None:
        return False
    sets: List[str] = []
    params: List = []
    if new_price is not None:
        sets.append("price = ?")
        params.append(_money(to_decimal(new_price)))
    if new_stock is not None:
        sets.append("stock = ?")
        params.append(int(new_stock))
    async with connect() as conn:
        res = await conn.execute(
            f"UPDATE products SET {', '.join(sets)} WHERE pid = ?;",
            (*params, pid),
        )
        await conn.commit()
        return res.rowcount > 0


async def set_size_stock(pid: int, size: str, stock: int) -> bool:
    """Set stock for one size of a sized product. Return True if the size exists."""
    async with connect() as conn:
        res = await conn.execute(
            "UPDATE product_sizes SET stock = ? WHERE pid = ? AND size = ?;",
            (int(stock), pid, size),
        )
        await conn.commit()
        return res.rowcount > 0


# ---------------------------
# Addresses
# ---------------------------

_ADDRESS_COLUMNS = (
    "aid, uid, full_name, address1, address2, city, state, postal_code, "
    "country, phone_number, is_default"
)


def _row_to_address(row) -> models.Address:
    return models.Address(
        aid=int(row[0]),
        user_id=int(row[1]),
        full_name=row[2],
        address1=row[3],
        address2=row[4],
        city=row[5],
        state=row[6],
        postal_code=row[7],
        country=row[8],
        phone_number=row[9],
        is_default=bool(row[10]),
    )


async def list_addresses(uid: int) -> List[models.Address]:
    """A user's saved addresses, default first."""
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_ADDRESS_COLUMNS} FROM addresses WHERE uid = ? ORDER BY is_default DESC, aid;",
            (uid,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_address(r) for r in rows]


async def _fetch_address(conn: aiosqlite.Connection, aid: int) -> Optional[models.Address]:
    cur = await conn.execute(
        f"SELECT {_ADDRESS_COLUMNS} FROM addresses WHERE aid = ?;", (aid,)
    )
    row = await cur.fetchone()
    await cur.close()
    return _row_to_address(row) if row else None


async def get_address(aid: int) -> Optional[models.Address]:
    async with connect() as conn:
        return await _fetch_address(conn, aid)


async def get_default_address(uid: int) -> Optional[models.Address]:
    addresses = await list_addresses(uid)
    return addresses[0] if addresses and addresses[0].is_default else None


async def save_address(uid: int, address: models.Address) -> int:
    """
    Store a new address for the user and return its aid.
    Saving a default address clears the flag on the user's other addresses.
    """
    async with connect() as conn:
        if address.is_default:
            await conn.execute(
                "UPDATE addresses SET is_default = 0 WHERE uid = ?;", (uid,)
            )
        cur = await conn.execute(
            """
            INSERT INTO addresses(uid, full_name, address1, address2, city, state,
                                  postal_code, country, phone_number, is_default)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                uid,
                address.full_name,
                address.address1,
                address.address2,
                address.city,
                address.state,
                address.postal_code,
                address.country,
                address.phone_number,
                int(address.is_default),
            ),
        )
        aid = cur.lastrowid
        await cur.close()
        await conn.commit()
    return aid


# ---------------------------
# Orders
# ---------------------------


async def _new_order_number(conn: aiosqlite.Connection) -> int:
    while True:
        ono = random.randint(100000, 999999)
        cur = await conn.execute("SELECT 1 FROM orders WHERE ono = ?;", (ono,))
        exists = await cur.fetchone()
        await cur.close()
        if not exists:
            return ono


async def _resolve_shipping(
    conn: aiosqlite.Connection, request: models.OrderRequest
) -> models.Address:
    info = request.shipping_info
    if info.address_id is not None:
        address = await _fetch_address(conn, info.address_id)
        if address is None or address.user_id != request.customer.user_id:
            raise ValidationError({"address": "Saved address not found."})
        return address
    if info.address is None:
        raise ValidationError({"address": "Shipping address is required."})
    return info.address


async def create_order(request: models.OrderRequest) -> int:
    """
    Create an order from a submitted cart snapshot and return its order number.

    Stock is re-read and checked inside a write transaction, then decremented
    together with the order insert. Any failure rolls everything back, so a
    rejected order leaves no rows and no stock change behind.
    """
    if not request.items:
        raise ValidationError({"cart": "Cart is empty."})

    expected = calculate(request.items).rounded()
    if round_money(to_decimal(request.total)) != expected.total:
        raise ValidationError({"total": "Order total does not match its items."})

    customer = request.customer
    async with connect() as conn:
        # take the write lock up front so concurrent checkouts serialise here
        await conn.execute("BEGIN IMMEDIATE;")
        try:
            if customer.user_id is not None:
                cur = await conn.execute(
                    "SELECT 1 FROM users WHERE uid = ?;", (customer.user_id,)
                )
                known = await cur.fetchone()
                await cur.close()
                if not known:
                    raise ValidationError({"customer": "Unknown user."})
            address = await _resolve_shipping(conn, request)

            # demand per stock bucket: a size row, or the product itself
            demand: Dict[Tuple[int, Optional[str]], int] = defaultdict(int)
            products: Dict[int, models.Product] = {}
            for item in request.items:
                product = products.get(item.product_id) or await _fetch_product(
                    conn, item.product_id
                )
                if product is None:
                    raise OutOfStock(item.product_id, item.size, item.quantity, 0, item.name)
                products[product.pid] = product
                bucket = item.size if product.has_sizes else None
                if product.has_sizes and bucket is None:
                    raise OutOfStock(product.pid, None, item.quantity, 0, product.name)
                demand[(product.pid, bucket)] += item.quantity

            for (pid, size), qty in demand.items():
                available = available_stock(products[pid], size)
                if qty > available:
                    raise OutOfStock(pid, size, qty, available, products[pid].name)

            ono = await _new_order_number(conn)
            now = _now()
            await conn.execute(
                """
                INSERT INTO orders(ono, uid, guest_name, guest_email, guest_phone,
                    ship_full_name, ship_address1, ship_address2, ship_city, ship_state,
                    ship_postal_code, ship_country, ship_phone,
                    subtotal, shipping, tax, total, status, tracking_number,
                    payment_ref, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, NULL, ?, ?, NULL);
                """,
                (
                    ono,
                    customer.user_id,
                    customer.name if customer.is_guest else None,
                    customer.email if customer.is_guest else None,
                    customer.phone if customer.is_guest else None,
                    address.full_name,
                    address.address1,
                    address.address2,
                    address.city,
                    address.state,
                    address.postal_code,
                    address.country,
                    address.phone_number,
                    str(expected.subtotal),
                    str(expected.shipping),
                    str(expected.tax),
                    str(expected.total),
                    models.OrderStatus.PENDING.value,
                    request.payment_ref,
                    now,
                ),
            )
            await conn.executemany(
                """
                INSERT INTO order_items(ono, line_no, pid, name, unit_price, qty, size, discount_pct)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                """,
                [
                    (
                        ono,
                        line_no,
                        item.product_id,
                        item.name,
                        str(item.unit_price),
                        item.quantity,
                        item.size,
                        str(item.discount_percentage)
                        if item.discount_percentage is not None
                        else None,
                    )
                    for line_no, item in enumerate(request.items, start=1)
                ],
            )

            for (pid, size), qty in demand.items():
                if size is None:
                    res = await conn.execute(
                        "UPDATE products SET stock = stock - ? WHERE pid = ? AND stock >= ?;",
                        (qty, pid, qty),
                    )
                else:
                    res = await conn.execute(
                        "UPDATE product_sizes SET stock = stock - ? WHERE pid = ? AND size = ? AND stock >= ?;",
                        (qty, pid, size, qty),
                    )
                if res.rowcount != 1:
                    raise OutOfStock(pid, size, qty, 0, products[pid].name)

            await conn.commit()
        except BaseException:
            await conn.rollback()
            raise

    _logger.info(f"Order {ono} created with {len(request.items)} line(s), total {expected.total}.")
    return ono


def _row_to_order(row, items: Sequence[models.OrderItem]) -> models.Order:
    return models.Order(
        ono=int(row["ono"]),
        items=tuple(items),
        subtotal=to_decimal(row["subtotal"]),
        shipping=to_decimal(row["shipping"]),
        tax=to_decimal(row["tax"]),
        total=to_decimal(row["total"]),
        status=models.OrderStatus(row["status"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        shipping_address=models.Address(
            full_name=row["ship_full_name"],
            address1=row["ship_address1"],
            address2=row["ship_address2"],
            city=row["ship_city"],
            state=row["ship_state"],
            postal_code=row["ship_postal_code"],
            country=row["ship_country"],
            phone_number=row["ship_phone"],
        ),
        user_id=row["uid"],
        guest_name=row["guest_name"],
        guest_email=row["guest_email"],
        guest_phone=row["guest_phone"],
        tracking_number=row["tracking_number"],
        payment_ref=row["payment_ref"],
    )


async def _items_for(
    conn: aiosqlite.Connection, onos: Sequence[int]
) -> Dict[int, List[models.OrderItem]]:
    items: Dict[int, List[models.OrderItem]] = defaultdict(list)
    if not onos:
        return items
    marks = ", ".join("?" * len(onos))
    cur = await conn.execute(
        f"""
        SELECT ono, pid, name, unit_price, qty, size, discount_pct
        FROM order_items
        WHERE ono IN ({marks})
        ORDER BY ono, line_no;
        """,
        tuple(onos),
    )
    for row in await cur.fetchall():
        items[int(row[0])].append(
            models.OrderItem(
                product_id=int(row[1]),
                name=row[2],
                unit_price=to_decimal(row[3]),
                quantity=int(row[4]),
                size=row[5],
                discount_percentage=_opt_decimal(row[6]),
            )
        )
    await cur.close()
    return items


async def _fetch_orders(
    conn: aiosqlite.Connection, where: str, params: tuple
) -> List[models.Order]:
    cur = await conn.execute(f"SELECT * FROM orders {where};", params)
    rows = await cur.fetchall()
    await cur.close()
    items = await _items_for(conn, [int(r["ono"]) for r in rows])
    return [_row_to_order(r, items.get(int(r["ono"]), [])) for r in rows]


async def get_order(ono: int) -> Optional[models.Order]:
    """Return the order with its line items, or None."""
    async with connect() as conn:
        orders = await _fetch_orders(conn, "WHERE ono = ?", (ono,))
    return orders[0] if orders else None


async def list_orders(
    uid: int, page: int = 1, page_size: int = 5
) -> Tuple[List[models.Order], int]:
    """
    List a customer's orders newest first, paginated.
    Return (orders_for_page, total_count).
    """
    async with connect() as conn:
        cur = await conn.execute("SELECT COUNT(*) FROM orders WHERE uid = ?;", (uid,))
        total = (await cur.fetchone())[0]
        await cur.close()
        offset = max(page - 1, 0) * page_size
        orders = await _fetch_orders(
            conn,
            "WHERE uid = ? ORDER BY created_at DESC, ono DESC LIMIT ? OFFSET ?",
            (uid, page_size, offset),
        )
    return orders, total


async def list_all_orders(
    status: Optional[models.OrderStatus] = None,
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[models.Order], int]:
    """Every order (admin view), optionally filtered by status, newest first."""
    where = "WHERE status = ?" if status else ""
    params: tuple = (models.OrderStatus(status).value,) if status else ()
    async with connect() as conn:
        cur = await conn.execute(f"SELECT COUNT(*) FROM orders {where};", params)
        total = (await cur.fetchone())[0]
        await cur.close()
        offset = max(page - 1, 0) * page_size
        orders = await _fetch_orders(
            conn,
            f"{where} ORDER BY created_at DESC, ono DESC LIMIT ? OFFSET ?",
            (*params, page_size, offset),
        )
    return orders, total


async def order_status_counts() -> Dict[models.OrderStatus, int]:
    """Number of orders in each status, zero-filled."""
    counts = {s: 0 for s in models.OrderStatus}
    async with connect() as conn:
        cur = await conn.execute("SELECT status, COUNT(*) FROM orders GROUP BY status;")
        rows = await cur.fetchall()
        await cur.close()
    for row in rows:
        counts[models.OrderStatus(row[0])] = int(row[1])
    return counts


async def transition_order(
    ono: int,
    expected: models.OrderStatus,
    requested: models.OrderStatus,
    tracking_number: Optional[str] = None,
) -> models.Order:
    """
    Move an order from ``expected`` to ``requested`` status.

    The update only applies while the stored status still equals ``expected``;
    if someone else changed it first, InvalidTransition is raised and nothing
    is written.
    """
    check_transition(expected, requested, tracking_number)
    async with connect() as conn:
        if requested == models.OrderStatus.SHIPPED:
            res = await conn.execute(
                """
                UPDATE orders SET status = ?, tracking_number = ?, updated_at = ?
                WHERE ono = ? AND status = ?;
                """,
                (requested.value, tracking_number.strip(), _now(), ono, expected.value),
            )
        else:
            res = await conn.execute(
                "UPDATE orders SET status = ?, updated_at = ? WHERE ono = ? AND status = ?;",
                (requested.value, _now(), ono, expected.value),
            )
        updated = res.rowcount
        await conn.commit()
        orders = await _fetch_orders(conn, "WHERE ono = ?", (ono,))

    if not orders:
        raise OrderNotFound(ono)
    order = orders[0]
    if updated != 1:
        raise InvalidTransition(
            order.status, requested, "The order was changed by someone else."
        )
    return order


# ---------------------------
# Notifications outbox
# ---------------------------


async def enqueue_notification(ono: int, kind: str, recipient: str, payload: dict) -> int:
    async with connect() as conn:
        cur = await conn.execute(
            """
            INSERT INTO notifications(ono, kind, recipient, payload, created_at)
            VALUES (?, ?, ?, ?, ?);
            """,
            (ono, kind, recipient, json.dumps(payload), _now()),
        )
        nid = cur.lastrowid
        await cur.close()
        await conn.commit()
    return nid


async def list_notifications(ono: Optional[int] = None) -> List[dict]:
    where = "WHERE ono = ?" if ono is not None else ""
    params = (ono,) if ono is not None else ()
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT nid, ono, kind, recipient, payload, created_at FROM notifications {where} ORDER BY nid;",
            params,
        )
        rows = await cur.fetchall()
        await cur.close()
    return [
        {
            "nid": r[0],
            "ono": r[1],
            "kind": r[2],
            "recipient": r[3],
            "payload": json.loads(r[4]),
            "created_at": r[5],
        }
        for r in rows
    ]
