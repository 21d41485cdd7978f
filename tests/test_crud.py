import asyncio
import dataclasses
import sqlite3
from decimal import Decimal

import aiosqlite
from db_case import DbTestCase

from db import crud
from db import database as db_database
from db.models import (
    Address,
    CustomerInfo,
    OrderItem,
    OrderRequest,
    OrderStatus,
    ShippingInfo,
)
from shop.errors import OutOfStock, ValidationError
from shop.pricing import calculate

ADDRESS = Address(
    full_name="Dana Reyes",
    address1="221 Baker Street",
    city="Springfield",
    state="IL",
    postal_code="62704",
)


def make_request(items, customer=None, shipping=None, total=None):
    items = tuple(items)
    breakdown = calculate(items).rounded()
    return OrderRequest(
        items=items,
        subtotal=breakdown.subtotal,
        shipping=breakdown.shipping,
        tax=breakdown.tax,
        total=breakdown.total if total is None else total,
        customer=customer or CustomerInfo(user_id=1001),
        shipping_info=shipping or ShippingInfo(address_id=1),
        payment_ref="tok_test",
    )


def line(pid, qty, price="20.00", size=None, name="Item"):
    return OrderItem(product_id=pid, name=name, unit_price=Decimal(price), quantity=qty, size=size)


class CrudTestCase(DbTestCase):
    # ---------- Users ----------

    async def test_get_user(self):
        user = await crud.get_user(1001)
        self.assertEqual((user.name, user.role), ("Alice Nguyen", "customer"))
        self.assertEqual((await crud.get_user(9001)).role, "admin")
        self.assertIsNone(await crud.get_user(424242))

    # ---------- Addresses ----------

    async def test_addresses_default_first(self):
        addresses = await crud.list_addresses(1001)
        self.assertEqual([a.aid for a in addresses], [1, 2])
        self.assertTrue(addresses[0].is_default)
        self.assertEqual((await crud.get_default_address(1001)).aid, 1)
        self.assertEqual((await crud.get_address(2)).address2, "Suite 5")
        self.assertIsNone(await crud.get_address(99))

    async def test_saving_default_address_clears_others(self):
        aid = await crud.save_address(1001, dataclasses.replace(ADDRESS, is_default=True))

        addresses = await crud.list_addresses(1001)
        self.assertEqual([a.aid for a in addresses if a.is_default], [aid])
        self.assertEqual(addresses[0].aid, aid)
        # other users are untouched
        self.assertEqual((await crud.get_default_address(1002)).aid, 3)

    async def test_saving_plain_address_keeps_default(self):
        aid = await crud.save_address(1002, ADDRESS)
        self.assertEqual((await crud.get_default_address(1002)).aid, 3)
        self.assertIn(aid, [a.aid for a in await crud.list_addresses(1002)])

    # ---------- Orders ----------

    async def test_create_order_decrements_stock(self):
        before = await crud.get_product(3001)
        ono = await crud.create_order(make_request([line(3001, 3)]))

        order = await crud.get_order(ono)
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.shipping_address.address1, "12 Harbor Street")
        self.assertEqual(order.total, Decimal("76.90"))
        self.assertEqual([(i.product_id, i.quantity) for i in order.items], [(3001, 3)])
        self.assertEqual((await crud.get_product(3001)).stock, before.stock - 3)

    async def test_order_snapshot_survives_price_change(self):
        ono = await crud.create_order(make_request([line(3001, 1)]))
        await crud.update_product_price_stock(3001, Decimal("99.00"), None)
        order = await crud.get_order(ono)
        self.assertEqual(order.items[0].unit_price, Decimal("20.00"))
        self.assertEqual(order.subtotal, Decimal("20.00"))

    async def test_out_of_stock_rolls_back_everything(self):
        # tote is fine but beanie only has 2
        req = make_request([line(3001, 1), line(3003, 3, price="15.00")])
        orders_before = await self.fetch_value("SELECT COUNT(*) FROM orders;")

        with self.assertRaises(OutOfStock) as ctx:
            await crud.create_order(req)

        self.assertEqual(ctx.exception.product_id, 3003)
        self.assertEqual(await self.fetch_value("SELECT COUNT(*) FROM orders;"), orders_before)
        self.assertEqual(await self.fetch_value("SELECT COUNT(*) FROM order_items;"), 3)
        self.assertEqual((await crud.get_product(3001)).stock, 40)
        self.assertEqual((await crud.get_product(3003)).stock, 2)

    async def test_demand_is_summed_per_size(self):
        # S has 3; two lines of 2 would each pass on their own
        req = make_request(
            [line(3002, 2, "50.00", "S"), line(3002, 2, "50.00", "S")]
        )
        with self.assertRaises(OutOfStock):
            await crud.create_order(req)

        ok = await crud.create_order(
            make_request([line(3002, 3, "50.00", "S"), line(3002, 1, "50.00", "L")])
        )
        shirt = await crud.get_product(3002)
        self.assertEqual({s.size: s.stock for s in shirt.sizes}, {"S": 0, "M": 0, "L": 4})
        self.assertIsNotNone(await crud.get_order(ok))

    async def test_sized_product_without_size_is_rejected(self):
        with self.assertRaises(OutOfStock):
            await crud.create_order(make_request([line(3004, 1, "89.99")]))

    async def test_unknown_product_is_rejected(self):
        with self.assertRaises(OutOfStock):
            await crud.create_order(make_request([line(424242, 1)]))

    async def test_total_mismatch_is_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            await crud.create_order(make_request([line(3001, 1)], total=Decimal("1.00")))
        self.assertIn("total", ctx.exception.errors)

    async def test_empty_order_is_rejected(self):
        with self.assertRaises(ValidationError):
            await crud.create_order(make_request([]))

    async def test_unknown_user_is_rejected(self):
        req = make_request(
            [line(3001, 1)],
            customer=CustomerInfo(user_id=424242),
            shipping=ShippingInfo(address=ADDRESS),
        )
        with self.assertRaises(ValidationError):
            await crud.create_order(req)

    async def test_guest_order(self):
        req = make_request(
            [line(3005, 1, "35.00", "34")],
            customer=CustomerInfo(name="Dana Reyes", email="dana@example.com"),
            shipping=ShippingInfo(address=ADDRESS),
        )
        ono = await crud.create_order(req)
        order = await crud.get_order(ono)
        self.assertTrue(order.is_guest)
        self.assertEqual(order.guest_name, "Dana Reyes")
        belt = await crud.get_product(3005)
        self.assertEqual({s.size: s.stock for s in belt.sizes}["34"], 0)

    async def test_concurrent_orders_never_oversell(self):
        # five buyers race for the last two beanies
        reqs = [make_request([line(3003, 1, price="15.00")]) for _ in range(5)]
        results = await asyncio.gather(
            *(crud.create_order(r) for r in reqs), return_exceptions=True
        )

        created = [r for r in results if isinstance(r, int)]
        rejected = [r for r in results if isinstance(r, OutOfStock)]
        self.assertEqual(len(created), 2)
        self.assertEqual(len(rejected), 3)
        self.assertEqual((await crud.get_product(3003)).stock, 0)

    async def test_stock_cannot_go_negative(self):
        with self.assertRaises((sqlite3.IntegrityError, aiosqlite.IntegrityError)):
            async with db_database.connect() as conn:
                await conn.execute("UPDATE products SET stock = -1 WHERE pid = 3001;")
                await conn.commit()

    async def test_shipped_order_needs_tracking_in_storage(self):
        with self.assertRaises((sqlite3.IntegrityError, aiosqlite.IntegrityError)):
            async with db_database.connect() as conn:
                await conn.execute("UPDATE orders SET status = 'shipped' WHERE ono = 500001;")
                await conn.commit()

    async def test_list_orders_newest_first_and_paged(self):
        onos = [await crud.create_order(make_request([line(3001, 1)])) for _ in range(6)]

        page1, total = await crud.list_orders(1001, page=1)
        self.assertEqual(total, 7)
        self.assertEqual(len(page1), 5)
        page2, _ = await crud.list_orders(1001, page=2)
        self.assertEqual(len(page2), 2)
        self.assertEqual(set(o.ono for o in page1 + page2), set(onos) | {500001})
        self.assertEqual(await crud.list_orders(424242), ([], 0))

    async def test_list_all_orders_by_status(self):
        everything, total = await crud.list_all_orders()
        self.assertEqual(total, 3)
        self.assertEqual([o.ono for o in everything], [500002, 500001, 500003])

        delivered, total = await crud.list_all_orders(OrderStatus.DELIVERED)
        self.assertEqual(total, 1)
        self.assertEqual(delivered[0].tracking_number, "1Z999AA10123456784")
        self.assertEqual(delivered[0].items[0].size, "32")

    async def test_order_status_counts(self):
        counts = await crud.order_status_counts()
        self.assertEqual(counts[OrderStatus.PENDING], 1)
        self.assertEqual(counts[OrderStatus.PROCESSING], 1)
        self.assertEqual(counts[OrderStatus.DELIVERED], 1)
        self.assertEqual(counts[OrderStatus.SHIPPED], 0)
        self.assertEqual(len(counts), len(OrderStatus))

    async def test_notification_outbox(self):
        nid = await crud.enqueue_notification(
            500001, "order_shipped", "alice@example.com", {"orderId": 500001}
        )
        await crud.enqueue_notification(500002, "order_shipped", "bob@example.com", {})

        mine = await crud.list_notifications(500001)
        self.assertEqual(len(mine), 1)
        self.assertEqual(mine[0]["nid"], nid)
        self.assertEqual(mine[0]["payload"], {"orderId": 500001})
        self.assertEqual(len(await crud.list_notifications()), 2)
