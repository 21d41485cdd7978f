import asyncio
import unittest
from datetime import date
from decimal import Decimal

from db_case import DbTestCase

from db import crud
from db.models import (
    Address,
    CustomerInfo,
    OrderStatus,
    PaymentInfo,
    Product,
    ShippingInfo,
    SizeStock,
)
from shop.backend import LocalOrderBackend
from shop.cart import CartStore
from shop.catalog import CatalogReader
from shop.errors import (
    OutOfStock,
    SubmissionFailure,
    SubmissionInProgress,
    SubmissionUnknownOutcome,
    ValidationError,
)
from shop.stock import StockValidator
from shop.storage import MemoryStore
from shop.submission import OrderSubmitter, build_request

TODAY = date(2026, 10, 19)

TOTE = Product(pid=3001, name="Canvas Tote Bag", price=Decimal("20.00"), stock=40)
SHIRT = Product(
    pid=3002,
    name="Linen Shirt",
    price=Decimal("50.00"),
    has_sizes=True,
    sizes=(SizeStock("S", 3), SizeStock("M", 0), SizeStock("L", 5)),
)

GUEST = CustomerInfo(name="Dana Reyes", email="dana@example.com")
ADDRESS = Address(
    full_name="Dana Reyes",
    address1="221 Baker Street",
    city="Springfield",
    state="IL",
    postal_code="62704",
)
CARD = PaymentInfo(card_number="4242424242424242", expiry="12/27", cvc="123")


class FakeBackend:
    def __init__(self, result=700001, delay=0.0, error=None):
        self.result = result
        self.delay = delay
        self.error = error
        self.requests = []

    async def create_order(self, request):
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class OrderSubmitterTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.cart = CartStore(MemoryStore())

    async def submit(self, submitter, customer=GUEST, payment=CARD):
        return await submitter.submit(
            self.cart, customer, ShippingInfo(address=ADDRESS), payment, today=TODAY
        )

    async def test_empty_cart_is_rejected_before_sending(self):
        backend = FakeBackend()
        with self.assertRaises(ValidationError) as ctx:
            await self.submit(OrderSubmitter(backend))
        self.assertIn("cart", ctx.exception.errors)
        self.assertEqual(backend.requests, [])

    async def test_invalid_fields_are_rejected_before_sending(self):
        self.cart.add(TOTE, 1)
        backend = FakeBackend()
        with self.assertRaises(ValidationError) as ctx:
            await self.submit(OrderSubmitter(backend), payment=PaymentInfo(card_number="1"))
        self.assertIn("card_number", ctx.exception.errors)
        self.assertEqual(backend.requests, [])
        self.assertEqual(self.cart.count(), 1)

    async def test_success_clears_cart_and_sends_snapshot(self):
        self.cart.add(TOTE, 2)
        self.cart.add(SHIRT, 1, "L")
        backend = FakeBackend(result=700001)

        ono = await self.submit(OrderSubmitter(backend))

        self.assertEqual(ono, 700001)
        self.assertTrue(self.cart.is_empty)
        request = backend.requests[0]
        self.assertEqual([(i.product_id, i.size, i.quantity) for i in request.items],
                         [(3001, None, 2), (3002, "L", 1)])
        self.assertEqual(request.subtotal, Decimal("90.00"))
        self.assertEqual(request.shipping, Decimal("10.00"))
        self.assertEqual(request.tax, Decimal("10.35"))
        self.assertEqual(request.total, Decimal("110.35"))
        self.assertEqual(request.payment_ref, "card:****4242")

    async def test_stale_stock_blocks_submission(self):
        self.cart.add(TOTE, 5)
        low = Product(pid=3001, name="Canvas Tote Bag", price=Decimal("20.00"), stock=1)

        class Catalog:
            async def get_product(self, pid):
                return low

        backend = FakeBackend()
        with self.assertRaises(OutOfStock):
            await self.submit(OrderSubmitter(backend, StockValidator(Catalog())))
        self.assertEqual(backend.requests, [])
        self.assertEqual(self.cart.count(), 5)

    async def test_timeout_is_unknown_outcome_and_keeps_cart(self):
        self.cart.add(TOTE, 1)
        submitter = OrderSubmitter(FakeBackend(delay=1.0), timeout=0.05)

        with self.assertRaises(SubmissionUnknownOutcome) as ctx:
            await self.submit(submitter)
        self.assertFalse(ctx.exception.retryable)
        self.assertEqual(self.cart.count(), 1)
        self.assertFalse(submitter.in_flight)

    async def test_backend_failure_is_retryable_and_keeps_cart(self):
        self.cart.add(TOTE, 1)
        backend = FakeBackend(error=SubmissionFailure("server error", retryable=True))
        submitter = OrderSubmitter(backend)

        with self.assertRaises(SubmissionFailure) as ctx:
            await self.submit(submitter)
        self.assertTrue(ctx.exception.retryable)
        self.assertEqual(self.cart.count(), 1)

        backend.error = None
        self.assertEqual(await self.submit(submitter), 700001)
        self.assertTrue(self.cart.is_empty)

    async def test_connection_loss_is_unknown_outcome(self):
        self.cart.add(TOTE, 1)
        submitter = OrderSubmitter(FakeBackend(error=ConnectionResetError()))
        with self.assertRaises(SubmissionUnknownOutcome):
            await self.submit(submitter)
        self.assertEqual(self.cart.count(), 1)

    async def test_second_submit_while_in_flight_is_refused(self):
        self.cart.add(TOTE, 1)
        backend = FakeBackend(delay=0.1)
        submitter = OrderSubmitter(backend)

        first = asyncio.create_task(self.submit(submitter))
        await asyncio.sleep(0.01)
        self.assertTrue(submitter.in_flight)
        with self.assertRaises(SubmissionInProgress):
            await self.submit(submitter)

        self.assertEqual(await first, 700001)
        self.assertEqual(len(backend.requests), 1)
        self.assertFalse(submitter.in_flight)

    def test_build_request_rounds_totals(self):
        self.cart.add(
            Product(pid=3004, name="Denim Jacket", price=Decimal("89.99"), stock=5), 1
        )
        request = build_request(self.cart, GUEST, ShippingInfo(address=ADDRESS), CARD)
        self.assertEqual(request.tax, Decimal("10.35"))
        self.assertEqual(request.total, Decimal("110.34"))


class SubmitToDatabaseTestCase(DbTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        catalog = CatalogReader()
        self.catalog = catalog
        self.submitter = OrderSubmitter(LocalOrderBackend(), StockValidator(catalog))
        self.cart = CartStore(MemoryStore())

    async def test_guest_checkout_creates_order_and_takes_stock(self):
        self.cart.add(await self.catalog.get_product(3002), 2, "S")
        self.cart.add(await self.catalog.get_product(3003), 1)

        ono = await self.submitter.submit(
            self.cart, GUEST, ShippingInfo(address=ADDRESS), CARD, today=TODAY
        )

        order = await crud.get_order(ono)
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertTrue(order.is_guest)
        self.assertEqual(order.guest_email, "dana@example.com")
        self.assertEqual(order.shipping_address.city, "Springfield")
        # 2 x 50.00 + 15.00 at 10% off
        self.assertEqual(order.subtotal, Decimal("113.50"))
        self.assertEqual(order.shipping, Decimal("0.00"))
        self.assertEqual(order.total, Decimal("126.55"))
        self.assertTrue(self.cart.is_empty)

        shirt = await self.catalog.get_product(3002)
        self.assertEqual({s.size: s.stock for s in shirt.sizes}["S"], 1)
        self.assertEqual((await self.catalog.get_product(3003)).stock, 1)

    async def test_signed_in_user_with_saved_address(self):
        self.cart.add(await self.catalog.get_product(3001), 1)
        ono = await self.submitter.submit(
            self.cart,
            CustomerInfo(user_id=1001),
            ShippingInfo(address_id=2),
            PaymentInfo(token="tok_visa"),
            today=TODAY,
        )
        order = await crud.get_order(ono)
        self.assertEqual(order.user_id, 1001)
        self.assertEqual(order.shipping_address.city, "Seattle")
        self.assertEqual(order.payment_ref, "tok_visa")

    async def test_someone_elses_address_is_rejected(self):
        self.cart.add(await self.catalog.get_product(3001), 1)
        with self.assertRaises(ValidationError):
            await self.submitter.submit(
                self.cart,
                CustomerInfo(user_id=1001),
                ShippingInfo(address_id=3),
                PaymentInfo(token="tok_visa"),
                today=TODAY,
            )
        self.assertEqual(self.cart.count(), 1)


if __name__ == "__main__":
    unittest.main()
