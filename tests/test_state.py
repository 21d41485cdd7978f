import os
from decimal import Decimal

from db_case import DbTestCase

from db.models import Product
from shop.cart import GUEST_CART_KEY, CartStore, user_cart_key
from utils.config import Settings
from utils.state import SessionState

TOTE = Product(pid=3001, name="Canvas Tote Bag", price=Decimal("20.00"), stock=40)


class SessionStateTestCase(DbTestCase):
    def setUp(self):
        super().setUp()
        self.settings = Settings(
            db_path=self.db_path,
            cart_dir=os.path.join(self.temp_dir.name, "carts"),
            submit_timeout=2.0,
        )
        self.state = SessionState(settings=self.settings)

    async def test_starts_as_guest(self):
        self.assertEqual(self.state.role, "guest")
        self.assertIsNone(self.state.uid)
        self.assertEqual(self.state.cart.key, GUEST_CART_KEY)
        self.assertEqual(self.state.submitter.timeout, 2.0)

    async def test_sign_in_moves_guest_cart(self):
        self.state.cart.add(TOTE, 2)

        user = await self.state.sign_in(1001)

        self.assertEqual(user.uid, 1001)
        self.assertEqual(self.state.role, "customer")
        self.assertEqual(self.state.cart.key, user_cart_key(1001))
        self.assertEqual(self.state.cart.get(3001).quantity, 2)
        # the guest cart is emptied on disk too
        self.assertTrue(CartStore(self.state.store, GUEST_CART_KEY).is_empty)

    async def test_user_cart_is_kept_between_sessions(self):
        await self.state.sign_in(1001)
        self.state.cart.add(TOTE, 1)
        self.state.sign_out()
        self.assertEqual(self.state.role, "guest")
        self.assertTrue(self.state.cart.is_empty)

        again = SessionState(settings=self.settings)
        await again.sign_in(1001)
        self.assertEqual(again.cart.get(3001).quantity, 1)

    async def test_unknown_user(self):
        self.state.cart.add(TOTE, 1)
        self.assertIsNone(await self.state.sign_in(424242))
        self.assertEqual(self.state.role, "guest")
        self.assertEqual(self.state.cart.count(), 1)

    async def test_admin_role(self):
        await self.state.sign_in(9001)
        self.assertEqual(self.state.role, "admin")
