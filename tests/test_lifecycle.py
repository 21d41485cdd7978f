import unittest

from db_case import DbTestCase

from db import crud
from db.models import OrderStatus
from shop.backend import LocalOrderBackend
from shop.errors import InvalidTransition, OrderNotFound
from shop.lifecycle import OrderLifecycle, allowed_transitions, check_transition, is_terminal
from shop.notify import ORDER_SHIPPED, LogNotifier, OutboxNotifier

S = OrderStatus


class FailingNotifier:
    async def order_shipped(self, order):
        raise RuntimeError("mailer down")


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def order_shipped(self, order):
        self.sent.append(order)


class TransitionRulesTestCase(unittest.TestCase):
    def test_allowed_transitions(self):
        self.assertEqual(allowed_transitions(S.PENDING), (S.PROCESSING, S.CANCELLED))
        self.assertEqual(allowed_transitions(S.PROCESSING), (S.SHIPPED, S.CANCELLED))
        self.assertEqual(allowed_transitions(S.SHIPPED), (S.DELIVERED, S.CANCELLED))
        self.assertEqual(allowed_transitions(S.DELIVERED), ())
        self.assertEqual(allowed_transitions(S.CANCELLED), ())
        self.assertTrue(is_terminal(S.DELIVERED))
        self.assertFalse(is_terminal("shipped"))

    def test_cannot_skip_steps(self):
        with self.assertRaises(InvalidTransition):
            check_transition(S.PENDING, S.DELIVERED)
        with self.assertRaises(InvalidTransition):
            check_transition(S.PENDING, S.SHIPPED, "TRK123")

    def test_shipping_needs_tracking_number(self):
        for tracking in (None, "", "   "):
            with self.assertRaises(InvalidTransition):
                check_transition(S.PROCESSING, S.SHIPPED, tracking)
        check_transition(S.PROCESSING, S.SHIPPED, "TRK123")

    def test_terminal_states_are_final(self):
        for current in (S.DELIVERED, S.CANCELLED):
            for requested in S:
                with self.assertRaises(InvalidTransition):
                    check_transition(current, requested, "TRK123")

    def test_cancel_from_any_open_state(self):
        for current in (S.PENDING, S.PROCESSING, S.SHIPPED):
            check_transition(current, S.CANCELLED)


class OrderLifecycleTestCase(DbTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.backend = LocalOrderBackend()
        self.lifecycle = OrderLifecycle(self.backend, OutboxNotifier())

    async def test_ship_stores_tracking_and_queues_one_notification(self):
        # seeded order 500002 is processing and belongs to Bob
        order = await self.lifecycle.ship(500002, "TRK123")

        self.assertEqual(order.status, S.SHIPPED)
        self.assertEqual(order.tracking_number, "TRK123")
        stored = await crud.get_order(500002)
        self.assertEqual((stored.status, stored.tracking_number), (S.SHIPPED, "TRK123"))

        sent = await crud.list_notifications(500002)
        self.assertEqual(len(sent), 1)
        self.assertEqual(sent[0]["kind"], ORDER_SHIPPED)
        self.assertEqual(sent[0]["recipient"], "bob@example.com")
        self.assertEqual(sent[0]["payload"]["trackingNumber"], "TRK123")
        self.assertEqual(sent[0]["payload"]["orderTotal"], "$110.34")

    async def test_recipient_for_guest_and_user_orders(self):
        notifier = OutboxNotifier()
        guest_order = await crud.get_order(500003)
        user_order = await crud.get_order(500001)
        self.assertEqual(await notifier.recipient_for(guest_order), "carol@example.com")
        self.assertEqual(await notifier.recipient_for(user_order), "alice@example.com")

    async def test_full_happy_path(self):
        await self.lifecycle.change_status(500001, S.PROCESSING)
        await self.lifecycle.ship(500001, "  1Z0001  ")
        order = await self.lifecycle.change_status(500001, S.DELIVERED)

        self.assertEqual(order.status, S.DELIVERED)
        self.assertEqual(order.tracking_number, "1Z0001")
        with self.assertRaises(InvalidTransition):
            await self.lifecycle.cancel(500001)

    async def test_rejected_transition_leaves_order_unchanged(self):
        with self.assertRaises(InvalidTransition):
            await self.lifecycle.change_status(500001, S.DELIVERED)
        with self.assertRaises(InvalidTransition):
            await self.lifecycle.change_status(500002, S.SHIPPED)

        self.assertEqual((await crud.get_order(500001)).status, S.PENDING)
        self.assertEqual((await crud.get_order(500002)).status, S.PROCESSING)
        self.assertEqual(await crud.list_notifications(), [])

    async def test_unknown_order(self):
        with self.assertRaises(OrderNotFound):
            await self.lifecycle.cancel(424242)

    async def test_stale_expected_status_is_rejected(self):
        # another admin already moved the order on
        await self.lifecycle.change_status(500001, S.PROCESSING)
        with self.assertRaises(InvalidTransition):
            await crud.transition_order(500001, S.PENDING, S.CANCELLED)
        self.assertEqual((await crud.get_order(500001)).status, S.PROCESSING)

    async def test_notification_failure_does_not_undo_shipping(self):
        lifecycle = OrderLifecycle(self.backend, FailingNotifier())
        with self.assertLogs("shop.lifecycle", level="ERROR"):
            order = await lifecycle.ship(500002, "TRK999")
        self.assertEqual(order.status, S.SHIPPED)
        self.assertEqual((await crud.get_order(500002)).status, S.SHIPPED)

    async def test_log_notifier(self):
        lifecycle = OrderLifecycle(self.backend, LogNotifier())
        with self.assertLogs("shop.notify", level="INFO") as logs:
            await lifecycle.ship(500002, "TRK42")
        self.assertIn("TRK42", "\n".join(logs.output))
        self.assertEqual(await crud.list_notifications(), [])

    async def test_only_shipping_notifies(self):
        notifier = RecordingNotifier()
        lifecycle = OrderLifecycle(self.backend, notifier)
        await lifecycle.change_status(500001, S.PROCESSING)
        await lifecycle.cancel(500001)
        self.assertEqual(notifier.sent, [])
        await lifecycle.ship(500002, "TRK1")
        self.assertEqual([o.ono for o in notifier.sent], [500002])


if __name__ == "__main__":
    unittest.main()
