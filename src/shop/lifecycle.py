"""Order status state machine.

    pending -> processing -> shipped -> delivered
    (pending | processing | shipped) -> cancelled

Only the next step on the happy path, or cancellation from a non-terminal
state, is allowed. Shipping needs a tracking number. ``check_transition`` is the
rule; ``OrderLifecycle`` applies it through the order backend and sends the
shipping notification.
"""

from __future__ import annotations

from typing import Optional, Tuple

from db.models import Order, OrderStatus
from shop.errors import InvalidTransition
from utils.logger import get_logger

_logger = get_logger(__name__)

_NEXT = {
    OrderStatus.PENDING: OrderStatus.PROCESSING,
    OrderStatus.PROCESSING: OrderStatus.SHIPPED,
    OrderStatus.SHIPPED: OrderStatus.DELIVERED,
}

TERMINAL = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


def is_terminal(status: OrderStatus) -> bool:
    return OrderStatus(status) in TERMINAL


def allowed_transitions(current: OrderStatus) -> Tuple[OrderStatus, ...]:
    """Statuses an admin may move an order to from ``current``."""
    current = OrderStatus(current)
    if current in TERMINAL:
        return ()
    return (_NEXT[current], OrderStatus.CANCELLED)


def check_transition(
    current: OrderStatus,
    requested: OrderStatus,
    tracking_number: Optional[str] = None,
) -> None:
    """Raise InvalidTransition unless ``current -> requested`` is permitted."""
    current = OrderStatus(current)
    requested = OrderStatus(requested)
    if current in TERMINAL:
        raise InvalidTransition(current, requested, f"{current.value} is final.")
    if requested not in allowed_transitions(current):
        raise InvalidTransition(current, requested)
    if requested == OrderStatus.SHIPPED and not (tracking_number or "").strip():
        raise InvalidTransition(current, requested, "A tracking number is required.")


class OrderLifecycle:
    """
    Admin-driven status changes.

    ``backend`` provides ``get_order``, ``update_status`` and ``ship``; ``notifier``
    receives ``order_shipped(order)`` after a successful move to shipped.
    """

    def __init__(self, backend, notifier):
        self._backend = backend
        self._notifier = notifier

    async def change_status(
        self,
        ono: int,
        requested: OrderStatus,
        tracking_number: Optional[str] = None,
    ) -> Order:
        requested = OrderStatus(requested)
        order = await self._backend.get_order(ono)
        check_transition(order.status, requested, tracking_number)

        if requested == OrderStatus.SHIPPED:
            updated = await self._backend.ship(ono, order.status, tracking_number.strip())
        else:
            updated = await self._backend.update_status(ono, order.status, requested)
        _logger.info(f"Order {ono}: {order.status.value} -> {requested.value}")

        if requested == OrderStatus.SHIPPED:
            await self._notify_shipped(updated)
        return updated

    async def ship(self, ono: int, tracking_number: str) -> Order:
        return await self.change_status(ono, OrderStatus.SHIPPED, tracking_number)

    async def cancel(self, ono: int) -> Order:
        return await self.change_status(ono, OrderStatus.CANCELLED)

    async def _notify_shipped(self, order: Order) -> None:
        # the status change stands even if the customer cannot be told
        try:
            await self._notifier.order_shipped(order)
        except Exception:
            _logger.exception(f"Shipping notification for order {order.ono} failed.")
