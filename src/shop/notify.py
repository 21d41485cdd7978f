# customer notifications; delivery itself belongs to an external mailer

from __future__ import annotations

from typing import Optional

from db import crud
from db.models import Order
from shop.pricing import format_money
from utils.logger import get_logger

_logger = get_logger(__name__)

ORDER_SHIPPED = "order_shipped"


def shipped_payload(order: Order) -> dict:
    return {
        "orderId": order.ono,
        "customerName": order.guest_name or order.shipping_address.full_name,
        "trackingNumber": order.tracking_number,
        "orderTotal": format_money(order.total),
        "orderDate": order.created_at.isoformat(),
        "subject": f"Your Order #{order.ono} Has Shipped!",
    }


class LogNotifier:
    """Writes notifications to the log only."""

    async def order_shipped(self, order: Order) -> None:
        _logger.info(
            f"Order {order.ono} shipped with tracking number {order.tracking_number}."
        )


class OutboxNotifier:
    """Queues notifications in the ``notifications`` table for the mailer."""

    async def recipient_for(self, order: Order) -> Optional[str]:
        if order.guest_email:
            return order.guest_email
        if order.user_id is not None:
            user = await crud.get_user(order.user_id)
            return user.email if user else None
        return None

    async def order_shipped(self, order: Order) -> None:
        recipient = await self.recipient_for(order)
        if not recipient:
            _logger.warning(f"No recipient for order {order.ono}; notification skipped.")
            return
        nid = await crud.enqueue_notification(
            order.ono, ORDER_SHIPPED, recipient, shipped_payload(order)
        )
        _logger.info(f"Queued shipping notification {nid} for order {order.ono}.")
