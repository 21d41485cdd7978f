"""Order backend used by the submission protocol and the lifecycle.

``LocalOrderBackend`` serves the order endpoints in-process on top of
``db.crud``:

    create_order   POST  /orders
    get_order      GET   /orders/:id
    update_status  PATCH /orders/:id/status   (and /ship with a tracking number)

Storage errors are translated to SubmissionFailure on create, since the write
transaction is rolled back and the order definitely does not exist.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

import aiosqlite

from db import crud
from db.models import Order, OrderRequest, OrderStatus
from shop.errors import OrderNotFound, SubmissionFailure
from utils.logger import get_logger

_logger = get_logger(__name__)


class LocalOrderBackend:
    async def create_order(self, request: OrderRequest) -> int:
        try:
            return await crud.create_order(request)
        except aiosqlite.Error as e:
            _logger.error(f"Order creation failed in storage: {e}")
            raise SubmissionFailure(
                "The order could not be saved. Please try again.", retryable=True
            ) from e

    async def get_order(self, ono: int) -> Order:
        order = await crud.get_order(ono)
        if order is None:
            raise OrderNotFound(ono)
        return order

    async def list_orders(self, user_id: int, page: int = 1) -> Tuple[List[Order], int]:
        return await crud.list_orders(user_id, page)

    async def list_all_orders(
        self, status: Optional[OrderStatus] = None, page: int = 1
    ) -> Tuple[List[Order], int]:
        return await crud.list_all_orders(status, page)

    async def update_status(
        self,
        ono: int,
        expected: OrderStatus,
        requested: OrderStatus,
        tracking_number: Optional[str] = None,
    ) -> Order:
        return await crud.transition_order(ono, expected, requested, tracking_number)

    async def ship(self, ono: int, expected: OrderStatus, tracking_number: str) -> Order:
        return await self.update_status(ono, expected, OrderStatus.SHIPPED, tracking_number)
