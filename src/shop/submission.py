from __future__ import annotations

import asyncio
from datetime import date
from typing import Optional

from db.models import (
    CustomerInfo,
    OrderItem,
    OrderRequest,
    PaymentInfo,
    ShippingInfo,
)
from shop.cart import CartStore
from shop.errors import (
    ShopError,
    SubmissionInProgress,
    SubmissionUnknownOutcome,
    ValidationError,
)
from shop.pricing import calculate
from shop.stock import StockValidator
from shop.validation import payment_reference, require_valid, validate_checkout
from utils.logger import get_logger

_logger = get_logger(__name__)

DEFAULT_TIMEOUT = 15.0


def build_request(
    cart: CartStore,
    customer: CustomerInfo,
    shipping: ShippingInfo,
    payment: PaymentInfo,
) -> OrderRequest:
    """Freeze the cart into an order request: item snapshots plus derived totals."""
    items = tuple(
        OrderItem(
            product_id=i.product_id,
            name=i.name,
            unit_price=i.unit_price,
            quantity=i.quantity,
            size=i.selected_size,
            discount_percentage=i.discount_percentage,
        )
        for i in cart.items
    )
    breakdown = calculate(items).rounded()
    return OrderRequest(
        items=items,
        subtotal=breakdown.subtotal,
        shipping=breakdown.shipping,
        tax=breakdown.tax,
        total=breakdown.total,
        customer=customer,
        shipping_info=shipping,
        payment_ref=payment_reference(payment),
    )


class OrderSubmitter:
    """
    Turns a cart into an order through the order backend.

    One submission at a time: while ``in_flight`` is True a second ``submit``
    is refused, and front ends disable their submit action on it. Requests are
    sent once and never retried here.
    """

    def __init__(
        self,
        backend,
        stock_validator: Optional[StockValidator] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._backend = backend
        self._stock_validator = stock_validator
        self.timeout = timeout
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def submit(
        self,
        cart: CartStore,
        customer: CustomerInfo,
        shipping: ShippingInfo,
        payment: PaymentInfo,
        today: Optional[date] = None,
    ) -> int:
        """
        Validate, send and, on success, clear the cart.

        Returns:
            The new order number.

        Raises:
            ValidationError: empty cart or malformed fields; nothing was sent.
            OutOfStock: an item cannot be fulfilled; the cart is untouched.
            SubmissionFailure: the backend rejected or failed the request.
                ``SubmissionUnknownOutcome`` means the request timed out and the
                order may exist; the cart is kept and must not be resubmitted
                blindly.
        """
        if self._in_flight:
            raise SubmissionInProgress()
        self._in_flight = True
        try:
            if cart.is_empty:
                raise ValidationError({"cart": "Your cart is empty."})
            require_valid(validate_checkout(customer, shipping, payment, today))
            if self._stock_validator is not None:
                await self._stock_validator.check_items(cart.items)

            request = build_request(cart, customer, shipping, payment)
            _logger.info(
                f"Submitting order: {len(request.items)} line(s), total {request.total}."
            )
            ono = await self._send(request)
        finally:
            self._in_flight = False

        cart.clear()
        _logger.info(f"Order {ono} accepted.")
        return ono

    async def _send(self, request: OrderRequest) -> int:
        try:
            return await asyncio.wait_for(
                self._backend.create_order(request), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            _logger.error(f"Order submission timed out after {self.timeout}s.")
            raise SubmissionUnknownOutcome(
                "We could not confirm your order. Check your order history "
                "before trying again."
            ) from None
        except ShopError as e:
            _logger.warning(f"Order submission rejected: {e}")
            raise
        except OSError as e:
            # the request may have reached the backend
            _logger.error(f"Order submission interrupted: {e}")
            raise SubmissionUnknownOutcome(
                "The connection was lost while placing your order. Check your "
                "order history before trying again."
            ) from e
