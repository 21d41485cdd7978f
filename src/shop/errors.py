"""Error types raised by the cart and order engine.

The front end catches these and turns them into user-facing messages; storage
errors from aiosqlite are not wrapped here.
"""

from __future__ import annotations

from typing import Dict, Optional


class ShopError(Exception):
    """Base class for every domain error."""


class ValidationError(ShopError):
    """One or more input fields are malformed.

    ``errors`` maps a field name to a message that can be shown beside it.
    """

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        summary = "; ".join(f"{k}: {v}" for k, v in self.errors.items())
        super().__init__(summary or "Invalid input.")


class OutOfStock(ShopError):
    def __init__(
        self,
        product_id: int,
        size: Optional[str],
        requested: int,
        available: int,
        name: Optional[str] = None,
    ):
        self.product_id = product_id
        self.size = size
        self.requested = requested
        self.available = available
        self.name = name
        label = name or f"product {product_id}"
        if size:
            label += f" (size {size})"
        super().__init__(
            f"Not enough stock for {label}. "
            f"Available: {available}, requested: {requested}."
        )


class SubmissionFailure(ShopError):
    """Order creation failed.

    ``retryable`` is True when the order was definitely not created, so the
    same cart may be submitted again.
    """

    def __init__(self, message: str, retryable: bool = True):
        self.retryable = retryable
        super().__init__(message)


class SubmissionUnknownOutcome(SubmissionFailure):
    """The backend did not answer in time; the order may or may not exist."""

    def __init__(self, message: str = "Order submission timed out."):
        super().__init__(message, retryable=False)


class SubmissionInProgress(SubmissionFailure):
    def __init__(self):
        super().__init__("An order submission is already in progress.", retryable=False)


class InvalidTransition(ShopError):
    def __init__(self, current, requested, reason: str = ""):
        self.current = current
        self.requested = requested
        self.reason = reason
        msg = f"Cannot change order status from {_label(current)} to {_label(requested)}."
        if reason:
            msg += f" {reason}"
        super().__init__(msg)


class OrderNotFound(ShopError):
    def __init__(self, ono: int):
        self.ono = ono
        super().__init__(f"Order {ono} does not exist.")


class PersistenceFailure(ShopError):
    """The session-local store could not be read or written."""


def _label(status) -> str:
    return getattr(status, "value", str(status))
