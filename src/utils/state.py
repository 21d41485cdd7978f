from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional

import db.crud as crud
from db.models import User
from shop.backend import LocalOrderBackend
from shop.cart import GUEST_CART_KEY, CartStore, user_cart_key
from shop.catalog import CatalogReader
from shop.lifecycle import OrderLifecycle
from shop.notify import OutboxNotifier
from shop.stock import StockValidator
from shop.storage import JsonFileStore
from shop.submission import OrderSubmitter
from utils.config import Settings, load_settings
from utils.logger import get_logger

_logger = get_logger(__name__)


@dataclass
class SessionState:
    """
    Everything one browsing session owns, passed to the screens that need it.

    Fields:
      - user: signed-in user, or None for a guest
      - cart: the session's cart; a guest cart until sign-in, then the user's
      - submitter / lifecycle: engine services bound to this session's backend
    """

    settings: Settings = field(default_factory=load_settings)
    user: Optional[User] = None

    def __post_init__(self) -> None:
        self.store = JsonFileStore(self.settings.cart_dir)
        self.catalog = CatalogReader()
        self.backend = LocalOrderBackend()
        self.cart = CartStore(self.store, GUEST_CART_KEY)
        self.submitter = OrderSubmitter(
            self.backend,
            StockValidator(self.catalog),
            timeout=self.settings.submit_timeout,
        )
        self.lifecycle = OrderLifecycle(self.backend, OutboxNotifier())

    @property
    def role(self) -> Literal["guest", "customer", "admin"]:
        if self.user is None:
            return "guest"
        return "admin" if self.user.role == "admin" else "customer"

    @property
    def uid(self) -> Optional[int]:
        return self.user.uid if self.user else None

    async def sign_in(self, uid: int) -> Optional[User]:
        """Switch to the user's cart, carrying over anything added as a guest.

        Returns the user, or None if the uid is unknown.
        """
        user = await crud.get_user(uid)
        if user is None:
            return None
        self.user = user
        if user.role == "customer":
            guest_cart = self.cart
            self.cart = CartStore(self.store, user_cart_key(user.uid))
            moved = self.cart.absorb(guest_cart)
            if moved:
                guest_cart.clear()
                _logger.info(f"Moved {moved} guest cart item(s) to user {user.uid}.")
        return user

    def continue_as_guest(self) -> None:
        self.user = None
        self.cart = CartStore(self.store, GUEST_CART_KEY)

    def sign_out(self) -> None:
        if self.user is not None:
            _logger.info(f"User {self.user.uid} signed out.")
        self.continue_as_guest()
