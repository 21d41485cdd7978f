from textual.message import Message

from db.models import OrderStatus


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class UserLogoutMessage(Message):
    """
    broadcasted when the user signs out
    """

    bubble = True


class CartChangedMessage(Message):
    """
    Fired whenever the session cart is mutated (add, edit, remove, clear, checkout).
    Post at App level when sent from outside CartScreen.
    """

    bubble = True


class NewOrderMessage(Message):
    """
    Fired when a new order is created.
    Listened to by order history and admin order screens
    """

    bubble = True

    def __init__(self, ono: int) -> None:
        super().__init__()
        self.ono = ono


class OrderStatusChangedMessage(Message):
    bubble = True

    def __init__(self, ono: int, status: OrderStatus) -> None:
        super().__init__()
        self.ono = ono
        self.status = status


class ModeSwitchedMessage(Message):
    """
    fired whenever switch_mode is called
    must be fired from app level
    """

    bubble = True

    def __init__(self, old_mode: str, new_mode: str) -> None:
        super().__init__()
        self.old_mode = old_mode
        self.new_mode = new_mode
