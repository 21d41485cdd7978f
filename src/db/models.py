# provide dataclass models

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class User:
    uid: int
    name: str
    email: str
    role: str  # "customer" or "admin"


@dataclass(frozen=True)
class SizeStock:
    size: str
    stock: int


@dataclass(frozen=True)
class Product:
    pid: int
    name: str
    price: Decimal
    stock: int = 0  # ignored when has_sizes
    has_sizes: bool = False
    sizes: Tuple[SizeStock, ...] = ()
    category: Optional[str] = None
    discount_percentage: Optional[Decimal] = None
    image: Optional[str] = None
    descr: str = ""


@dataclass(frozen=True)
class CartItem:
    product_id: int
    name: str
    unit_price: Decimal  # price at time of add
    quantity: int
    selected_size: Optional[str] = None
    image: Optional[str] = None
    discount_percentage: Optional[Decimal] = None

    @property
    def key(self) -> Tuple[int, Optional[str]]:
        return self.product_id, self.selected_size


@dataclass(frozen=True)
class Address:
    full_name: str
    address1: str
    city: str
    state: str
    postal_code: str
    country: str = "US"
    address2: Optional[str] = None
    phone_number: Optional[str] = None
    is_default: bool = False
    aid: Optional[int] = None
    user_id: Optional[int] = None


@dataclass(frozen=True)
class OrderItem:
    product_id: int
    name: str
    unit_price: Decimal  # unit price at time of order
    quantity: int
    size: Optional[str] = None
    discount_percentage: Optional[Decimal] = None


@dataclass(frozen=True)
class Order:
    ono: int
    items: Tuple[OrderItem, ...]
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal
    status: OrderStatus
    created_at: datetime
    shipping_address: Address
    user_id: Optional[int] = None
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    tracking_number: Optional[str] = None
    payment_ref: Optional[str] = None

    @property
    def is_guest(self) -> bool:
        return self.user_id is None


@dataclass(frozen=True)
class CustomerInfo:
    """Who is placing the order: a signed-in user or guest contact fields."""

    user_id: Optional[int] = None
    name: str = ""
    email: str = ""
    phone: Optional[str] = None

    @property
    def is_guest(self) -> bool:
        return self.user_id is None


@dataclass(frozen=True)
class ShippingInfo:
    """Either a saved address id (signed-in users) or an inline address."""

    address_id: Optional[int] = None
    address: Optional[Address] = None


@dataclass(frozen=True)
class PaymentInfo:
    token: Optional[str] = None
    card_number: str = ""
    expiry: str = ""  # MM/YY
    cvc: str = ""


@dataclass(frozen=True)
class OrderRequest:
    items: Tuple[OrderItem, ...]
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal
    customer: CustomerInfo
    shipping_info: ShippingInfo
    payment_ref: str
    submitted_at: datetime = field(default_factory=datetime.now)
