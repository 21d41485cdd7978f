"""Checkout field rules.

Each ``validate_*`` function returns a dict of field -> message, empty when the
input is fine, so callers can merge the results of several forms and report
every problem at once. ``require_valid`` raises ValidationError on a non-empty
result.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Dict, Optional

from db.models import Address, CustomerInfo, PaymentInfo, ShippingInfo
from shop.errors import ValidationError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[0-9\-+()\s]{10,15}$")
ZIP_RE = re.compile(r"^[0-9]{5}(-[0-9]{4})?$")
CARD_RE = re.compile(r"^[0-9]{16}$")
EXPIRY_RE = re.compile(r"^(0[1-9]|1[0-2])/([0-9]{2})$")
CVC_RE = re.compile(r"^[0-9]{3}$")

Errors = Dict[str, str]


def validate_name(name: Optional[str], field: str = "name") -> Errors:
    value = (name or "").strip()
    if not value:
        return {field: "Name is required."}
    if len(value) < 3:
        return {field: "Name must be at least 3 characters."}
    return {}


def validate_email(email: Optional[str]) -> Errors:
    if not EMAIL_RE.match((email or "").strip()):
        return {"email": "Enter a valid email address."}
    return {}


def validate_phone(phone: Optional[str], field: str = "phone") -> Errors:
    # optional
    if phone is None or not phone.strip():
        return {}
    if not PHONE_RE.match(phone.strip()):
        return {field: "Enter a valid phone number."}
    return {}


def validate_address(address: Optional[Address]) -> Errors:
    if address is None:
        return {"address": "Shipping address is required."}
    errors: Errors = {}
    errors.update(validate_name(address.full_name, "full_name"))
    line = (address.address1 or "").strip()
    if not line:
        errors["address1"] = "Address is required."
    elif len(line) < 5:
        errors["address1"] = "Address must be at least 5 characters."
    if not (address.city or "").strip():
        errors["city"] = "City is required."
    if not (address.state or "").strip():
        errors["state"] = "State is required."
    if not ZIP_RE.match((address.postal_code or "").strip()):
        errors["postal_code"] = "Enter a valid ZIP code."
    errors.update(validate_phone(address.phone_number, "phone_number"))
    return errors


def validate_customer(customer: CustomerInfo) -> Errors:
    """Signed-in users need no contact fields; guests need name, email, phone."""
    if not customer.is_guest:
        return {}
    errors: Errors = {}
    errors.update(validate_name(customer.name))
    errors.update(validate_email(customer.email))
    errors.update(validate_phone(customer.phone))
    return errors


def validate_shipping(shipping: ShippingInfo, customer: CustomerInfo) -> Errors:
    if shipping.address_id is not None:
        if customer.is_guest:
            return {"address": "Guests must enter a shipping address."}
        return {}
    return validate_address(shipping.address)


def _expiry_in_past(month: int, year: int, today: date) -> bool:
    # a card is valid through the last day of its expiry month
    return (year, month) < (today.year, today.month)


def validate_payment(payment: PaymentInfo, today: Optional[date] = None) -> Errors:
    if payment.token:
        return {}
    today = today or date.today()
    errors: Errors = {}

    number = re.sub(r"[\s-]", "", payment.card_number or "")
    if not CARD_RE.match(number):
        errors["card_number"] = "Card number must be 16 digits."

    m = EXPIRY_RE.match((payment.expiry or "").strip())
    if not m:
        errors["expiry"] = "Expiry must be in MM/YY format."
    elif _expiry_in_past(int(m.group(1)), 2000 + int(m.group(2)), today):
        errors["expiry"] = "Card has expired."

    if not CVC_RE.match((payment.cvc or "").strip()):
        errors["cvc"] = "CVC must be 3 digits."
    return errors


def validate_checkout(
    customer: CustomerInfo,
    shipping: ShippingInfo,
    payment: PaymentInfo,
    today: Optional[date] = None,
) -> Errors:
    errors: Errors = {}
    errors.update(validate_customer(customer))
    errors.update(validate_shipping(shipping, customer))
    errors.update(validate_payment(payment, today))
    return errors


def require_valid(errors: Errors) -> None:
    if errors:
        raise ValidationError(errors)


def payment_reference(payment: PaymentInfo) -> str:
    """What gets stored with the order: the token, or a masked card number."""
    if payment.token:
        return payment.token
    digits = re.sub(r"[^0-9]", "", payment.card_number or "")
    return f"card:****{digits[-4:]}"
