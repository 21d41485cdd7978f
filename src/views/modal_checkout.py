from typing import Dict, Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Markdown, Select

import db.crud as crud
from db.models import Address, CustomerInfo, PaymentInfo, ShippingInfo
from shop.errors import (
    OutOfStock,
    SubmissionFailure,
    SubmissionInProgress,
    SubmissionUnknownOutcome,
    ValidationError,
)
from shop.pricing import calculate
from utils.pure import breakdown_markdown, items_table

NEW_ADDRESS = -1

# form field -> input widget id
_FIELD_INPUTS: Dict[str, str] = {
    "name": "input-name",
    "email": "input-email",
    "phone": "input-phone",
    "full_name": "input-full-name",
    "address1": "input-address1",
    "city": "input-city",
    "state": "input-state",
    "postal_code": "input-zip",
    "phone_number": "input-phone",
    "card_number": "input-card",
    "expiry": "input-expiry",
    "cvc": "input-cvc",
}


class CheckoutModal(ModalScreen[Optional[int]]):
    """
    Order summary plus contact, shipping and payment fields.
    Dismisses with the new order number, or None if no order was placed.
    """

    def compose(self) -> ComposeResult:
        with VerticalScroll(id="div-checkout"):
            yield Markdown("", id="md-summary")

            yield Label("Contact", classes="section guest-only")
            yield Input(placeholder="Full name", id="input-name", classes="guest-only")
            yield Input(placeholder="Email", id="input-email", classes="guest-only")
            yield Input(placeholder="Phone (optional)", id="input-phone")

            yield Label("Shipping", classes="section")
            yield Select([], id="select-address", prompt="Saved addresses", classes="user-only")
            with VerticalScroll(id="div-new-address"):
                yield Input(placeholder="Recipient name", id="input-full-name")
                yield Input(placeholder="Street address", id="input-address1")
                yield Input(placeholder="Apt, suite (optional)", id="input-address2")
                with Horizontal():
                    yield Input(placeholder="City", id="input-city")
                    yield Input(placeholder="State", id="input-state")
                    yield Input(placeholder="ZIP", id="input-zip")

            yield Label("Payment", classes="section")
            yield Input(placeholder="Card number", id="input-card")
            with Horizontal():
                yield Input(placeholder="MM/YY", id="input-expiry")
                yield Input(placeholder="CVC", id="input-cvc", password=True)

            with Horizontal(id="div-checkout-btns"):
                yield Button("Go Back", id="btn-quit")
                yield Button("Place Order", id="btn-submit", variant="primary")

    async def on_mount(self):
        state = self.app.state
        cart = state.cart
        md = "### Order Summary\n\n" + items_table(cart.items)
        md += "\n\n" + breakdown_markdown(calculate(cart.items))
        await self.query_one("#md-summary", Markdown).update(md)

        if state.user is None:
            for w in self.query(".user-only"):
                w.display = False
            self.query_one("#input-name").focus()
            return

        for w in self.query(".guest-only"):
            w.display = False
        addresses = await crud.list_addresses(state.user.uid)
        select = self.query_one("#select-address", Select)
        options = [
            (f"{a.full_name}, {a.address1}, {a.city}" + (" (default)" if a.is_default else ""), a.aid)
            for a in addresses
        ]
        select.set_options(options + [("Ship to a new address", NEW_ADDRESS)])
        default = next((a for a in addresses if a.is_default), None)
        if default is not None:
            select.value = default.aid
        self.query_one("#input-card").focus()

    @on(Select.Changed, "#select-address")
    def handle_address_choice(self, message: Select.Changed) -> None:
        saved = isinstance(message.value, int) and message.value != NEW_ADDRESS
        self.query_one("#div-new-address").display = not saved

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape" and not self.app.state.submitter.in_flight:
            self.dismiss(None)

    def _value(self, widget_id: str) -> str:
        return self.query_one(f"#{widget_id}", Input).value.strip()

    def _collect(self):
        state = self.app.state
        phone = self._value("input-phone") or None
        if state.user is None:
            customer = CustomerInfo(
                name=self._value("input-name"), email=self._value("input-email"), phone=phone
            )
        else:
            customer = CustomerInfo(user_id=state.user.uid)

        choice = self.query_one("#select-address", Select).value
        if state.user is not None and isinstance(choice, int) and choice != NEW_ADDRESS:
            shipping = ShippingInfo(address_id=choice)
        else:
            shipping = ShippingInfo(
                address=Address(
                    full_name=self._value("input-full-name") or customer.name,
                    address1=self._value("input-address1"),
                    address2=self._value("input-address2") or None,
                    city=self._value("input-city"),
                    state=self._value("input-state"),
                    postal_code=self._value("input-zip"),
                    phone_number=phone,
                )
            )
        payment = PaymentInfo(
            card_number=self._value("input-card"),
            expiry=self._value("input-expiry"),
            cvc=self._value("input-cvc"),
        )
        return customer, shipping, payment

    def _mark_invalid(self, errors: Dict[str, str]) -> None:
        for inp in self.query(Input):
            inp.remove_class("-invalid")
        for field in errors:
            widget_id = _FIELD_INPUTS.get(field)
            if widget_id:
                self.query_one(f"#{widget_id}", Input).add_class("-invalid")

    @on(Button.Pressed, "#btn-submit")
    @work(exclusive=True)
    async def handle_submit(self):
        state = self.app.state
        btn = self.query_one("#btn-submit", Button)
        btn.disabled = True
        btn.label = "Placing order..."
        try:
            ono = await state.submitter.submit(state.cart, *self._collect())
        except ValidationError as e:
            self._mark_invalid(e.errors)
            self.notify("\n".join(e.errors.values()), severity="error")
        except OutOfStock as e:
            self.notify(str(e), severity="error")
        except SubmissionInProgress:
            pass
        except SubmissionUnknownOutcome as e:
            self.notify(str(e), severity="warning", timeout=10)
            self.dismiss(None)
        except SubmissionFailure as e:
            self.notify(f"{e} Your cart has been kept.", severity="error")
        else:
            self.notify(f"Order placed. Your order number is {ono}.")
            self.dismiss(ono)
        finally:
            btn.disabled = state.submitter.in_flight
            btn.label = "Place Order"

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        if not self.app.state.submitter.in_flight:
            self.dismiss(None)
