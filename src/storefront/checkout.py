"""
Multi-step checkout wizard.

information -> shipping -> payment -> review -> confirmed

All state lives on the orchestrator instance; the cart store, the caller's
token and the order submitter are passed in explicitly.
"""

import dataclasses
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from pydantic import ValidationError as PydanticValidationError

from . import pricing
from .cart_store import CartStore
from .errors import CheckoutStepError, StorefrontError, SubmissionInProgressError, ValidationError
from .logging_config import order_prefix
from .models import (
    Address,
    BillingAddress,
    CartItem,
    ContactInfo,
    Order,
    OrderDraft,
    PaymentMethod,
    PriceQuote,
    ShippingOption,
    _generate_key,
)
from .schemas import InformationForm, PaymentForm, ShippingForm, to_validation_error

log = logging.getLogger(__name__)


class OrderSubmitter(Protocol):
    def submit_order(self, payload: dict[str, Any], token: str | None = None) -> Order: ...


class CheckoutStep(str, Enum):
    INFORMATION = "information"
    SHIPPING = "shipping"
    PAYMENT = "payment"
    REVIEW = "review"
    CONFIRMED = "confirmed"


_PREVIOUS = {
    CheckoutStep.SHIPPING: CheckoutStep.INFORMATION,
    CheckoutStep.PAYMENT: CheckoutStep.SHIPPING,
    CheckoutStep.REVIEW: CheckoutStep.PAYMENT,
}


@dataclass(frozen=True)
class CheckoutReview:
    """Everything the customer confirms before placing the order."""

    contact: ContactInfo
    shipping_address: Address
    billing_address: BillingAddress
    same_as_billing: bool
    shipping_option: ShippingOption
    payment_method: PaymentMethod
    notes: str | None
    items: tuple[CartItem, ...]
    quote: PriceQuote


class CheckoutOrchestrator:
    """Drives one checkout session from contact details to a placed order."""

    def __init__(
        self,
        cart: CartStore,
        submitter: OrderSubmitter,
        token: str | None = None,
    ):
        """
        Initialize CheckoutOrchestrator.

        Args:
            cart: The cart being checked out. Cleared after a successful order.
            submitter: Sends the order to the server (normally an OrderClient).
            token: Bearer token of the signed-in customer, None for guests.
        """
        self.cart = cart
        self.submitter = submitter
        self.token = token
        self.step = CheckoutStep.INFORMATION
        self.confirmed_order: Order | None = None

        self._contact: ContactInfo | None = None
        self._shipping_address: Address | None = None
        self._shipping_option_id = pricing.DEFAULT_SHIPPING_OPTION
        self._same_as_billing = True
        self._billing: BillingAddress | None = None
        self._payment_method: PaymentMethod | None = None
        self._notes: str | None = None
        self._idempotency_key: str | None = None
        self._submit_lock = threading.Lock()

    @property
    def in_flight(self) -> bool:
        return self._submit_lock.locked()

    def _require_step(self, expected: CheckoutStep) -> None:
        if self.step is not expected:
            raise CheckoutStepError(expected.value, self.step.value)

    def _draft_changed(self) -> None:
        # A changed draft is a different order and needs a fresh key
        self._idempotency_key = None

    def submit_information(
        self,
        first_name: str,
        last_name: str,
        email: str,
        phone: str,
        address: str,
        city: str,
        state: str,
        zip_code: str,
        country: str,
    ) -> None:
        """
        Record contact details and shipping address.

        Raises:
            CheckoutStepError: If not on the information step.
            ValidationError: With field messages; the step doesn't change.
        """
        self._require_step(CheckoutStep.INFORMATION)
        try:
            form = InformationForm(
                first_name=first_name,
                last_name=last_name,
                email=email,
                phone=phone,
                address=address,
                city=city,
                state=state,
                zip_code=zip_code,
                country=country,
            )
        except PydanticValidationError as e:
            raise to_validation_error(e, "Please correct your contact information") from e

        self._contact = ContactInfo(form.first_name, form.last_name, str(form.email), form.phone)
        self._shipping_address = Address(
            form.address, form.city, form.state, form.zip_code, form.country
        )
        self._draft_changed()
        self.step = CheckoutStep.SHIPPING

    def select_shipping(
        self,
        option_id: str = pricing.DEFAULT_SHIPPING_OPTION,
        same_as_billing: bool = True,
        billing: BillingAddress | dict[str, Any] | None = None,
    ) -> None:
        """
        Choose a shipping option and, if it differs, the billing address.

        Raises:
            CheckoutStepError: If not on the shipping step.
            ValidationError: For an unknown option or invalid billing fields.
        """
        self._require_step(CheckoutStep.SHIPPING)
        if isinstance(billing, BillingAddress):
            billing = dataclasses.asdict(billing)
        try:
            form = ShippingForm(
                shipping_method=option_id,
                same_as_billing=same_as_billing,
                billing_address=billing,
            )
        except PydanticValidationError as e:
            raise to_validation_error(e, "Please correct your billing address") from e
        pricing.get_shipping_option(form.shipping_method, self.cart.subtotal)

        self._shipping_option_id = form.shipping_method
        self._same_as_billing = form.same_as_billing
        if form.same_as_billing or form.billing_address is None:
            self._billing = BillingAddress.from_shipping(self._contact, self._shipping_address)
        else:
            self._billing = form.billing_address.to_billing()
        self._draft_changed()
        self.step = CheckoutStep.PAYMENT

    def select_payment(self, method: PaymentMethod | str, notes: str | None = None) -> None:
        """
        Choose the payment method and add optional order notes.

        Raises:
            CheckoutStepError: If not on the payment step.
            ValidationError: For an unknown payment method.
        """
        self._require_step(CheckoutStep.PAYMENT)
        try:
            form = PaymentForm(payment_method=method, notes=notes)
        except PydanticValidationError as e:
            raise to_validation_error(e, "Please choose a payment method") from e

        self._payment_method = form.payment_method
        self._notes = form.notes or None
        self._draft_changed()
        self.step = CheckoutStep.REVIEW

    def back(self) -> CheckoutStep:
        """Return to the previous step, keeping what was entered."""
        previous = _PREVIOUS.get(self.step)
        if previous is None:
            raise CheckoutStepError("shipping, payment or review", self.step.value)
        self.step = previous
        return self.step

    def review(self) -> CheckoutReview:
        """Summary of the pending order, priced from the current cart."""
        self._require_step(CheckoutStep.REVIEW)
        items = self.cart.snapshot()
        subtotal = pricing.calculate_subtotal(items)
        return CheckoutReview(
            contact=self._contact,
            shipping_address=self._shipping_address,
            billing_address=self._billing,
            same_as_billing=self._same_as_billing,
            shipping_option=pricing.get_shipping_option(self._shipping_option_id, subtotal),
            payment_method=self._payment_method,
            notes=self._notes,
            items=items,
            quote=pricing.quote(items, self._shipping_option_id),
        )

    def build_draft(self) -> OrderDraft:
        self._require_step(CheckoutStep.REVIEW)
        if self._idempotency_key is None:
            self._idempotency_key = _generate_key()
        return OrderDraft(
            contact=self._contact,
            shipping_address=self._shipping_address,
            billing_address=self._billing,
            shipping_option_id=self._shipping_option_id,
            payment_method=self._payment_method,
            items=self.cart.snapshot(),
            notes=self._notes,
            same_as_billing=self._same_as_billing,
            idempotency_key=self._idempotency_key,
        )

    def place_order(self) -> Order:
        """
        Submit the order.

        On success the cart is cleared and the wizard moves to confirmed.
        On failure the wizard stays on review with cart and draft intact,
        and the error is re-raised so the caller can retry.

        Raises:
            CheckoutStepError: If not on the review step.
            SubmissionInProgressError: If a submission is already running.
            ValidationError: If the cart is empty or the server rejects the data.
            NetworkError: If the server couldn't be reached.
            PersistenceError: If the server failed to store the order.
        """
        if not self._submit_lock.acquire(blocking=False):
            raise SubmissionInProgressError()
        try:
            self._require_step(CheckoutStep.REVIEW)
            if self.cart.is_empty():
                raise ValidationError.for_field("orderItems", "Your cart is empty")

            draft = self.build_draft()
            try:
                order = self.submitter.submit_order(draft.to_payload(), self.token)
            except StorefrontError as e:
                log.warning("Order submission failed (key %s): %s", draft.idempotency_key, e)
                raise

            self.cart.clear()
            self.confirmed_order = order
            self.step = CheckoutStep.CONFIRMED
        finally:
            self._submit_lock.release()
        log.info("%s Checkout confirmed", order_prefix(order.order_number))
        return order
