"""
Checkout

Pricing, the checkout form schema and the order submission workflow. An order
header and its items are written as one unit: if the items cannot be stored
the header is deleted again and the cart is left untouched for a retry.
"""

import logging
import random
import re
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError
from pymongo.database import Database
from pymongo.errors import PyMongoError

import config
from cart import CartLine, CartStore
from database import create_document, now_utc, to_object_id
from schemas import Order, OrderItem, PaymentMethod

logger = logging.getLogger(__name__)

CARD_FIELDS = ("card_name", "card_number", "card_expiry", "card_cvc")
PROFILE_FIELDS = (
    "first_name", "last_name", "phone", "address_line1", "address_line2",
    "city", "state", "postal_code", "country",
)


class CheckoutError(Exception):
    pass


class CheckoutValidationError(CheckoutError):
    def __init__(self, errors: List["FieldError"]):
        super().__init__("Invalid checkout details")
        self.errors = errors


class EmptyCartError(CheckoutError):
    pass


class SubmissionInProgress(CheckoutError):
    pass


class OrderPersistenceError(CheckoutError):
    pass


# Pricing

class OrderTotals(BaseModel):
    subtotal: float
    shipping: float
    tax: float
    total: float
    currency: str = config.CURRENCY


def shipping_for(subtotal: float) -> float:
    return 0.0 if subtotal > config.FREE_SHIPPING_THRESHOLD else config.FLAT_SHIPPING_FEE


def compute_totals(subtotal: float) -> OrderTotals:
    shipping = shipping_for(subtotal)
    tax = subtotal * config.TAX_RATE
    return OrderTotals(
        subtotal=round(subtotal, 2),
        shipping=round(shipping, 2),
        tax=round(tax, 2),
        total=round(subtotal + shipping + tax, 2),
        currency=config.CURRENCY,
    )


def format_amount(amount: float, currency: str = config.CURRENCY) -> str:
    return f"{currency} {amount:.2f}"


# Form

class FieldError(BaseModel):
    field: str
    message: str


class CheckoutForm(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    address_line1: str = Field(..., min_length=1)
    address_line2: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    country: str = Field(config.DEFAULT_COUNTRY, min_length=1)
    payment_method: PaymentMethod = "cod"
    card_name: Optional[str] = None
    card_number: Optional[str] = None
    card_expiry: Optional[str] = None
    card_cvc: Optional[str] = None

    def card_errors(self) -> List[FieldError]:
        if self.payment_method != "credit_card":
            return []
        errors = [
            FieldError(field=name, message="Field required for credit card payments")
            for name in CARD_FIELDS
            if not getattr(self, name)
        ]
        if self.card_number and not re.fullmatch(r"\d{12,19}", self.card_number.replace(" ", "")):
            errors.append(FieldError(field="card_number", message="Card number must be 12 to 19 digits"))
        if self.card_expiry and not re.fullmatch(r"(0[1-9]|1[0-2])/\d{2}", self.card_expiry):
            errors.append(FieldError(field="card_expiry", message="Expiration must be MM/YY"))
        if self.card_cvc and not re.fullmatch(r"\d{3,4}", self.card_cvc):
            errors.append(FieldError(field="card_cvc", message="CVC must be 3 or 4 digits"))
        return errors


def validate_checkout(payload: Dict[str, Any]) -> Tuple[Optional[CheckoutForm], List[FieldError]]:
    """Validate raw checkout input without raising.

    Returns the parsed form and an empty list, or None and the field errors.
    """
    try:
        form = CheckoutForm.model_validate(payload)
    except ValidationError as exc:
        errors = [
            FieldError(field=".".join(str(p) for p in err["loc"]) or "form", message=err["msg"])
            for err in exc.errors()
        ]
        return None, errors
    errors = form.card_errors()
    if errors:
        return None, errors
    return form, []


# Workflow

class OrderConfirmation(BaseModel):
    order_id: str
    order_number: str
    email: str
    payment_method: PaymentMethod
    totals: OrderTotals


def generate_order_number() -> str:
    return str(random.randint(100000, 999999))


class CheckoutWorkflow:
    """Places orders for one shopper session.

    Only one submission may run at a time; `is_submitting` is true while one is
    in flight and callers use it to disable the submit control.
    """

    def __init__(self, cart: CartStore, notify: Optional[Callable[..., None]] = None):
        self.cart = cart
        self._notify = notify
        self._in_flight = threading.Lock()

    @property
    def is_submitting(self) -> bool:
        return self._in_flight.locked()

    def summary(self) -> OrderTotals:
        return compute_totals(self.cart.get_total())

    def submit_order(self, db: Database, form: CheckoutForm, customer_id: Optional[str] = None) -> OrderConfirmation:
        errors = form.card_errors()
        if errors:
            raise CheckoutValidationError(errors)
        if not self._in_flight.acquire(blocking=False):
            raise SubmissionInProgress("An order is already being submitted")
        try:
            lines = self.cart.snapshot()
            if not lines:
                raise EmptyCartError("Your cart is empty")
            try:
                confirmation = self._persist(db, form, customer_id, lines)
            except OrderPersistenceError:
                self._emit("We couldn't place your order. Please try again.", "error")
                raise
            self.cart.remove_ordered(lines)
            self._emit("Your order has been placed successfully!", "success")
            if customer_id:
                upsert_customer_profile(db, customer_id, form)
            return confirmation
        finally:
            self._in_flight.release()

    def _persist(self, db: Database, form: CheckoutForm, customer_id: Optional[str],
                 lines: List[CartLine]) -> OrderConfirmation:
        totals = compute_totals(sum(line.line_total for line in lines))
        order = Order(
            customer_id=customer_id,
            order_number=generate_order_number(),
            status="pending",
            total_amount=totals.total,
            shipping_address=form.address_line1,
            shipping_address_line2=form.address_line2 or None,
            shipping_city=form.city,
            shipping_state=form.state,
            shipping_postal_code=form.postal_code,
            shipping_country=form.country,
            payment_method=form.payment_method,
            contact_email=form.email,
        )
        try:
            order_id = create_document(db, "order", order)
        except PyMongoError as e:
            logger.exception("Failed to create order header")
            raise OrderPersistenceError(str(e)) from e

        created = now_utc()
        items = [
            {
                **OrderItem(
                    order_id=order_id,
                    product_id=line.product.id,
                    variant_id=line.variant_id,
                    size=line.size,
                    color=line.color.name,
                    quantity=line.quantity,
                    price=line.unit_price,
                ).model_dump(),
                "created_at": created,
            }
            for line in lines
        ]
        try:
            db["order_item"].insert_many(items)
        except PyMongoError as e:
            logger.exception("Failed to store items for order %s, removing header", order_id)
            try:
                db["order"].delete_one({"_id": to_object_id(order_id)})
                db["order_item"].delete_many({"order_id": order_id})
            except PyMongoError:
                logger.error("Could not remove incomplete order %s", order_id)
            raise OrderPersistenceError(str(e)) from e

        logger.info("Placed order %s (%s) with %d items", order_id, order.order_number, len(items))
        return OrderConfirmation(
            order_id=order_id,
            order_number=order.order_number,
            email=form.email,
            payment_method=form.payment_method,
            totals=totals,
        )

    def _emit(self, message: str, level: str) -> None:
        if self._notify:
            self._notify(message, level)


def upsert_customer_profile(db: Database, customer_id: str, form: CheckoutForm) -> bool:
    """Copy contact and address fields onto the customer's profile.

    Failures are logged and reported as False; they never fail the order.
    """
    oid = to_object_id(customer_id)
    if oid is None:
        logger.warning("Skipping profile update for invalid customer id %r", customer_id)
        return False
    fields = {name: getattr(form, name) for name in PROFILE_FIELDS}
    fields["email"] = form.email
    fields["updated_at"] = now_utc()
    try:
        db["customer"].update_one(
            {"_id": oid},
            {"$set": fields, "$setOnInsert": {"is_admin": False, "created_at": now_utc()}},
            upsert=True,
        )
    except PyMongoError:
        logger.warning("Could not update profile for customer %s", customer_id, exc_info=True)
        return False
    return True
