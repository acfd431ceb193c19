from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from db.client import BackendClient
from db.errors import BackendError
from db.models import PAYMENT_METHODS, Order, OrderLine
from store.cart import CartStateManager
from utils.logger import get_logger

_logger = get_logger(__name__)


class CheckoutError(Exception):
    """The order could not be created; nothing was placed, the user should retry."""


class EmptyCartError(CheckoutError):
    pass


@dataclass(frozen=True)
class ShippingDetails:
    name: str
    phone: str
    address: str
    payment_method: str = "cod"

    def validate(self) -> None:
        missing = [
            label
            for label, value in (
                ("name", self.name),
                ("phone", self.phone),
                ("address", self.address),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise ValueError(f"Missing shipping details: {', '.join(missing)}")
        if self.payment_method not in PAYMENT_METHODS:
            raise ValueError(f"Unknown payment method: {self.payment_method}")


def format_shipping_address(details: ShippingDetails) -> str:
    return f"{details.name.strip()} ({details.phone.strip()}), {details.address.strip()}"


@dataclass(frozen=True)
class CheckoutResult:
    order: Order
    lines: List[OrderLine]
    # (product_id, quantity) pairs whose stock could not be decremented
    stock_shortfalls: List[Tuple[int, int]]


async def place_order(
    backend: BackendClient,
    cart: CartStateManager,
    details: ShippingDetails,
    when: Optional[datetime] = None,
) -> CheckoutResult:
    """
    Turn the session's cart into an order.

    The order row and its lines are written in one transaction, each line
    freezing the product's price at this moment. Stock is then decremented
    line by line; a failed decrement is logged and never undoes the order.
    Finally the cart is cleared.
    """
    details.validate()
    if cart.session_id is None:
        raise CheckoutError("Session is not initialized.")
    if cart.is_empty:
        raise EmptyCartError("Your cart is empty.")

    items = [(line.product_id, line.quantity) for line in cart.lines]
    try:
        order, lines = await backend.place_order(
            cart.session_id,
            items,
            format_shipping_address(details),
            details.payment_method,
            when,
        )
    except BackendError as e:
        _logger.error(f"Checkout error: {e}")
        raise CheckoutError("Could not place your order, please try again.") from e
    _logger.info(f"Order #{order.id} placed for session {cart.session_id}")

    shortfalls: List[Tuple[int, int]] = []
    for line in lines:
        try:
            ok = await backend.decrement_stock(line.product_id, line.quantity)
        except BackendError as e:
            _logger.warning(
                f"Stock decrement failed for product {line.product_id} on order #{order.id}: {e}"
            )
            ok = False
        if not ok:
            _logger.warning(
                f"Stock for product {line.product_id} not reduced by {line.quantity} (order #{order.id})"
            )
            shortfalls.append((line.product_id, line.quantity))

    await cart.clear()
    return CheckoutResult(order=order, lines=lines, stock_shortfalls=shortfalls)
