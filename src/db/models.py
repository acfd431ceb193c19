# provide dataclass models

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional, Tuple

OrderStatus = Literal["pending", "confirmed", "shipped", "completed", "cancelled"]
ORDER_STATUSES: Tuple[str, ...] = (
    "pending",
    "confirmed",
    "shipped",
    "completed",
    "cancelled",
)

PaymentMethod = Literal["cod", "transfer"]
PAYMENT_METHODS = {"cod": "Cash on Delivery (COD)", "transfer": "Bank Transfer"}


@dataclass(frozen=True)
class Session:
    id: str
    created_at: datetime
    last_active: datetime


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    description: str
    price: int  # smallest currency unit
    flavor: str
    image_url: Optional[str]
    stock: int


@dataclass(frozen=True)
class CartLine:
    id: int
    session_id: str
    product_id: int
    quantity: int


@dataclass(frozen=True)
class CartEntry:
    """One cart row joined with its product, as shown in the cart.

    cart_line_id is None for entries appended optimistically and not yet
    reloaded from the backend.
    """

    product_id: int
    name: str
    price: int
    image_url: Optional[str]
    flavor: str
    stock: int
    quantity: int
    cart_line_id: Optional[int] = None

    @property
    def line_total(self) -> int:
        return self.price * self.quantity


@dataclass(frozen=True)
class Order:
    id: int
    session_id: Optional[str]
    total_amount: int
    status: OrderStatus
    shipping_address: str
    payment_method: PaymentMethod
    created_at: datetime


@dataclass(frozen=True)
class OrderLine:
    id: int
    order_id: int
    product_id: int
    quantity: int
    price_at_purchase: int  # unit price at time of order
    product_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.product_name or f"Product {self.product_id}"

    @property
    def line_total(self) -> int:
        return self.price_at_purchase * self.quantity
