from __future__ import annotations

import os
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from db.client import BackendClient
from db.models import ORDER_STATUSES, Order, Product
from db.storage import ObjectStorage
from utils.logger import get_logger

_logger = get_logger(__name__)


# ---------------------------
# Orders
# ---------------------------


async def set_order_status(backend: BackendClient, order_id: int, status: str) -> Order:
    """Assign any known status regardless of the current one; last write wins."""
    if status not in ORDER_STATUSES:
        raise ValueError(f"Unknown order status: {status}")
    order = await backend.update_order_status(order_id, status)
    _logger.info(f"Order #{order_id} set to {status}")
    return order


# ---------------------------
# Products & stock
# ---------------------------


def _check_amount(label: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{label} must be a whole number")
    if value < 0:
        raise ValueError(f"{label} cannot be negative")
    return value


async def set_stock(backend: BackendClient, product_id: int, stock: int) -> Product:
    """Overwrite the stock count (absolute, not a delta)."""
    _check_amount("Stock", stock)
    product = await backend.set_product_stock(product_id, stock)
    _logger.info(f"Stock of product {product_id} set to {stock}")
    return product


async def create_product(
    backend: BackendClient,
    name: str,
    price: int,
    stock: int = 0,
    description: str = "",
    flavor: str = "",
    image_url: Optional[str] = None,
) -> Product:
    if not name or not name.strip():
        raise ValueError("Product name is required")
    _check_amount("Price", price)
    _check_amount("Stock", stock)
    return await backend.insert_product(
        name=name.strip(),
        price=price,
        stock=stock,
        description=description,
        flavor=flavor,
        image_url=image_url,
    )


async def update_product(backend: BackendClient, product_id: int, **fields) -> Product:
    if "name" in fields and not (fields["name"] or "").strip():
        raise ValueError("Product name is required")
    if "price" in fields:
        _check_amount("Price", fields["price"])
    if "stock" in fields:
        _check_amount("Stock", fields["stock"])
    return await backend.update_product(product_id, **fields)


async def delete_product(backend: BackendClient, product_id: int) -> None:
    await backend.delete_product(product_id)
    _logger.info(f"Product {product_id} deleted")


def _object_name(filename: str) -> str:
    base = os.path.basename(filename) or "image"
    return re.sub(r"[^A-Za-z0-9._-]+", "-", base)


async def upload_product_image(
    backend: BackendClient,
    storage: ObjectStorage,
    product_id: int,
    filename: str,
    data: bytes,
) -> Product:
    """Store the image under products/<id>/ and point the product at its public URL."""
    path = f"products/{product_id}/{_object_name(filename)}"
    key = await storage.upload(path, data, upsert=True)
    return await backend.update_product(product_id, image_url=storage.get_public_url(key))


# ---------------------------
# Dashboard
# ---------------------------


@dataclass(frozen=True)
class DashboardStats:
    orders: int = 0
    revenue: int = 0
    customers: int = 0
    items_sold: int = 0
    recent_orders: List[Order] = field(default_factory=list)
    # (YYYY-MM-DD, revenue) ascending by day
    revenue_by_day: List[Tuple[str, int]] = field(default_factory=list)


async def load_dashboard(backend: BackendClient, recent: int = 5) -> DashboardStats:
    orders = await backend.list_orders()
    lines = await backend.list_order_items()

    per_day: "OrderedDict[str, int]" = OrderedDict()
    for order in sorted(orders, key=lambda o: o.created_at):
        # calendar day in the viewer's local time zone
        day = order.created_at.astimezone().date().isoformat()
        per_day[day] = per_day.get(day, 0) + order.total_amount

    return DashboardStats(
        orders=len(orders),
        revenue=sum(o.total_amount for o in orders),
        customers=len({o.shipping_address for o in orders}),
        items_sold=sum(line.quantity for line in lines),
        recent_orders=orders[:recent],
        revenue_by_day=list(per_day.items()),
    )
