from typing import Iterable, List, Optional

from db.client import BackendClient
from db.models import Product


async def list_products(backend: BackendClient) -> List[Product]:
    return await backend.list_products()


async def get_product(backend: BackendClient, product_id: int) -> Optional[Product]:
    return await backend.get_product(product_id)


def filter_products(products: Iterable[Product], term: Optional[str]) -> List[Product]:
    """Case-insensitive match of ``term`` against name or flavor; empty term keeps all."""
    needle = (term or "").strip().lower()
    if not needle:
        return list(products)
    return [
        p
        for p in products
        if needle in (p.name or "").lower() or needle in (p.flavor or "").lower()
    ]


async def search_products(backend: BackendClient, term: Optional[str]) -> List[Product]:
    return filter_products(await backend.list_products(), term)
