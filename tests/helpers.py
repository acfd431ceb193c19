import os
import tempfile
import unittest
from typing import List, Optional, Tuple

from db.client import BackendClient
from db.database import Database
from db.models import Product
from db.realtime import ChangeFeed
from db.storage import ObjectStorage
from store.cart import CartStateManager
from store.session import LocalTokenStore, SessionIdentityProvider


class StoreTestCase(unittest.IsolatedAsyncioTestCase):
    """Fresh seeded database, change feed and token file per test."""

    backend_class = BackendClient

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, "test.sqlite")
        self.feed = ChangeFeed()
        self.backend = self.backend_class(Database(self.db_path), self.feed)
        self.storage = ObjectStorage(
            os.path.join(self.temp_dir.name, "storage"), "https://cdn.test/storage/v1"
        )
        self.notifications: List[Tuple[str, str]] = []
        self._carts: List[CartStateManager] = []

    async def asyncTearDown(self):
        for cart in self._carts:
            cart.close()
        self.feed.close()
        await self.feed.wait_idle()

    def tearDown(self):
        self.temp_dir.cleanup()

    def token_store(self, name: str = "session.json") -> LocalTokenStore:
        return LocalTokenStore(os.path.join(self.temp_dir.name, name))

    def provider(self, name: str = "session.json") -> SessionIdentityProvider:
        return SessionIdentityProvider(self.backend, self.token_store(name))

    def notify(self, message: str, severity: str) -> None:
        self.notifications.append((message, severity))

    async def new_cart(
        self,
        sessions: Optional[SessionIdentityProvider] = None,
        on_change=None,
    ) -> CartStateManager:
        cart = CartStateManager(
            self.backend,
            sessions or self.provider(),
            on_change=on_change,
            notify=self.notify,
        )
        self._carts.append(cart)
        await cart.initialize()
        return cart

    async def product(self, product_id: int) -> Product:
        prod = await self.backend.get_product(product_id)
        self.assertIsNotNone(prod)
        return prod

    async def count_rows(self, table: str, where: str = "", params: tuple = ()) -> int:
        async with self.backend.connect() as conn:
            cur = await conn.execute(f"SELECT COUNT(*) FROM {table} {where};", params)
            row = await cur.fetchone()
            await cur.close()
        return row[0]
