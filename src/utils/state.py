from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

from db.client import BackendClient
from db.database import Database
from db.realtime import ChangeFeed
from db.storage import ObjectStorage
from store.cart import CartStateManager
from store.optimistic import Notify
from store.orders import OrderHistory
from store.session import LocalTokenStore, SessionIdentityProvider
from utils.config import Settings


@dataclass
class AppState:
    """
    Application context shared by screens, built once at startup and torn
    down at shutdown.

    Fields:
      - settings: configuration the context was built from
      - backend: typed client for tables, RPCs and the change feed
      - storage: object store for product images
      - sessions: guest session identity provider
      - cart: cart state manager bound to the resolved session
      - orders: order history of the session
    """

    settings: Settings
    backend: BackendClient
    storage: ObjectStorage
    sessions: SessionIdentityProvider
    cart: CartStateManager
    orders: OrderHistory
    started: bool = field(default=False)

    @classmethod
    def build(
        cls,
        settings: Settings,
        on_cart_change: Optional[Callable[[], None]] = None,
        notify: Optional[Notify] = None,
    ) -> "AppState":
        backend = BackendClient(Database(settings.db_path, seed=settings.seed), ChangeFeed())
        storage = ObjectStorage(settings.storage_dir, settings.public_url)
        sessions = SessionIdentityProvider(backend, LocalTokenStore(settings.token_path))
        cart = CartStateManager(backend, sessions, on_change=on_cart_change, notify=notify)
        return cls(
            settings=settings,
            backend=backend,
            storage=storage,
            sessions=sessions,
            cart=cart,
            orders=OrderHistory(backend, sessions),
        )

    @property
    def session_id(self) -> Optional[str]:
        return self.sessions.session_id

    async def start(self) -> str:
        """Resolve the session and bring the cart online; errors are fatal to the caller."""
        await self.cart.initialize()
        self.started = True
        return self.cart.session_id

    async def shutdown(self) -> None:
        self.orders.unwatch()
        self.cart.close()
        self.backend.feed.close()
        await self.backend.feed.wait_idle()
        self.started = False
