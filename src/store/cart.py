from __future__ import annotations

import dataclasses
from typing import Callable, List, Optional, Tuple

from db.client import BackendClient
from db.errors import BackendError
from db.models import CartEntry, Product
from db.realtime import Subscription
from store.optimistic import Notify, run_optimistic
from store.session import SessionIdentityProvider
from utils.logger import get_logger

_logger = get_logger(__name__)


class CartStateManager:
    """
    Owns this session's cart as shown on screen.

    Every mutation updates the local list first, then the backend; a failed
    backend call throws the local list away and reloads it. A realtime
    subscription on the session's cart rows reloads the whole list on any
    change, so other tabs or clients converge on the same state.

    Usable as ``async with CartStateManager(...) as cart:``, which guarantees
    the subscription is released.
    """

    def __init__(
        self,
        backend: BackendClient,
        sessions: SessionIdentityProvider,
        on_change: Optional[Callable[[], None]] = None,
        notify: Optional[Notify] = None,
    ) -> None:
        self._backend = backend
        self._sessions = sessions
        self._on_change = on_change
        self._notify = notify

        self.session_id: Optional[str] = None
        self.loading = True
        self._lines: List[CartEntry] = []
        self._subscription: Optional[Subscription] = None
        self._closed = False
        # bumped by every local write; a load that started earlier is stale
        self._generation = 0

    # ---------------------------
    # Derived values
    # ---------------------------

    @property
    def lines(self) -> Tuple[CartEntry, ...]:
        return tuple(self._lines)

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self._lines)

    @property
    def total_price(self) -> int:
        return sum(line.price * line.quantity for line in self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def quantity_of(self, product_id: int) -> int:
        for line in self._lines:
            if line.product_id == product_id:
                return line.quantity
        return 0

    # ---------------------------
    # Lifecycle
    # ---------------------------

    async def initialize(self) -> None:
        """Resolve the session, load the cart, then listen for cart row changes."""
        try:
            self.session_id = await self._sessions.resolve()
            await self.load()
            if not self._closed:
                self._subscription = self._backend.subscribe(
                    "cart_items",
                    self._handle_remote_change,
                    event="*",
                    filters={"session_id": self.session_id},
                )
        except BaseException:
            self.close()
            raise
        finally:
            self.loading = False

    def close(self) -> None:
        """Release the subscription; results arriving afterwards are ignored."""
        self._closed = True
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> "CartStateManager":
        await self.initialize()
        return self

    async def __aexit__(self, *exc) -> None:
        self.close()

    # ---------------------------
    # Loading
    # ---------------------------

    async def load(self) -> None:
        """Replace the local list with the session's cart rows, all at once."""
        # a local write during the fetch makes the result stale; fetch again
        while self.session_id is not None and not self._closed:
            generation = self._generation
            entries = await self._backend.list_cart_entries(self.session_id)
            if self._closed:
                return
            if generation == self._generation:
                self._replace(entries)
                return
            _logger.debug("Cart changed during load, reloading")

    async def _reconcile(self) -> None:
        try:
            await self.load()
        except BackendError as e:
            _logger.error(f"Error loading cart: {e}")
            if self._notify is not None:
                self._notify("Could not load your cart.", "error")

    async def _handle_remote_change(self) -> None:
        await self._reconcile()

    def _replace(self, entries: List[CartEntry]) -> None:
        self._lines = list(entries)
        self._changed()

    def _local(self, mutate: Callable[[List[CartEntry]], List[CartEntry]]) -> Callable[[], None]:
        def apply() -> None:
            self._generation += 1
            self._lines = mutate(list(self._lines))
            self._changed()

        return apply

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    # ---------------------------
    # Mutations
    # ---------------------------

    async def add_to_cart(self, product: Product) -> bool:
        """Add one unit of ``product``; an existing line is incremented, never duplicated."""
        product_id = getattr(product, "id", None)
        if not isinstance(product_id, int) or isinstance(product_id, bool) or product_id < 1:
            raise ValueError(f"Cannot add a product without a valid id: {product!r}")
        if self.session_id is None or self._closed:
            return False
        session_id = self.session_id

        def mutate(lines: List[CartEntry]) -> List[CartEntry]:
            for i, line in enumerate(lines):
                if line.product_id == product_id:
                    lines[i] = dataclasses.replace(line, quantity=line.quantity + 1)
                    return lines
            lines.append(
                CartEntry(
                    product_id=product_id,
                    name=product.name,
                    price=product.price,
                    image_url=product.image_url,
                    flavor=product.flavor,
                    stock=product.stock,
                    quantity=1,
                )
            )
            return lines

        async def remote() -> None:
            existing = await self._backend.find_cart_line(session_id, product_id)
            if existing is not None:
                await self._backend.increment_cart_line(existing.id)
            else:
                await self._backend.insert_cart_line(session_id, product_id, 1)

        return await run_optimistic(
            self._local(mutate),
            remote,
            self._reconcile,
            action="add item to cart",
            notify=self._notify,
        )

    async def remove_from_cart(self, product_id: int) -> bool:
        if self.session_id is None or self._closed:
            return False
        session_id = self.session_id
        return await run_optimistic(
            self._local(lambda lines: [line for line in lines if line.product_id != product_id]),
            lambda: self._backend.delete_cart_line(session_id, product_id),
            self._reconcile,
            action="remove item from cart",
            notify=self._notify,
        )

    async def update_quantity(self, product_id: int, quantity: int) -> bool:
        """Set a line's quantity. Quantities below 1 are ignored, not errors."""
        if self.session_id is None or self._closed or quantity < 1:
            return False
        session_id = self.session_id

        def mutate(lines: List[CartEntry]) -> List[CartEntry]:
            return [
                dataclasses.replace(line, quantity=quantity)
                if line.product_id == product_id
                else line
                for line in lines
            ]

        return await run_optimistic(
            self._local(mutate),
            lambda: self._backend.set_cart_quantity(session_id, product_id, quantity),
            self._reconcile,
            action="update quantity",
            notify=self._notify,
        )

    async def clear(self) -> bool:
        """Empty the cart locally and remotely; used after an order is placed."""
        if self.session_id is None or self._closed:
            return False
        session_id = self.session_id
        return await run_optimistic(
            self._local(lambda lines: []),
            lambda: self._backend.clear_cart(session_id),
            self._reconcile,
            action="clear cart",
            notify=self._notify,
        )
