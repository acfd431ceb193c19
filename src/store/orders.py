from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional

from db.client import BackendClient, order_lines_by_order
from db.models import Order, OrderLine
from db.realtime import Subscription
from store.session import SessionIdentityProvider

STATUS_LABELS = {
    "pending": "Menunggu",
    "confirmed": "Diterima",
    "shipped": "Dikirim",
    "completed": "Selesai",
    "cancelled": "Batal",
}


@dataclass(frozen=True)
class OrderWithLines:
    order: Order
    lines: List[OrderLine]

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)


class OrderHistory:
    """
    The guest session's past orders, newest first.

    Totals are the stored order totals and line prices are the purchase-time
    snapshots; nothing is recomputed from current product prices.
    """

    def __init__(self, backend: BackendClient, sessions: SessionIdentityProvider) -> None:
        self._backend = backend
        self._sessions = sessions
        self._subscription: Optional[Subscription] = None
        self.orders: List[OrderWithLines] = []

    async def load(self) -> List[OrderWithLines]:
        session_id = self._sessions.current()
        if not session_id:
            self.orders = []
            return self.orders
        orders = await self._backend.list_orders(session_id=session_id)
        grouped = order_lines_by_order(
            await self._backend.list_order_items([o.id for o in orders])
        )
        self.orders = [OrderWithLines(o, grouped.get(o.id, [])) for o in orders]
        return self.orders

    def watch(self, callback: Callable[[], object]) -> Optional[Subscription]:
        """Call ``callback`` whenever one of this session's orders changes."""
        self.unwatch()
        session_id = self._sessions.current()
        if not session_id:
            return None
        self._subscription = self._backend.subscribe(
            "orders", callback, event="*", filters={"session_id": session_id}
        )
        return self._subscription

    def unwatch(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
