"""
In-process change notifications for backend tables.

The client publishes a ChangeEvent after each committed mutation. Listeners
subscribe by table, event type and equality filters on the changed row
(``session_id=<id>``), and receive a no-argument callback. Delivery is
scheduled on the running event loop, never inline with the mutation, so a
caller always observes its own mutation returning before any echo arrives.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Literal, Mapping, Optional, Set

from utils.logger import get_logger

_logger = get_logger(__name__)

EventType = Literal["INSERT", "UPDATE", "DELETE", "*"]
ChangeCallback = Callable[[], Optional[Awaitable[None]]]


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: Literal["INSERT", "UPDATE", "DELETE"]
    record: Mapping[str, Any] = field(default_factory=dict)


class Subscription:
    """Handle for one listener; close() releases it and is safe to call twice."""

    def __init__(
        self,
        feed: "ChangeFeed",
        table: str,
        callback: ChangeCallback,
        event: EventType = "*",
        filters: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._feed = feed
        self.table = table
        self.event = event
        self.filters: Dict[str, Any] = dict(filters or {})
        self.callback = callback
        self.active = True

    def matches(self, change: ChangeEvent) -> bool:
        if not self.active or change.table != self.table:
            return False
        if self.event != "*" and self.event != change.event_type:
            return False
        return all(
            str(change.record.get(k)) == str(v) for k, v in self.filters.items()
        )

    def close(self) -> None:
        if not self.active:
            return
        self.active = False
        self._feed._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class ChangeFeed:
    def __init__(self) -> None:
        self._subscriptions: List[Subscription] = []
        self._pending: Set[asyncio.Task] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        event: EventType = "*",
        filters: Optional[Mapping[str, Any]] = None,
    ) -> Subscription:
        sub = Subscription(self, table, callback, event, filters)
        self._subscriptions.append(sub)
        _logger.debug(f"Subscribed to {event} on {table} {sub.filters}")
        return sub

    def _remove(self, sub: Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    def publish(self, change: ChangeEvent) -> None:
        """Schedule delivery of ``change`` to every matching subscription."""
        targets = [s for s in self._subscriptions if s.matches(change)]
        if not targets:
            return
        loop = asyncio.get_running_loop()
        for sub in targets:
            task = loop.create_task(self._deliver(sub))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, sub: Subscription) -> None:
        # the listener may have been closed between publish and delivery
        if not sub.active:
            return
        try:
            result = sub.callback()
            if inspect.isawaitable(result):
                await result
        except Exception:
            _logger.exception(f"Change listener on {sub.table} failed")

    async def wait_idle(self) -> None:
        """Wait until every scheduled delivery, including cascades, has run."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def close(self) -> None:
        for sub in list(self._subscriptions):
            sub.close()
