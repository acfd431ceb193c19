# src/db/client.py
from __future__ import annotations

import dataclasses
import uuid
from datetime import datetime, timezone
from sqlite3 import Row
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from db import models
from db.database import Database
from db.errors import BackendError, NotFoundError
from db.realtime import ChangeCallback, ChangeEvent, ChangeFeed, EventType, Subscription

PRODUCT_FIELDS = ("name", "description", "price", "flavor", "image_url", "stock")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _ts(when: Optional[datetime]) -> str:
    when = when or _now()
    # naive datetimes are taken as UTC so stored timestamps sort as text
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc).isoformat()


def _parse_ts(val) -> datetime:
    return datetime.fromisoformat(val) if isinstance(val, str) else val


def _row_to_session(row: Row) -> models.Session:
    return models.Session(
        id=row["id"],
        created_at=_parse_ts(row["created_at"]),
        last_active=_parse_ts(row["last_active"]),
    )


def _row_to_product(row: Row) -> models.Product:
    return models.Product(
        id=int(row["id"]),
        name=row["name"],
        description=row["description"],
        price=int(row["price"]),
        flavor=row["flavor"],
        image_url=row["image_url"],
        stock=int(row["stock"]),
    )


def _row_to_order(row: Row) -> models.Order:
    return models.Order(
        id=int(row["id"]),
        session_id=row["session_id"],
        total_amount=int(row["total_amount"]),
        status=row["status"],
        shipping_address=row["shipping_address"],
        payment_method=row["payment_method"],
        created_at=_parse_ts(row["created_at"]),
    )


class BackendClient:
    """
    Typed access to the five store tables, the stock/order RPCs and the
    change feed. Every committed mutation publishes a ChangeEvent.
    """

    def __init__(self, database: Database, feed: Optional[ChangeFeed] = None) -> None:
        self.database = database
        self.feed = feed or ChangeFeed()

    def connect(self):
        return self.database.connect()

    def _publish(self, table: str, event_type: str, record: Mapping[str, Any]) -> None:
        self.feed.publish(ChangeEvent(table, event_type, dict(record)))

    def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        event: EventType = "*",
        filters: Optional[Mapping[str, Any]] = None,
    ) -> Subscription:
        return self.feed.subscribe(table, callback, event=event, filters=filters)

    # ---------------------------
    # Sessions
    # ---------------------------

    async def create_session(self, when: Optional[datetime] = None) -> models.Session:
        """Insert a fresh anonymous session and return it."""
        session_id = str(uuid.uuid4())
        ts = _ts(when)
        async with self.connect() as conn:
            await conn.execute(
                "INSERT INTO sessions(id, created_at, last_active) VALUES (?, ?, ?);",
                (session_id, ts, ts),
            )
            await conn.commit()
        record = {"id": session_id, "created_at": ts, "last_active": ts}
        self._publish("sessions", "INSERT", record)
        return models.Session(session_id, _parse_ts(ts), _parse_ts(ts))

    async def get_session(self, session_id: str) -> Optional[models.Session]:
        async with self.connect() as conn:
            cur = await conn.execute(
                "SELECT id, created_at, last_active FROM sessions WHERE id = ?;",
                (session_id,),
            )
            row = await cur.fetchone()
            await cur.close()
        return _row_to_session(row) if row else None

    async def touch_session(self, session_id: str, when: Optional[datetime] = None) -> None:
        ts = _ts(when)
        async with self.connect() as conn:
            await conn.execute(
                "UPDATE sessions SET last_active = ? WHERE id = ?;", (ts, session_id)
            )
            await conn.commit()
        self._publish("sessions", "UPDATE", {"id": session_id, "last_active": ts})

    # ---------------------------
    # Products
    # ---------------------------

    async def list_products(self) -> List[models.Product]:
        """All products ordered by id."""
        async with self.connect() as conn:
            cur = await conn.execute(
                """
                SELECT id, name, description, price, flavor, image_url, stock
                FROM products
                ORDER BY id;
                """
            )
            rows = await cur.fetchall()
            await cur.close()
        return [_row_to_product(r) for r in rows]

    async def get_product(self, product_id: int) -> Optional[models.Product]:
        async with self.connect() as conn:
            cur = await conn.execute(
                "SELECT id, name, description, price, flavor, image_url, stock FROM products WHERE id = ?;",
                (product_id,),
            )
            row = await cur.fetchone()
            await cur.close()
        return _row_to_product(row) if row else None

    async def insert_product(
        self,
        name: str,
        price: int,
        stock: int = 0,
        description: str = "",
        flavor: str = "",
        image_url: Optional[str] = None,
    ) -> models.Product:
        async with self.connect() as conn:
            cur = await conn.execute(
                """
                INSERT INTO products(name, description, price, flavor, image_url, stock)
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                (name, description, price, flavor, image_url, stock),
            )
            product_id = cur.lastrowid
            await cur.close()
            await conn.commit()
        product = models.Product(
            id=product_id,
            name=name,
            description=description,
            price=price,
            flavor=flavor,
            image_url=image_url,
            stock=stock,
        )
        self._publish("products", "INSERT", dataclasses.asdict(product))
        return product

    async def update_product(self, product_id: int, **fields) -> models.Product:
        """Overwrite the given product columns; returns the updated row."""
        unknown = set(fields) - set(PRODUCT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown product fields: {sorted(unknown)}")
        if fields:
            assignments = ", ".join(f"{k} = ?" for k in fields)
            async with self.connect() as conn:
                cur = await conn.execute(
                    f"UPDATE products SET {assignments} WHERE id = ?;",
                    (*fields.values(), product_id),
                )
                updated = cur.rowcount
                await cur.close()
                await conn.commit()
            if not updated:
                raise NotFoundError(f"Product {product_id} not found")
        product = await self.get_product(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        if fields:
            self._publish("products", "UPDATE", dataclasses.asdict(product))
        return product

    async def set_product_stock(self, product_id: int, stock: int) -> models.Product:
        return await self.update_product(product_id, stock=stock)

    async def delete_product(self, product_id: int) -> None:
        async with self.connect() as conn:
            # cart rows go with the product; collect them for the change feed
            cur = await conn.execute(
                "SELECT id, session_id FROM cart_items WHERE product_id = ?;",
                (product_id,),
            )
            cart_rows = await cur.fetchall()
            await cur.close()
            cur = await conn.execute("DELETE FROM products WHERE id = ?;", (product_id,))
            deleted = cur.rowcount
            await cur.close()
            await conn.commit()
        if not deleted:
            raise NotFoundError(f"Product {product_id} not found")
        self._publish("products", "DELETE", {"id": product_id})
        for row in cart_rows:
            self._publish(
                "cart_items",
                "DELETE",
                {"id": row["id"], "session_id": row["session_id"], "product_id": product_id},
            )

    async def decrement_stock(self, product_id: int, quantity: int) -> bool:
        """Atomically subtract ``quantity`` from stock.

        Returns False (and changes nothing) when stock would go negative.
        """
        async with self.connect() as conn:
            cur = await conn.execute(
                "UPDATE products SET stock = stock - ? WHERE id = ? AND stock >= ?;",
                (quantity, product_id, quantity),
            )
            updated = cur.rowcount
            await cur.close()
            await conn.commit()
        if updated:
            self._publish("products", "UPDATE", {"id": product_id})
        return updated > 0

    # ---------------------------
    # Cart
    # ---------------------------

    async def list_cart_entries(self, session_id: str) -> List[models.CartEntry]:
        """Cart rows of one session joined with their product, in row order."""
        async with self.connect() as conn:
            cur = await conn.execute(
                """
                SELECT c.id AS cart_line_id, c.quantity,
                       p.id AS product_id, p.name, p.price, p.image_url, p.flavor, p.stock
                FROM cart_items c
                JOIN products p ON p.id = c.product_id
                WHERE c.session_id = ?
                ORDER BY c.id;
                """,
                (session_id,),
            )
            rows = await cur.fetchall()
            await cur.close()
        return [
            models.CartEntry(
                product_id=int(r["product_id"]),
                name=r["name"],
                price=int(r["price"]),
                image_url=r["image_url"],
                flavor=r["flavor"],
                stock=int(r["stock"]),
                quantity=int(r["quantity"]),
                cart_line_id=int(r["cart_line_id"]),
            )
            for r in rows
        ]

    async def list_cart_lines(self, session_id: str) -> List[models.CartLine]:
        async with self.connect() as conn:
            cur = await conn.execute(
                "SELECT id, session_id, product_id, quantity FROM cart_items WHERE session_id = ? ORDER BY id;",
                (session_id,),
            )
            rows = await cur.fetchall()
            await cur.close()
        return [
            models.CartLine(
                id=int(r["id"]),
                session_id=r["session_id"],
                product_id=int(r["product_id"]),
                quantity=int(r["quantity"]),
            )
            for r in rows
        ]

    async def find_cart_line(
        self, session_id: str, product_id: int
    ) -> Optional[models.CartLine]:
        async with self.connect() as conn:
            cur = await conn.execute(
                """
                SELECT id, session_id, product_id, quantity
                FROM cart_items
                WHERE session_id = ? AND product_id = ?
                LIMIT 1;
                """,
                (session_id, product_id),
            )
            row = await cur.fetchone()
            await cur.close()
        if not row:
            return None
        return models.CartLine(
            id=int(row["id"]),
            session_id=row["session_id"],
            product_id=int(row["product_id"]),
            quantity=int(row["quantity"]),
        )

    async def insert_cart_line(
        self, session_id: str, product_id: int, quantity: int = 1
    ) -> None:
        """Insert a cart row; a row already present for (session, product) is incremented."""
        async with self.connect() as conn:
            await conn.execute(
                """
                INSERT INTO cart_items(session_id, product_id, quantity)
                VALUES (?, ?, ?)
                ON CONFLICT(session_id, product_id)
                DO UPDATE SET quantity = quantity + excluded.quantity;
                """,
                (session_id, product_id, quantity),
            )
            await conn.commit()
        self._publish(
            "cart_items",
            "INSERT",
            {"session_id": session_id, "product_id": product_id},
        )

    async def increment_cart_line(self, cart_line_id: int, by: int = 1) -> None:
        async with self.connect() as conn:
            cur = await conn.execute(
                "SELECT session_id, product_id FROM cart_items WHERE id = ?;",
                (cart_line_id,),
            )
            row = await cur.fetchone()
            await cur.close()
            if not row:
                raise NotFoundError(f"Cart line {cart_line_id} not found")
            await conn.execute(
                "UPDATE cart_items SET quantity = quantity + ? WHERE id = ?;",
                (by, cart_line_id),
            )
            await conn.commit()
        self._publish(
            "cart_items",
            "UPDATE",
            {"id": cart_line_id, "session_id": row["session_id"], "product_id": row["product_id"]},
        )

    async def set_cart_quantity(
        self, session_id: str, product_id: int, quantity: int
    ) -> None:
        async with self.connect() as conn:
            cur = await conn.execute(
                "UPDATE cart_items SET quantity = ? WHERE session_id = ? AND product_id = ?;",
                (quantity, session_id, product_id),
            )
            updated = cur.rowcount
            await cur.close()
            await conn.commit()
        if not updated:
            raise NotFoundError(f"Product {product_id} is not in cart {session_id}")
        self._publish(
            "cart_items",
            "UPDATE",
            {"session_id": session_id, "product_id": product_id, "quantity": quantity},
        )

    async def delete_cart_line(self, session_id: str, product_id: int) -> None:
        async with self.connect() as conn:
            cur = await conn.execute(
                "DELETE FROM cart_items WHERE session_id = ? AND product_id = ?;",
                (session_id, product_id),
            )
            deleted = cur.rowcount
            await cur.close()
            await conn.commit()
        if deleted:
            self._publish(
                "cart_items",
                "DELETE",
                {"session_id": session_id, "product_id": product_id},
            )

    async def clear_cart(self, session_id: str) -> None:
        """Remove every cart row of the session."""
        async with self.connect() as conn:
            cur = await conn.execute(
                "DELETE FROM cart_items WHERE session_id = ?;", (session_id,)
            )
            deleted = cur.rowcount
            await cur.close()
            await conn.commit()
        if deleted:
            self._publish("cart_items", "DELETE", {"session_id": session_id})

    # ---------------------------
    # Orders
    # ---------------------------

    async def place_order(
        self,
        session_id: str,
        items: Sequence[Tuple[int, int]],
        shipping_address: str,
        payment_method: str = "cod",
        when: Optional[datetime] = None,
    ) -> Tuple[models.Order, List[models.OrderLine]]:
        """
        Create an order and its lines in one transaction.

        ``items`` is a sequence of (product_id, quantity). Each line snapshots
        the product's current price; the order total is the sum of those
        snapshots. Nothing is written if any product is missing.
        """
        if not items:
            raise ValueError("An order needs at least one line.")
        ts = _ts(when)
        async with self.connect() as conn:
            try:
                priced: List[Tuple[int, int, int]] = []
                for product_id, qty in items:
                    cur = await conn.execute(
                        "SELECT price FROM products WHERE id = ?;", (product_id,)
                    )
                    row = await cur.fetchone()
                    await cur.close()
                    if not row:
                        raise NotFoundError(f"Product {product_id} not found")
                    priced.append((int(product_id), int(qty), int(row["price"])))
                total = sum(qty * price for _, qty, price in priced)

                cur = await conn.execute(
                    """
                    INSERT INTO orders(session_id, total_amount, status, shipping_address, payment_method, created_at)
                    VALUES (?, ?, 'pending', ?, ?, ?);
                    """,
                    (session_id, total, shipping_address, payment_method, ts),
                )
                order_id = cur.lastrowid
                await cur.close()

                lines: List[models.OrderLine] = []
                for product_id, qty, price in priced:
                    cur = await conn.execute(
                        """
                        INSERT INTO order_items(order_id, product_id, quantity, price_at_purchase)
                        VALUES (?, ?, ?, ?);
                        """,
                        (order_id, product_id, qty, price),
                    )
                    lines.append(
                        models.OrderLine(
                            id=cur.lastrowid,
                            order_id=order_id,
                            product_id=product_id,
                            quantity=qty,
                            price_at_purchase=price,
                        )
                    )
                    await cur.close()
                await conn.commit()
            except BaseException:
                await conn.rollback()
                raise

        order = models.Order(
            id=order_id,
            session_id=session_id,
            total_amount=total,
            status="pending",
            shipping_address=shipping_address,
            payment_method=payment_method,
            created_at=_parse_ts(ts),
        )
        self._publish("orders", "INSERT", {"id": order_id, "session_id": session_id})
        for line in lines:
            self._publish("order_items", "INSERT", {"id": line.id, "order_id": order_id})
        return order, lines

    async def get_order(self, order_id: int) -> Optional[models.Order]:
        async with self.connect() as conn:
            cur = await conn.execute(
                """
                SELECT id, session_id, total_amount, status, shipping_address, payment_method, created_at
                FROM orders WHERE id = ?;
                """,
                (order_id,),
            )
            row = await cur.fetchone()
            await cur.close()
        return _row_to_order(row) if row else None

    async def list_orders(
        self, session_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[models.Order]:
        """Orders newest first, optionally for one session and capped at ``limit`` rows."""
        sql = """
            SELECT id, session_id, total_amount, status, shipping_address, payment_method, created_at
            FROM orders
        """
        params: List[Any] = []
        if session_id is not None:
            sql += " WHERE session_id = ?"
            params.append(session_id)
        sql += " ORDER BY created_at DESC, id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        async with self.connect() as conn:
            cur = await conn.execute(sql + ";", tuple(params))
            rows = await cur.fetchall()
            await cur.close()
        return [_row_to_order(r) for r in rows]

    async def list_order_items(
        self, order_ids: Optional[Iterable[int]] = None
    ) -> List[models.OrderLine]:
        """Order lines joined with the product name; all lines when ``order_ids`` is None."""
        sql = """
            SELECT oi.id, oi.order_id, oi.product_id, oi.quantity, oi.price_at_purchase,
                   p.name AS product_name
            FROM order_items oi
            LEFT JOIN products p ON p.id = oi.product_id
        """
        params: Tuple[Any, ...] = ()
        if order_ids is not None:
            ids = list(order_ids)
            if not ids:
                return []
            sql += f" WHERE oi.order_id IN ({', '.join('?' * len(ids))})"
            params = tuple(ids)
        sql += " ORDER BY oi.order_id, oi.id;"
        async with self.connect() as conn:
            cur = await conn.execute(sql, params)
            rows = await cur.fetchall()
            await cur.close()
        return [
            models.OrderLine(
                id=int(r["id"]),
                order_id=int(r["order_id"]),
                product_id=int(r["product_id"]),
                quantity=int(r["quantity"]),
                price_at_purchase=int(r["price_at_purchase"]),
                product_name=r["product_name"],
            )
            for r in rows
        ]

    async def update_order_status(self, order_id: int, status: str) -> models.Order:
        async with self.connect() as conn:
            cur = await conn.execute(
                "UPDATE orders SET status = ? WHERE id = ?;", (status, order_id)
            )
            updated = cur.rowcount
            await cur.close()
            await conn.commit()
        if not updated:
            raise NotFoundError(f"Order {order_id} not found")
        order = await self.get_order(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        self._publish(
            "orders",
            "UPDATE",
            {"id": order_id, "session_id": order.session_id, "status": status},
        )
        return order


def order_lines_by_order(lines: Iterable[models.OrderLine]) -> Dict[int, List[models.OrderLine]]:
    grouped: Dict[int, List[models.OrderLine]] = {}
    for line in lines:
        grouped.setdefault(line.order_id, []).append(line)
    return grouped


__all__ = ["BackendClient", "BackendError", "order_lines_by_order"]
