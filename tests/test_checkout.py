from datetime import datetime, timezone

from db.client import BackendClient
from db.errors import BackendError, NotFoundError
from store import admin
from store.checkout import (
    CheckoutError,
    EmptyCartError,
    ShippingDetails,
    format_shipping_address,
    place_order,
)
from store.orders import OrderHistory
from helpers import StoreTestCase

DETAILS = ShippingDetails(
    name="Siti", phone="0812-3456-7890", address="Jl. Merdeka 10, Bandung"
)


class FailingOrderBackend(BackendClient):
    async def place_order(self, *args, **kwargs):
        raise BackendError("rpc unavailable")


class CheckoutTestCase(StoreTestCase):
    async def filled_cart(self, *items):
        cart = await self.new_cart()
        for product_id, qty in items:
            await cart.add_to_cart(await self.product(product_id))
            if qty > 1:
                await cart.update_quantity(product_id, qty)
        await self.feed.wait_idle()
        return cart

    # ---------- Placing orders ----------

    async def test_order_with_two_lines(self):
        cart = await self.filled_cart((1, 2), (2, 1))
        when = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

        result = await place_order(self.backend, cart, DETAILS, when=when)
        await self.feed.wait_idle()

        order = result.order
        self.assertEqual(order.status, "pending")
        self.assertEqual(order.total_amount, 46000)
        self.assertEqual(order.session_id, cart.session_id)
        self.assertEqual(order.payment_method, "cod")
        self.assertEqual(order.shipping_address, format_shipping_address(DETAILS))
        self.assertEqual(order.created_at, when)
        self.assertEqual(
            sorted((line.product_id, line.quantity, line.price_at_purchase) for line in result.lines),
            [(1, 2, 15000), (2, 1, 16000)],
        )
        self.assertEqual(await self.count_rows("orders"), 1)
        self.assertEqual(await self.count_rows("order_items"), 2)
        self.assertEqual(result.stock_shortfalls, [])

    async def test_total_matches_lines(self):
        cart = await self.filled_cart((3, 3), (4, 2), (1, 1))
        result = await place_order(self.backend, cart, DETAILS)
        self.assertEqual(
            result.order.total_amount, sum(line.line_total for line in result.lines)
        )

    async def test_cart_cleared_and_stock_decremented(self):
        cart = await self.filled_cart((1, 2), (3, 1))
        await place_order(self.backend, cart, DETAILS)
        await self.feed.wait_idle()

        self.assertTrue(cart.is_empty)
        self.assertEqual(await self.count_rows("cart_items"), 0)
        self.assertEqual((await self.product(1)).stock, 98)
        self.assertEqual((await self.product(3)).stock, 49)

    async def test_price_snapshot_survives_price_change(self):
        cart = await self.filled_cart((2, 2))
        result = await place_order(self.backend, cart, DETAILS)

        await admin.update_product(self.backend, 2, price=99000)

        history = OrderHistory(self.backend, self.provider())
        orders = await history.load()
        self.assertEqual(len(orders), 1)
        self.assertEqual(orders[0].order.total_amount, 32000)
        self.assertEqual(orders[0].lines[0].price_at_purchase, 16000)
        self.assertEqual(orders[0].order.id, result.order.id)

    async def test_stock_shortfall_does_not_undo_order(self):
        await admin.set_stock(self.backend, 3, 1)
        cart = await self.filled_cart((3, 2), (1, 1))

        with self.assertLogs("store.checkout", level="WARNING"):
            result = await place_order(self.backend, cart, DETAILS)

        self.assertEqual(result.stock_shortfalls, [(3, 2)])
        self.assertEqual(await self.count_rows("orders"), 1)
        self.assertEqual((await self.product(3)).stock, 1)
        self.assertEqual((await self.product(1)).stock, 99)
        self.assertTrue(cart.is_empty)

    # ---------- Refusals ----------

    async def test_empty_cart_is_refused(self):
        cart = await self.new_cart()
        with self.assertRaises(EmptyCartError):
            await place_order(self.backend, cart, DETAILS)
        self.assertEqual(await self.count_rows("orders"), 0)

    async def test_missing_details_are_refused(self):
        cart = await self.filled_cart((1, 1))
        for details in (
            ShippingDetails(name=" ", phone="1", address="x"),
            ShippingDetails(name="a", phone="1", address="x", payment_method="cash"),
        ):
            with self.assertRaises(ValueError):
                await place_order(self.backend, cart, details)
        self.assertEqual(await self.count_rows("orders"), 0)
        self.assertFalse(cart.is_empty)

    async def test_backend_failure_keeps_cart(self):
        self.backend = FailingOrderBackend(self.backend.database, self.feed)
        cart = await self.filled_cart((1, 1))
        with self.assertRaises(CheckoutError):
            await place_order(self.backend, cart, DETAILS)
        self.assertEqual(cart.quantity_of(1), 1)
        self.assertEqual(await self.count_rows("cart_items"), 1)

    async def test_missing_product_writes_nothing(self):
        session_id = await self.provider().resolve()
        with self.assertRaises(NotFoundError):
            await self.backend.place_order(session_id, [(1, 1), (999, 1)], "somewhere")
        self.assertEqual(await self.count_rows("orders"), 0)
        self.assertEqual(await self.count_rows("order_items"), 0)

    async def test_transfer_payment(self):
        cart = await self.filled_cart((4, 1))
        details = ShippingDetails("Budi", "0811", "Jl. Asia Afrika 1", "transfer")
        result = await place_order(self.backend, cart, details)
        self.assertEqual(result.order.payment_method, "transfer")
