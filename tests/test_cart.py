import asyncio
import dataclasses

from db.client import BackendClient
from db.errors import BackendError
from store.cart import CartStateManager
from helpers import StoreTestCase


class FailingInsertBackend(BackendClient):
    async def insert_cart_line(self, session_id, product_id, quantity=1):
        raise BackendError("insert rejected")


class FailingDeleteBackend(BackendClient):
    async def delete_cart_line(self, session_id, product_id):
        raise BackendError("delete rejected")


class FailingQuantityBackend(BackendClient):
    async def set_cart_quantity(self, session_id, product_id, quantity):
        raise BackendError("update rejected")


class FailingClearBackend(BackendClient):
    async def clear_cart(self, session_id):
        raise BackendError("clear rejected")


class GatedBackend(BackendClient):
    """Holds the next cart load after it has read, until ``release`` is set."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.hold = False
        self.fetched = asyncio.Event()
        self.release = asyncio.Event()

    async def list_cart_entries(self, session_id):
        entries = await super().list_cart_entries(session_id)
        if self.hold:
            self.hold = False
            self.fetched.set()
            await self.release.wait()
        return entries


class CartTestCase(StoreTestCase):
    # ---------- Adding ----------

    async def test_repeated_add_increments_a_single_line(self):
        cart = await self.new_cart()
        original = await self.product(1)
        for _ in range(3):
            self.assertTrue(await cart.add_to_cart(original))
        await self.feed.wait_idle()

        self.assertEqual(len(cart.lines), 1)
        self.assertEqual(cart.quantity_of(1), 3)
        rows = await self.backend.list_cart_lines(cart.session_id)
        self.assertEqual([(r.product_id, r.quantity) for r in rows], [(1, 3)])

    async def test_add_is_visible_before_remote_round_trip(self):
        seen = []
        cart = await self.new_cart()
        cart._on_change = lambda: seen.append(cart.quantity_of(2))
        await cart.add_to_cart(await self.product(2))
        # the first notification carries the local projection
        self.assertEqual(seen[0], 1)

    async def test_totals(self):
        cart = await self.new_cart()
        original, balado = await self.product(1), await self.product(2)
        await cart.add_to_cart(original)
        await cart.add_to_cart(original)
        await cart.add_to_cart(balado)
        await self.feed.wait_idle()

        self.assertEqual(cart.total_items, 3)
        self.assertEqual(cart.total_price, 46000)
        self.assertFalse(cart.is_empty)

    async def test_add_requires_valid_product_id(self):
        cart = await self.new_cart()
        product = await self.product(1)
        for bad in (None, 0, -3, "1"):
            with self.assertRaises(ValueError):
                await cart.add_to_cart(dataclasses.replace(product, id=bad))
        self.assertTrue(cart.is_empty)

    async def test_failed_add_reverts_to_backend_state(self):
        self.backend = FailingInsertBackend(self.backend.database, self.feed)
        cart = await self.new_cart()

        ok = await cart.add_to_cart(await self.product(1))

        self.assertFalse(ok)
        self.assertTrue(cart.is_empty)
        self.assertEqual(len(self.notifications), 1)
        self.assertEqual(self.notifications[0][1], "error")

    async def cart_with_rows(self):
        sessions = self.provider()
        session_id = await sessions.resolve()
        await self.backend.insert_cart_line(session_id, 1, 2)
        await self.backend.insert_cart_line(session_id, 2, 1)
        return await self.new_cart(sessions)

    async def assertMatchesBackend(self, cart):
        rows = await self.backend.list_cart_lines(cart.session_id)
        self.assertEqual(
            [(line.product_id, line.quantity) for line in cart.lines],
            [(row.product_id, row.quantity) for row in rows],
        )

    async def test_failed_remove_reverts_to_backend_state(self):
        self.backend = FailingDeleteBackend(self.backend.database, self.feed)
        cart = await self.cart_with_rows()

        self.assertFalse(await cart.remove_from_cart(1))

        self.assertEqual(cart.quantity_of(1), 2)
        self.assertEqual([n[1] for n in self.notifications], ["error"])
        await self.assertMatchesBackend(cart)

    async def test_failed_quantity_update_reverts_to_backend_state(self):
        self.backend = FailingQuantityBackend(self.backend.database, self.feed)
        cart = await self.cart_with_rows()

        self.assertFalse(await cart.update_quantity(1, 5))

        self.assertEqual(cart.quantity_of(1), 2)
        self.assertEqual([n[1] for n in self.notifications], ["error"])
        await self.assertMatchesBackend(cart)

    async def test_failed_clear_reverts_to_backend_state(self):
        self.backend = FailingClearBackend(self.backend.database, self.feed)
        cart = await self.cart_with_rows()

        self.assertFalse(await cart.clear())

        self.assertEqual(len(cart.lines), 2)
        self.assertEqual([n[1] for n in self.notifications], ["error"])
        await self.assertMatchesBackend(cart)

    # ---------- Quantity & removal ----------

    async def test_update_quantity(self):
        cart = await self.new_cart()
        await cart.add_to_cart(await self.product(3))
        self.assertTrue(await cart.update_quantity(3, 5))
        await self.feed.wait_idle()

        self.assertEqual(cart.quantity_of(3), 5)
        self.assertEqual(cart.total_price, 5 * 17000)
        rows = await self.backend.list_cart_lines(cart.session_id)
        self.assertEqual(rows[0].quantity, 5)

    async def test_quantity_below_one_is_ignored(self):
        cart = await self.new_cart()
        await cart.add_to_cart(await self.product(1))
        await cart.update_quantity(1, 2)
        await self.feed.wait_idle()

        self.assertFalse(await cart.update_quantity(1, 0))
        self.assertFalse(await cart.update_quantity(1, -1))
        await self.feed.wait_idle()

        self.assertEqual(cart.quantity_of(1), 2)
        rows = await self.backend.list_cart_lines(cart.session_id)
        self.assertEqual(rows[0].quantity, 2)

    async def test_remove_from_cart(self):
        cart = await self.new_cart()
        await cart.add_to_cart(await self.product(1))
        await cart.add_to_cart(await self.product(4))
        await cart.remove_from_cart(1)
        await self.feed.wait_idle()

        self.assertEqual([line.product_id for line in cart.lines], [4])
        self.assertEqual(await self.count_rows("cart_items"), 1)

    async def test_clear_empties_local_and_remote(self):
        cart = await self.new_cart()
        await cart.add_to_cart(await self.product(1))
        await cart.add_to_cart(await self.product(2))
        await cart.clear()
        await self.feed.wait_idle()

        self.assertTrue(cart.is_empty)
        self.assertEqual(cart.total_price, 0)
        self.assertEqual(await self.count_rows("cart_items"), 0)

    # ---------- Loading ----------

    async def test_load_is_idempotent(self):
        cart = await self.new_cart()
        await cart.add_to_cart(await self.product(2))
        await cart.add_to_cart(await self.product(1))
        await self.feed.wait_idle()

        await cart.load()
        first = cart.lines
        await cart.load()
        self.assertEqual(cart.lines, first)
        self.assertEqual([line.product_id for line in first], [2, 1])

    async def test_existing_cart_is_loaded_on_initialize(self):
        sessions = self.provider()
        session_id = await sessions.resolve()
        await self.backend.insert_cart_line(session_id, 2, 4)

        cart = await self.new_cart(sessions)

        self.assertFalse(cart.loading)
        self.assertEqual(cart.quantity_of(2), 4)

    async def test_stale_load_yields_to_local_write(self):
        self.backend = GatedBackend(self.backend.database, self.feed)
        cart = await self.new_cart()
        await cart.add_to_cart(await self.product(1))
        await self.feed.wait_idle()

        self.backend.hold = True
        stale = asyncio.create_task(cart.load())
        await self.backend.fetched.wait()
        await cart.update_quantity(1, 7)
        self.backend.release.set()
        await stale

        self.assertEqual(cart.quantity_of(1), 7)

    async def test_quantity_update_of_line_removed_elsewhere(self):
        cart = await self.cart_with_rows()
        # another tab removes the line; its echo has not been delivered yet
        await self.backend.delete_cart_line(cart.session_id, 1)

        self.assertFalse(await cart.update_quantity(1, 3))
        await self.feed.wait_idle()

        self.assertEqual([line.product_id for line in cart.lines], [2])
        self.assertEqual([n[1] for n in self.notifications], ["error"])
        await self.assertMatchesBackend(cart)

    async def test_update_during_echo_load_converges(self):
        self.backend = GatedBackend(self.backend.database, self.feed)
        cart = await self.cart_with_rows()

        self.backend.hold = True
        await self.backend.delete_cart_line(cart.session_id, 1)
        await self.backend.fetched.wait()
        await cart.update_quantity(1, 3)
        self.backend.release.set()
        await self.feed.wait_idle()

        self.assertEqual([line.product_id for line in cart.lines], [2])
        await self.assertMatchesBackend(cart)

    async def test_superseded_load_fetches_again(self):
        self.backend = GatedBackend(self.backend.database, self.feed)
        cart = await self.cart_with_rows()

        self.backend.hold = True
        # another tab empties the cart; its echo load is held after reading
        await self.backend.clear_cart(cart.session_id)
        await self.backend.fetched.wait()
        # the row is already gone, so this delete matches nothing and publishes nothing
        self.assertTrue(await cart.remove_from_cart(1))
        self.assertEqual([line.product_id for line in cart.lines], [2])
        self.backend.release.set()
        await self.feed.wait_idle()

        self.assertTrue(cart.is_empty)
        await self.assertMatchesBackend(cart)

    # ---------- Realtime ----------

    async def test_other_tab_converges_through_change_feed(self):
        sessions = self.provider()
        tab_a = await self.new_cart(sessions)
        tab_b = await self.new_cart(self.provider())
        self.assertEqual(tab_a.session_id, tab_b.session_id)

        await tab_a.add_to_cart(await self.product(1))
        await tab_a.add_to_cart(await self.product(1))
        await self.feed.wait_idle()

        self.assertEqual(tab_b.quantity_of(1), 2)
        self.assertEqual(tab_b.lines, tab_a.lines)

    async def test_other_session_is_not_notified(self):
        changes = []
        mine = await self.new_cart(self.provider("mine.json"))
        theirs = await self.new_cart(
            self.provider("theirs.json"), on_change=lambda: changes.append(1)
        )
        self.assertNotEqual(mine.session_id, theirs.session_id)
        changes.clear()

        await mine.add_to_cart(await self.product(1))
        await self.feed.wait_idle()

        self.assertEqual(changes, [])
        self.assertTrue(theirs.is_empty)

    async def test_deleted_product_leaves_the_cart(self):
        cart = await self.new_cart()
        await cart.add_to_cart(await self.product(4))
        await self.feed.wait_idle()

        await self.backend.delete_product(4)
        await self.feed.wait_idle()

        self.assertTrue(cart.is_empty)

    # ---------- Teardown ----------

    async def test_close_releases_subscription(self):
        cart = await self.new_cart()
        self.assertEqual(self.feed.subscriber_count, 1)
        cart.close()
        cart.close()
        self.assertEqual(self.feed.subscriber_count, 0)
        self.assertFalse(await cart.add_to_cart(await self.product(1)))

    async def test_results_after_close_are_ignored(self):
        self.backend = GatedBackend(self.backend.database, self.feed)
        sessions = self.provider()
        await self.backend.insert_cart_line(await sessions.resolve(), 1, 2)

        self.backend.hold = True
        cart = CartStateManager(self.backend, sessions)
        self._carts.append(cart)
        pending = asyncio.create_task(cart.initialize())
        await self.backend.fetched.wait()
        cart.close()
        self.backend.release.set()
        await pending

        self.assertTrue(cart.closed)
        self.assertTrue(cart.is_empty)
        self.assertEqual(self.feed.subscriber_count, 0)

    async def test_context_manager_closes(self):
        async with CartStateManager(self.backend, self.provider()) as cart:
            self.assertIsNotNone(cart.session_id)
            self.assertEqual(self.feed.subscriber_count, 1)
        self.assertEqual(self.feed.subscriber_count, 0)
