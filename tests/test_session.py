import asyncio
import json
import os
from datetime import datetime, timezone

from db.client import BackendClient
from db.errors import BackendError
from store.session import SESSION_KEY, SessionIdentityProvider, SessionResolutionError
from helpers import StoreTestCase


class FailingCreateBackend(BackendClient):
    async def create_session(self, when=None):
        raise BackendError("sessions table unavailable")


class FailingLookupBackend(BackendClient):
    async def get_session(self, session_id):
        raise BackendError("lookup timed out")


class SessionTestCase(StoreTestCase):
    # ---------- Resolution ----------

    async def test_first_visit_creates_one_session_and_persists_token(self):
        store = self.token_store()
        self.assertIsNone(store.get())

        session_id = await SessionIdentityProvider(self.backend, store).resolve()

        self.assertEqual(store.get(), session_id)
        self.assertEqual(await self.count_rows("sessions"), 1)
        with open(store.path, "r", encoding="utf-8") as f:
            self.assertEqual(json.load(f), {SESSION_KEY: session_id})

    async def test_resolve_is_cached_for_the_lifetime(self):
        sessions = self.provider()
        first = await sessions.resolve()
        second = await sessions.resolve()
        self.assertEqual(first, second)
        self.assertEqual(sessions.session_id, first)
        self.assertEqual(await self.count_rows("sessions"), 1)

    async def test_concurrent_resolve_creates_a_single_session(self):
        sessions = self.provider()
        ids = await asyncio.gather(sessions.resolve(), sessions.resolve(), sessions.resolve())
        self.assertEqual(len(set(ids)), 1)
        self.assertEqual(await self.count_rows("sessions"), 1)

    async def test_restart_reuses_stored_session_and_touches_last_active(self):
        created = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
        later = datetime(2024, 1, 3, 9, 30, tzinfo=timezone.utc)
        first = await self.provider().resolve(when=created)

        # a new provider over the same token file acts as a reloaded client
        again = await self.provider().resolve(when=later)

        self.assertEqual(first, again)
        self.assertEqual(await self.count_rows("sessions"), 1)
        session = await self.backend.get_session(first)
        self.assertEqual(session.created_at, created)
        self.assertEqual(session.last_active, later)

    async def test_stale_token_is_replaced(self):
        store = self.token_store()
        store.set("11111111-2222-3333-4444-555555555555")

        session_id = await SessionIdentityProvider(self.backend, store).resolve()

        self.assertNotEqual(session_id, "11111111-2222-3333-4444-555555555555")
        self.assertEqual(store.get(), session_id)
        self.assertIsNotNone(await self.backend.get_session(session_id))

    async def test_unreadable_token_file_starts_fresh(self):
        store = self.token_store()
        with open(store.path, "w", encoding="utf-8") as f:
            f.write("{not json")
        session_id = await SessionIdentityProvider(self.backend, store).resolve()
        self.assertEqual(store.get(), session_id)

    # ---------- Failures ----------

    async def test_creation_failure_is_fatal(self):
        self.backend = FailingCreateBackend(self.backend.database, self.feed)
        sessions = self.provider()
        with self.assertRaises(SessionResolutionError):
            await sessions.resolve()
        self.assertIsNone(sessions.session_id)
        self.assertIsNone(self.token_store().get())

    async def test_verification_failure_falls_back_to_new_session(self):
        original = await self.provider().resolve()
        self.backend = FailingLookupBackend(self.backend.database, self.feed)

        session_id = await self.provider().resolve()

        self.assertNotEqual(original, session_id)
        self.assertEqual(self.token_store().get(), session_id)
        self.assertEqual(await self.count_rows("sessions"), 2)

    # ---------- Local token ----------

    async def test_forget_clears_token(self):
        sessions = self.provider()
        await sessions.resolve()
        sessions.forget()
        self.assertIsNone(sessions.session_id)
        self.assertIsNone(sessions.current())
        self.assertFalse(os.path.exists(self.token_store().path))

    async def test_current_falls_back_to_stored_token(self):
        session_id = await self.provider().resolve()
        self.assertEqual(self.provider().current(), session_id)
