from __future__ import annotations

import asyncio
import json
import os
from datetime import datetime
from typing import Optional

from db.client import BackendClient
from db.errors import BackendError
from utils.logger import get_logger

_logger = get_logger(__name__)

SESSION_KEY = "guest_session_id"


class SessionResolutionError(Exception):
    """The guest session could neither be verified nor created."""


class LocalTokenStore:
    """
    Client-local persisted storage for the guest session token.

    A small JSON file holding the single key ``guest_session_id``; it survives
    restarts and belongs to this client only.
    """

    def __init__(self, path: str) -> None:
        self.path = path

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            _logger.warning(f"Ignoring unreadable token file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self) -> Optional[str]:
        token = self._read().get(SESSION_KEY)
        return token if isinstance(token, str) and token else None

    def set(self, token: str) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({SESSION_KEY: token}, f)
        os.replace(tmp_path, self.path)

    def clear(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)


class SessionIdentityProvider:
    """
    Resolves the anonymous session id of this client, once per lifetime.

    resolve():
      1. read the locally persisted token
      2. if the backend still knows it, touch last_active and reuse it
      3. otherwise create a new session row and persist its id
    """

    def __init__(self, backend: BackendClient, token_store: LocalTokenStore) -> None:
        self._backend = backend
        self._token_store = token_store
        self._session_id: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    def current(self) -> Optional[str]:
        """The resolved id, or the stored token, without touching the backend."""
        return self._session_id or self._token_store.get()

    async def resolve(self, when: Optional[datetime] = None) -> str:
        if self._session_id is not None:
            return self._session_id
        async with self._lock:
            if self._session_id is None:
                self._session_id = await self._resolve(when)
        return self._session_id

    async def _resolve(self, when: Optional[datetime]) -> str:
        token = self._token_store.get()
        if token:
            try:
                session = await self._backend.get_session(token)
            except BackendError as e:
                _logger.warning(f"Could not verify stored session {token}: {e}")
                session = None
            if session is not None:
                try:
                    await self._backend.touch_session(token, when)
                except BackendError as e:
                    _logger.warning(f"Could not update last_active for {token}: {e}")
                _logger.info(f"Reusing guest session {token}")
                return token
            _logger.info(f"Stored session {token} is no longer valid")

        try:
            session = await self._backend.create_session(when)
        except BackendError as e:
            _logger.error(f"Error creating session: {e}")
            raise SessionResolutionError(
                "Unable to initialize session, reload."
            ) from e
        self._token_store.set(session.id)
        _logger.info(f"Created guest session {session.id}")
        return session.id

    def forget(self) -> None:
        """Drop the local token; the next client lifetime starts a new session."""
        self._token_store.clear()
        self._session_id = None
