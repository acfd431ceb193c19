# manages connection to the store database, provides helpers internal to db package
import asyncio
import os.path
from contextlib import asynccontextmanager
from sqlite3 import Row
from typing import AsyncIterator

import aiosqlite

from db.errors import BackendError
from utils.logger import get_logger

_logger = get_logger(__name__)

_HERE = os.path.dirname(os.path.abspath(__file__))
SCHEMA_SCRIPT = os.path.join(_HERE, "schema.sql")
SEED_SCRIPT = os.path.join(_HERE, "seed.sql")


class Database:
    """Owns the path of one SQLite database and its one-time initialization."""

    def __init__(self, path: str, seed: bool = True) -> None:
        self.path = path
        self.seed = seed
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @property
    def init_scripts(self) -> list[str]:
        scripts = [SCHEMA_SCRIPT]
        if self.seed:
            scripts.append(SEED_SCRIPT)
        return scripts

    async def _init_db(self, conn: aiosqlite.Connection) -> None:
        for script in self.init_scripts:
            if not os.path.exists(script) or os.path.getsize(script) == 0:
                continue
            _logger.info(f"Initializing database with script {script}...")
            with open(script, "r") as f:
                await conn.executescript(f.read())
        await conn.commit()

    async def _table_exists(self, conn: aiosqlite.Connection, table_name: str) -> bool:
        cur = await conn.execute(
            """
            SELECT name
            FROM sqlite_master
            WHERE type = 'table'
              AND name = ?;
            """,
            (table_name,),
        )
        row = await cur.fetchone()
        await cur.close()
        return row is not None

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """Async context manager yielding an aiosqlite connection with FK enabled.

        Ensures the database is initialized (tables and seed data) on first use.
        Driver errors raised inside the block surface as BackendError.
        """
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        try:
            conn = await aiosqlite.connect(self.path)
        except aiosqlite.Error as e:
            raise BackendError(f"cannot open database {self.path}: {e}") from e
        conn.row_factory = Row
        try:
            await conn.execute("PRAGMA foreign_keys = ON;")
            if not self._initialized:
                async with self._init_lock:
                    if not self._initialized:
                        if not await self._table_exists(conn, "sessions"):
                            _logger.info("Initializing database...")
                            await self._init_db(conn)
                        self._initialized = True
            yield conn
        except aiosqlite.Error as e:
            raise BackendError(str(e)) from e
        finally:
            await conn.close()
