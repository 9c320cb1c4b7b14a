"""
Database Connection Pool

asyncpg pool for the transaction and candle stores, with startup retries
and idempotent schema creation from schema_postgres.sql.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Optional

import asyncpg

logger = logging.getLogger(__name__)

SCHEMA_FILE = Path(__file__).parent / "schema_postgres.sql"

# Tables the stores need after schema creation
REQUIRED_TABLES = ("transactions", "ohlc_data")


def split_schema(sql: str) -> list[str]:
    """Strip SQL comments and split a schema script into statements."""
    sql = re.sub(r"--[^\n]*", "", sql)
    sql = re.sub(r"/\*.*?\*/", "", sql, flags=re.DOTALL)
    return [s.strip() for s in sql.split(";") if s.strip()]


class DatabasePool:
    """
    Async database connection pool.

    Every store call goes through execute/fetch/fetchrow/fetchval, which
    apply the pool's command_timeout. Calls on a closed pool raise
    RuntimeError (repositories wrap it as StorageError).

    Usage:
        pool = DatabasePool()
        await pool.connect(database_url, command_timeout=30)
        await pool.initialize_schema()
        ...
        await pool.close()
    """

    def __init__(self):
        self._pool: Optional[asyncpg.Pool] = None

    async def connect(
        self,
        database_url: str,
        min_size: int = 2,
        max_size: int = 10,
        command_timeout: Optional[float] = None,
        retries: int = 1,
        retry_delay: float = 2.0,
    ) -> None:
        """
        Create the connection pool.

        Args:
            database_url: PostgreSQL connection string
            min_size / max_size: Pool bounds
            command_timeout: Default per-statement timeout (seconds)
            retries: Connection attempts before giving up
            retry_delay: Seconds between attempts

        Raises:
            The last connection error once all attempts have failed
        """
        if self._pool is not None:
            logger.warning("Pool already connected")
            return

        attempts = max(1, retries)
        for attempt in range(1, attempts + 1):
            try:
                self._pool = await asyncpg.create_pool(
                    database_url,
                    min_size=min_size,
                    max_size=max_size,
                    command_timeout=command_timeout,
                )
                break
            except (OSError, asyncpg.PostgresError, asyncio.TimeoutError) as e:
                logger.warning(f"Database connection attempt {attempt}/{attempts} failed: {e}")
                if attempt == attempts:
                    raise
                await asyncio.sleep(retry_delay)

        logger.info(f"Database pool created (min={min_size}, max={max_size}, timeout={command_timeout})")

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Database pool closed")

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    def _connected(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database pool not connected")
        return self._pool

    def acquire(self):
        """Acquire a connection (async context manager)."""
        return self._connected().acquire()

    async def execute(self, query: str, *args) -> str:
        """Run a statement; returns the status string (e.g. "DELETE 3")."""
        return await self._connected().execute(query, *args)

    async def fetch(self, query: str, *args) -> list:
        return await self._connected().fetch(query, *args)

    async def fetchrow(self, query: str, *args):
        return await self._connected().fetchrow(query, *args)

    async def fetchval(self, query: str, *args):
        return await self._connected().fetchval(query, *args)

    async def check_health(self) -> bool:
        """Round-trip a trivial query."""
        if self._pool is None:
            return False
        try:
            await self._pool.fetchval("SELECT 1")
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    async def initialize_schema(self) -> bool:
        """
        Create the transactions and ohlc_data tables if missing.

        Safe to call on every startup (CREATE ... IF NOT EXISTS).

        Returns:
            True if every required table exists afterwards
        """
        pool = self._connected()

        if not SCHEMA_FILE.exists():
            logger.error(f"Schema file not found: {SCHEMA_FILE}")
            return False

        try:
            statements = split_schema(SCHEMA_FILE.read_text())
            async with pool.acquire() as conn:
                async with conn.transaction():
                    for statement in statements:
                        logger.debug(f"Executing: {statement[:80]}...")
                        await conn.execute(statement)

            missing = []
            for table in REQUIRED_TABLES:
                exists = await pool.fetchval(
                    "SELECT EXISTS (SELECT 1 FROM information_schema.tables WHERE table_name = $1)",
                    table,
                )
                if not exists:
                    missing.append(table)

            if missing:
                logger.error(f"Schema executed but tables missing: {missing}")
                return False

            logger.info(f"Database schema ready ({', '.join(REQUIRED_TABLES)})")
            return True

        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Failed to initialize schema: {e}")
            return False
