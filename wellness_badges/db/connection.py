"""Database connection management"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool, PoolTimeout
from wellness_badges.config import DATABASE_URL, DB_POOL_MIN_SIZE, DB_POOL_MAX_SIZE
from wellness_badges.exceptions import ConnectionError

logger = logging.getLogger(__name__)

POOL_OPEN_TIMEOUT_SECONDS = 10.0


class Database:
    """
    Owns the psycopg pool the badge store and notifier share.

    Connections come out with dict_row so queries read columns by name.
    """

    def __init__(
        self,
        connection_string: str = DATABASE_URL,
        min_size: int = DB_POOL_MIN_SIZE,
        max_size: int = DB_POOL_MAX_SIZE,
    ):
        self.connection_string = connection_string
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[AsyncConnectionPool] = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    async def init_pool(self) -> None:
        """
        Open the pool and wait for min_size connections

        Raises:
            ConnectionError: database unreachable within the open timeout
        """
        if self._pool is not None:
            return

        logger.info(f"Opening database pool (min={self.min_size}, max={self.max_size})")
        pool = AsyncConnectionPool(
            self.connection_string,
            min_size=self.min_size,
            max_size=self.max_size,
            open=False
        )
        try:
            await pool.open(wait=True, timeout=POOL_OPEN_TIMEOUT_SECONDS)
        except PoolTimeout as e:
            await pool.close()
            raise ConnectionError(
                "Database pool could not be opened",
                operation="init_pool",
                cause=e
            ) from e
        self._pool = pool

    async def close_pool(self) -> None:
        if self._pool:
            logger.info("Closing database pool")
            await self._pool.close()
            self._pool = None

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """
        Borrow a connection; it returns to the pool on exit

        Raises:
            ConnectionError: init_pool() hasn't been called
        """
        if self._pool is None:
            raise ConnectionError("Database pool not initialized", operation="connection")

        async with self._pool.connection() as conn:
            conn.row_factory = dict_row
            yield conn


# Shared instance, opened at startup by init_postgres_container()
db = Database()
