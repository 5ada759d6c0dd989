"""PostgreSQL pool for session records and stakes."""
from typing import Optional, Any
import asyncpg

from session_tracker.config import config
from session_tracker.utils.logger import get_logger

logger = get_logger(__name__)


class Database:
    """Pool shared by the gateway and the CLI."""

    _instance: Optional["Database"] = None
    _pool: Optional[asyncpg.Pool] = None

    def __new__(cls) -> "Database":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    async def connect(self) -> None:
        """Open the pool sized by ``DB_POOL_MIN_SIZE``/``DB_POOL_MAX_SIZE``."""
        if self._pool is not None:
            return
        min_size = max(0, config.db_pool_min_size)
        max_size = max(1, min_size, config.db_pool_max_size)
        self._pool = await asyncpg.create_pool(
            config.database_url,
            min_size=min_size,
            max_size=max_size,
            command_timeout=config.db_command_timeout,
        )
        logger.info(f"Connected to PostgreSQL (pool {min_size}-{max_size})")

    async def disconnect(self) -> None:
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Disconnected from PostgreSQL")

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._pool

    async def execute(self, query: str, *args: Any) -> str:
        """Run a write; returns the status tag, e.g. ``"UPDATE 1"``."""
        async with self.pool.acquire() as conn:
            return await conn.execute(query, *args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        async with self.pool.acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> Optional[asyncpg.Record]:
        async with self.pool.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(query, *args)


db = Database()
