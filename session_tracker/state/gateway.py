"""Persistence gateway: PostgreSQL document store plus Redis fallback cache."""
import asyncio
import json
import uuid
from enum import Enum
from typing import Any, Optional

import asyncpg
from redis.exceptions import RedisError

from session_tracker.config import config
from session_tracker.db.connection import db
from session_tracker.db.models import SESSION_RECORD_COLUMNS, STAKE_COLUMNS
from session_tracker.session.errors import PersistenceError
from session_tracker.staking.models import Stake
from session_tracker.state.redis_client import redis_client
from session_tracker.utils.logger import get_logger

logger = get_logger(__name__)

DRIVER_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    RedisError,
    OSError,
    asyncio.TimeoutError,
)


def _encode(value: Any) -> Any:
    """Convert Python values to what asyncpg expects for our columns."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return value


class PersistenceGateway:
    """Reads and writes session records, stakes and cached values.

    Every driver failure surfaces as ``PersistenceError`` so callers never
    need to know which backend they are talking to.
    """

    def _cache_key(self, key: str) -> str:
        """Get Redis key for a cached value."""
        return f"cache:{key}"

    async def save_session_record(self, session_id: str, fields: dict) -> str:
        """Write a completed session. Re-saving the same id overwrites it.

        Args:
            session_id: Document id for the record.
            fields: Column values; unknown keys are ignored.

        Returns:
            The stored document id.

        Raises:
            PersistenceError: If the write could not be confirmed.
        """
        columns = [c for c in SESSION_RECORD_COLUMNS if c in fields]
        values = [_encode(fields[c]) for c in columns]
        placeholders = ", ".join(f"${i}" for i in range(2, len(columns) + 2))
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in columns)

        query = f"""
            INSERT INTO session_records (id, {", ".join(columns)})
            VALUES ($1, {placeholders})
            ON CONFLICT (id) DO UPDATE SET {updates}
            RETURNING id
        """
        try:
            doc_id = await db.fetchval(query, session_id, *values)
        except DRIVER_ERRORS as e:
            raise PersistenceError(f"Failed to save session record {session_id}: {e}") from e

        if doc_id is None:
            raise PersistenceError(f"Session record {session_id} was not confirmed")
        logger.info(f"Saved session record {doc_id}")
        return str(doc_id)

    async def create_stake(self, stake: Stake) -> str:
        """Insert a new stake.

        Args:
            stake: Stake to insert. An id is generated if it has none.

        Returns:
            The new stake id.
        """
        stake_id = stake.id or str(uuid.uuid4())
        data = {c: getattr(stake, c) for c in STAKE_COLUMNS}
        placeholders = ", ".join(f"${i}" for i in range(2, len(STAKE_COLUMNS) + 2))

        query = f"""
            INSERT INTO stakes (id, {", ".join(STAKE_COLUMNS)})
            VALUES ($1, {placeholders})
            RETURNING id
        """
        try:
            doc_id = await db.fetchval(query, stake_id, *[_encode(data[c]) for c in STAKE_COLUMNS])
        except DRIVER_ERRORS as e:
            raise PersistenceError(f"Failed to create stake: {e}") from e

        logger.info(f"Created stake {doc_id} for staker {stake.staker_user_id}")
        return str(doc_id)

    async def update_stake(self, stake_id: str, fields: dict) -> None:
        """Update selected columns of an existing stake.

        Args:
            stake_id: Stake to update.
            fields: Column values; unknown keys are ignored.

        Raises:
            PersistenceError: If the write fails or the stake does not exist.
        """
        columns = [c for c in STAKE_COLUMNS if c in fields]
        if not columns:
            return
        assignments = ", ".join(f"{c} = ${i}" for i, c in enumerate(columns, start=2))
        if "last_updated_at" not in columns:
            assignments += ", last_updated_at = NOW()"

        try:
            result = await db.execute(
                f"UPDATE stakes SET {assignments} WHERE id = $1",
                stake_id,
                *[_encode(fields[c]) for c in columns],
            )
        except DRIVER_ERRORS as e:
            raise PersistenceError(f"Failed to update stake {stake_id}: {e}") from e

        if result == "UPDATE 0":
            raise PersistenceError(f"Stake {stake_id} not found")
        logger.info(f"Updated stake {stake_id} ({', '.join(columns)})")

    async def fetch_stake(self, stake_id: str) -> Optional[Stake]:
        """Get a single stake by id."""
        try:
            record = await db.fetchrow("SELECT * FROM stakes WHERE id = $1", stake_id)
        except DRIVER_ERRORS as e:
            raise PersistenceError(f"Failed to fetch stake {stake_id}: {e}") from e
        return Stake.from_record(record) if record else None

    async def fetch_stakes_for_session(self, session_id: str) -> list[Stake]:
        """Get stakes linked to a session, newest first.

        Stakes saved before the session ended carry the live session id as
        their session id, so both columns are matched.
        """
        try:
            records = await db.fetch(
                """
                SELECT * FROM stakes
                WHERE session_id = $1 OR live_session_id = $1
                ORDER BY proposed_at DESC
                """,
                session_id,
            )
        except DRIVER_ERRORS as e:
            raise PersistenceError(f"Failed to fetch stakes for {session_id}: {e}") from e
        return [Stake.from_record(r) for r in records]

    async def fetch_session_records(self, user_id: str, limit: int = 20) -> list[dict]:
        """Get a user's most recent completed sessions."""
        try:
            records = await db.fetch(
                """
                SELECT id, game_type, game_name, stakes, start_time, hours_played,
                       buy_in, cashout, profit, adjusted_profit
                FROM session_records
                WHERE user_id = $1
                ORDER BY start_time DESC
                LIMIT $2
                """,
                user_id,
                limit,
            )
        except DRIVER_ERRORS as e:
            raise PersistenceError(f"Failed to fetch sessions for {user_id}: {e}") from e
        return [dict(r) for r in records]

    # Local fallback cache (best-effort, non-authoritative)

    async def cache_write(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value in the fallback cache."""
        try:
            await redis_client.set_json(self._cache_key(key), value, ex=config.cache_ttl_seconds)
        except (DRIVER_ERRORS + (RuntimeError,)) as e:
            raise PersistenceError(f"Cache write failed for {key}: {e}") from e
        logger.debug(f"Cached {key}")

    async def cache_read(self, key: str) -> Optional[Any]:
        """Read a value from the fallback cache, None if missing."""
        try:
            return await redis_client.get_json(self._cache_key(key))
        except (DRIVER_ERRORS + (RuntimeError, json.JSONDecodeError)) as e:
            raise PersistenceError(f"Cache read failed for {key}: {e}") from e

    async def cache_delete(self, key: str) -> None:
        """Drop a cached value."""
        try:
            await redis_client.delete(self._cache_key(key))
        except (DRIVER_ERRORS + (RuntimeError,)) as e:
            raise PersistenceError(f"Cache delete failed for {key}: {e}") from e


gateway = PersistenceGateway()
