"""Redis persistence for in-progress and parked live sessions."""
import json
from typing import Optional

from session_tracker.session.errors import PersistenceError
from session_tracker.session.models import LiveSession
from session_tracker.state.gateway import DRIVER_ERRORS
from session_tracker.state.redis_client import redis_client
from session_tracker.utils.logger import get_logger

logger = get_logger(__name__)

_ERRORS = DRIVER_ERRORS + (RuntimeError,)


class LiveSessionStore:
    """Keeps a snapshot of each user's live session so it survives restarts."""

    def _live_key(self, user_id: str) -> str:
        """Get Redis key for user's live session."""
        return f"live_session:{user_id}"

    def _parked_key(self, user_id: str) -> str:
        """Get Redis key for user's parked sessions hash."""
        return f"live_session:{user_id}:parked"

    async def save_live_session(self, user_id: str, session: LiveSession) -> None:
        """Save the user's live session snapshot.

        Args:
            user_id: Owner of the session.
            session: Session to save.
        """
        try:
            await redis_client.set_json(self._live_key(user_id), session.to_dict())
        except _ERRORS as e:
            raise PersistenceError(f"Failed to save live session for {user_id}: {e}") from e
        logger.debug(f"Saved live session {session.id} for {user_id}")

    async def get_live_session(self, user_id: str) -> Optional[LiveSession]:
        """Get the user's live session snapshot.

        Args:
            user_id: Owner of the session.

        Returns:
            The session if a snapshot exists, None otherwise.
        """
        try:
            data = await redis_client.get_json(self._live_key(user_id))
        except _ERRORS as e:
            raise PersistenceError(f"Failed to load live session for {user_id}: {e}") from e
        if data is None:
            return None
        return LiveSession.from_dict(data)

    async def delete_live_session(self, user_id: str) -> None:
        """Delete the user's live session snapshot."""
        try:
            await redis_client.delete(self._live_key(user_id))
        except _ERRORS as e:
            raise PersistenceError(f"Failed to delete live session for {user_id}: {e}") from e
        logger.debug(f"Deleted live session for {user_id}")

    async def park_session(self, user_id: str, key: str, session: LiveSession) -> None:
        """Store a session that will be continued on a later day.

        Args:
            user_id: Owner of the session.
            key: Parking key, ``<session id>_day<next day>``.
            session: Session to park.
        """
        try:
            await redis_client.hset(self._parked_key(user_id), key, json.dumps(session.to_dict()))
        except _ERRORS as e:
            raise PersistenceError(f"Failed to park session {key}: {e}") from e
        logger.info(f"Parked session {key} for {user_id}")

    async def get_parked_sessions(self, user_id: str) -> dict[str, LiveSession]:
        """Get all parked sessions for a user keyed by parking key."""
        try:
            data = await redis_client.hgetall(self._parked_key(user_id))
        except _ERRORS as e:
            raise PersistenceError(f"Failed to load parked sessions for {user_id}: {e}") from e
        return {key: LiveSession.from_dict(json.loads(raw)) for key, raw in data.items()}

    async def remove_parked_session(self, user_id: str, key: str) -> None:
        """Remove a parked session."""
        try:
            await redis_client.hdel(self._parked_key(user_id), key)
        except _ERRORS as e:
            raise PersistenceError(f"Failed to remove parked session {key}: {e}") from e
        logger.info(f"Removed parked session {key} for {user_id}")


live_store = LiveSessionStore()
