"""Tests for the persistence gateway."""
import json
import pytest
from dataclasses import asdict
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, patch

from redis.exceptions import RedisError

from session_tracker.config import config
from session_tracker.session.errors import PersistenceError
from session_tracker.session.models import GameType
from session_tracker.staking.models import Stake, StakeStatus
from session_tracker.state.gateway import PersistenceGateway


T0 = datetime(2026, 3, 14, 19, 0, tzinfo=timezone.utc)


def make_stake(**kwargs) -> Stake:
    fields = dict(
        session_id="record-1",
        staker_user_id="staker1",
        staked_player_user_id="player1",
        stake_percentage=Decimal("0.5"),
        markup=Decimal("1.2"),
        proposed_at=T0,
        last_updated_at=T0,
    )
    fields.update(kwargs)
    return Stake(**fields)


@pytest.fixture
def gateway():
    return PersistenceGateway()


@pytest.fixture
def mock_db():
    with patch("session_tracker.state.gateway.db") as db:
        db.fetchval = AsyncMock()
        db.fetchrow = AsyncMock()
        db.fetch = AsyncMock(return_value=[])
        db.execute = AsyncMock(return_value="UPDATE 1")
        yield db


@pytest.fixture
def mock_redis():
    with patch("session_tracker.state.gateway.redis_client") as redis:
        redis.set_json = AsyncMock()
        redis.get_json = AsyncMock(return_value=None)
        redis.delete = AsyncMock()
        yield redis


class TestSessionRecords:
    """Test saving completed sessions."""

    @pytest.mark.asyncio
    async def test_save_returns_id(self, gateway, mock_db):
        mock_db.fetchval.return_value = "rec-1"

        doc_id = await gateway.save_session_record("rec-1", {
            "user_id": "player1",
            "game_type": GameType.TOURNAMENT,
            "profit": Decimal("250"),
            "notes": ["Table is soft"],
            "not_a_column": "ignored",
        })

        assert doc_id == "rec-1"
        query, *args = mock_db.fetchval.call_args.args
        assert "ON CONFLICT (id) DO UPDATE" in query
        assert "not_a_column" not in query
        assert args == ["rec-1", "player1", "TOURNAMENT", Decimal("250"), json.dumps(["Table is soft"])]

    @pytest.mark.asyncio
    async def test_unconfirmed_write(self, gateway, mock_db):
        mock_db.fetchval.return_value = None

        with pytest.raises(PersistenceError):
            await gateway.save_session_record("rec-1", {"user_id": "player1"})

    @pytest.mark.asyncio
    async def test_driver_error_wrapped(self, gateway, mock_db):
        mock_db.fetchval.side_effect = ConnectionRefusedError("connection refused")

        with pytest.raises(PersistenceError, match="connection refused"):
            await gateway.save_session_record("rec-1", {"user_id": "player1"})

    @pytest.mark.asyncio
    async def test_fetch_session_records(self, gateway, mock_db):
        mock_db.fetch.return_value = [{"id": "rec-1", "profit": Decimal("10")}]

        records = await gateway.fetch_session_records("player1", limit=5)

        assert records == [{"id": "rec-1", "profit": Decimal("10")}]
        assert mock_db.fetch.call_args.args[1:] == ("player1", 5)


class TestStakes:
    """Test stake reads and writes."""

    @pytest.mark.asyncio
    async def test_create_stake(self, gateway, mock_db):
        mock_db.fetchval.return_value = "stake-1"

        stake_id = await gateway.create_stake(make_stake())

        assert stake_id == "stake-1"
        args = mock_db.fetchval.call_args.args
        assert "INSERT INTO stakes" in args[0]
        assert StakeStatus.AWAITING_SETTLEMENT.value in args

    @pytest.mark.asyncio
    async def test_update_stake(self, gateway, mock_db):
        await gateway.update_stake("stake-1", {"status": StakeStatus.SETTLED, "bogus": 1})

        query, *args = mock_db.execute.call_args.args
        assert "status = $2" in query
        assert "last_updated_at = NOW()" in query
        assert "bogus" not in query
        assert args == ["stake-1", "settled"]

    @pytest.mark.asyncio
    async def test_update_missing_stake(self, gateway, mock_db):
        mock_db.execute.return_value = "UPDATE 0"

        with pytest.raises(PersistenceError, match="not found"):
            await gateway.update_stake("stake-1", {"status": StakeStatus.SETTLED})

    @pytest.mark.asyncio
    async def test_update_without_known_fields(self, gateway, mock_db):
        await gateway.update_stake("stake-1", {"bogus": 1})

        mock_db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetch_stakes_for_session(self, gateway, mock_db):
        """Test records come back as stakes, matched on either session id."""
        mock_db.fetch.return_value = [asdict(make_stake(id="stake-1"))]

        stakes = await gateway.fetch_stakes_for_session("live-1")

        assert len(stakes) == 1
        assert stakes[0].id == "stake-1"
        assert stakes[0].status == StakeStatus.AWAITING_SETTLEMENT
        assert stakes[0].markup == Decimal("1.2")
        query = mock_db.fetch.call_args.args[0]
        assert "session_id = $1 OR live_session_id = $1" in query

    @pytest.mark.asyncio
    async def test_fetch_missing_stake(self, gateway, mock_db):
        mock_db.fetchrow.return_value = None

        assert await gateway.fetch_stake("nope") is None


class TestCache:
    """Test the fallback cache."""

    @pytest.mark.asyncio
    async def test_write_and_read(self, gateway, mock_redis):
        await gateway.cache_write("staker_configs:s1", [{"percentage_sold": "50"}])

        mock_redis.set_json.assert_awaited_once_with(
            "cache:staker_configs:s1", [{"percentage_sold": "50"}], ex=config.cache_ttl_seconds
        )

        mock_redis.get_json.return_value = [{"percentage_sold": "50"}]
        assert await gateway.cache_read("staker_configs:s1") == [{"percentage_sold": "50"}]

    @pytest.mark.asyncio
    async def test_redis_error_wrapped(self, gateway, mock_redis):
        mock_redis.set_json.side_effect = RedisError("down")

        with pytest.raises(PersistenceError):
            await gateway.cache_write("k", 1)

    @pytest.mark.asyncio
    async def test_not_connected(self, gateway, mock_redis):
        mock_redis.get_json.side_effect = RuntimeError("Redis not connected")

        with pytest.raises(PersistenceError):
            await gateway.cache_read("k")

    @pytest.mark.asyncio
    async def test_delete(self, gateway, mock_redis):
        await gateway.cache_delete("k")

        mock_redis.delete.assert_awaited_once_with("cache:k")
