"""Database schema and initialization."""
from session_tracker.db.connection import db
from session_tracker.utils.logger import get_logger

logger = get_logger(__name__)

# SQL schema for historical sessions and stakes
SCHEMA = """
-- Completed sessions
CREATE TABLE IF NOT EXISTS session_records (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    game_type VARCHAR(20) NOT NULL,  -- CASH GAME, TOURNAMENT
    game_name TEXT NOT NULL DEFAULT '',
    stakes TEXT NOT NULL DEFAULT '',
    start_time TIMESTAMPTZ NOT NULL,
    end_time TIMESTAMPTZ NOT NULL,
    hours_played DOUBLE PRECISION NOT NULL DEFAULT 0,
    buy_in NUMERIC NOT NULL,
    cashout NUMERIC NOT NULL,
    profit NUMERIC NOT NULL,
    adjusted_profit NUMERIC,
    notes JSONB NOT NULL DEFAULT '[]',
    live_session_id TEXT,
    location TEXT,
    tournament_type TEXT,
    tournament_game_type TEXT,
    tournament_format TEXT,
    poker_variant TEXT,
    casino TEXT,
    days_played INTEGER NOT NULL DEFAULT 1,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_session_records_user ON session_records(user_id);
CREATE INDEX IF NOT EXISTS idx_session_records_live ON session_records(live_session_id);

-- Staking agreements and settlements
CREATE TABLE IF NOT EXISTS stakes (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,  -- live session id until the record is written
    live_session_id TEXT,
    session_game_name TEXT NOT NULL DEFAULT '',
    session_stakes TEXT NOT NULL DEFAULT '',
    session_date TIMESTAMPTZ,
    staker_user_id TEXT NOT NULL,
    staked_player_user_id TEXT NOT NULL,
    stake_percentage NUMERIC NOT NULL,
    markup NUMERIC NOT NULL,
    total_player_buy_in_for_session NUMERIC NOT NULL DEFAULT 0,
    player_cashout_for_session NUMERIC NOT NULL DEFAULT 0,
    settlement_amount NUMERIC NOT NULL DEFAULT 0,
    status VARCHAR(32) NOT NULL,
    is_tournament_session BOOLEAN NOT NULL DEFAULT FALSE,
    is_off_app_stake BOOLEAN NOT NULL DEFAULT FALSE,
    manual_staker_display_name TEXT,
    settlement_initiator_user_id TEXT,
    settlement_confirmer_user_id TEXT,
    proposed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    settled_at TIMESTAMPTZ,
    last_updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_stakes_session ON stakes(session_id);
CREATE INDEX IF NOT EXISTS idx_stakes_live_session ON stakes(live_session_id);
CREATE INDEX IF NOT EXISTS idx_stakes_staker ON stakes(staker_user_id);
CREATE INDEX IF NOT EXISTS idx_stakes_player ON stakes(staked_player_user_id);
"""

SESSION_RECORD_COLUMNS = (
    "user_id", "game_type", "game_name", "stakes", "start_time", "end_time",
    "hours_played", "buy_in", "cashout", "profit", "adjusted_profit", "notes",
    "live_session_id", "location", "tournament_type", "tournament_game_type",
    "tournament_format", "poker_variant", "casino", "days_played",
)

STAKE_COLUMNS = (
    "session_id", "live_session_id", "session_game_name", "session_stakes",
    "session_date", "staker_user_id", "staked_player_user_id", "stake_percentage",
    "markup", "total_player_buy_in_for_session", "player_cashout_for_session",
    "settlement_amount", "status", "is_tournament_session", "is_off_app_stake",
    "manual_staker_display_name", "settlement_initiator_user_id",
    "settlement_confirmer_user_id", "proposed_at", "settled_at", "last_updated_at",
)


async def init_db() -> None:
    """Initialize database schema."""
    logger.info("Initializing database schema...")
    await db.execute(SCHEMA)
    logger.info("Database schema initialized")
