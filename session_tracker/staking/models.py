"""Staking records and staker configuration."""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Any

from pydantic import BaseModel, Field

# Placeholder staker id for off-app stakers that have no saved profile
OFF_APP_STAKER_ID = "off_app_staker"


class StakeStatus(str, Enum):
    """Settlement lifecycle of a stake."""
    ACTIVE = "active"
    AWAITING_SETTLEMENT = "awaiting_settlement"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    SETTLED = "settled"
    CANCELLED = "cancelled"


class StakerProfile(BaseModel):
    """A registered user acting as a staker."""
    user_id: str
    username: str


class ManualStakerProfile(BaseModel):
    """An off-app staker the player keeps track of by hand."""
    id: Optional[str] = None
    name: str
    contact_info: Optional[str] = None


class StakerConfig(BaseModel):
    """A staker as currently configured by the player, before settlement.

    Percentage and markup stay as the strings the player typed; they are
    parsed during validation.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    is_manual_entry: bool = False
    selected_staker: Optional[StakerProfile] = None
    manual_staker: Optional[ManualStakerProfile] = None
    manual_staker_name: str = ""
    percentage_sold: str = ""
    markup: str = "1.0"
    original_stake_id: Optional[str] = None
    original_stake_user_id: Optional[str] = None

    @property
    def staker_user_id(self) -> Optional[str]:
        """Id written to ``Stake.staker_user_id``, or None if unidentified."""
        if self.is_manual_entry:
            if self.manual_staker is not None:
                return self.manual_staker.id or OFF_APP_STAKER_ID
            if self.manual_staker_name.strip():
                return OFF_APP_STAKER_ID
            return None
        if self.selected_staker is not None:
            return self.selected_staker.user_id
        return self.original_stake_user_id

    @property
    def manual_display_name(self) -> Optional[str]:
        if not self.is_manual_entry:
            return None
        if self.manual_staker is not None:
            return self.manual_staker.name
        return self.manual_staker_name.strip() or None


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Stake:
    """A persisted staking agreement and its settlement."""
    session_id: str
    staker_user_id: str
    staked_player_user_id: str
    stake_percentage: Decimal  # 0..1
    markup: Decimal
    total_player_buy_in_for_session: Decimal = Decimal("0")
    player_cashout_for_session: Decimal = Decimal("0")
    settlement_amount: Decimal = Decimal("0")
    status: StakeStatus = StakeStatus.AWAITING_SETTLEMENT
    is_tournament_session: bool = False
    live_session_id: Optional[str] = None
    session_game_name: str = ""
    session_stakes: str = ""
    session_date: Optional[datetime] = None
    is_off_app_stake: bool = False
    manual_staker_display_name: Optional[str] = None
    settlement_initiator_user_id: Optional[str] = None
    settlement_confirmer_user_id: Optional[str] = None
    proposed_at: datetime = field(default_factory=_now)
    settled_at: Optional[datetime] = None
    last_updated_at: datetime = field(default_factory=_now)
    id: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "live_session_id": self.live_session_id,
            "session_game_name": self.session_game_name,
            "session_stakes": self.session_stakes,
            "session_date": self.session_date.isoformat() if self.session_date else None,
            "staker_user_id": self.staker_user_id,
            "staked_player_user_id": self.staked_player_user_id,
            "stake_percentage": str(self.stake_percentage),
            "markup": str(self.markup),
            "total_player_buy_in_for_session": str(self.total_player_buy_in_for_session),
            "player_cashout_for_session": str(self.player_cashout_for_session),
            "settlement_amount": str(self.settlement_amount),
            "status": self.status.value,
            "is_tournament_session": self.is_tournament_session,
            "is_off_app_stake": self.is_off_app_stake,
            "manual_staker_display_name": self.manual_staker_display_name,
            "settlement_initiator_user_id": self.settlement_initiator_user_id,
            "settlement_confirmer_user_id": self.settlement_confirmer_user_id,
            "proposed_at": self.proposed_at.isoformat(),
            "settled_at": self.settled_at.isoformat() if self.settled_at else None,
            "last_updated_at": self.last_updated_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: Any) -> "Stake":
        """Create from a database record (or any mapping with the same keys)."""
        return cls(
            id=str(record["id"]),
            session_id=record["session_id"],
            live_session_id=record["live_session_id"],
            session_game_name=record["session_game_name"] or "",
            session_stakes=record["session_stakes"] or "",
            session_date=record["session_date"],
            staker_user_id=record["staker_user_id"],
            staked_player_user_id=record["staked_player_user_id"],
            stake_percentage=Decimal(str(record["stake_percentage"])),
            markup=Decimal(str(record["markup"])),
            total_player_buy_in_for_session=Decimal(str(record["total_player_buy_in_for_session"])),
            player_cashout_for_session=Decimal(str(record["player_cashout_for_session"])),
            settlement_amount=Decimal(str(record["settlement_amount"])),
            status=StakeStatus(record["status"]),
            is_tournament_session=record["is_tournament_session"],
            is_off_app_stake=record["is_off_app_stake"],
            manual_staker_display_name=record["manual_staker_display_name"],
            settlement_initiator_user_id=record["settlement_initiator_user_id"],
            settlement_confirmer_user_id=record["settlement_confirmer_user_id"],
            proposed_at=record["proposed_at"],
            settled_at=record["settled_at"],
            last_updated_at=record["last_updated_at"],
        )


@dataclass(frozen=True)
class Settlement:
    """Result of the settlement formula for one staker."""
    staker_cost: Decimal
    staker_share_of_cashout: Decimal
    settlement_amount: Decimal


@dataclass
class SettlementReport:
    """Outcome of settling every valid staker config at session end."""
    attempted: int = 0
    succeeded: int = 0
    stakes: list[Stake] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    pending: list[StakerConfig] = field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return self.succeeded == self.attempted

    @property
    def total_settlement(self) -> Decimal:
        return sum((s.settlement_amount for s in self.stakes), Decimal("0"))

    def to_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "stake_ids": [s.id for s in self.stakes],
            "failures": self.failures,
            "skipped": self.skipped,
            "pending_stakers": [c.staker_user_id for c in self.pending],
        }
