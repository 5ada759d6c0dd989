"""Live session data model."""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from session_tracker.session.clock import SessionClock
from session_tracker.session.ledger import ChipLedger


class SessionState(str, Enum):
    """Lifecycle states of a live session."""
    SETUP = "setup"
    ACTIVE = "active"
    PAUSED = "paused"
    PAUSED_FOR_NEXT_DAY = "paused_for_next_day"
    ENDED = "ended"


class GameType(str, Enum):
    """Kind of game recorded on the historical session."""
    CASH_GAME = "CASH GAME"
    TOURNAMENT = "TOURNAMENT"


@dataclass
class SessionSetup:
    """Everything the player enters before the clock starts."""
    game_name: str
    stakes_label: str
    buy_in: Decimal
    is_tournament: bool = False
    tournament_name: Optional[str] = None
    tournament_type: Optional[str] = None
    tournament_base_buy_in: Optional[Decimal] = None
    tournament_game_type: Optional[str] = None
    tournament_format: Optional[str] = None
    poker_variant: Optional[str] = None
    casino: Optional[str] = None


@dataclass
class SessionNote:
    """Free-text note taken during the session."""
    text: str
    timestamp: datetime

    def to_dict(self) -> dict:
        return {"text": self.text, "timestamp": self.timestamp.isoformat()}

    @classmethod
    def from_dict(cls, data: dict) -> "SessionNote":
        return cls(text=data["text"], timestamp=datetime.fromisoformat(data["timestamp"]))


@dataclass
class LiveSession:
    """The one in-progress session a user can have.

    Owned by ``SessionStateMachine``; nothing else mutates it.
    """
    clock: SessionClock
    game_name: str = ""
    stakes_label: str = ""
    buy_in: Decimal = Decimal("0")
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    ledger: ChipLedger = field(default_factory=ChipLedger)
    notes: list[SessionNote] = field(default_factory=list)

    # Tournament
    is_tournament: bool = False
    tournament_name: Optional[str] = None
    tournament_type: Optional[str] = None
    tournament_base_buy_in: Optional[Decimal] = None
    tournament_game_type: Optional[str] = None
    tournament_format: Optional[str] = None
    casino: Optional[str] = None

    # Cash game
    poker_variant: Optional[str] = None

    # Multi-day
    current_day: int = 1
    paused_for_next_day: bool = False
    paused_for_next_day_date: Optional[datetime] = None

    is_ended: bool = False

    @property
    def start_time(self) -> datetime:
        return self.clock.start_time

    @property
    def is_active(self) -> bool:
        return self.clock.is_active

    @property
    def last_paused_at(self) -> Optional[datetime]:
        return self.clock.last_paused_at

    @property
    def state(self) -> SessionState:
        """Lifecycle state derived from the flags."""
        if self.is_ended:
            return SessionState.ENDED
        if self.paused_for_next_day:
            return SessionState.PAUSED_FOR_NEXT_DAY
        if self.clock.is_active:
            return SessionState.ACTIVE
        return SessionState.PAUSED

    def elapsed_time(self, now: datetime) -> float:
        """Seconds played, excluding paused time."""
        return self.clock.elapsed(now)

    @property
    def current_amount(self) -> Decimal:
        return self.ledger.current_amount(self.buy_in)

    @property
    def profit(self) -> Decimal:
        return self.ledger.profit(self.buy_in)

    @property
    def display_name(self) -> str:
        """Short label: tournament name, or ``stakes @ game``."""
        if self.is_tournament:
            return self.tournament_name or self.game_name
        return f"{self.stakes_label} @ {self.game_name}"

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "id": self.id,
            "game_name": self.game_name,
            "stakes_label": self.stakes_label,
            "buy_in": str(self.buy_in),
            "clock": self.clock.to_dict(),
            "chip_updates": self.ledger.to_list(),
            "notes": [n.to_dict() for n in self.notes],
            "is_tournament": self.is_tournament,
            "tournament_name": self.tournament_name,
            "tournament_type": self.tournament_type,
            "tournament_base_buy_in": (
                str(self.tournament_base_buy_in) if self.tournament_base_buy_in is not None else None
            ),
            "tournament_game_type": self.tournament_game_type,
            "tournament_format": self.tournament_format,
            "casino": self.casino,
            "poker_variant": self.poker_variant,
            "current_day": self.current_day,
            "paused_for_next_day": self.paused_for_next_day,
            "paused_for_next_day_date": (
                self.paused_for_next_day_date.isoformat() if self.paused_for_next_day_date else None
            ),
            "is_ended": self.is_ended,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LiveSession":
        """Create from dictionary."""
        base_buy_in = data.get("tournament_base_buy_in")
        next_day = data.get("paused_for_next_day_date")
        return cls(
            id=data["id"],
            clock=SessionClock.from_dict(data["clock"]),
            game_name=data.get("game_name", ""),
            stakes_label=data.get("stakes_label", ""),
            buy_in=Decimal(str(data.get("buy_in", "0"))),
            ledger=ChipLedger.from_list(data.get("chip_updates", [])),
            notes=[SessionNote.from_dict(n) for n in data.get("notes", [])],
            is_tournament=data.get("is_tournament", False),
            tournament_name=data.get("tournament_name"),
            tournament_type=data.get("tournament_type"),
            tournament_base_buy_in=Decimal(str(base_buy_in)) if base_buy_in is not None else None,
            tournament_game_type=data.get("tournament_game_type"),
            tournament_format=data.get("tournament_format"),
            casino=data.get("casino"),
            poker_variant=data.get("poker_variant"),
            current_day=data.get("current_day", 1),
            paused_for_next_day=data.get("paused_for_next_day", False),
            paused_for_next_day_date=datetime.fromisoformat(next_day) if next_day else None,
            is_ended=data.get("is_ended", False),
        )


class UpdateKind(str, Enum):
    """Kinds of entries in the recent activity feed."""
    SESSION_START = "session_start"
    CHIP = "chip"
    NOTE = "note"


@dataclass(frozen=True)
class UpdateItem:
    """Display-only activity entry. Rebuilt on every read, never stored."""
    id: str
    kind: UpdateKind
    title: str
    description: str
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "title": self.title,
            "description": self.description,
            "timestamp": self.timestamp.isoformat(),
        }
