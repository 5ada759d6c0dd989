"""Pydantic schemas for session commands and the events they produce."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, Any, Literal, Union
from pydantic import BaseModel, Field

from session_tracker.staking.models import StakerConfig


# ============= Caller -> Session Commands =============

class StartCommand(BaseModel):
    """Start a new live session."""
    type: Literal["start"] = "start"
    game_name: str
    stakes_label: str = ""
    buy_in: Decimal
    is_tournament: bool = False
    tournament_name: Optional[str] = None
    tournament_type: Optional[str] = None
    tournament_base_buy_in: Optional[Decimal] = None
    tournament_game_type: Optional[str] = None
    tournament_format: Optional[str] = None
    poker_variant: Optional[str] = None
    casino: Optional[str] = None


class PauseCommand(BaseModel):
    """Pause the session clock."""
    type: Literal["pause"] = "pause"


class ResumeCommand(BaseModel):
    """Resume the session clock."""
    type: Literal["resume"] = "resume"


class RebuyCommand(BaseModel):
    """Add to the buy-in and the chip stack."""
    type: Literal["rebuy"] = "rebuy"
    amount: Decimal


class EditBuyInCommand(BaseModel):
    """Overwrite the total buy-in."""
    type: Literal["edit_buy_in"] = "edit_buy_in"
    amount: Decimal


class ChipUpdateCommand(BaseModel):
    """Report the current chip stack."""
    type: Literal["chip_update"] = "chip_update"
    amount: Decimal
    note: Optional[str] = None


class QuickUpdateCommand(BaseModel):
    """Adjust the chip stack by a signed amount."""
    type: Literal["quick_update"] = "quick_update"
    delta: Decimal


class AddNoteCommand(BaseModel):
    """Add a session note."""
    type: Literal["add_note"] = "add_note"
    text: str


class EditNoteCommand(BaseModel):
    """Replace the text of an existing note."""
    type: Literal["edit_note"] = "edit_note"
    index: int = Field(ge=0)
    text: str


class EditSessionCommand(BaseModel):
    """Edit start time or labels of the session."""
    type: Literal["edit_session"] = "edit_session"
    start_time: Optional[datetime] = None
    game_name: Optional[str] = None
    stakes_label: Optional[str] = None


class NextDayCommand(BaseModel):
    """Stop a tournament day; play continues on ``next_date``."""
    type: Literal["next_day"] = "next_day"
    next_date: datetime


class ParkCommand(BaseModel):
    """Stop a tournament day and move the session to the parked store."""
    type: Literal["park"] = "park"
    next_date: datetime


class RestoreParkedCommand(BaseModel):
    """Bring a parked session back as the live session."""
    type: Literal["restore_parked"] = "restore_parked"
    key: str


class DiscardParkedCommand(BaseModel):
    """Drop a parked session."""
    type: Literal["discard_parked"] = "discard_parked"
    key: str


class ConfigureStakersCommand(BaseModel):
    """Replace the configured stakers."""
    type: Literal["configure_stakers"] = "configure_stakers"
    stakers: list[StakerConfig] = Field(default_factory=list)


class EndCommand(BaseModel):
    """End the session with a final cashout."""
    type: Literal["end"] = "end"
    cashout: Decimal


class RetrySettlementCommand(BaseModel):
    """Write stakes left unsaved by an earlier end."""
    type: Literal["retry_settlement"] = "retry_settlement"
    record_id: str


class DiscardCommand(BaseModel):
    """Throw the session away without a record."""
    type: Literal["discard"] = "discard"


Command = Union[
    StartCommand,
    PauseCommand,
    ResumeCommand,
    RebuyCommand,
    EditBuyInCommand,
    ChipUpdateCommand,
    QuickUpdateCommand,
    AddNoteCommand,
    EditNoteCommand,
    EditSessionCommand,
    NextDayCommand,
    ParkCommand,
    RestoreParkedCommand,
    DiscardParkedCommand,
    ConfigureStakersCommand,
    EndCommand,
    RetrySettlementCommand,
    DiscardCommand,
]


# ============= Session -> Caller Events =============

class SessionEvent(BaseModel):
    """Result of a command that succeeded."""
    type: Literal["session_event"] = "session_event"
    command: str
    state: str
    session: Optional[dict] = None
    data: dict[str, Any] = Field(default_factory=dict)


class ErrorEvent(BaseModel):
    """Result of a command that was rejected or failed."""
    type: Literal["error"] = "error"
    command: Optional[str] = None
    message: str
    code: Optional[str] = None


def parse_command(data: dict) -> Command:
    """Parse a command from a JSON dict.

    Args:
        data: Command data dictionary.

    Returns:
        Parsed command.

    Raises:
        ValueError: If the command type is unknown or its fields are invalid.
    """
    cmd_type = data.get("type")

    type_map = {
        "start": StartCommand,
        "pause": PauseCommand,
        "resume": ResumeCommand,
        "rebuy": RebuyCommand,
        "edit_buy_in": EditBuyInCommand,
        "chip_update": ChipUpdateCommand,
        "quick_update": QuickUpdateCommand,
        "add_note": AddNoteCommand,
        "edit_note": EditNoteCommand,
        "edit_session": EditSessionCommand,
        "next_day": NextDayCommand,
        "park": ParkCommand,
        "restore_parked": RestoreParkedCommand,
        "discard_parked": DiscardParkedCommand,
        "configure_stakers": ConfigureStakersCommand,
        "end": EndCommand,
        "retry_settlement": RetrySettlementCommand,
        "discard": DiscardCommand,
    }

    if cmd_type not in type_map:
        raise ValueError(f"Unknown command type: {cmd_type}")

    return type_map[cmd_type](**data)
