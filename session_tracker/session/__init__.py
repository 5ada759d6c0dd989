"""Live session core: clock, chip ledger and session model.

The state machine lives in ``session_tracker.session.machine``.
"""
from .errors import (
    SessionError,
    IllegalTransition,
    InvalidAmount,
    NoActiveSession,
    ValidationError,
    PersistenceError,
    DurabilityViolation,
)
from .clock import SessionClock, format_duration
from .ledger import ChipLedger, ChipStackUpdate, merge_updates
from .models import (
    GameType,
    LiveSession,
    SessionNote,
    SessionSetup,
    SessionState,
    UpdateItem,
    UpdateKind,
)

__all__ = [
    "SessionError",
    "IllegalTransition",
    "InvalidAmount",
    "NoActiveSession",
    "ValidationError",
    "PersistenceError",
    "DurabilityViolation",
    "SessionClock",
    "format_duration",
    "ChipLedger",
    "ChipStackUpdate",
    "merge_updates",
    "GameType",
    "LiveSession",
    "SessionNote",
    "SessionSetup",
    "SessionState",
    "UpdateItem",
    "UpdateKind",
]
