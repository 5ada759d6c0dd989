"""Command protocol module."""
from .commands import (
    Command,
    ErrorEvent,
    SessionEvent,
    parse_command,
)

__all__ = [
    "Command",
    "ErrorEvent",
    "SessionEvent",
    "parse_command",
]
