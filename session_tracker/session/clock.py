"""Elapsed-time tracking under pause and resume."""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from session_tracker.session.errors import IllegalTransition


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class SessionClock:
    """Wall-clock timer for a live session.

    Nothing ticks in the background. ``elapsed(now)`` is computed from the
    accumulated active time plus the currently running interval, so the
    clock never drifts and survives a process restart.
    """
    start_time: datetime
    is_active: bool = True
    last_active_at: Optional[datetime] = None  # start of the running interval
    last_paused_at: Optional[datetime] = None
    accumulated_seconds: float = 0.0

    @classmethod
    def started(cls, at: datetime) -> "SessionClock":
        """Create a running clock that started at ``at``."""
        return cls(start_time=at, is_active=True, last_active_at=at)

    def elapsed(self, now: datetime) -> float:
        """Seconds of active play as of ``now``."""
        running = 0.0
        if self.is_active and self.last_active_at is not None:
            running = max(0.0, (now - self.last_active_at).total_seconds())
        return self.accumulated_seconds + running

    def pause(self, at: datetime) -> None:
        """Stop the clock, folding the running interval into the total.

        Raises:
            IllegalTransition: If the clock is already paused.
        """
        if not self.is_active:
            raise IllegalTransition("Session is already paused")
        self.accumulated_seconds = self.elapsed(at)
        self.is_active = False
        self.last_active_at = None
        self.last_paused_at = at

    def resume(self, at: datetime) -> None:
        """Restart the clock from ``at``.

        Raises:
            IllegalTransition: If the clock is already running.
        """
        if self.is_active:
            raise IllegalTransition("Session is already running")
        self.is_active = True
        self.last_active_at = at

    def edit_start_time(self, new_start: datetime, now: datetime) -> None:
        """Move the start time and recompute elapsed time as one interval.

        This deliberately throws away the pause/resume history: elapsed time
        becomes ``(now or last_paused_at) - new_start``. Sessions that were
        paused several times will report more time than was actually played.
        """
        self.start_time = new_start
        if self.is_active:
            self.accumulated_seconds = max(0.0, (now - new_start).total_seconds())
            self.last_active_at = now
        elif self.last_paused_at is not None:
            self.accumulated_seconds = max(0.0, (self.last_paused_at - new_start).total_seconds())

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "start_time": _iso(self.start_time),
            "is_active": self.is_active,
            "last_active_at": _iso(self.last_active_at),
            "last_paused_at": _iso(self.last_paused_at),
            "accumulated_seconds": self.accumulated_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionClock":
        """Create from dictionary."""
        return cls(
            start_time=datetime.fromisoformat(data["start_time"]),
            is_active=data.get("is_active", False),
            last_active_at=_parse_dt(data.get("last_active_at")),
            last_paused_at=_parse_dt(data.get("last_paused_at")),
            accumulated_seconds=float(data.get("accumulated_seconds", 0.0)),
        )


def format_duration(seconds: float) -> str:
    """Format elapsed seconds as ``"3h 5m"`` or ``"42m"``."""
    total = int(seconds)
    hours = total // 3600
    minutes = (total % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
