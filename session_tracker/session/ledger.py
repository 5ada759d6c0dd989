"""Append-only ledger of chip stack observations."""
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from session_tracker.config import config
from session_tracker.session.errors import InvalidAmount
from session_tracker.utils.logger import get_logger
from session_tracker.utils.money import to_decimal, format_signed

logger = get_logger(__name__)

QUICK_NOTE_PATTERN = re.compile(r"quick (add|subtract)", re.IGNORECASE)


@dataclass(frozen=True)
class ChipStackUpdate:
    """A single reported chip stack. Amount is absolute, not a delta."""
    amount: Decimal
    timestamp: datetime
    note: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    is_posted_to_feed: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        data = {
            "id": self.id,
            "amount": str(self.amount),
            "timestamp": self.timestamp.isoformat(),
            "is_posted_to_feed": self.is_posted_to_feed,
        }
        if self.note:
            data["note"] = self.note
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ChipStackUpdate":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            amount=Decimal(str(data["amount"])),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            note=data.get("note"),
            is_posted_to_feed=data.get("is_posted_to_feed", False),
        )


@dataclass
class ChipLedger:
    """Ordered, append-only sequence of chip stack updates.

    Entries are never removed or reordered. The buy-in is passed in by the
    caller because it lives on the session and changes independently.
    """
    entries: list[ChipStackUpdate] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)

    def append(
        self,
        amount: Decimal,
        timestamp: datetime,
        note: Optional[str] = None,
    ) -> ChipStackUpdate:
        """Record a new stack observation.

        Args:
            amount: Absolute chip count.
            timestamp: When the stack was observed.
            note: Optional free text.

        Returns:
            The appended update.

        Raises:
            InvalidAmount: If amount is not a finite number or exceeds the
                configured ceiling.
        """
        value = to_decimal(amount)
        if value is None:
            raise InvalidAmount(f"Chip amount is not a number: {amount!r}")
        if value > Decimal(str(config.max_chip_amount)):
            raise InvalidAmount(f"Chip amount {value} exceeds the maximum")

        update = ChipStackUpdate(amount=value, timestamp=timestamp, note=note or None)
        self.entries.append(update)
        logger.debug(f"Ledger append {value} ({note or 'no note'})")
        return update

    @property
    def last(self) -> Optional[ChipStackUpdate]:
        return self.entries[-1] if self.entries else None

    def current_amount(self, buy_in: Decimal) -> Decimal:
        """Latest reported stack, or the buy-in if nothing was reported."""
        last = self.last
        return last.amount if last is not None else buy_in

    def profit(self, buy_in: Decimal) -> Decimal:
        """Current stack minus total buy-in."""
        return self.current_amount(buy_in) - buy_in

    def mark_posted(self, update_id: str) -> bool:
        """Flag an entry as shared to the feed.

        The entry is replaced by a copy in the same position; amount, note
        and timestamp are unchanged.

        Returns:
            True if an entry with that id exists.
        """
        for index, update in enumerate(self.entries):
            if update.id == update_id:
                self.entries[index] = ChipStackUpdate(
                    id=update.id,
                    amount=update.amount,
                    timestamp=update.timestamp,
                    note=update.note,
                    is_posted_to_feed=True,
                )
                return True
        return False

    def merged(self, window_seconds: Optional[float] = None) -> list[ChipStackUpdate]:
        """Collapse bursts of updates for display. Does not touch the ledger."""
        window = config.merge_window_seconds if window_seconds is None else window_seconds
        return merge_updates(self.entries, window)

    def to_list(self) -> list[dict]:
        return [u.to_dict() for u in self.entries]

    @classmethod
    def from_list(cls, data: list[dict]) -> "ChipLedger":
        return cls(entries=[ChipStackUpdate.from_dict(d) for d in data])


def merge_updates(updates: list[ChipStackUpdate], window_seconds: float) -> list[ChipStackUpdate]:
    """Group updates that arrive within ``window_seconds`` of each other.

    Updates are sorted by timestamp, then grouped greedily: an update joins
    the current group when it is no more than the window after the previous
    member of that group. Each group becomes one update carrying the last
    amount and timestamp.

    Args:
        updates: Ledger entries in any order.
        window_seconds: Maximum gap between neighbours in a group.

    Returns:
        Collapsed updates in ascending time order.
    """
    if not updates:
        return []

    window = timedelta(seconds=window_seconds)
    groups: list[list[ChipStackUpdate]] = []

    for update in sorted(updates, key=lambda u: u.timestamp):
        if groups and update.timestamp - groups[-1][-1].timestamp <= window:
            groups[-1].append(update)
        else:
            groups.append([update])

    return [_collapse(group) for group in groups]


def _collapse(group: list[ChipStackUpdate]) -> ChipStackUpdate:
    if len(group) == 1:
        return group[0]

    first, last = group[0], group[-1]
    notes = [u.note for u in group if u.note]
    net_change = last.amount - first.amount

    if notes and all(QUICK_NOTE_PATTERN.search(n) for n in notes):
        total = sum((_quick_delta(n) for n in notes), Decimal("0"))
        note = f"Quick add: {format_signed(total)}"
    elif not notes:
        note = f"Combined {len(group)} updates ({format_signed(net_change)})"
    elif len(set(notes)) == 1:
        note = notes[0]
    else:
        distinct = list(dict.fromkeys(notes))
        note = (
            f"Combined {len(group)} updates ({format_signed(net_change)}): "
            + "; ".join(distinct)
        )

    return ChipStackUpdate(
        id="_".join(u.id for u in group),
        amount=last.amount,
        timestamp=last.timestamp,
        note=note,
    )


def _quick_delta(note: str) -> Decimal:
    """Signed dollar change from ``"Quick add: +$5"`` / ``"Quick subtract: -$25"``."""
    _, _, tail = note.partition("$")
    value = to_decimal(tail.split()[0] if tail.strip() else None)
    if value is None:
        return Decimal("0")
    value = abs(value)
    return -value if "subtract" in note.lower() else value
