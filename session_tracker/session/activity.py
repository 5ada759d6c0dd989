"""Recent activity feed built from a live session."""
from typing import Optional

from session_tracker.session.models import LiveSession, UpdateItem, UpdateKind
from session_tracker.utils.money import format_money


def build_recent_activity(
    session: LiveSession,
    window_seconds: Optional[float] = None,
) -> list[UpdateItem]:
    """Build the display feed for a session, newest first.

    The feed holds one item per merged chip update, one per note and the
    session start. It is derived on every call and never stored.

    Args:
        session: Session to describe.
        window_seconds: Merge window for chip updates (config default if None).

    Returns:
        Activity items sorted by timestamp, most recent first. The session
        start sorts after anything recorded at the same instant.
    """
    items = []

    for update in session.ledger.merged(window_seconds):
        items.append(UpdateItem(
            id=update.id,
            kind=UpdateKind.CHIP,
            title=f"Stack: ${format_money(update.amount)}",
            description=update.note or "Chip stack updated",
            timestamp=update.timestamp,
        ))

    for index, note in enumerate(session.notes):
        items.append(UpdateItem(
            id=f"note_{index}",
            kind=UpdateKind.NOTE,
            title="Note",
            description=note.text,
            timestamp=note.timestamp,
        ))

    if session.is_tournament:
        game = session.tournament_name or session.game_name
    else:
        game = f"{session.game_name} - {session.stakes_label}"
    items.append(UpdateItem(
        id=f"start_{session.id}",
        kind=UpdateKind.SESSION_START,
        title="Session Started",
        description=f"Game: {game} - Buy-in: ${format_money(session.buy_in)}",
        timestamp=session.start_time,
    ))

    # Stable sort keeps the start item last among equal timestamps
    items.sort(key=lambda item: item.timestamp, reverse=True)
    return items
