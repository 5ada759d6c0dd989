"""Live session state machine.

``SessionStateMachine`` is the only thing that mutates a user's
``LiveSession``. Every operation changes the in-memory session first and
then writes the snapshot; the in-memory copy is the source of truth while
the session runs. Only ``end()`` waits for the store before clearing state.
"""
import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, Union

from session_tracker.config import config
from session_tracker.protocol.commands import Command, ErrorEvent, SessionEvent
from session_tracker.session.activity import build_recent_activity
from session_tracker.session.clock import SessionClock
from session_tracker.session.errors import (
    DurabilityViolation,
    IllegalTransition,
    InvalidAmount,
    NoActiveSession,
    PersistenceError,
    SessionError,
)
from session_tracker.session.ledger import ChipStackUpdate
from session_tracker.session.models import (
    GameType,
    LiveSession,
    SessionNote,
    SessionSetup,
    SessionState,
    UpdateItem,
)
from session_tracker.staking.engine import StakingEngine
from session_tracker.staking.models import SettlementReport, Stake, StakerConfig
from session_tracker.state.gateway import PersistenceGateway, gateway as default_gateway
from session_tracker.state.live_store import LiveSessionStore, live_store as default_live_store
from session_tracker.utils.logger import get_logger
from session_tracker.utils.money import format_money, to_decimal

logger = get_logger(__name__)

FINAL_CASHOUT_NOTE = "Final cashout amount"

ERROR_CODES = {
    IllegalTransition: "ILLEGAL_TRANSITION",
    InvalidAmount: "INVALID_AMOUNT",
    NoActiveSession: "NO_ACTIVE_SESSION",
    DurabilityViolation: "DURABILITY_VIOLATION",
    PersistenceError: "PERSISTENCE_ERROR",
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def staker_cache_key(session_id: str) -> str:
    return f"staker_configs:{session_id}"


def unsettled_cache_key(record_id: str) -> str:
    return f"settlement_retry:{record_id}"


def _positive(amount: Any, what: str) -> Decimal:
    value = to_decimal(amount)
    if value is None:
        raise InvalidAmount(f"{what} is not a number: {amount!r}")
    if value <= 0:
        raise InvalidAmount(f"{what} must be positive")
    return value


@dataclass
class EndResult:
    """What ending a session produced."""
    record_id: str
    cashout: Decimal
    profit: Decimal
    adjusted_profit: Decimal
    hours_played: float
    settlement: SettlementReport

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "cashout": str(self.cashout),
            "profit": str(self.profit),
            "adjusted_profit": str(self.adjusted_profit),
            "hours_played": self.hours_played,
            "settlement": self.settlement.to_dict(),
        }


@dataclass
class StakingSummary:
    """Stakes already stored for the session plus the current configuration."""
    existing_stakes: list[Stake] = field(default_factory=list)
    configured_stakers: list[StakerConfig] = field(default_factory=list)
    validation_errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "existing_stakes": [s.to_dict() for s in self.existing_stakes],
            "configured_stakers": [c.model_dump() for c in self.configured_stakers],
            "validation_errors": self.validation_errors,
        }


class SessionStateMachine:
    """Owns one user's live session and enforces its legal transitions.

    Not safe for concurrent use: callers serialize operations per user.
    """

    def __init__(
        self,
        user_id: str,
        gateway: Optional[PersistenceGateway] = None,
        live_store: Optional[LiveSessionStore] = None,
        staking: Optional[StakingEngine] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize state machine.

        Args:
            user_id: Player that owns the session.
            gateway: Record/stake store (global one if not provided).
            live_store: Snapshot store (global one if not provided).
            staking: Staking engine (built on ``gateway`` if not provided).
            clock: Returns the current time; UTC wall clock by default.
        """
        self.user_id = user_id
        self.gateway = gateway or default_gateway
        self.live_store = live_store or default_live_store
        self.staking = staking or StakingEngine(self.gateway)
        self._now = clock or _utc_now

        self.session: Optional[LiveSession] = None
        self.staker_configs: list[StakerConfig] = []
        self.existing_stakes: list[Stake] = []

        # Record id of an end() that failed, reused so a retry overwrites it
        self._pending_record_id: Optional[str] = None
        # Stakes end() could not write, by record id
        self._unsettled: dict[str, tuple[LiveSession, Decimal, list[StakerConfig]]] = {}

    # ============= Reads =============

    def current_session(self) -> Optional[LiveSession]:
        return self.session

    @property
    def state(self) -> SessionState:
        if self.session is None:
            return SessionState.SETUP
        return self.session.state

    def recent_activity(self) -> list[UpdateItem]:
        """Derived activity feed, newest first. Empty without a session."""
        if self.session is None:
            return []
        return build_recent_activity(self.session)

    def staking_summary(self) -> StakingSummary:
        buy_in = self.session.buy_in if self.session else Decimal("0")
        _, errors = self.staking.partition(self.staker_configs, buy_in)
        return StakingSummary(
            existing_stakes=list(self.existing_stakes),
            configured_stakers=list(self.staker_configs),
            validation_errors=errors,
        )

    # ============= Lifecycle =============

    async def start(self, setup: SessionSetup) -> LiveSession:
        """Start a new session from the setup screen.

        Raises:
            IllegalTransition: If a session is already in progress.
            InvalidAmount: If the buy-in is not positive.
        """
        if self.session is not None:
            raise IllegalTransition("A session is already in progress")
        buy_in = _positive(setup.buy_in, "Buy-in")
        now = self._now()

        session = LiveSession(
            clock=SessionClock.started(now),
            game_name=setup.game_name,
            stakes_label=setup.stakes_label,
            buy_in=buy_in,
            is_tournament=setup.is_tournament,
            poker_variant=setup.poker_variant,
            casino=setup.casino,
        )
        if setup.is_tournament:
            session.tournament_name = setup.tournament_name or setup.game_name
            session.tournament_type = setup.tournament_type
            session.tournament_base_buy_in = to_decimal(setup.tournament_base_buy_in) or buy_in
            session.tournament_game_type = setup.tournament_game_type
            session.tournament_format = setup.tournament_format
            session.game_name = session.tournament_name
            session.stakes_label = setup.tournament_type or setup.stakes_label

        if not session.ledger:
            session.ledger.append(buy_in, now)

        self.session = session
        self.staker_configs = []
        self.existing_stakes = []
        self._pending_record_id = None
        logger.info(f"User {self.user_id} started session {session.id}: {session.display_name}")

        await self._save_snapshot()
        return session

    async def pause(self) -> None:
        """Pause the clock.

        Raises:
            IllegalTransition: If already paused.
        """
        session = self._require_session()
        session.clock.pause(self._now())
        logger.info(f"Paused session {session.id}")
        await self._save_snapshot()

    async def resume(self) -> None:
        """Resume the clock. Resuming after a day break starts the next day.

        Raises:
            IllegalTransition: If already running.
        """
        session = self._require_session()
        session.clock.resume(self._now())
        if session.paused_for_next_day:
            session.paused_for_next_day = False
            session.paused_for_next_day_date = None
            session.current_day += 1
            logger.info(f"Session {session.id} resumed on day {session.current_day}")
        else:
            logger.info(f"Resumed session {session.id}")
        await self._save_snapshot()

    async def progress_to_next_day(self, next_date: datetime) -> None:
        """Stop a tournament day; play continues on ``next_date``.

        Configured stakers are written as active stakes first, because the
        session may be resumed from another process.

        Raises:
            IllegalTransition: If the session is not a tournament or is
                already waiting for the next day.
        """
        session = self._require_session()
        if not session.is_tournament:
            raise IllegalTransition("Only tournament sessions can continue on another day")
        if session.paused_for_next_day:
            raise IllegalTransition("Session is already paused for the next day")

        if self.staker_configs:
            await self.staking.save_pending(session, self.user_id, self.staker_configs)
            await self._cache_staker_configs()

        if session.clock.is_active:
            session.clock.pause(self._now())
        session.paused_for_next_day = True
        session.paused_for_next_day_date = _aware(next_date)
        logger.info(
            f"Session {session.id} day {session.current_day} done, "
            f"continuing {session.paused_for_next_day_date.date()}"
        )
        await self._save_snapshot()

    async def end(self, cashout: Any) -> EndResult:
        """End the session with the final cashout.

        The historical record is written first; stakes are settled after it
        is confirmed. The live session is cleared only once the record is
        stored.

        Args:
            cashout: Final cashout amount (zero allowed).

        Returns:
            Record id, profit figures and the settlement report.
            Stakes that could not be written are held for
            ``retry_settlement``.

        Raises:
            InvalidAmount: If cashout is negative or not a number.
            DurabilityViolation: If the record could not be stored. The
                session stays in memory so the call can be retried.
        """
        session = self._require_session()
        value = to_decimal(cashout)
        if value is None:
            raise InvalidAmount(f"Cashout is not a number: {cashout!r}")
        if value < 0:
            raise InvalidAmount("Cashout cannot be negative")

        now = self._now()
        if not session.ledger or session.current_amount != value:
            session.ledger.append(value, now, FINAL_CASHOUT_NOTE)

        profit = value - session.buy_in
        hours_played = session.elapsed_time(now) / 3600
        preview = self.staking.preview(self.staker_configs, session.buy_in, value)
        adjusted_profit = profit - sum(
            (settlement.settlement_amount for _, settlement in preview), Decimal("0")
        )

        record_id = self._pending_record_id or str(uuid.uuid4())
        self._pending_record_id = record_id
        try:
            await self.gateway.save_session_record(
                record_id, self._record_fields(session, now, value, profit, adjusted_profit, hours_played)
            )
        except PersistenceError as e:
            logger.error(f"Session {session.id} not ended, record {record_id} not stored: {e}")
            raise DurabilityViolation(f"Session record could not be saved: {e}") from e

        report = await self.staking.settle(session, record_id, self.user_id, value, self.staker_configs)
        if report.pending:
            await self._hold_unsettled(record_id, session, value, report.pending)
        await self._persist(
            f"clear staker cache for {session.id}",
            lambda: self.gateway.cache_delete(staker_cache_key(session.id)),
        )

        session.is_ended = True
        self._clear()
        await self._persist(
            f"delete snapshot for {session.id}",
            lambda: self.live_store.delete_live_session(self.user_id),
        )
        logger.info(
            f"Session {session.id} ended as record {record_id}: "
            f"profit {profit}, adjusted {adjusted_profit}"
        )
        return EndResult(
            record_id=record_id,
            cashout=value,
            profit=profit,
            adjusted_profit=adjusted_profit,
            hours_played=hours_played,
            settlement=report,
        )

    async def discard(self) -> None:
        """Throw the session away without writing a record."""
        session = self._require_session()
        self._clear()
        await self._persist(
            f"delete snapshot for {session.id}",
            lambda: self.live_store.delete_live_session(self.user_id),
        )
        await self._persist(
            f"clear staker cache for {session.id}",
            lambda: self.gateway.cache_delete(staker_cache_key(session.id)),
        )
        logger.info(f"Discarded session {session.id}")

    async def retry_settlement(self, record_id: str) -> SettlementReport:
        """Write the stakes an earlier end() could not store.

        Works without a live session, including after a restart as long as
        the retry entry is still cached.

        Args:
            record_id: Record id returned by the end() that left stakes unsaved.

        Returns:
            Report for the stakes attempted this time.

        Raises:
            ValueError: If nothing is waiting to be settled for the record.
            PersistenceError: If the retry cache cannot be read.
        """
        entry = self._unsettled.get(record_id)
        if entry is None:
            cached = await self.gateway.cache_read(unsettled_cache_key(record_id))
            if not cached:
                raise ValueError(f"No unsettled stakes for record {record_id}")
            entry = (
                LiveSession.from_dict(cached["session"]),
                Decimal(cached["cashout"]),
                [StakerConfig(**c) for c in cached["stakers"]],
            )

        session, cashout, configs = entry
        report = await self.staking.settle(session, record_id, self.user_id, cashout, configs)
        if report.pending:
            await self._hold_unsettled(record_id, session, cashout, report.pending)
        else:
            self._unsettled.pop(record_id, None)
            await self._persist(
                f"clear settlement retry for {record_id}",
                lambda: self.gateway.cache_delete(unsettled_cache_key(record_id)),
            )
        logger.info(
            f"Settlement retry for record {record_id}: "
            f"{report.succeeded}/{report.attempted} stakes stored"
        )
        return report

    # ============= Buy-in and chips =============

    async def rebuy(self, amount: Any) -> ChipStackUpdate:
        """Add a rebuy to the buy-in and the stack.

        Raises:
            InvalidAmount: If amount is not positive.
        """
        session = self._require_session()
        value = _positive(amount, "Rebuy amount")
        update = session.ledger.append(
            session.current_amount + value, self._now(), f"Rebuy: +${format_money(value)}"
        )
        session.buy_in += value
        logger.info(f"Rebuy {value} on session {session.id}, buy-in now {session.buy_in}")
        await self._save_snapshot()
        return update

    async def edit_total_buy_in(self, amount: Any) -> None:
        """Overwrite the total buy-in. The ledger is not touched."""
        session = self._require_session()
        value = _positive(amount, "Buy-in")
        previous, session.buy_in = session.buy_in, value
        logger.info(f"Buy-in for session {session.id} corrected from {previous} to {value}")
        await self._save_snapshot()

    async def update_chip_stack(self, amount: Any, note: Optional[str] = None) -> ChipStackUpdate:
        """Report the current stack."""
        session = self._require_session()
        update = session.ledger.append(amount, self._now(), note)
        await self._save_snapshot()
        return update

    async def quick_update(self, delta: Any) -> ChipStackUpdate:
        """Move the stack up or down by ``delta``.

        Raises:
            InvalidAmount: If delta is zero or not a number.
        """
        session = self._require_session()
        value = to_decimal(delta)
        if value is None:
            raise InvalidAmount(f"Change is not a number: {delta!r}")
        if value == 0:
            raise InvalidAmount("Change must not be zero")

        if value > 0:
            note = f"Quick add: +${format_money(value)}"
        else:
            note = f"Quick subtract: -${format_money(value)}"
        update = session.ledger.append(session.current_amount + value, self._now(), note)
        await self._save_snapshot()
        return update

    # ============= Notes and details =============

    async def add_note(self, text: str) -> SessionNote:
        session = self._require_session()
        text = text.strip()
        if not text:
            raise ValueError("Note cannot be empty")
        note = SessionNote(text=text, timestamp=self._now())
        session.notes.append(note)
        await self._save_snapshot()
        return note

    async def edit_note(self, index: int, text: str) -> SessionNote:
        """Replace a note's text, keeping its timestamp."""
        session = self._require_session()
        if not 0 <= index < len(session.notes):
            raise ValueError(f"No note at position {index}")
        text = text.strip()
        if not text:
            raise ValueError("Note cannot be empty")
        session.notes[index].text = text
        await self._save_snapshot()
        return session.notes[index]

    async def edit_session(
        self,
        start_time: Optional[datetime] = None,
        game_name: Optional[str] = None,
        stakes_label: Optional[str] = None,
    ) -> None:
        """Edit session details.

        Moving the start time recomputes elapsed time as a single interval
        and loses earlier pauses (see ``SessionClock.edit_start_time``).
        """
        session = self._require_session()
        now = self._now()
        if start_time is not None:
            start_time = _aware(start_time)
            if start_time > now:
                raise ValueError("Start time cannot be in the future")
            session.clock.edit_start_time(start_time, now)
            logger.info(f"Start time of session {session.id} moved to {start_time.isoformat()}")
        if game_name is not None:
            session.game_name = game_name
        if stakes_label is not None:
            session.stakes_label = stakes_label
        await self._save_snapshot()

    # ============= Parked sessions =============

    async def park_for_next_day(self, next_date: datetime) -> str:
        """End the tournament day and move the session out of the live slot.

        Returns:
            The parking key, ``<session id>_day<next day>``.

        Raises:
            PersistenceError: If the session could not be parked. It stays
                live, paused for the next day, and parking can be retried.
        """
        session = self._require_session()
        if not session.paused_for_next_day:
            await self.progress_to_next_day(next_date)
        key = f"{session.id}_day{session.current_day + 1}"
        await self.live_store.park_session(self.user_id, key, session)

        self._clear()
        await self._persist(
            f"delete snapshot for {session.id}",
            lambda: self.live_store.delete_live_session(self.user_id),
        )
        return key

    async def parked_sessions(self) -> dict[str, LiveSession]:
        return await self.live_store.get_parked_sessions(self.user_id)

    async def restore_parked(self, key: str) -> LiveSession:
        """Make a parked session the live one and start its next day.

        Raises:
            IllegalTransition: If a live session already exists.
            ValueError: If nothing is parked under ``key``.
        """
        if self.session is not None:
            raise IllegalTransition("Finish the current session before restoring another")
        parked = await self.live_store.get_parked_sessions(self.user_id)
        if key not in parked:
            raise ValueError(f"No parked session {key}")

        self.session = parked[key]
        self._pending_record_id = None
        await self.resume()
        await self._persist(
            f"remove parked session {key}",
            lambda: self.live_store.remove_parked_session(self.user_id, key),
        )
        await self.load_stakes()
        logger.info(f"Restored parked session {key}")
        return self.session

    async def discard_parked(self, key: str) -> None:
        await self.live_store.remove_parked_session(self.user_id, key)

    # ============= Restore and stakers =============

    async def load(self) -> Optional[LiveSession]:
        """Restore the live session snapshot after a restart.

        Ended, empty and abandoned snapshots are deleted instead. A session
        waiting for its next tournament day is never considered abandoned.

        Raises:
            IllegalTransition: If a session is already loaded.
            PersistenceError: If the snapshot store cannot be read.
        """
        if self.session is not None:
            raise IllegalTransition("A session is already loaded")
        snapshot = await self.live_store.get_live_session(self.user_id)
        if snapshot is None:
            return None

        age = self._now() - snapshot.start_time
        stale = (
            age > timedelta(hours=config.max_session_hours)
            and not snapshot.paused_for_next_day
        )
        if snapshot.is_ended or snapshot.buy_in <= 0 or stale:
            logger.warning(f"Clearing unusable snapshot {snapshot.id} for {self.user_id}")
            await self.live_store.delete_live_session(self.user_id)
            return None

        self.session = snapshot
        await self.load_stakes()
        logger.info(f"Loaded session {snapshot.id} for {self.user_id}")
        return snapshot

    async def load_stakes(self) -> list[StakerConfig]:
        """Load stored stakes for the session and turn them into configs.

        Falls back to the cached configs when the store has none or cannot
        be reached.
        """
        session = self._require_session()
        stakes: list[Stake] = []
        configs: list[StakerConfig] = []
        try:
            stakes, configs = await self.staking.load_configs(session.id, self.user_id)
        except PersistenceError as e:
            logger.warning(f"Could not fetch stakes for {session.id}, trying cache: {e}")

        if not configs:
            try:
                cached = await self.gateway.cache_read(staker_cache_key(session.id))
            except PersistenceError as e:
                logger.warning(f"Staker cache unavailable for {session.id}: {e}")
                cached = None
            if cached:
                configs = [StakerConfig(**c) for c in cached]
                logger.info(f"Restored {len(configs)} staker configs from cache")

        self.existing_stakes = stakes
        self.staker_configs = configs
        return configs

    async def configure_stakers(self, configs: list[StakerConfig]) -> list[str]:
        """Replace the configured stakers.

        Returns:
            Validation messages for configs that would be skipped at end.
        """
        session = self._require_session()
        self.staker_configs = list(configs)
        await self._cache_staker_configs()
        _, errors = self.staking.partition(self.staker_configs, session.buy_in)
        return errors

    # ============= Commands =============

    async def apply(self, command: Command) -> Union[SessionEvent, ErrorEvent]:
        """Run a command and describe the outcome.

        Session errors and invalid input come back as ``ErrorEvent``;
        anything else propagates.
        """
        handler = self._handlers().get(command.type)
        if handler is None:
            return ErrorEvent(command=command.type, message="Unhandled command type")
        try:
            data = await handler(command) or {}
        except SessionError as e:
            code = ERROR_CODES.get(type(e), "SESSION_ERROR")
            return ErrorEvent(command=command.type, message=str(e), code=code)
        except ValueError as e:
            return ErrorEvent(command=command.type, message=str(e), code="INVALID_INPUT")

        return SessionEvent(
            command=command.type,
            state=self.state.value,
            session=self.session.to_dict() if self.session else None,
            data=data,
        )

    def _handlers(self) -> dict[str, Callable[[Any], Awaitable[Optional[dict]]]]:
        return {
            "start": self._on_start,
            "pause": lambda c: self.pause(),
            "resume": lambda c: self.resume(),
            "rebuy": self._on_chip_change(lambda c: self.rebuy(c.amount)),
            "edit_buy_in": lambda c: self.edit_total_buy_in(c.amount),
            "chip_update": self._on_chip_change(lambda c: self.update_chip_stack(c.amount, c.note)),
            "quick_update": self._on_chip_change(lambda c: self.quick_update(c.delta)),
            "add_note": lambda c: self.add_note(c.text),
            "edit_note": lambda c: self.edit_note(c.index, c.text),
            "edit_session": lambda c: self.edit_session(c.start_time, c.game_name, c.stakes_label),
            "next_day": lambda c: self.progress_to_next_day(c.next_date),
            "park": self._on_park,
            "restore_parked": lambda c: self.restore_parked(c.key),
            "discard_parked": lambda c: self.discard_parked(c.key),
            "configure_stakers": self._on_configure_stakers,
            "end": self._on_end,
            "retry_settlement": self._on_retry_settlement,
            "discard": lambda c: self.discard(),
        }

    async def _on_start(self, command) -> dict:
        setup = SessionSetup(**command.model_dump(exclude={"type"}))
        session = await self.start(setup)
        return {"session_id": session.id}

    def _on_chip_change(self, action):
        async def handler(command) -> dict:
            update = await action(command)
            return {"update": update.to_dict()}
        return handler

    async def _on_park(self, command) -> dict:
        return {"key": await self.park_for_next_day(command.next_date)}

    async def _on_configure_stakers(self, command) -> dict:
        return {"validation_errors": await self.configure_stakers(command.stakers)}

    async def _on_end(self, command) -> dict:
        result = await self.end(command.cashout)
        return result.to_dict()

    async def _on_retry_settlement(self, command) -> dict:
        report = await self.retry_settlement(command.record_id)
        return report.to_dict()

    # ============= Internals =============

    def _require_session(self) -> LiveSession:
        if self.session is None or self.session.buy_in <= 0:
            raise NoActiveSession("No live session")
        return self.session

    def _clear(self) -> None:
        self.session = None
        self.staker_configs = []
        self.existing_stakes = []
        self._pending_record_id = None

    def _record_fields(
        self,
        session: LiveSession,
        end_time: datetime,
        cashout: Decimal,
        profit: Decimal,
        adjusted_profit: Decimal,
        hours_played: float,
    ) -> dict:
        return {
            "user_id": self.user_id,
            "game_type": GameType.TOURNAMENT if session.is_tournament else GameType.CASH_GAME,
            "game_name": session.game_name,
            "stakes": session.stakes_label,
            "start_time": session.start_time,
            "end_time": end_time,
            "hours_played": hours_played,
            "buy_in": session.buy_in,
            "cashout": cashout,
            "profit": profit,
            "adjusted_profit": adjusted_profit,
            "notes": [n.text for n in session.notes],
            "live_session_id": session.id,
            "location": session.casino,
            "tournament_type": session.tournament_type,
            "tournament_game_type": session.tournament_game_type,
            "tournament_format": session.tournament_format,
            "poker_variant": session.poker_variant,
            "casino": session.casino,
            "days_played": session.current_day,
        }

    async def _save_snapshot(self) -> bool:
        session = self.session
        return await self._persist(
            f"snapshot of {session.id}",
            lambda: self.live_store.save_live_session(self.user_id, session),
        )

    async def _hold_unsettled(
        self, record_id: str, session: LiveSession, cashout: Decimal, configs: list[StakerConfig]
    ) -> bool:
        self._unsettled[record_id] = (session, cashout, list(configs))
        payload = {
            "session": session.to_dict(),
            "cashout": str(cashout),
            "stakers": [c.model_dump() for c in configs],
        }
        logger.warning(f"{len(configs)} stake(s) for record {record_id} left for retry")
        return await self._persist(
            f"settlement retry for {record_id}",
            lambda: self.gateway.cache_write(unsettled_cache_key(record_id), payload),
        )

    async def _cache_staker_configs(self) -> bool:
        session = self.session
        payload = [c.model_dump() for c in self.staker_configs]
        return await self._persist(
            f"staker configs for {session.id}",
            lambda: self.gateway.cache_write(staker_cache_key(session.id), payload),
        )

    async def _persist(self, what: str, write: Callable[[], Awaitable[Any]]) -> bool:
        """Run a non-critical write with retries.

        Returns:
            True if the write went through; False after giving up. The
            in-memory state is kept either way.
        """
        attempts = max(1, config.persist_retries)
        for attempt in range(1, attempts + 1):
            try:
                await write()
                return True
            except PersistenceError as e:
                if attempt == attempts:
                    logger.warning(f"Giving up on {what} after {attempts} attempts: {e}")
                    return False
                logger.debug(f"Retrying {what} ({attempt}/{attempts}): {e}")
                await asyncio.sleep(config.persist_retry_delay * 2 ** (attempt - 1))
        return False
