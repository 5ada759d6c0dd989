"""Staker validation and settlement."""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from session_tracker.session.errors import PersistenceError, ValidationError
from session_tracker.session.models import LiveSession
from session_tracker.staking.models import (
    ManualStakerProfile,
    Settlement,
    SettlementReport,
    Stake,
    StakeStatus,
    StakerConfig,
    StakerProfile,
)
from session_tracker.state.gateway import PersistenceGateway, gateway as default_gateway
from session_tracker.utils.logger import get_logger
from session_tracker.utils.money import to_decimal

logger = get_logger(__name__)

HUNDRED = Decimal("100")


def compute_settlement(
    buy_in: Decimal,
    cashout: Decimal,
    percentage_sold: Decimal,
    markup: Decimal,
) -> Settlement:
    """Apply the settlement formula for one staker.

    Positive ``settlement_amount`` means the staker made money on the stake
    (the player owes it); negative means the staker lost.

    Args:
        buy_in: Player's total buy-in for the session.
        cashout: Player's cashout.
        percentage_sold: Percent of the action sold, 0-100.
        markup: Price multiplier, at least 1.0.

    Returns:
        Staker cost, share of cashout and the settlement amount.
    """
    share = percentage_sold / HUNDRED
    staker_cost = buy_in * share * markup
    staker_share = cashout * share
    return Settlement(
        staker_cost=staker_cost,
        staker_share_of_cashout=staker_share,
        settlement_amount=staker_share - staker_cost,
    )


def validate_config(config: StakerConfig, buy_in: Decimal) -> Optional[str]:
    """Check one staker config.

    Returns:
        None if the config can be settled, otherwise the reason it cannot.
        A config selling 0% returns a reason too; it is a harmless no-op.
    """
    if config.staker_user_id is None:
        return "No staker selected"

    percentage = to_decimal(config.percentage_sold)
    if percentage is None:
        return f"Percentage sold is not a number: {config.percentage_sold!r}"
    if percentage == 0:
        return "Percentage sold is 0; nothing to settle"
    if not (0 < percentage <= HUNDRED):
        return f"Percentage sold must be between 0 and 100, got {percentage}"

    markup = to_decimal(config.markup)
    if markup is None:
        return f"Markup is not a number: {config.markup!r}"
    if markup < 1:
        return f"Markup must be at least 1.0, got {markup}"

    if buy_in <= 0:
        return "Session has no buy-in to stake"
    return None


def config_from_stake(stake: Stake) -> StakerConfig:
    """Turn a persisted stake back into an editable config."""
    config = StakerConfig(
        is_manual_entry=stake.is_off_app_stake,
        percentage_sold=_plain(stake.stake_percentage * HUNDRED),
        markup=_plain(stake.markup),
        original_stake_id=stake.id,
        original_stake_user_id=stake.staker_user_id,
    )
    if stake.is_off_app_stake:
        config.manual_staker = ManualStakerProfile(
            id=stake.staker_user_id,
            name=stake.manual_staker_display_name or "Unknown Manual Staker",
        )
    return config


def _plain(value: Decimal) -> str:
    """Render a Decimal without exponent or trailing zeros."""
    return format(value.normalize(), "f")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StakingEngine:
    """Settles staker configs against a session and writes the stakes."""

    def __init__(self, gateway: Optional[PersistenceGateway] = None):
        """Initialize engine.

        Args:
            gateway: Persistence gateway (uses the global one if not provided).
        """
        self.gateway = gateway or default_gateway

    def partition(
        self, configs: list[StakerConfig], buy_in: Decimal
    ) -> tuple[list[StakerConfig], list[str]]:
        """Split configs into settleable ones and validation messages."""
        valid: list[StakerConfig] = []
        errors: list[str] = []
        for index, config in enumerate(configs):
            reason = validate_config(config, buy_in)
            if reason is None:
                valid.append(config)
            else:
                errors.append(f"Staker {index + 1}: {reason}")
        return valid, errors

    def preview(
        self, configs: list[StakerConfig], buy_in: Decimal, cashout: Decimal
    ) -> list[tuple[StakerConfig, Settlement]]:
        """Settlements the valid configs would produce. Writes nothing."""
        valid, _ = self.partition(configs, buy_in)
        return [
            (
                c,
                compute_settlement(
                    buy_in, cashout, to_decimal(c.percentage_sold), to_decimal(c.markup)
                ),
            )
            for c in valid
        ]

    async def settle(
        self,
        session: LiveSession,
        record_id: str,
        player_user_id: str,
        cashout: Decimal,
        configs: list[StakerConfig],
    ) -> SettlementReport:
        """Create or update one stake per valid config.

        Each config is written independently; a failed write is recorded in
        the report and does not stop the others. Configs that get a new
        stake have ``original_stake_id`` set so settling again updates the
        same record.

        Args:
            session: The session being ended.
            record_id: Id of the historical session record.
            player_user_id: The staked player.
            cashout: Final cashout.
            configs: Staker configs as edited by the player.

        Returns:
            Counts, written stakes, failures and skipped configs.
        """
        buy_in = session.buy_in
        valid, skipped = self.partition(configs, buy_in)
        report = SettlementReport(attempted=len(valid), skipped=skipped)

        for config in valid:
            percentage = to_decimal(config.percentage_sold)
            markup = to_decimal(config.markup)
            settlement = compute_settlement(buy_in, cashout, percentage, markup)
            now = _now()

            try:
                if config.original_stake_id:
                    await self.gateway.update_stake(config.original_stake_id, {
                        "session_id": record_id,
                        "live_session_id": session.id,
                        "stake_percentage": percentage / HUNDRED,
                        "markup": markup,
                        "total_player_buy_in_for_session": buy_in,
                        "player_cashout_for_session": cashout,
                        "settlement_amount": settlement.settlement_amount,
                        "status": StakeStatus.AWAITING_SETTLEMENT,
                        "last_updated_at": now,
                    })
                    stake_id = config.original_stake_id
                else:
                    stake = self._new_stake(
                        session, record_id, player_user_id, config, percentage, markup,
                        StakeStatus.AWAITING_SETTLEMENT,
                    )
                    stake.total_player_buy_in_for_session = buy_in
                    stake.player_cashout_for_session = cashout
                    stake.settlement_amount = settlement.settlement_amount
                    stake_id = await self.gateway.create_stake(stake)
                    config.original_stake_id = stake_id
                    config.original_stake_user_id = stake.staker_user_id
            except PersistenceError as e:
                logger.warning(f"Stake for {config.staker_user_id} not saved: {e}")
                report.failures.append(f"{config.staker_user_id}: {e}")
                report.pending.append(config)
                continue

            report.succeeded += 1
            report.stakes.append(Stake(
                id=stake_id,
                session_id=record_id,
                live_session_id=session.id,
                session_game_name=session.tournament_name or session.game_name,
                session_stakes=session.stakes_label,
                session_date=session.start_time,
                staker_user_id=config.staker_user_id,
                staked_player_user_id=player_user_id,
                stake_percentage=percentage / HUNDRED,
                markup=markup,
                total_player_buy_in_for_session=buy_in,
                player_cashout_for_session=cashout,
                settlement_amount=settlement.settlement_amount,
                is_tournament_session=session.is_tournament,
                is_off_app_stake=config.is_manual_entry,
                manual_staker_display_name=config.manual_display_name,
                last_updated_at=now,
            ))

        if report.attempted and report.all_succeeded:
            logger.info(f"All {report.succeeded} stakes settled for session {record_id}")
        elif report.succeeded:
            logger.warning(
                f"Partial success: {report.succeeded} of {report.attempted} stakes settled "
                f"for session {record_id}"
            )
        elif report.attempted:
            logger.error(f"No stakes could be settled for session {record_id}")
        return report

    async def save_pending(
        self,
        session: LiveSession,
        player_user_id: str,
        configs: list[StakerConfig],
    ) -> int:
        """Persist configured stakers mid-session, before a multi-day break.

        Stakes are written with status ``active`` and linked to the live
        session id. New stakes write their id back onto the config.

        Returns:
            Number of stakes written.
        """
        valid, _ = self.partition(configs, session.buy_in)
        saved = 0
        for config in valid:
            percentage = to_decimal(config.percentage_sold)
            markup = to_decimal(config.markup)
            try:
                if config.original_stake_id:
                    await self.gateway.update_stake(config.original_stake_id, {
                        "stake_percentage": percentage / HUNDRED,
                        "markup": markup,
                        "live_session_id": session.id,
                        "total_player_buy_in_for_session": session.buy_in,
                    })
                else:
                    stake = self._new_stake(
                        session, session.id, player_user_id, config, percentage, markup,
                        StakeStatus.ACTIVE,
                    )
                    stake.total_player_buy_in_for_session = session.buy_in
                    config.original_stake_id = await self.gateway.create_stake(stake)
                    config.original_stake_user_id = stake.staker_user_id
            except PersistenceError as e:
                logger.warning(f"Could not save pending stake for {config.staker_user_id}: {e}")
                continue
            saved += 1
        logger.info(f"Saved {saved} of {len(valid)} pending stakes for session {session.id}")
        return saved

    async def load_configs(self, session_id: str, player_user_id: str) -> tuple[list[Stake], list[StakerConfig]]:
        """Fetch stakes already stored for a session and convert them to configs.

        Only stakes where the user is the staked player become configs.

        Raises:
            PersistenceError: If the store cannot be read.
        """
        stakes = await self.gateway.fetch_stakes_for_session(session_id)
        configs = []
        for stake in stakes:
            if stake.staked_player_user_id != player_user_id:
                continue
            config = config_from_stake(stake)
            if not config.is_manual_entry:
                config.selected_staker = StakerProfile(
                    user_id=stake.staker_user_id, username=stake.staker_user_id
                )
            configs.append(config)
        return stakes, configs

    async def initiate_settlement(self, stake_id: str, initiator_user_id: str) -> None:
        """Mark a stake as paid by one party, awaiting the other's confirmation.

        Raises:
            ValidationError: If the stake is missing or already settled.
        """
        stake = await self._get_stake(stake_id)
        if stake.status in (StakeStatus.SETTLED, StakeStatus.CANCELLED):
            raise ValidationError(f"Stake {stake_id} is already {stake.status.value}")
        if initiator_user_id not in (stake.staker_user_id, stake.staked_player_user_id):
            raise ValidationError(f"User {initiator_user_id} is not a party to stake {stake_id}")

        await self.gateway.update_stake(stake_id, {
            "status": StakeStatus.AWAITING_CONFIRMATION,
            "settlement_initiator_user_id": initiator_user_id,
        })
        logger.info(f"Settlement of stake {stake_id} initiated by {initiator_user_id}")

    async def confirm_settlement(self, stake_id: str, confirming_user_id: str) -> None:
        """Confirm a settlement initiated by the other party.

        Raises:
            ValidationError: If the stake is not awaiting confirmation or the
                confirmer is the initiator.
        """
        stake = await self._get_stake(stake_id)
        if stake.status != StakeStatus.AWAITING_CONFIRMATION:
            raise ValidationError(f"Stake {stake_id} is not awaiting confirmation")
        if confirming_user_id == stake.settlement_initiator_user_id:
            raise ValidationError("Settlement must be confirmed by the other party")

        await self.gateway.update_stake(stake_id, {
            "status": StakeStatus.SETTLED,
            "settlement_confirmer_user_id": confirming_user_id,
            "settled_at": _now(),
        })
        logger.info(f"Stake {stake_id} settled, confirmed by {confirming_user_id}")

    async def _get_stake(self, stake_id: str) -> Stake:
        stake = await self.gateway.fetch_stake(stake_id)
        if stake is None:
            raise ValidationError(f"Stake {stake_id} not found")
        return stake

    def _new_stake(
        self,
        session: LiveSession,
        session_id: str,
        player_user_id: str,
        config: StakerConfig,
        percentage: Decimal,
        markup: Decimal,
        status: StakeStatus,
    ) -> Stake:
        return Stake(
            session_id=session_id,
            live_session_id=session.id,
            session_game_name=session.tournament_name or session.game_name,
            session_stakes=session.stakes_label,
            session_date=session.start_time,
            staker_user_id=config.staker_user_id,
            staked_player_user_id=player_user_id,
            stake_percentage=percentage / HUNDRED,
            markup=markup,
            status=status,
            is_tournament_session=session.is_tournament,
            is_off_app_stake=config.is_manual_entry,
            manual_staker_display_name=config.manual_display_name,
        )
