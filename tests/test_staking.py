"""Tests for staker validation and settlement."""
import pytest
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from session_tracker.session.clock import SessionClock
from session_tracker.session.errors import PersistenceError, ValidationError
from session_tracker.session.models import LiveSession
from session_tracker.staking.engine import (
    StakingEngine,
    compute_settlement,
    config_from_stake,
    validate_config,
)
from session_tracker.staking.models import (
    OFF_APP_STAKER_ID,
    ManualStakerProfile,
    Stake,
    StakeStatus,
    StakerConfig,
    StakerProfile,
)


T0 = datetime(2026, 3, 14, 19, 0, tzinfo=timezone.utc)


def registered(user_id: str = "staker1", pct: str = "50", markup: str = "1.2", **kwargs) -> StakerConfig:
    return StakerConfig(
        selected_staker=StakerProfile(user_id=user_id, username=user_id),
        percentage_sold=pct,
        markup=markup,
        **kwargs,
    )


def make_stake(**kwargs) -> Stake:
    fields = dict(
        id="stake-1",
        session_id="record-1",
        staker_user_id="staker1",
        staked_player_user_id="player1",
        stake_percentage=Decimal("0.5"),
        markup=Decimal("1.2"),
    )
    fields.update(kwargs)
    return Stake(**fields)


@pytest.fixture
def session():
    """Create a cash game session with a 1000 buy-in."""
    return LiveSession(
        clock=SessionClock.started(T0),
        game_name="Bellagio",
        stakes_label="5/10",
        buy_in=Decimal("1000"),
    )


@pytest.fixture
def gateway():
    """Create a mocked persistence gateway."""
    gw = MagicMock()
    gw.create_stake = AsyncMock(return_value="stake-new")
    gw.update_stake = AsyncMock()
    gw.fetch_stake = AsyncMock(return_value=None)
    gw.fetch_stakes_for_session = AsyncMock(return_value=[])
    return gw


class TestSettlementFormula:
    """Test the settlement arithmetic."""

    def test_staker_profit(self):
        """Test the worked example: staker nets 150."""
        result = compute_settlement(Decimal("1000"), Decimal("1500"), Decimal("50"), Decimal("1.2"))

        assert result.staker_cost == Decimal("600")
        assert result.staker_share_of_cashout == Decimal("750")
        assert result.settlement_amount == Decimal("150")

    def test_staker_loss_is_negative(self):
        """Test a bust-out produces a negative settlement."""
        result = compute_settlement(Decimal("1000"), Decimal("0"), Decimal("50"), Decimal("1.2"))

        assert result.settlement_amount == Decimal("-600")

    def test_no_markup(self):
        result = compute_settlement(Decimal("200"), Decimal("300"), Decimal("25"), Decimal("1"))

        assert result.settlement_amount == Decimal("25")


class TestValidation:
    """Test staker config validation."""

    def test_valid_registered_staker(self):
        assert validate_config(registered(), Decimal("1000")) is None

    def test_manual_staker_by_name(self):
        """Test an off-app staker with only a name is valid."""
        config = StakerConfig(is_manual_entry=True, manual_staker_name="Uncle Bob", percentage_sold="10")

        assert validate_config(config, Decimal("1000")) is None
        assert config.staker_user_id == OFF_APP_STAKER_ID
        assert config.manual_display_name == "Uncle Bob"

    def test_manual_staker_profile(self):
        """Test a saved manual profile supplies its own id."""
        config = StakerConfig(
            is_manual_entry=True,
            manual_staker=ManualStakerProfile(id="manual-7", name="Sam"),
            percentage_sold="10",
        )

        assert config.staker_user_id == "manual-7"

    def test_missing_staker(self):
        config = StakerConfig(percentage_sold="50")

        assert validate_config(config, Decimal("1000")) == "No staker selected"

    @pytest.mark.parametrize("pct", ["0", "-5", "150", "half"])
    def test_bad_percentage(self, pct):
        assert validate_config(registered(pct=pct), Decimal("1000")) is not None

    @pytest.mark.parametrize("markup", ["0.9", "", "x"])
    def test_bad_markup(self, markup):
        assert validate_config(registered(markup=markup), Decimal("1000")) is not None

    def test_zero_buy_in(self):
        assert validate_config(registered(), Decimal("0")) is not None

    def test_partition(self, gateway):
        """Test invalid configs are reported by position."""
        engine = StakingEngine(gateway)
        good = registered()
        valid, errors = engine.partition([good, StakerConfig(percentage_sold="20")], Decimal("1000"))

        assert valid == [good]
        assert errors == ["Staker 2: No staker selected"]


class TestSettle:
    """Test writing stakes at session end."""

    @pytest.mark.asyncio
    async def test_creates_stake_for_new_config(self, gateway, session):
        """Test a new config creates an awaiting-settlement stake."""
        engine = StakingEngine(gateway)
        config = registered()

        report = await engine.settle(session, "record-1", "player1", Decimal("1500"), [config])

        assert report.attempted == 1
        assert report.succeeded == 1
        assert report.all_succeeded
        assert report.total_settlement == Decimal("150")

        stake = gateway.create_stake.call_args.args[0]
        assert stake.session_id == "record-1"
        assert stake.live_session_id == session.id
        assert stake.staker_user_id == "staker1"
        assert stake.staked_player_user_id == "player1"
        assert stake.stake_percentage == Decimal("0.5")
        assert stake.settlement_amount == Decimal("150")
        assert stake.status == StakeStatus.AWAITING_SETTLEMENT
        assert config.original_stake_id == "stake-new"

    @pytest.mark.asyncio
    async def test_idempotent_on_original_stake_id(self, gateway, session):
        """Test settling twice updates the same stake instead of duplicating."""
        engine = StakingEngine(gateway)
        config = registered()

        await engine.settle(session, "record-1", "player1", Decimal("1500"), [config])
        await engine.settle(session, "record-1", "player1", Decimal("1500"), [config])

        gateway.create_stake.assert_awaited_once()
        gateway.update_stake.assert_awaited_once()
        stake_id, fields = gateway.update_stake.call_args.args
        assert stake_id == "stake-new"
        assert fields["settlement_amount"] == Decimal("150")
        assert fields["status"] == StakeStatus.AWAITING_SETTLEMENT
        assert fields["session_id"] == "record-1"

    @pytest.mark.asyncio
    async def test_invalid_configs_skipped(self, gateway, session):
        """Test invalid configs are reported but not written."""
        engine = StakingEngine(gateway)

        report = await engine.settle(
            session, "record-1", "player1", Decimal("1500"),
            [registered(pct="0"), StakerConfig(percentage_sold="30")],
        )

        assert report.attempted == 0
        assert len(report.skipped) == 2
        gateway.create_stake.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_partial_failure(self, gateway, session):
        """Test one failing write does not stop the others."""
        gateway.create_stake = AsyncMock(side_effect=[PersistenceError("timeout"), "stake-2"])
        engine = StakingEngine(gateway)
        first, second = registered("staker1"), registered("staker2", pct="25")

        report = await engine.settle(session, "record-1", "player1", Decimal("1500"), [first, second])

        assert report.attempted == 2
        assert report.succeeded == 1
        assert not report.all_succeeded
        assert len(report.failures) == 1
        assert first.original_stake_id is None
        assert second.original_stake_id == "stake-2"
        assert report.pending == [first]
        assert report.to_dict()["pending_stakers"] == ["staker1"]

    @pytest.mark.asyncio
    async def test_update_rewrites_terms(self, gateway, session):
        """Test changed percentage and markup reach the stored stake on update."""
        engine = StakingEngine(gateway)
        config = registered(pct="40", markup="1.1", original_stake_id="stake-1")

        report = await engine.settle(session, "record-1", "player1", Decimal("1500"), [config])

        _, fields = gateway.update_stake.call_args.args
        assert fields["stake_percentage"] == Decimal("0.4")
        assert fields["markup"] == Decimal("1.1")
        assert report.stakes[0].stake_percentage == fields["stake_percentage"]
        assert report.stakes[0].markup == fields["markup"]

    @pytest.mark.asyncio
    async def test_save_pending(self, gateway, session):
        """Test mid-session stakes are stored as active."""
        engine = StakingEngine(gateway)
        config = registered()

        saved = await engine.save_pending(session, "player1", [config])

        assert saved == 1
        stake = gateway.create_stake.call_args.args[0]
        assert stake.status == StakeStatus.ACTIVE
        assert stake.session_id == session.id
        assert stake.total_player_buy_in_for_session == Decimal("1000")
        assert config.original_stake_id == "stake-new"


class TestExistingStakes:
    """Test converting stored stakes back into configs."""

    def test_config_from_stake(self):
        config = config_from_stake(make_stake(stake_percentage=Decimal("0.25"), markup=Decimal("1.10")))

        assert config.percentage_sold == "25"
        assert config.markup == "1.1"
        assert config.original_stake_id == "stake-1"
        assert config.original_stake_user_id == "staker1"

    def test_config_from_off_app_stake(self):
        config = config_from_stake(make_stake(
            staker_user_id=OFF_APP_STAKER_ID,
            is_off_app_stake=True,
            manual_staker_display_name="Uncle Bob",
            stake_percentage=Decimal("1"),
        ))

        assert config.is_manual_entry is True
        assert config.manual_display_name == "Uncle Bob"
        assert config.percentage_sold == "100"

    @pytest.mark.asyncio
    async def test_load_configs_only_own_stakes(self, gateway):
        """Test stakes where the user is the staker are not editable configs."""
        gateway.fetch_stakes_for_session = AsyncMock(return_value=[
            make_stake(id="s1"),
            make_stake(id="s2", staker_user_id="player1", staked_player_user_id="someone"),
        ])
        engine = StakingEngine(gateway)

        stakes, configs = await engine.load_configs("live-1", "player1")

        assert len(stakes) == 2
        assert [c.original_stake_id for c in configs] == ["s1"]
        assert configs[0].selected_staker.user_id == "staker1"


class TestTwoPartySettlement:
    """Test initiating and confirming a settlement."""

    @pytest.mark.asyncio
    async def test_initiate(self, gateway):
        gateway.fetch_stake = AsyncMock(return_value=make_stake())
        engine = StakingEngine(gateway)

        await engine.initiate_settlement("stake-1", "player1")

        stake_id, fields = gateway.update_stake.call_args.args
        assert stake_id == "stake-1"
        assert fields["status"] == StakeStatus.AWAITING_CONFIRMATION
        assert fields["settlement_initiator_user_id"] == "player1"

    @pytest.mark.asyncio
    async def test_initiate_by_outsider(self, gateway):
        gateway.fetch_stake = AsyncMock(return_value=make_stake())
        engine = StakingEngine(gateway)

        with pytest.raises(ValidationError):
            await engine.initiate_settlement("stake-1", "mallory")

    @pytest.mark.asyncio
    async def test_confirm_by_other_party(self, gateway):
        gateway.fetch_stake = AsyncMock(return_value=make_stake(
            status=StakeStatus.AWAITING_CONFIRMATION,
            settlement_initiator_user_id="player1",
        ))
        engine = StakingEngine(gateway)

        await engine.confirm_settlement("stake-1", "staker1")

        _, fields = gateway.update_stake.call_args.args
        assert fields["status"] == StakeStatus.SETTLED
        assert fields["settlement_confirmer_user_id"] == "staker1"
        assert fields["settled_at"] is not None

    @pytest.mark.asyncio
    async def test_initiator_cannot_confirm(self, gateway):
        gateway.fetch_stake = AsyncMock(return_value=make_stake(
            status=StakeStatus.AWAITING_CONFIRMATION,
            settlement_initiator_user_id="player1",
        ))
        engine = StakingEngine(gateway)

        with pytest.raises(ValidationError):
            await engine.confirm_settlement("stake-1", "player1")
        gateway.update_stake.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_confirm_requires_initiation(self, gateway):
        gateway.fetch_stake = AsyncMock(return_value=make_stake())
        engine = StakingEngine(gateway)

        with pytest.raises(ValidationError):
            await engine.confirm_settlement("stake-1", "staker1")

    @pytest.mark.asyncio
    async def test_missing_stake(self, gateway):
        engine = StakingEngine(gateway)

        with pytest.raises(ValidationError):
            await engine.initiate_settlement("nope", "player1")
