"""Tests for command parsing."""
import pytest
from datetime import datetime, timezone
from decimal import Decimal

from session_tracker.protocol.commands import (
    parse_command,
    StartCommand,
    PauseCommand,
    RebuyCommand,
    ChipUpdateCommand,
    QuickUpdateCommand,
    EditNoteCommand,
    EditSessionCommand,
    NextDayCommand,
    ConfigureStakersCommand,
    EndCommand,
    RetrySettlementCommand,
    ErrorEvent,
)


class TestCommandParsing:
    """Test caller command parsing."""

    def test_parse_start(self):
        """Test parsing a cash game start."""
        cmd = parse_command({"type": "start", "game_name": "Bellagio", "stakes_label": "2/5", "buy_in": "500"})

        assert isinstance(cmd, StartCommand)
        assert cmd.buy_in == Decimal("500")
        assert cmd.is_tournament is False

    def test_parse_tournament_start(self):
        cmd = parse_command({
            "type": "start",
            "game_name": "",
            "buy_in": 1000,
            "is_tournament": True,
            "tournament_name": "WSOP Main Event",
            "tournament_base_buy_in": "10000",
        })

        assert cmd.tournament_name == "WSOP Main Event"
        assert cmd.tournament_base_buy_in == Decimal("10000")

    def test_parse_pause(self):
        assert isinstance(parse_command({"type": "pause"}), PauseCommand)

    def test_parse_rebuy(self):
        cmd = parse_command({"type": "rebuy", "amount": 200})

        assert isinstance(cmd, RebuyCommand)
        assert cmd.amount == Decimal("200")

    def test_parse_chip_update_without_note(self):
        cmd = parse_command({"type": "chip_update", "amount": "1250.5"})

        assert isinstance(cmd, ChipUpdateCommand)
        assert cmd.amount == Decimal("1250.5")
        assert cmd.note is None

    def test_parse_quick_update(self):
        cmd = parse_command({"type": "quick_update", "delta": -25})

        assert isinstance(cmd, QuickUpdateCommand)
        assert cmd.delta == Decimal("-25")

    def test_parse_edit_session(self):
        cmd = parse_command({"type": "edit_session", "start_time": "2026-03-14T18:00:00+00:00"})

        assert isinstance(cmd, EditSessionCommand)
        assert cmd.start_time == datetime(2026, 3, 14, 18, 0, tzinfo=timezone.utc)
        assert cmd.game_name is None

    def test_parse_next_day(self):
        cmd = parse_command({"type": "next_day", "next_date": "2026-03-15T12:00:00Z"})

        assert isinstance(cmd, NextDayCommand)
        assert cmd.next_date.day == 15

    def test_parse_configure_stakers(self):
        """Test nested staker configs are parsed."""
        cmd = parse_command({
            "type": "configure_stakers",
            "stakers": [
                {"selected_staker": {"user_id": "u1", "username": "alice"}, "percentage_sold": "50"},
                {"is_manual_entry": True, "manual_staker_name": "Uncle Bob", "percentage_sold": "10", "markup": "1.1"},
            ],
        })

        assert isinstance(cmd, ConfigureStakersCommand)
        assert cmd.stakers[0].staker_user_id == "u1"
        assert cmd.stakers[0].markup == "1.0"
        assert cmd.stakers[1].manual_display_name == "Uncle Bob"

    def test_parse_end(self):
        cmd = parse_command({"type": "end", "cashout": 0})

        assert isinstance(cmd, EndCommand)
        assert cmd.cashout == Decimal("0")

    def test_parse_retry_settlement(self):
        cmd = parse_command({"type": "retry_settlement", "record_id": "rec-1"})

        assert isinstance(cmd, RetrySettlementCommand)
        assert cmd.record_id == "rec-1"

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown command type"):
            parse_command({"type": "deal"})

    def test_missing_type(self):
        with pytest.raises(ValueError):
            parse_command({"amount": 5})

    def test_bad_amount(self):
        """Test non-numeric amounts are rejected at parse time."""
        with pytest.raises(ValueError):
            parse_command({"type": "rebuy", "amount": "lots"})

    def test_negative_note_index(self):
        with pytest.raises(ValueError):
            parse_command({"type": "edit_note", "index": -1, "text": "x"})

    def test_edit_note(self):
        cmd = parse_command({"type": "edit_note", "index": 0, "text": "x"})

        assert isinstance(cmd, EditNoteCommand)


class TestEvents:
    """Test outgoing events."""

    def test_error_event_dump(self):
        event = ErrorEvent(command="pause", message="Session is already paused", code="ILLEGAL_TRANSITION")

        assert event.model_dump() == {
            "type": "error",
            "command": "pause",
            "message": "Session is already paused",
            "code": "ILLEGAL_TRANSITION",
        }
