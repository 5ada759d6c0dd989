#!/usr/bin/env python3
"""CLI tool for session records and stake settlement."""
import asyncio
import sys

from session_tracker.db import db, init_db
from session_tracker.session.errors import SessionError
from session_tracker.staking.engine import StakingEngine
from session_tracker.state.gateway import gateway


async def create_schema():
    """Create database tables."""
    await db.connect()
    try:
        await init_db()
        print("Success: database schema is up to date.")
    finally:
        await db.disconnect()


async def list_sessions(user_id: str):
    """List a user's recent completed sessions."""
    await db.connect()
    try:
        records = await gateway.fetch_session_records(user_id)

        if not records:
            print(f"No sessions found for '{user_id}'.")
            return

        print(f"\n{'Date':<17} {'Type':<11} {'Game':<28} {'Hours':>6} {'Buy-in':>10} {'Profit':>10} {'Adjusted':>10}")
        print("-" * 98)
        for r in records:
            started = r["start_time"].strftime("%Y-%m-%d %H:%M") if r["start_time"] else "N/A"
            game = f"{r['stakes']} {r['game_name']}".strip()[:28]
            adjusted = r["adjusted_profit"] if r["adjusted_profit"] is not None else r["profit"]
            print(
                f"{started:<17} {r['game_type']:<11} {game:<28} {r['hours_played']:>6.1f} "
                f"{r['buy_in']!s:>10} {r['profit']!s:>10} {adjusted!s:>10}"
            )
        print(f"\nTotal: {len(records)} sessions")
    finally:
        await db.disconnect()


async def list_stakes(session_id: str):
    """List stakes linked to a session."""
    await db.connect()
    try:
        stakes = await gateway.fetch_stakes_for_session(session_id)

        if not stakes:
            print(f"No stakes found for session '{session_id}'.")
            return

        print(f"\n{'Stake ID':<36} {'Staker':<24} {'%':>6} {'Markup':>7} {'Settlement':>11} {'Status'}")
        print("-" * 110)
        for s in stakes:
            staker = s.manual_staker_display_name or s.staker_user_id
            print(
                f"{s.id:<36} {staker[:24]:<24} {s.stake_percentage * 100:>6.1f} "
                f"{s.markup!s:>7} {s.settlement_amount:>11.2f} {s.status.value}"
            )
        print(f"\nTotal: {len(stakes)} stakes")
    finally:
        await db.disconnect()


async def initiate_settlement(stake_id: str, user_id: str):
    """Mark a stake as paid, pending the other party's confirmation."""
    await db.connect()
    try:
        await StakingEngine(gateway).initiate_settlement(stake_id, user_id)
        print(f"Success: settlement of '{stake_id}' is awaiting confirmation.")
    except SessionError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        await db.disconnect()


async def confirm_settlement(stake_id: str, user_id: str):
    """Confirm a settlement initiated by the other party."""
    await db.connect()
    try:
        await StakingEngine(gateway).confirm_settlement(stake_id, user_id)
        print(f"Success: stake '{stake_id}' is settled.")
    except SessionError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        await db.disconnect()


def print_usage():
    """Print usage information."""
    print("""
Session Tracker CLI

Usage:
  python -m session_tracker.cli <command> [args]

Commands:
  init-db                        Create database tables
  sessions <user_id>             List recent completed sessions
  stakes <session_id>            List stakes for a session
  initiate <stake_id> <user_id>  Mark a stake settlement as paid
  confirm <stake_id> <user_id>   Confirm a stake settlement

Examples:
  python -m session_tracker.cli sessions alice
  python -m session_tracker.cli initiate 6f1c... alice
  python -m session_tracker.cli confirm 6f1c... bob
""")


def main():
    """Main CLI entry point."""
    if len(sys.argv) < 2:
        print_usage()
        sys.exit(1)

    command = sys.argv[1].lower()

    if command == "init-db":
        asyncio.run(create_schema())

    elif command == "sessions":
        if len(sys.argv) < 3:
            print("Error: User ID required.")
            print("Usage: python -m session_tracker.cli sessions <user_id>")
            sys.exit(1)
        asyncio.run(list_sessions(sys.argv[2]))

    elif command == "stakes":
        if len(sys.argv) < 3:
            print("Error: Session ID required.")
            print("Usage: python -m session_tracker.cli stakes <session_id>")
            sys.exit(1)
        asyncio.run(list_stakes(sys.argv[2]))

    elif command in ("initiate", "confirm"):
        if len(sys.argv) < 4:
            print("Error: Stake ID and user ID required.")
            print(f"Usage: python -m session_tracker.cli {command} <stake_id> <user_id>")
            sys.exit(1)
        action = initiate_settlement if command == "initiate" else confirm_settlement
        asyncio.run(action(sys.argv[2], sys.argv[3]))

    elif command in ("help", "-h", "--help"):
        print_usage()

    else:
        print(f"Unknown command: {command}")
        print_usage()
        sys.exit(1)


if __name__ == "__main__":
    main()
