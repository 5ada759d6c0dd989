"""Live poker session tracking: clock, chip ledger, state machine and staking."""

__version__ = "0.1.0"
