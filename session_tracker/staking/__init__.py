"""Staking models and settlement."""
from .models import (
    OFF_APP_STAKER_ID,
    ManualStakerProfile,
    Settlement,
    SettlementReport,
    Stake,
    StakeStatus,
    StakerConfig,
    StakerProfile,
)

__all__ = [
    "OFF_APP_STAKER_ID",
    "ManualStakerProfile",
    "Settlement",
    "SettlementReport",
    "Stake",
    "StakeStatus",
    "StakerConfig",
    "StakerProfile",
]
