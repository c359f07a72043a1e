"""Schemas module initialization."""

from schemas.anti_abuse import (
    AbuseOutcome,
    ActionRecord,
    ActorStats,
    AntiCheatResult,
    CooldownStatus,
    IPRiskInfo,
    IPRiskLevel,
    IPStats,
    ReferralAttempt,
    ReferralValidation,
)

__all__ = [
    "AbuseOutcome",
    "ActionRecord",
    "ActorStats",
    "AntiCheatResult",
    "CooldownStatus",
    "IPRiskInfo",
    "IPRiskLevel",
    "IPStats",
    "ReferralAttempt",
    "ReferralValidation",
]
