"""
Anti-abuse schemas: immutable records, detector verdicts and wire contracts.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AbuseOutcome(str, Enum):
    """Classification of a detector verdict."""

    ALLOWED = "allowed"
    VALIDATION_BLOCKED = "validation_blocked"  # Deterministic, not retryable
    SUSPICION_DETECTED = "suspicion_detected"  # Retryable once the window elapses
    HARD_BLOCKED = "hard_blocked"  # Active TTL ban on the actor or IP


class IPRiskLevel(str, Enum):
    """Informational IP risk classification."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# =============================================================================
# Records
# =============================================================================


class ActionRecord(BaseModel):
    """One recorded game input."""

    model_config = ConfigDict(frozen=True)

    timestamp: int
    action_type: str
    context_data: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_perfect(self) -> bool:
        return self.context_data.get("isPerfect") is True

    @property
    def failed(self) -> bool:
        """An action counts as failed only when explicitly marked incorrect."""
        return self.context_data.get("correct") is False


class ReferralAttempt(BaseModel):
    """One referral claim seen from an IP, successful or not."""

    model_config = ConfigDict(frozen=True)

    ip: str
    referrer_id: str
    new_user_id: str
    timestamp: int
    success: bool
    reason: Optional[str] = None


# =============================================================================
# Verdicts
# =============================================================================


class AntiCheatResult(BaseModel):
    """Verdict of the action analyzer or the score validator."""

    suspicious: bool = False
    reason: Optional[str] = None
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    blocked: bool = False
    outcome: AbuseOutcome = AbuseOutcome.ALLOWED


class ReferralValidation(BaseModel):
    """Verdict of the referral fraud guard."""

    valid: bool
    reason: Optional[str] = None
    blocked: Optional[bool] = None
    outcome: AbuseOutcome = AbuseOutcome.ALLOWED


# =============================================================================
# Contracts
# =============================================================================


class CamelModel(BaseModel):
    """Base for wire models serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CooldownStatus(CamelModel):
    """Global per-actor play cooldown."""

    is_on_cooldown: bool
    can_play: bool
    last_play_time: int
    remaining_ms: int
    remaining_hours: int
    remaining_minutes: int


class ActorStats(CamelModel):
    """Summary of an actor's recent action stream."""

    total_actions: int
    recent_actions: int
    average_interval: float
    actions_per_second: float
    suspicion_count: int


class IPStats(CamelModel):
    """Referral activity summary for one IP."""

    total_attempts: int
    successful_referrals: int
    unique_addresses: int
    suspicious_count: int
    is_blocked: bool


class IPRiskInfo(CamelModel):
    """Best-effort geolocation / anonymiser data for an IP."""

    ip: str
    country: Optional[str] = None
    country_code: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    isp: Optional[str] = None
    org: Optional[str] = None
    is_vpn: bool = False
    is_proxy: bool = False
    is_tor: bool = False
    is_datacenter: bool = False
    risk_level: IPRiskLevel = IPRiskLevel.LOW
