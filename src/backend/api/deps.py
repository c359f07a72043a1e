"""
Shared dependencies for API endpoints.

Includes:
- Engine component providers (overridable in tests via dependency_overrides)
- Client IP resolution
- Admin shared-secret check
"""

import hmac
from typing import Annotated, Optional

import structlog
from fastapi import Depends, Header, HTTPException, Request, status

from core.config import settings
from services.action_analyzer import ActionStreamAnalyzer
from services.cooldown_service import CooldownGate
from services.engine import AntiAbuseEngine, get_engine
from services.ip_intelligence import IPIntelligenceService
from services.referral_guard import ReferralFraudGuard, get_client_ip
from services.reward_policy import ForcedLossPolicy
from services.score_validator import ScoreValidator

logger = structlog.get_logger(__name__)


# =============================================================================
# Engine components
# =============================================================================


def get_anti_abuse_engine() -> AntiAbuseEngine:
    return get_engine()


def get_action_analyzer(
    engine: Annotated[AntiAbuseEngine, Depends(get_anti_abuse_engine)],
) -> ActionStreamAnalyzer:
    return engine.action_analyzer


def get_score_validator(
    engine: Annotated[AntiAbuseEngine, Depends(get_anti_abuse_engine)],
) -> ScoreValidator:
    return engine.score_validator


def get_referral_guard(
    engine: Annotated[AntiAbuseEngine, Depends(get_anti_abuse_engine)],
) -> ReferralFraudGuard:
    return engine.referral_guard


def get_cooldown_gate(
    engine: Annotated[AntiAbuseEngine, Depends(get_anti_abuse_engine)],
) -> CooldownGate:
    return engine.cooldown_gate


def get_forced_loss_policy(
    engine: Annotated[AntiAbuseEngine, Depends(get_anti_abuse_engine)],
) -> ForcedLossPolicy:
    return engine.forced_loss


def get_ip_intelligence(
    engine: Annotated[AntiAbuseEngine, Depends(get_anti_abuse_engine)],
) -> IPIntelligenceService:
    return engine.ip_intelligence


# =============================================================================
# Request helpers
# =============================================================================


def get_request_ip(request: Request) -> str:
    """Client IP from proxy headers (forwarded-for, real-ip, connecting-ip)."""
    return get_client_ip(request.headers)


async def require_admin(x_admin_secret: Optional[str] = Header(default=None)) -> None:
    """
    Validate the shared admin secret.

    Raises:
        HTTPException: 404 when admin endpoints are disabled, 403 on a bad secret.
    """
    if not settings.ADMIN_API_SECRET:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    if not x_admin_secret or not hmac.compare_digest(x_admin_secret, settings.ADMIN_API_SECRET):
        logger.warning("admin_auth_failed")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
