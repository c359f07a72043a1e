"""
Administrative anti-abuse endpoints.

Every route requires the shared ``X-Admin-Secret`` header (see
``api.deps.require_admin``); when no secret is configured they answer 404.
"""

from typing import Annotated, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field

from api.deps import get_action_analyzer, get_referral_guard
from schemas.anti_abuse import ActorStats, CamelModel, IPStats
from services.action_analyzer import ActionStreamAnalyzer
from services.referral_guard import ReferralFraudGuard

logger = structlog.get_logger(__name__)

router = APIRouter()


class BlockIPRequest(CamelModel):
    duration_minutes: Optional[int] = Field(default=None, ge=1)


class AdminActionResponse(CamelModel):
    ok: bool
    message: str


# =============================================================================
# Referral IPs
# =============================================================================


@router.get("/referral-ip/{ip}", response_model=IPStats)
async def get_referral_ip_stats(
    ip: str,
    guard: Annotated[ReferralFraudGuard, Depends(get_referral_guard)],
) -> IPStats:
    return guard.get_ip_stats(ip)


@router.post("/referral-ip/{ip}/reset", response_model=IPStats)
async def reset_referral_ip(
    ip: str,
    guard: Annotated[ReferralFraudGuard, Depends(get_referral_guard)],
) -> IPStats:
    """Clear the IP's suspicion counter and lift any active block."""
    guard.reset_suspicious_count(ip)
    return guard.get_ip_stats(ip)


@router.post("/referral-ip/{ip}/block", response_model=IPStats)
async def block_referral_ip(
    ip: str,
    body: BlockIPRequest,
    guard: Annotated[ReferralFraudGuard, Depends(get_referral_guard)],
) -> IPStats:
    duration_ms = body.duration_minutes * 60_000 if body.duration_minutes else None
    guard.block_ip(ip, duration_ms)
    return guard.get_ip_stats(ip)


# =============================================================================
# Actors
# =============================================================================


@router.get("/actors/{actor_id}", response_model=ActorStats)
async def get_actor_stats(
    actor_id: str,
    analyzer: Annotated[ActionStreamAnalyzer, Depends(get_action_analyzer)],
) -> ActorStats:
    stats = analyzer.get_stats(actor_id)
    if stats is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No activity recorded for actor")
    return stats


@router.post("/actors/{actor_id}/reset", response_model=AdminActionResponse)
async def reset_actor_suspicion(
    actor_id: str,
    analyzer: Annotated[ActionStreamAnalyzer, Depends(get_action_analyzer)],
) -> AdminActionResponse:
    """Reset the actor's suspicion counter; the action history is kept."""
    if not analyzer.reset_suspicion(actor_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No activity recorded for actor")
    return AdminActionResponse(ok=True, message="Suspicion counter reset")


@router.delete("/actors/{actor_id}", response_model=AdminActionResponse)
async def clear_actor_history(
    actor_id: str,
    analyzer: Annotated[ActionStreamAnalyzer, Depends(get_action_analyzer)],
) -> AdminActionResponse:
    """Forget everything recorded about an actor."""
    cleared = analyzer.clear_history(actor_id)
    logger.info("admin_actor_cleared", actor=actor_id, cleared=cleared)
    return AdminActionResponse(
        ok=True,
        message="Actor history cleared" if cleared else "No activity recorded for actor",
    )
