"""
Referral claim endpoints with fraud prevention.

The client IP is resolved from proxy headers. A best-effort IP risk lookup
is attached to every response for the caller's own scoring; it never
changes the verdict.
"""

from typing import Annotated, Optional

import structlog
from fastapi import APIRouter, Depends, Response, status
from pydantic import Field

from api.deps import get_ip_intelligence, get_referral_guard, get_request_ip
from schemas.anti_abuse import AbuseOutcome, CamelModel, IPRiskInfo, ReferralValidation
from services.ip_intelligence import IPIntelligenceService
from services.referral_guard import ReferralFraudGuard, rejection_message

logger = structlog.get_logger(__name__)

router = APIRouter()


# =============================================================================
# Schemas
# =============================================================================


class ReferralRequest(CamelModel):
    referrer_id: str = Field(..., min_length=1)
    new_user_id: str = Field(..., min_length=1)
    referrer_ip: Optional[str] = None


class ReferralResponse(CamelModel):
    valid: bool
    reason: Optional[str] = None
    blocked: Optional[bool] = None
    outcome: AbuseOutcome
    message: str
    recorded: bool = False
    ip_risk: Optional[IPRiskInfo] = None


# =============================================================================
# Helper Functions
# =============================================================================


def _to_response(
    validation: ReferralValidation,
    ip_risk: IPRiskInfo,
    recorded: bool = False,
) -> ReferralResponse:
    return ReferralResponse(
        valid=validation.valid,
        reason=validation.reason,
        blocked=validation.blocked,
        outcome=validation.outcome,
        message="Referral accepted" if validation.valid else rejection_message(validation.reason),
        recorded=recorded,
        ip_risk=ip_risk,
    )


def _verdict_status(validation: ReferralValidation) -> int:
    if validation.valid:
        return status.HTTP_200_OK
    if validation.blocked:
        return status.HTTP_403_FORBIDDEN
    return status.HTTP_400_BAD_REQUEST


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/validate", response_model=ReferralResponse)
async def validate_referral(
    body: ReferralRequest,
    response: Response,
    ip: Annotated[str, Depends(get_request_ip)],
    guard: Annotated[ReferralFraudGuard, Depends(get_referral_guard)],
    ip_intelligence: Annotated[IPIntelligenceService, Depends(get_ip_intelligence)],
) -> ReferralResponse:
    """Run the referral rule chain without crediting the referral."""
    validation = guard.validate_referral(ip, body.referrer_id, body.new_user_id, body.referrer_ip)
    ip_risk = await ip_intelligence.check_ip_risk(ip)

    response.status_code = _verdict_status(validation)
    return _to_response(validation, ip_risk)


@router.post("/process", response_model=ReferralResponse)
async def process_referral(
    body: ReferralRequest,
    response: Response,
    ip: Annotated[str, Depends(get_request_ip)],
    guard: Annotated[ReferralFraudGuard, Depends(get_referral_guard)],
    ip_intelligence: Annotated[IPIntelligenceService, Depends(get_ip_intelligence)],
) -> ReferralResponse:
    """
    Validate a referral claim and, when it passes, record it as successful.

    Successful attempts count towards the IP's hourly and daily caps and
    the chain-referral check.
    """
    validation = guard.process_referral(ip, body.referrer_id, body.new_user_id, body.referrer_ip)
    ip_risk = await ip_intelligence.check_ip_risk(ip)

    recorded = validation.valid
    if recorded:
        logger.info(
            "referral_processed",
            ip=ip[:8],
            referrer=body.referrer_id.lower(),
            new_user=body.new_user_id.lower(),
            risk_level=ip_risk.risk_level.value,
        )

    response.status_code = _verdict_status(validation)
    return _to_response(validation, ip_risk, recorded=recorded)
