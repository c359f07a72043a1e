"""
API v1 router aggregating all endpoints.
"""

from fastapi import APIRouter, Depends

from api.deps import require_admin
from api.v1.game import router as game_router
from api.v1.referral import router as referral_router
from api.v1.security import router as security_router

router = APIRouter()

router.include_router(game_router, prefix="/game", tags=["Game Anti-Cheat"])
router.include_router(referral_router, prefix="/referral", tags=["Referral Fraud Prevention"])
router.include_router(
    security_router,
    prefix="/security",
    tags=["Security Administration"],
    dependencies=[Depends(require_admin)],
)
