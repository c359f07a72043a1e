"""
Mini-game anti-abuse endpoints.

Covers the whole life of a play session:
1. Global cooldown check before a game starts, and stamping it on start
2. Per-input action verdicts (the input is recorded only when it passes)
3. Final score validation
4. Deterministic difficulty lookup
5. Reward outcome with the forced-loss overlay applied
"""

from typing import Annotated, Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import Field

from api.deps import (
    get_action_analyzer,
    get_cooldown_gate,
    get_forced_loss_policy,
    get_score_validator,
)
from schemas.anti_abuse import AntiCheatResult, CamelModel, CooldownStatus
from services.action_analyzer import ActionStreamAnalyzer
from services.cooldown_service import CooldownGate
from services.difficulty import get_difficulty_multiplier, get_random_difficulty
from services.reward_policy import ForcedLossPolicy
from services.score_validator import ScoreValidator

logger = structlog.get_logger(__name__)

router = APIRouter()


# =============================================================================
# Schemas
# =============================================================================


class GameSessionRequest(CamelModel):
    """Actor and game of a session. Both are checked by hand so a missing value is a 400."""

    address: Optional[str] = None
    game_id: Optional[str] = None


class CooldownCheckResponse(CooldownStatus):
    ok: bool = True
    last_played_game: str = "any"


class CooldownStartResponse(CamelModel):
    ok: bool = True
    message: str
    last_play_time: int
    game_id: str = "all"


class ActionRequest(CamelModel):
    address: str = Field(..., min_length=1)
    game_id: Optional[str] = None
    action_type: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class ActionResponse(CamelModel):
    recorded: bool
    result: AntiCheatResult


class ScoreRequest(CamelModel):
    address: str = Field(..., min_length=1)
    game_id: Optional[str] = None
    score: float
    duration_seconds: float
    actions_count: int = Field(..., ge=0)


class DifficultyResponse(CamelModel):
    difficulty: int
    multiplier: float


class RewardOutcomeRequest(CamelModel):
    address: str = Field(..., min_length=1)
    game_id: Optional[str] = None
    won: bool


class RewardOutcomeResponse(CamelModel):
    won: bool
    rewarded: bool


# =============================================================================
# Helper Functions
# =============================================================================


def _require_session(body: GameSessionRequest) -> str:
    if not body.address or not body.game_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing address or gameId",
        )
    return body.address


def _verdict_status(result: AntiCheatResult) -> int:
    if result.blocked:
        return status.HTTP_403_FORBIDDEN
    if result.suspicious:
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_200_OK


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/cooldown/check", response_model=CooldownCheckResponse)
async def check_cooldown(
    body: GameSessionRequest,
    cooldown_gate: Annotated[CooldownGate, Depends(get_cooldown_gate)],
) -> CooldownCheckResponse:
    """Whether the actor may start any game right now."""
    address = _require_session(body)
    cooldown = cooldown_gate.check(address)
    return CooldownCheckResponse(**cooldown.model_dump())


@router.post("/cooldown/start", response_model=CooldownStartResponse)
async def start_cooldown(
    body: GameSessionRequest,
    cooldown_gate: Annotated[CooldownGate, Depends(get_cooldown_gate)],
) -> CooldownStartResponse:
    """
    Stamp the global cooldown for the actor.

    The cooldown is shared by every game, so the response always reports
    ``gameId: "all"``.
    """
    address = _require_session(body)
    last_play_time = cooldown_gate.start(address)
    hours = cooldown_gate.window_ms // 3_600_000
    return CooldownStartResponse(
        message=f"Cooldown started for all games ({hours}h)",
        last_play_time=last_play_time,
    )


@router.post("/actions", response_model=ActionResponse)
async def submit_action(
    body: ActionRequest,
    response: Response,
    analyzer: Annotated[ActionStreamAnalyzer, Depends(get_action_analyzer)],
) -> ActionResponse:
    """
    Judge one game input and record it if it passes.

    Returns 403 when the actor is blocked and 400 for a suspicious input that
    has not (yet) reached the block threshold.
    """
    context_data = dict(body.data)
    if body.game_id:
        context_data.setdefault("gameId", body.game_id)

    result = analyzer.check_action(body.address, body.action_type, context_data)
    recorded = not result.suspicious
    if recorded:
        analyzer.record_action(body.address, body.action_type, context_data)

    response.status_code = _verdict_status(result)
    return ActionResponse(recorded=recorded, result=result)


@router.post("/score/validate", response_model=AntiCheatResult)
async def validate_score(
    body: ScoreRequest,
    response: Response,
    score_validator: Annotated[ScoreValidator, Depends(get_score_validator)],
) -> AntiCheatResult:
    """Validate a completed session's score before it is credited."""
    result = score_validator.validate_score(
        body.address,
        body.score,
        body.duration_seconds,
        body.actions_count,
        activity_id=body.game_id,
    )
    response.status_code = _verdict_status(result)
    return result


@router.get("/difficulty", response_model=DifficultyResponse)
async def get_difficulty(
    address: Annotated[str, Query(min_length=1)],
    game_id: Annotated[str, Query(alias="gameId", min_length=1)],
    min_level: Annotated[int, Query(alias="minLevel", ge=0)] = 1,
    max_level: Annotated[int, Query(alias="maxLevel", ge=0)] = 3,
) -> DifficultyResponse:
    """Stable difficulty for (actor, game)."""
    if max_level < min_level:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="maxLevel must not be lower than minLevel",
        )

    difficulty = get_random_difficulty(address, game_id, min_level, max_level)
    return DifficultyResponse(difficulty=difficulty, multiplier=get_difficulty_multiplier(difficulty))


@router.post("/reward/outcome", response_model=RewardOutcomeResponse)
async def resolve_reward_outcome(
    body: RewardOutcomeRequest,
    forced_loss: Annotated[ForcedLossPolicy, Depends(get_forced_loss_policy)],
) -> RewardOutcomeResponse:
    """Apply the forced-loss overlay to a game result before any reward is issued."""
    rewarded = forced_loss.resolve_outcome(body.address, body.won)
    logger.info("reward_outcome_resolved", actor=body.address, game=body.game_id, won=body.won, rewarded=rewarded)
    return RewardOutcomeResponse(won=body.won, rewarded=rewarded)
