"""
Post-session score plausibility checks.

Stateless apart from reading the actor's recorded action history from the
shared ``ActorActivityStore``. Any failing check blocks the submission.
"""

import math
from typing import Optional

import structlog

from schemas.anti_abuse import AbuseOutcome, AntiCheatResult
from services.activity_store import ActorActivityStore

logger = structlog.get_logger(__name__)

MAX_SCORE_PER_SECOND = 5000
MAX_SCORE_PER_ACTION = 10000
HIGH_SCORE_THRESHOLD = 50000
MIN_GAME_DURATION_FOR_HIGH_SCORE = 10  # seconds
PERFECT_ACCURACY_SCORE_THRESHOLD = 30000
ACCURACY_HISTORY_WINDOW = 100
MIN_ACCURACY_SAMPLE = 20
MAX_ACTIONS_PER_SECOND = 20
MAX_SCORE = 1_000_000


class ScoreValidator:
    """Judges a completed session's score, duration and action count."""

    def __init__(self, store: ActorActivityStore):
        self.store = store

    def validate_score(
        self,
        actor_id: str,
        score: float,
        duration_seconds: float,
        actions_count: int,
        activity_id: Optional[str] = None,
    ) -> AntiCheatResult:
        reason, confidence = self._evaluate(actor_id, score, duration_seconds, actions_count)
        if reason is None:
            return AntiCheatResult()

        logger.warning(
            "score_rejected",
            actor=actor_id,
            game=activity_id,
            reason=reason,
            score=score,
            duration=duration_seconds,
            actions=actions_count,
        )
        return AntiCheatResult(
            suspicious=True,
            reason=reason,
            confidence=confidence,
            blocked=True,
            outcome=AbuseOutcome.VALIDATION_BLOCKED,
        )

    def _evaluate(
        self,
        actor_id: str,
        score: float,
        duration_seconds: float,
        actions_count: int,
    ) -> tuple[Optional[str], float]:
        # Score too high relative to game duration
        if score / max(duration_seconds, 1) > MAX_SCORE_PER_SECOND:
            return "score_too_high", 0.95

        # Each action worth too much
        if actions_count > 0 and score / actions_count > MAX_SCORE_PER_ACTION:
            return "score_per_action_too_high", 0.9

        if score > HIGH_SCORE_THRESHOLD and duration_seconds < MIN_GAME_DURATION_FOR_HIGH_SCORE:
            return "high_score_short_duration", 0.9

        if score > PERFECT_ACCURACY_SCORE_THRESHOLD and self._has_perfect_accuracy(actor_id):
            return "perfect_accuracy_high_score", 0.85

        if not math.isfinite(duration_seconds) or duration_seconds <= 0:
            return "invalid_duration", 1.0

        if actions_count / duration_seconds > MAX_ACTIONS_PER_SECOND:
            return "too_many_actions_per_second", 0.9

        if not math.isfinite(score) or score < 0 or score > MAX_SCORE:
            return "invalid_score_value", 1.0

        return None, 0.0

    def _has_perfect_accuracy(self, actor_id: str) -> bool:
        with self.store.lock(actor_id):
            activity = self.store.get(actor_id)
            if activity is None:
                return False
            recent = activity.last(ACCURACY_HISTORY_WINDOW)

        if len(recent) <= MIN_ACCURACY_SAMPLE:
            return False
        correct = sum(1 for a in recent if not a.failed)
        return correct / len(recent) == 1.0
