"""
Action stream analysis for mini-game inputs.

Bots and auto-clickers typically exhibit:
- Inputs faster than a human can physically produce
- Bursts of many inputs inside one second
- The same input repeated at a constant cadence
- Long runs of "perfect" inputs
- Near-identical spacing between inputs (machine timing)

Recording and judging are separate operations: callers record every input as
it happens and ask for a verdict on the next one. Each suspicious verdict
bumps the actor's suspicion counter; at the configured maximum the actor is
hard-blocked, and every verdict inside the suspicion cooldown is a block.
"""

import statistics
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from core.clock import Clock, now_ms
from core.config import Settings, get_settings
from schemas.anti_abuse import AbuseOutcome, ActionRecord, ActorStats, AntiCheatResult
from services.activity_store import ActorActivity, ActorActivityStore

logger = structlog.get_logger(__name__)


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True)
class ActionAnalyzerConfig:
    """Action analyzer thresholds."""

    history_size: int = 200
    min_action_interval_ms: int = 50
    suspicious_speed_threshold: int = 15  # Actions inside one burst window
    burst_window_ms: int = 1000
    pattern_repetition_threshold: int = 5  # Same action this many times in a row
    pattern_variance_threshold: float = 100.0  # ms^2
    max_suspicious_actions: int = 3
    suspicious_cooldown_ms: int = 60_000

    # Perfect streak: this many perfect inputs among the last window
    perfect_window: int = 20
    perfect_threshold: int = 15

    # Machine-like timing over the last window of inputs
    timing_window: int = 10
    timing_spread_ms: int = 10
    timing_min_interval_ms: int = 100

    # Rapid state changes: the last window of inputs spans less than this
    rapid_window: int = 5
    rapid_span_ms: int = 200

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ActionAnalyzerConfig":
        settings = settings or get_settings()
        return cls(
            history_size=settings.ACTION_HISTORY_SIZE,
            min_action_interval_ms=settings.MIN_ACTION_INTERVAL_MS,
            suspicious_speed_threshold=settings.SUSPICIOUS_SPEED_THRESHOLD,
            pattern_repetition_threshold=settings.PATTERN_REPETITION_THRESHOLD,
            pattern_variance_threshold=settings.PATTERN_VARIANCE_THRESHOLD_MS2,
            max_suspicious_actions=settings.MAX_SUSPICIOUS_ACTIONS,
            suspicious_cooldown_ms=settings.SUSPICIOUS_COOLDOWN_MS,
        )


def _intervals(actions: list[ActionRecord]) -> list[int]:
    return [actions[i].timestamp - actions[i - 1].timestamp for i in range(1, len(actions))]


# =============================================================================
# Analyzer
# =============================================================================


class ActionStreamAnalyzer:
    """
    Classifies each game input as normal, suspicious or blocked.

    Checks run in a fixed order and the first match wins:
    suspicion cooldown, suspicion cap, speed, burst rate, repetition,
    perfect streak, machine-like timing, rapid state changes.
    """

    def __init__(
        self,
        store: ActorActivityStore,
        config: Optional[ActionAnalyzerConfig] = None,
        clock: Clock = now_ms,
    ):
        self.store = store
        self.config = config or ActionAnalyzerConfig.from_settings()
        self._clock = clock

    def record_action(
        self,
        actor_id: str,
        action_type: str,
        context_data: Optional[dict[str, Any]] = None,
    ) -> ActionRecord:
        """Append an input to the actor's bounded history."""
        now = self._clock()
        record = ActionRecord(timestamp=now, action_type=action_type, context_data=context_data or {})

        with self.store.lock(actor_id):
            activity = self.store.get_or_create(actor_id, now)
            activity.actions.append(record)
            activity.last_seen_at = now

        return record

    def check_action(
        self,
        actor_id: str,
        action_type: str,
        context_data: Optional[dict[str, Any]] = None,
    ) -> AntiCheatResult:
        """Judge a new input against the actor's recorded history."""
        now = self._clock()
        context_data = context_data or {}
        cfg = self.config

        with self.store.lock(actor_id):
            activity = self.store.get(actor_id)
            if activity is None:
                return AntiCheatResult()

            if (
                activity.last_suspicious_at is not None
                and now - activity.last_suspicious_at < cfg.suspicious_cooldown_ms
            ):
                return AntiCheatResult(
                    suspicious=True,
                    reason="suspicious_cooldown",
                    confidence=0.95,
                    blocked=True,
                    outcome=AbuseOutcome.HARD_BLOCKED,
                )

            if activity.suspicion_count >= cfg.max_suspicious_actions:
                return AntiCheatResult(
                    suspicious=True,
                    reason="too_many_suspicious_actions",
                    confidence=1.0,
                    blocked=True,
                    outcome=AbuseOutcome.HARD_BLOCKED,
                )

            finding = self._detect(activity.last(cfg.history_size), action_type, context_data, now)
            if finding is None:
                return AntiCheatResult()

            reason, confidence = finding
            activity.suspicion_count += 1
            activity.last_suspicious_at = now
            blocked = activity.suspicion_count >= cfg.max_suspicious_actions
            suspicion_count = activity.suspicion_count

        if blocked:
            logger.warning("actor_blocked", actor=actor_id, reason=reason, suspicion_count=suspicion_count)
        else:
            logger.info("suspicious_action", actor=actor_id, reason=reason, suspicion_count=suspicion_count)

        return AntiCheatResult(
            suspicious=True,
            reason=reason,
            confidence=confidence,
            blocked=blocked,
            outcome=AbuseOutcome.HARD_BLOCKED if blocked else AbuseOutcome.SUSPICION_DETECTED,
        )

    def _detect(
        self,
        history: list[ActionRecord],
        action_type: str,
        context_data: dict[str, Any],
        now: int,
    ) -> Optional[tuple[str, float]]:
        """Return (reason, confidence) of the first evidence rule that matches."""
        cfg = self.config
        if not history:
            return None

        # Speed violation (inputs too fast)
        if now - history[-1].timestamp < cfg.min_action_interval_ms:
            return "action_too_fast", 0.95

        # Burst rate (too many inputs inside one second)
        burst = sum(1 for a in history if now - a.timestamp < cfg.burst_window_ms)
        if burst >= cfg.suspicious_speed_threshold:
            return "too_many_actions", 0.9

        # Same input repeated at a constant cadence
        n = cfg.pattern_repetition_threshold
        if len(history) >= n:
            recent = history[-n:]
            if all(a.action_type == action_type for a in recent):
                intervals = _intervals(recent)
                if intervals and statistics.pvariance(intervals) < cfg.pattern_variance_threshold:
                    return "repetitive_pattern", 0.9

        # Long run of perfect inputs
        if context_data.get("isPerfect") is True:
            perfect = sum(1 for a in history[-cfg.perfect_window :] if a.is_perfect)
            if perfect >= cfg.perfect_threshold:
                return "too_perfect", 0.85

        # Machine-like timing (near-identical spacing)
        if len(history) >= cfg.timing_window:
            intervals = _intervals(history[-cfg.timing_window :])
            if (
                max(intervals) - min(intervals) < cfg.timing_spread_ms
                and min(intervals) < cfg.timing_min_interval_ms
            ):
                return "machine_like_timing", 0.9

        # Rapid state changes
        if len(history) >= cfg.rapid_window:
            window = history[-cfg.rapid_window :]
            if window[-1].timestamp - window[0].timestamp < cfg.rapid_span_ms:
                return "rapid_state_changes", 0.85

        return None

    # =========================================================================
    # Stats and admin
    # =========================================================================

    def get_stats(self, actor_id: str) -> Optional[ActorStats]:
        """Summarise the actor's input stream over the last minute."""
        now = self._clock()
        with self.store.lock(actor_id):
            activity = self.store.get(actor_id)
            if activity is None or not activity.actions:
                return None
            history = list(activity.actions)
            suspicion_count = activity.suspicion_count

        recent = [a for a in history if now - a.timestamp < 60_000]
        intervals = _intervals(recent)
        average_interval = sum(intervals) / len(intervals) if intervals else 0.0

        return ActorStats(
            total_actions=len(history),
            recent_actions=len(recent),
            average_interval=average_interval,
            actions_per_second=len(recent) / 60,
            suspicion_count=suspicion_count,
        )

    def get_activity(self, actor_id: str) -> Optional[ActorActivity]:
        return self.store.get(actor_id)

    def clear_history(self, actor_id: str) -> bool:
        """Forget everything about an actor."""
        with self.store.lock(actor_id):
            cleared = self.store.clear(actor_id)
        if cleared:
            logger.info("actor_history_cleared", actor=actor_id)
        return cleared

    def reset_suspicion(self, actor_id: str) -> bool:
        """Administrative reset of the suspicion counter; history is kept."""
        with self.store.lock(actor_id):
            activity = self.store.get(actor_id)
            if activity is None:
                return False
            activity.suspicion_count = 0
            activity.last_suspicious_at = None
        logger.info("actor_suspicion_reset", actor=actor_id)
        return True
