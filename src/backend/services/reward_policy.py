"""
Reward payout policy.

FORCED LOSS OVERLAY: at reward-issuance time a fixed share of outcomes is
turned into a loss regardless of what actually happened in the game. This
caps the effective payout rate independently of player skill. It is a
business rule, not an anti-cheat detector, and its probability is the
FORCED_LOSS_PROBABILITY setting.
"""

import random
from typing import Optional

import structlog

from core.config import get_settings

logger = structlog.get_logger(__name__)

DEFAULT_FORCED_LOSS_PROBABILITY = 0.80


class ForcedLossPolicy:
    """Denies a reward with a fixed probability."""

    def __init__(self, probability: Optional[float] = None, rng: Optional[random.Random] = None):
        if probability is None:
            probability = get_settings().FORCED_LOSS_PROBABILITY
        if not 0.0 <= probability <= 1.0:
            raise ValueError("probability must be between 0 and 1")
        self.probability = probability
        self._rng = rng or random.Random()

    def should_force_loss(self, actor_id: str, actual_outcome: bool) -> bool:
        """Uniform draw against the configured probability; ``actual_outcome`` does not affect it."""
        forced = self._rng.random() < self.probability
        logger.debug("forced_loss_draw", actor=actor_id, actual_outcome=actual_outcome, forced=forced)
        return forced

    def resolve_outcome(self, actor_id: str, actual_outcome: bool) -> bool:
        """Final rewarded outcome: a win only survives when no loss is forced."""
        forced = self.should_force_loss(actor_id, actual_outcome)
        return actual_outcome and not forced
