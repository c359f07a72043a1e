"""
Deterministic per-(actor, game) difficulty.

A given actor always gets the same difficulty for a given game, across
sessions, without storing anything. The seed transform is kept bit-for-bit
with the difficulties already assigned to live players.
"""

import math


def _seed(actor_id: str, activity_id: str) -> int:
    return sum(ord(ch) for ch in actor_id + activity_id)


def get_random_difficulty(actor_id: str, activity_id: str, min_level: int = 1, max_level: int = 3) -> int:
    """Map (actor, game) to a stable difficulty in ``[min_level, max_level]``."""
    if max_level < min_level:
        raise ValueError("max_level must not be lower than min_level")

    x = math.sin(_seed(actor_id, activity_id)) * 10000
    frac = x - math.floor(x)
    return math.floor(frac * (max_level - min_level + 1)) + min_level


def get_difficulty_multiplier(difficulty: int) -> float:
    """Score multiplier: 0.8x, 1.0x, 1.2x for difficulties 1, 2, 3."""
    return 0.8 + (difficulty - 1) * 0.2
