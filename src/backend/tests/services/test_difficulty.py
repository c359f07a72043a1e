"""
Tests for deterministic difficulty assignment.
"""

import pytest

from services.difficulty import get_difficulty_multiplier, get_random_difficulty


@pytest.mark.unit
class TestRandomDifficulty:
    """Difficulty is a pure function of (actor, game, range)."""

    @pytest.mark.parametrize(
        ("actor", "game", "min_level", "max_level", "expected"),
        [
            ("0xabc", "math-quiz", 1, 3, 2),
            ("0xabc", "math-quiz", 1, 5, 3),
            ("player", "reaction", 1, 3, 3),
            ("0x1234567890abcdef1234567890abcdef12345678", "memory-match", 1, 3, 3),
            ("0xdeadbeef", "tap-rush", 1, 3, 3),
        ],
    )
    def test_known_assignments(self, actor, game, min_level, max_level, expected):
        """Assignments already handed to players must not change."""
        assert get_random_difficulty(actor, game, min_level, max_level) == expected

    def test_is_stable_across_calls(self):
        first = get_random_difficulty("0xabc", "math-quiz")

        assert all(get_random_difficulty("0xabc", "math-quiz") == first for _ in range(20))

    def test_stays_within_range(self):
        for i in range(200):
            difficulty = get_random_difficulty(f"0x{i:040x}", "memory-match", 2, 4)
            assert 2 <= difficulty <= 4

    def test_single_level_range(self):
        assert get_random_difficulty("0xdeadbeef", "tap-rush", 2, 2) == 2

    def test_inverted_range_is_rejected(self):
        with pytest.raises(ValueError):
            get_random_difficulty("0xabc", "math-quiz", 3, 1)


@pytest.mark.unit
class TestDifficultyMultiplier:
    """Score multiplier per difficulty."""

    @pytest.mark.parametrize(("difficulty", "multiplier"), [(1, 0.8), (2, 1.0), (3, 1.2)])
    def test_multiplier(self, difficulty, multiplier):
        assert get_difficulty_multiplier(difficulty) == pytest.approx(multiplier)
