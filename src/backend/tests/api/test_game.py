"""
Tests for mini-game anti-abuse endpoints.
"""

import pytest
from httpx import AsyncClient

HOUR = 3_600_000
ACTOR = "0xPlayer"


@pytest.mark.unit
class TestCooldownEndpoints:
    """Global play cooldown."""

    async def test_check_new_actor(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/game/cooldown/check", json={"address": ACTOR, "gameId": "math-quiz"})

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["canPlay"] is True
        assert data["isOnCooldown"] is False
        assert data["lastPlayedGame"] == "any"

    async def test_start_then_check_other_game(self, client: AsyncClient, clock) -> None:
        start = await client.post("/api/v1/game/cooldown/start", json={"address": ACTOR, "gameId": "math-quiz"})
        clock.advance(HOUR)
        check = await client.post("/api/v1/game/cooldown/check", json={"address": ACTOR, "gameId": "tap-rush"})

        assert start.status_code == 200
        assert start.json()["gameId"] == "all"
        assert start.json()["lastPlayTime"] == clock.now - HOUR

        data = check.json()
        assert data["canPlay"] is False
        assert data["remainingHours"] == 23
        assert data["remainingMinutes"] == 0

    @pytest.mark.parametrize("body", [{}, {"address": ACTOR}, {"gameId": "math-quiz"}, {"address": "", "gameId": "x"}])
    async def test_missing_fields_are_rejected(self, client: AsyncClient, body) -> None:
        for path in ("/api/v1/game/cooldown/check", "/api/v1/game/cooldown/start"):
            response = await client.post(path, json=body)

            assert response.status_code == 400
            assert response.json()["detail"] == "Missing address or gameId"


@pytest.mark.unit
class TestActionEndpoint:
    """Per-input verdicts."""

    async def test_clean_action_is_recorded(self, client: AsyncClient, engine) -> None:
        response = await client.post(
            "/api/v1/game/actions",
            json={"address": ACTOR, "gameId": "tap-rush", "actionType": "tap", "data": {"x": 1}},
        )

        assert response.status_code == 200
        assert response.json()["recorded"] is True
        assert response.json()["result"]["suspicious"] is False
        record = engine.action_analyzer.get_activity(ACTOR).actions[-1]
        assert record.context_data == {"x": 1, "gameId": "tap-rush"}

    async def test_fast_action_is_rejected_and_not_recorded(self, client: AsyncClient, engine, clock) -> None:
        body = {"address": ACTOR, "gameId": "tap-rush", "actionType": "tap"}
        await client.post("/api/v1/game/actions", json=body)
        clock.advance(10)

        response = await client.post("/api/v1/game/actions", json=body)

        assert response.status_code == 400
        data = response.json()
        assert data["recorded"] is False
        assert data["result"]["reason"] == "action_too_fast"
        assert data["result"]["outcome"] == "suspicion_detected"
        assert len(engine.action_analyzer.get_activity(ACTOR).actions) == 1

    async def test_blocked_actor_gets_403(self, client: AsyncClient, clock) -> None:
        body = {"address": ACTOR, "actionType": "tap"}
        await client.post("/api/v1/game/actions", json=body)
        clock.advance(10)
        await client.post("/api/v1/game/actions", json=body)
        clock.advance(1_000)

        response = await client.post("/api/v1/game/actions", json=body)

        assert response.status_code == 403
        assert response.json()["result"]["reason"] == "suspicious_cooldown"
        assert response.json()["result"]["blocked"] is True

    async def test_action_type_is_required(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/game/actions", json={"address": ACTOR})

        assert response.status_code == 422


@pytest.mark.unit
class TestScoreEndpoint:
    """Final score validation."""

    async def test_plausible_score(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/game/score/validate",
            json={"address": ACTOR, "gameId": "math-quiz", "score": 1200, "durationSeconds": 90, "actionsCount": 40},
        )

        assert response.status_code == 200
        assert response.json()["suspicious"] is False

    async def test_implausible_score(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/game/score/validate",
            json={"address": ACTOR, "score": 900_000, "durationSeconds": 30, "actionsCount": 100},
        )

        assert response.status_code == 403
        data = response.json()
        assert data["reason"] == "score_too_high"
        assert data["outcome"] == "validation_blocked"


@pytest.mark.unit
class TestDifficultyEndpoint:
    """Deterministic difficulty lookup."""

    async def test_difficulty(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/game/difficulty", params={"address": "0xabc", "gameId": "math-quiz"})

        assert response.status_code == 200
        assert response.json() == {"difficulty": 2, "multiplier": 1.0}

    async def test_custom_range(self, client: AsyncClient) -> None:
        response = await client.get(
            "/api/v1/game/difficulty",
            params={"address": "0xabc", "gameId": "math-quiz", "minLevel": 1, "maxLevel": 5},
        )

        assert response.json()["difficulty"] == 3

    async def test_inverted_range(self, client: AsyncClient) -> None:
        response = await client.get(
            "/api/v1/game/difficulty",
            params={"address": "0xabc", "gameId": "math-quiz", "minLevel": 3, "maxLevel": 1},
        )

        assert response.status_code == 400


@pytest.mark.unit
class TestRewardOutcomeEndpoint:
    """Forced-loss overlay at reward time."""

    async def test_loss_is_never_rewarded(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/game/reward/outcome", json={"address": ACTOR, "won": False})

        assert response.status_code == 200
        assert response.json() == {"won": False, "rewarded": False}

    async def test_wins_are_mostly_overridden(self, client: AsyncClient) -> None:
        rewarded = 0
        for _ in range(200):
            response = await client.post("/api/v1/game/reward/outcome", json={"address": ACTOR, "won": True})
            rewarded += response.json()["rewarded"]

        assert 10 < rewarded < 80
