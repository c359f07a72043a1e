"""
Tests for the global per-actor play cooldown.
"""

import pytest

from services.cooldown_service import CooldownGate
from services.storage_service import LedgerStore

HOUR = 3_600_000


@pytest.fixture
def gate(ledger_store, clock) -> CooldownGate:
    return CooldownGate(ledger_store, window_ms=24 * HOUR, clock=clock)


@pytest.mark.unit
class TestCooldownGate:
    """One last-play timestamp per actor, shared by every game."""

    def test_new_actor_can_play(self, gate):
        status = gate.check("0xplayer")

        assert status.can_play is True
        assert status.is_on_cooldown is False
        assert status.last_play_time == 0
        assert status.remaining_ms == 0
        assert status.remaining_hours == 0
        assert status.remaining_minutes == 0

    def test_start_puts_actor_on_cooldown(self, gate, clock):
        started_at = gate.start("0xplayer")

        status = gate.check("0xplayer")
        assert started_at == clock.now
        assert status.is_on_cooldown is True
        assert status.can_play is False
        assert status.last_play_time == started_at
        assert status.remaining_ms == 24 * HOUR
        assert status.remaining_hours == 24

    def test_remaining_time_breakdown(self, gate, clock):
        gate.start("0xplayer")
        clock.advance(90 * 60_000 + 30_000)

        status = gate.check("0xplayer")

        assert status.remaining_ms == 24 * HOUR - (90 * 60_000 + 30_000)
        assert status.remaining_hours == 22
        assert status.remaining_minutes == 29

    def test_cooldown_expires_after_window(self, gate, clock):
        gate.start("0xplayer")
        clock.advance(24 * HOUR)

        status = gate.check("0xplayer")

        assert status.can_play is True
        assert status.remaining_ms == 0

    def test_actor_id_is_case_insensitive(self, gate):
        gate.start("0xABCDEF")

        assert gate.check("0xabcdef").is_on_cooldown is True

    def test_actors_are_independent(self, gate):
        gate.start("0xplayer")

        assert gate.check("0xother").can_play is True

    def test_cooldowns_are_persisted(self, gate, ledger_store, clock):
        gate.start("0xPlayer")

        assert ledger_store.read(LedgerStore.NS_GAME_COOLDOWNS) == {"0xplayer": clock.now}

    def test_cooldown_survives_new_gate(self, gate, memory_backend, clock):
        gate.start("0xplayer")

        restarted = CooldownGate(LedgerStore(memory_backend, write_behind=False), window_ms=24 * HOUR, clock=clock)

        assert restarted.check("0xplayer").is_on_cooldown is True
