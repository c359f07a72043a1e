"""
Global game cooldown.

Playing ANY game locks ALL games for the cooldown window. The gate must be
checked before a session is admitted and started when a session reaches its
terminal state (completed or reward claimed).
"""

import threading
from typing import Optional

import structlog

from core.clock import Clock, now_ms
from core.config import get_settings
from schemas.anti_abuse import CooldownStatus
from services.storage_service import LedgerStore

logger = structlog.get_logger(__name__)

HOUR_MS = 60 * 60 * 1000
MINUTE_MS = 60 * 1000


class CooldownGate:
    """One last-play timestamp per actor, shared by every game."""

    def __init__(self, store: LedgerStore, window_ms: Optional[int] = None, clock: Clock = now_ms):
        self.store = store
        self.window_ms = window_ms if window_ms is not None else get_settings().game_cooldown_ms
        self._clock = clock
        self._lock = threading.Lock()

    def _cooldowns(self) -> dict[str, int]:
        return self.store.read(LedgerStore.NS_GAME_COOLDOWNS, {})

    def check(self, actor_id: str) -> CooldownStatus:
        last_play_time = self.store.read_entry(LedgerStore.NS_GAME_COOLDOWNS, actor_id.lower(), 0)
        elapsed = self._clock() - last_play_time
        is_on_cooldown = elapsed < self.window_ms
        remaining_ms = max(0, self.window_ms - elapsed)

        return CooldownStatus(
            is_on_cooldown=is_on_cooldown,
            can_play=not is_on_cooldown,
            last_play_time=last_play_time,
            remaining_ms=remaining_ms,
            remaining_hours=remaining_ms // HOUR_MS,
            remaining_minutes=(remaining_ms % HOUR_MS) // MINUTE_MS,
        )

    def start(self, actor_id: str) -> int:
        """Stamp now as the actor's last play time for every game."""
        now = self._clock()
        with self._lock:
            cooldowns = self._cooldowns()
            cooldowns[actor_id.lower()] = now
            self.store.write(LedgerStore.NS_GAME_COOLDOWNS, cooldowns)

        logger.info("cooldown_started", actor=actor_id.lower(), window_hours=self.window_ms / HOUR_MS)
        return now
