"""
Anti-abuse engine wiring.

Builds every detector around explicitly owned state stores, so a process
gets one engine and each test can build an isolated one.
"""

import threading
from dataclasses import dataclass
from typing import Optional

import structlog

from core.clock import Clock, now_ms
from core.config import Settings, get_settings
from services.action_analyzer import ActionAnalyzerConfig, ActionStreamAnalyzer
from services.activity_store import ActorActivityStore, IPLedgerStore
from services.cooldown_service import CooldownGate
from services.ip_intelligence import IPIntelligenceService
from services.referral_guard import ReferralFraudGuard, ReferralGuardConfig
from services.reward_policy import ForcedLossPolicy
from services.score_validator import ScoreValidator
from services.storage_service import LedgerStore, get_ledger_store

logger = structlog.get_logger(__name__)


@dataclass
class AntiAbuseEngine:
    """All detectors plus the stores they share."""

    store: LedgerStore
    actor_store: ActorActivityStore
    ip_ledgers: IPLedgerStore
    action_analyzer: ActionStreamAnalyzer
    score_validator: ScoreValidator
    referral_guard: ReferralFraudGuard
    cooldown_gate: CooldownGate
    forced_loss: ForcedLossPolicy
    ip_intelligence: IPIntelligenceService

    def reset(self) -> None:
        """Drop all in-process actor and IP state (persisted ledgers are kept)."""
        self.actor_store.reset()
        self.ip_ledgers.reset()
        logger.info("engine_state_reset")


def build_engine(
    store: LedgerStore,
    settings: Optional[Settings] = None,
    clock: Clock = now_ms,
    forced_loss: Optional[ForcedLossPolicy] = None,
    ip_intelligence: Optional[IPIntelligenceService] = None,
) -> AntiAbuseEngine:
    """Construct an engine around ``store`` and restore persisted referral ledgers."""
    settings = settings or get_settings()

    analyzer_config = ActionAnalyzerConfig.from_settings(settings)
    actor_store = ActorActivityStore(history_size=analyzer_config.history_size)
    ip_ledgers = IPLedgerStore()

    referral_guard = ReferralFraudGuard(
        ip_ledgers,
        store,
        config=ReferralGuardConfig.from_settings(settings),
        clock=clock,
    )
    referral_guard.load_from_storage()

    return AntiAbuseEngine(
        store=store,
        actor_store=actor_store,
        ip_ledgers=ip_ledgers,
        action_analyzer=ActionStreamAnalyzer(actor_store, config=analyzer_config, clock=clock),
        score_validator=ScoreValidator(actor_store),
        referral_guard=referral_guard,
        cooldown_gate=CooldownGate(store, window_ms=settings.game_cooldown_ms, clock=clock),
        forced_loss=forced_loss or ForcedLossPolicy(settings.FORCED_LOSS_PROBABILITY),
        ip_intelligence=ip_intelligence or IPIntelligenceService(),
    )


# =============================================================================
# Singleton instance
# =============================================================================

_engine: Optional[AntiAbuseEngine] = None
_engine_lock = threading.Lock()


def get_engine() -> AntiAbuseEngine:
    """Get the process engine, building it on first use."""
    global _engine
    with _engine_lock:
        if _engine is None:
            _engine = build_engine(get_ledger_store())
            logger.info("engine_initialized", backend=_engine.store.backend_name)
        return _engine


def reset_engine() -> None:
    """Forget the process engine; the next ``get_engine`` builds a fresh one."""
    global _engine
    with _engine_lock:
        _engine = None
