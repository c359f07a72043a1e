"""
Referral fraud guard.

Prevents fraudulent referral activity:
- Self-referrals and same-IP referrals
- Too many referrals from one IP (hourly and daily caps)
- Rapid-fire referral attempts
- Many addresses appearing behind a freshly seen IP
- Chain referrals (a user referred moments ago immediately refers others
  from the same network origin)

Repeated suspicious patterns escalate to a temporary IP block. The block list
is always consulted first, so a blocked IP never accumulates new attempts.
IP records and the block list are checkpointed to the ledger store after
every mutation and restored at startup.
"""

from dataclasses import dataclass
from typing import Mapping, Optional

import structlog

from core.clock import Clock, now_ms
from core.config import Settings, get_settings
from schemas.anti_abuse import AbuseOutcome, IPStats, ReferralAttempt, ReferralValidation
from services.activity_store import IPActivity, IPLedgerStore
from services.storage_service import LedgerStore

logger = structlog.get_logger(__name__)

HOUR_MS = 3_600_000
DAY_MS = 86_400_000

# Messages shown to users, keyed by rejection reason
REJECTION_MESSAGES = {
    "ip_blocked": "Too many suspicious referral attempts from your network. Please try again later.",
    "self_referral": "You cannot refer yourself.",
    "same_ip_referral": "Referrer and new user cannot share the same network.",
    "suspicious_pattern": "Suspicious referral activity detected. Your network has been temporarily blocked.",
    "rate_limit_exceeded": "Too many referrals from your network. Please try again later.",
    "too_soon": "Please wait a minute before submitting another referral.",
    "too_many_addresses": "Too many accounts have used this network recently.",
    "chain_referral_same_ip": "Referral chains from the same network are not allowed.",
}


@dataclass(frozen=True)
class ReferralGuardConfig:
    """Referral guard thresholds."""

    min_time_between_referrals_ms: int = 60_000
    max_referrals_per_ip_per_hour: int = 3
    max_referrals_per_ip_per_day: int = 10
    suspicious_pattern_threshold: int = 3  # Suspicious attempts before a temporary block
    ip_block_duration_ms: int = HOUR_MS
    min_time_between_same_ip_referrals_ms: int = 300_000  # Chain referral window
    max_addresses_per_new_ip: int = 5
    new_ip_window_ms: int = HOUR_MS

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ReferralGuardConfig":
        settings = settings or get_settings()
        return cls(
            min_time_between_referrals_ms=settings.MIN_TIME_BETWEEN_REFERRALS_MS,
            max_referrals_per_ip_per_hour=settings.MAX_REFERRALS_PER_IP_PER_HOUR,
            max_referrals_per_ip_per_day=settings.MAX_REFERRALS_PER_IP_PER_DAY,
            suspicious_pattern_threshold=settings.SUSPICIOUS_PATTERN_THRESHOLD,
            ip_block_duration_ms=settings.IP_BLOCK_DURATION_MS,
            min_time_between_same_ip_referrals_ms=settings.MIN_TIME_BETWEEN_SAME_IP_REFERRALS_MS,
            max_addresses_per_new_ip=settings.MAX_ADDRESSES_PER_NEW_IP,
        )


def get_client_ip(headers: Mapping[str, str]) -> str:
    """Extract the client IP from proxy headers, first match wins."""
    lowered = {key.lower(): value for key, value in headers.items()}

    forwarded_for = lowered.get("x-forwarded-for")
    if forwarded_for:
        # Take first IP (original client)
        return forwarded_for.split(",")[0].strip()

    real_ip = lowered.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    cf_connecting_ip = lowered.get("cf-connecting-ip")
    if cf_connecting_ip:
        return cf_connecting_ip.strip()

    return "unknown"


def rejection_message(reason: Optional[str]) -> str:
    return REJECTION_MESSAGES.get(reason or "", "Referral could not be processed.")


class ReferralFraudGuard:
    """Per-IP ledger, block list and rule chain for referral claims."""

    def __init__(
        self,
        ledgers: IPLedgerStore,
        store: LedgerStore,
        config: Optional[ReferralGuardConfig] = None,
        clock: Clock = now_ms,
    ):
        self.ledgers = ledgers
        self.store = store
        self.config = config or ReferralGuardConfig.from_settings()
        self._clock = clock

    # =========================================================================
    # Block list
    # =========================================================================

    def is_ip_blocked(self, ip: str) -> bool:
        """Check the block list, expiring stale entries on read."""
        unblock_at = self.ledgers.unblock_at(ip)
        if unblock_at is None:
            return False

        if self._clock() < unblock_at:
            return True

        # Block expired, remove it
        self.ledgers.remove_block(ip)
        return False

    def block_ip(self, ip: str, duration_ms: Optional[int] = None) -> None:
        """Block an IP for ``duration_ms`` (default: configured block duration)."""
        duration_ms = duration_ms if duration_ms is not None else self.config.ip_block_duration_ms
        self.ledgers.set_block(ip, self._clock() + duration_ms)
        logger.warning("referral_ip_blocked", ip=ip[:8], minutes=duration_ms / 60_000)
        self._save_to_storage()

    # =========================================================================
    # Ledger
    # =========================================================================

    def record_attempt(
        self,
        ip: str,
        referrer_id: str,
        new_user_id: str,
        success: bool,
        reason: Optional[str] = None,
    ) -> ReferralAttempt:
        """Append an attempt to the IP's ledgers and checkpoint them."""
        now = self._clock()
        attempt = ReferralAttempt(
            ip=ip,
            referrer_id=referrer_id.lower(),
            new_user_id=new_user_id.lower(),
            timestamp=now,
            success=success,
            reason=reason,
        )

        with self.ledgers.lock(ip):
            self.ledgers.get_or_create_activity(ip).append(attempt)

            record = self.ledgers.get_or_create_record(ip, now)
            record.observe(attempt.referrer_id)
            record.observe(attempt.new_user_id)
            record.last_seen_at = now
            if success:
                record.successful_referral_count += 1

        self.ledgers.prune_idle_activity(now)
        self._save_to_storage()
        return attempt

    def _escalate(self, ip: str, activity: IPActivity) -> bool:
        """Bump the IP's suspicion counter; block and return True at the threshold."""
        activity.suspicion_count += 1
        activity.last_suspicious_at = self._clock()
        if activity.suspicion_count >= self.config.suspicious_pattern_threshold:
            self.block_ip(ip)
            return True
        return False

    def _reject(self, ip: str, reason: str, blocked: bool) -> ReferralValidation:
        if blocked:
            outcome = AbuseOutcome.HARD_BLOCKED
        elif reason == "self_referral":
            outcome = AbuseOutcome.VALIDATION_BLOCKED
        else:
            outcome = AbuseOutcome.SUSPICION_DETECTED
        logger.info("referral_rejected", ip=ip[:8], reason=reason, blocked=blocked)
        return ReferralValidation(valid=False, reason=reason, blocked=blocked, outcome=outcome)

    def _reject_escalating(
        self,
        ip: str,
        referrer_id: str,
        new_user_id: str,
        reason: str,
        blocked_reason: str = "suspicious_pattern",
    ) -> ReferralValidation:
        self.record_attempt(ip, referrer_id, new_user_id, False, reason)
        activity = self.ledgers.get_or_create_activity(ip)
        if self._escalate(ip, activity):
            return self._reject(ip, blocked_reason, blocked=True)
        return self._reject(ip, reason, blocked=False)

    # =========================================================================
    # Validation
    # =========================================================================

    def validate_referral(
        self,
        ip: str,
        referrer_id: str,
        new_user_id: str,
        referrer_ip: Optional[str] = None,
    ) -> ReferralValidation:
        """Run the referral rule chain for one claim; first failing rule wins."""
        cfg = self.config
        referrer_lower = referrer_id.lower()
        new_user_lower = new_user_id.lower()

        with self.ledgers.lock(ip):
            now = self._clock()

            if self.is_ip_blocked(ip):
                return self._reject(ip, "ip_blocked", blocked=True)

            if referrer_lower == new_user_lower:
                self.record_attempt(ip, referrer_id, new_user_id, False, "self_referral")
                return self._reject(ip, "self_referral", blocked=False)

            # Same IP cannot be used for both referrer and new user
            if referrer_ip and referrer_ip == ip:
                return self._reject_escalating(ip, referrer_id, new_user_id, "same_ip_referral")

            activity = self.ledgers.get_activity(ip)
            if activity is not None:
                if len(activity.successes_since(now - HOUR_MS)) >= cfg.max_referrals_per_ip_per_hour:
                    self.record_attempt(ip, referrer_id, new_user_id, False, "rate_limit_hour")
                    return self._reject(ip, "rate_limit_exceeded", blocked=False)

                if len(activity.successes_since(now - DAY_MS)) >= cfg.max_referrals_per_ip_per_day:
                    self.record_attempt(ip, referrer_id, new_user_id, False, "rate_limit_day")
                    return self._reject(ip, "rate_limit_exceeded", blocked=False)

                if activity.last_attempt_at > 0 and now - activity.last_attempt_at < cfg.min_time_between_referrals_ms:
                    return self._reject_escalating(ip, referrer_id, new_user_id, "too_soon")

            # Many addresses behind an IP first seen less than an hour ago
            record = self.ledgers.get_record(ip)
            if (
                record is not None
                and now - record.first_seen_at < cfg.new_ip_window_ms
                and len(record.actors) > cfg.max_addresses_per_new_ip
            ):
                return self._reject_escalating(ip, referrer_id, new_user_id, "too_many_addresses")

            # Referrer was itself referred from this IP moments ago
            if activity is not None:
                recent = activity.successes_since(now - cfg.min_time_between_same_ip_referrals_ms)
                if any(a.new_user_id == referrer_lower for a in recent):
                    return self._reject_escalating(
                        ip,
                        referrer_id,
                        new_user_id,
                        "chain_referral_same_ip",
                        blocked_reason="chain_referral_same_ip",
                    )

        return ReferralValidation(valid=True)

    def process_referral(
        self,
        ip: str,
        referrer_id: str,
        new_user_id: str,
        referrer_ip: Optional[str] = None,
    ) -> ReferralValidation:
        """Validate a claim and record it as successful when it passes, atomically per IP."""
        with self.ledgers.lock(ip):
            validation = self.validate_referral(ip, referrer_id, new_user_id, referrer_ip)
            if validation.valid:
                self.record_attempt(ip, referrer_id, new_user_id, True)
        return validation

    # =========================================================================
    # Persistence
    # =========================================================================

    def load_from_storage(self) -> None:
        """Restore IP records and unexpired blocks from the ledger store."""
        records = self.store.read(LedgerStore.NS_REFERRAL_IPS, {})
        blocked = self.store.read(LedgerStore.NS_REFERRAL_BLOCKED, {})
        if not isinstance(records, dict) or not isinstance(blocked, dict):
            logger.warning("referral_ledger_malformed")
            return
        self.ledgers.restore(records, blocked, self._clock())
        logger.info("referral_ledger_loaded", ips=len(records), blocked=len(blocked))

    def _save_to_storage(self) -> None:
        self.store.write(LedgerStore.NS_REFERRAL_IPS, self.ledgers.records_document())
        self.store.write(LedgerStore.NS_REFERRAL_BLOCKED, self.ledgers.blocked_document())

    # =========================================================================
    # Stats and admin
    # =========================================================================

    def get_ip_stats(self, ip: str) -> IPStats:
        with self.ledgers.lock(ip):
            activity = self.ledgers.get_activity(ip)
            record = self.ledgers.get_record(ip)
            return IPStats(
                total_attempts=len(activity.attempts) if activity else 0,
                successful_referrals=sum(1 for a in activity.attempts if a.success) if activity else 0,
                unique_addresses=len(record.actors) if record else 0,
                suspicious_count=activity.suspicion_count if activity else 0,
                is_blocked=self.is_ip_blocked(ip),
            )

    def reset_suspicious_count(self, ip: str) -> None:
        """Administrative reset: clear the IP's suspicion counter and lift any block."""
        with self.ledgers.lock(ip):
            activity = self.ledgers.get_activity(ip)
            if activity is not None:
                activity.suspicion_count = 0
                activity.last_suspicious_at = None
            self.ledgers.remove_block(ip)
        logger.info("referral_ip_reset", ip=ip[:8])
        self._save_to_storage()
