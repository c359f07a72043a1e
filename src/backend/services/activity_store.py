"""
In-process state for the anti-abuse detectors.

Replaces module-level maps with explicit store objects that are injected
into the detectors. Each actor and each IP has its own lock, so unrelated
keys never contend; whole-map operations (snapshots, inserts) take a short
map lock.
"""

import threading
import weakref
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from schemas.anti_abuse import ActionRecord, ReferralAttempt

DAY_MS = 86_400_000
PRUNE_INTERVAL_MS = 3_600_000


class KeyedLocks:
    """
    Lazily created re-entrant lock per key.

    Locks are held weakly: a key's lock lives only while some caller holds a
    reference to it, so the map does not grow with every actor or IP ever seen.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, threading.RLock] = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def get(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    def in_use(self, key: str) -> bool:
        with self._guard:
            return key in self._locks

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self.get(key):
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# =============================================================================
# Actor state
# =============================================================================


@dataclass
class ActorActivity:
    """Bounded action history and suspicion tally for one actor."""

    actions: deque
    first_seen_at: int
    last_seen_at: int
    suspicion_count: int = 0
    last_suspicious_at: Optional[int] = None

    def last(self, n: int) -> list[ActionRecord]:
        if n <= 0:
            return []
        return list(self.actions)[-n:]


class ActorActivityStore:
    """Per-actor activity shared by the action analyzer and the score validator."""

    def __init__(self, history_size: int = 200):
        self.history_size = history_size
        self._activities: dict[str, ActorActivity] = {}
        self._map_lock = threading.Lock()
        self._locks = KeyedLocks()

    def lock(self, actor_id: str):
        return self._locks.hold(actor_id)

    def get(self, actor_id: str) -> Optional[ActorActivity]:
        with self._map_lock:
            return self._activities.get(actor_id)

    def get_or_create(self, actor_id: str, now: int) -> ActorActivity:
        with self._map_lock:
            activity = self._activities.get(actor_id)
            if activity is None:
                activity = ActorActivity(
                    actions=deque(maxlen=self.history_size),
                    first_seen_at=now,
                    last_seen_at=now,
                )
                self._activities[actor_id] = activity
            return activity

    def clear(self, actor_id: str) -> bool:
        with self._map_lock:
            return self._activities.pop(actor_id, None) is not None

    def reset(self) -> None:
        with self._map_lock:
            self._activities.clear()

    def __len__(self) -> int:
        with self._map_lock:
            return len(self._activities)


# =============================================================================
# IP state
# =============================================================================


@dataclass
class IPActivity:
    """Rolling 24h referral attempts seen from one IP."""

    attempts: list[ReferralAttempt] = field(default_factory=list)
    last_attempt_at: int = 0
    unique_actors: set[str] = field(default_factory=set)
    suspicion_count: int = 0
    last_suspicious_at: Optional[int] = None

    def append(self, attempt: ReferralAttempt) -> None:
        self.attempts.append(attempt)
        self.last_attempt_at = attempt.timestamp
        self.unique_actors.add(attempt.referrer_id)
        self.unique_actors.add(attempt.new_user_id)
        cutoff = attempt.timestamp - DAY_MS
        self.attempts = [a for a in self.attempts if a.timestamp > cutoff]

    def successes_since(self, since: int) -> list[ReferralAttempt]:
        return [a for a in self.attempts if a.success and a.timestamp > since]


@dataclass
class IPRecord:
    """Long-lived record of every actor seen from one IP."""

    ip: str
    first_seen_at: int
    last_seen_at: int
    actors: list[str] = field(default_factory=list)
    successful_referral_count: int = 0

    def observe(self, actor_id: str) -> None:
        if actor_id not in self.actors:
            self.actors.append(actor_id)

    def to_document(self) -> dict[str, Any]:
        return {
            "addresses": list(self.actors),
            "firstSeen": self.first_seen_at,
            "lastSeen": self.last_seen_at,
            "referralCount": self.successful_referral_count,
        }

    @classmethod
    def from_document(cls, ip: str, data: dict[str, Any], now: int) -> "IPRecord":
        return cls(
            ip=ip,
            actors=list(data.get("addresses") or []),
            first_seen_at=data.get("firstSeen") or now,
            last_seen_at=data.get("lastSeen") or now,
            successful_referral_count=data.get("referralCount") or 0,
        )


class IPLedgerStore:
    """Referral ledgers keyed by IP: activity, long-lived records and the block list."""

    def __init__(self) -> None:
        self._activity: dict[str, IPActivity] = {}
        self._records: dict[str, IPRecord] = {}
        self._blocked: dict[str, int] = {}  # IP -> unblock timestamp
        self._last_pruned_at = 0
        self._map_lock = threading.Lock()
        self._locks = KeyedLocks()

    def lock(self, ip: str):
        return self._locks.hold(ip)

    def get_activity(self, ip: str) -> Optional[IPActivity]:
        with self._map_lock:
            return self._activity.get(ip)

    def get_or_create_activity(self, ip: str) -> IPActivity:
        with self._map_lock:
            activity = self._activity.get(ip)
            if activity is None:
                activity = IPActivity()
                self._activity[ip] = activity
            return activity

    def prune_idle_activity(self, now: int) -> int:
        """
        Drop activity for IPs with no attempt in the last 24h and no suspicion.

        Runs at most once per ``PRUNE_INTERVAL_MS``. IPs whose lock is held are
        skipped so an in-flight check never loses its ledger.
        """
        with self._map_lock:
            if now - self._last_pruned_at < PRUNE_INTERVAL_MS:
                return 0
            self._last_pruned_at = now
            cutoff = now - DAY_MS
            idle = [
                ip
                for ip, activity in self._activity.items()
                if activity.last_attempt_at <= cutoff
                and activity.suspicion_count == 0
                and not self._locks.in_use(ip)
            ]
            for ip in idle:
                del self._activity[ip]
            return len(idle)

    def get_record(self, ip: str) -> Optional[IPRecord]:
        with self._map_lock:
            return self._records.get(ip)

    def get_or_create_record(self, ip: str, now: int) -> IPRecord:
        with self._map_lock:
            record = self._records.get(ip)
            if record is None:
                record = IPRecord(ip=ip, first_seen_at=now, last_seen_at=now)
                self._records[ip] = record
            return record

    def unblock_at(self, ip: str) -> Optional[int]:
        with self._map_lock:
            return self._blocked.get(ip)

    def set_block(self, ip: str, unblock_at: int) -> None:
        with self._map_lock:
            self._blocked[ip] = unblock_at

    def remove_block(self, ip: str) -> None:
        with self._map_lock:
            self._blocked.pop(ip, None)

    def records_document(self) -> dict[str, Any]:
        with self._map_lock:
            return {ip: record.to_document() for ip, record in self._records.items()}

    def blocked_document(self) -> dict[str, int]:
        with self._map_lock:
            return dict(self._blocked)

    def restore(self, records: dict[str, Any], blocked: dict[str, int], now: int) -> None:
        """Load persisted records and the still-active part of the block list."""
        with self._map_lock:
            for ip, data in records.items():
                self._records[ip] = IPRecord.from_document(ip, data, now)
            for ip, unblock_at in blocked.items():
                if unblock_at > now:
                    self._blocked[ip] = unblock_at

    def reset(self) -> None:
        with self._map_lock:
            self._activity.clear()
            self._records.clear()
            self._blocked.clear()
