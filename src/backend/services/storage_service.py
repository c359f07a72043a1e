"""
Ledger store for the anti-abuse engine.

Provides the persistence collaborator used by the detectors:
- ``read(key, default)`` / ``write(key, value)`` over JSON-compatible documents
- An in-memory view that is authoritative for the running process
- Write-behind checkpointing to the backend chosen at startup
  (Azure Tables, JSON files or memory, see ``repositories.provider``)

A failing backend never fails the caller: reads fall back to the default and
writes are logged and dropped, while the in-memory view keeps serving.
"""

import copy
import json
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

import structlog

from core.exceptions import PersistenceUnavailableError
from repositories.provider import LedgerBackend, select_ledger_backend

logger = structlog.get_logger(__name__)

# Cached marker for a key the backend does not hold
_ABSENT = object()


class LedgerStore:
    """
    Namespaced key -> JSON document store with write-behind persistence.

    Features:
    - Cached reads (backend hit once per key per process)
    - Serialisation on the caller thread, durable write on a single worker
      so checkpoints for one key land in order
    - ``flush()`` to wait for pending checkpoints (shutdown, tests)
    """

    # Namespaces
    NS_REFERRAL_IPS = "referral_anticheat_ips"
    NS_REFERRAL_BLOCKED = "referral_anticheat_blocked"
    NS_GAME_COOLDOWNS = "game_cooldowns_global"

    def __init__(self, backend: LedgerBackend, write_behind: bool = True):
        self._backend = backend
        self._cache: dict[str, Any] = {}
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="ledger-writer") if write_behind else None
        )

    @property
    def backend_name(self) -> str:
        return self._backend.name

    def _load(self, key: str) -> Any:
        """Return the cached document for ``key``, hitting the backend on first use."""
        with self._lock:
            if key in self._cache:
                return self._cache[key]

        try:
            raw = self._backend.read_raw(key)
        except PersistenceUnavailableError as e:
            logger.warning("ledger_read_failed", key=key, backend=self.backend_name, error=str(e))
            return _ABSENT

        value = _ABSENT
        if raw is not None:
            try:
                value = json.loads(raw)
            except json.JSONDecodeError as e:
                logger.warning("ledger_document_corrupt", key=key, backend=self.backend_name, error=str(e))

        with self._lock:
            return self._cache.setdefault(key, value)

    def read(self, key: str, default: Any = None) -> Any:
        """Return a private copy of the document stored under ``key``."""
        value = self._load(key)
        if value is _ABSENT:
            return default
        with self._lock:
            return copy.deepcopy(value)

    def read_entry(self, key: str, entry: str, default: Any = None) -> Any:
        """Return a copy of one entry of the mapping stored under ``key``."""
        value = self._load(key)
        if not isinstance(value, dict):
            return default
        with self._lock:
            return copy.deepcopy(value.get(entry, default))

    def warm(self, *keys: str) -> None:
        """Load ``keys`` into the in-memory view before traffic arrives."""
        for key in keys:
            self._load(key)

    def write(self, key: str, value: Any) -> None:
        """Replace the document under ``key``; the durable write happens in the background."""
        payload = json.dumps(value, separators=(",", ":"), sort_keys=True)

        with self._lock:
            self._cache[key] = json.loads(payload)
            if self._executor is not None:
                self._executor.submit(self._persist, key, payload)
                return

        self._persist(key, payload)

    def _persist(self, key: str, payload: str) -> None:
        try:
            self._backend.write_raw(key, payload)
        except PersistenceUnavailableError as e:
            logger.warning("ledger_write_failed", key=key, backend=self.backend_name, error=str(e))

    def flush(self) -> None:
        """Block until every scheduled checkpoint has been attempted."""
        if self._executor is not None:
            self._executor.submit(lambda: None).result()

    def clear_cache(self) -> None:
        """Drop the in-memory view; the next read goes back to the backend."""
        with self._lock:
            self._cache.clear()

    def close(self) -> None:
        """Flush pending checkpoints and release the backend."""
        self.flush()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        self._backend.close()


# =============================================================================
# Singleton
# =============================================================================

_ledger_store: Optional[LedgerStore] = None
_ledger_store_lock = threading.Lock()


def get_ledger_store() -> LedgerStore:
    """Get the process ledger store, probing backends on first use."""
    global _ledger_store
    with _ledger_store_lock:
        if _ledger_store is None:
            _ledger_store = LedgerStore(select_ledger_backend())
            logger.info("ledger_store_initialized", backend=_ledger_store.backend_name)
        return _ledger_store


def close_ledger_store() -> None:
    """Close the process ledger store."""
    global _ledger_store
    with _ledger_store_lock:
        if _ledger_store is not None:
            _ledger_store.close()
            _ledger_store = None
