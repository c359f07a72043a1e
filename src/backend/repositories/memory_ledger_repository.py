"""In-memory ledger backend (state lives for the process lifetime only)."""

from typing import Optional


class MemoryLedgerRepository:
    """Ledger backend kept in a plain dict."""

    name = "in_memory"

    def __init__(self) -> None:
        self._documents: dict[str, str] = {}

    def probe(self) -> None:
        pass

    def read_raw(self, key: str) -> Optional[str]:
        return self._documents.get(key)

    def write_raw(self, key: str, payload: str) -> None:
        self._documents[key] = payload

    def close(self) -> None:
        pass
