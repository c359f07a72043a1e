"""Repository modules for ledger persistence."""

from repositories.file_ledger_repository import FileLedgerRepository
from repositories.memory_ledger_repository import MemoryLedgerRepository
from repositories.provider import LedgerBackend, select_ledger_backend

__all__ = [
    "FileLedgerRepository",
    "LedgerBackend",
    "MemoryLedgerRepository",
    "select_ledger_backend",
]
