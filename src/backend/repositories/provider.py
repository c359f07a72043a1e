"""
Ledger backend provider.

Selects the durable key/value backend once at startup:

1. Azure Table Storage, when AZURE_STORAGE_CONNECTION_STRING or
   AZURE_STORAGE_TABLE_ENDPOINT is configured and the table is reachable
2. JSON files under STORAGE_DATA_DIR, when the directory is writable
3. Process memory

Services only ever see ``LedgerBackend``; they never special-case which
backend was chosen.

Usage:
    from repositories.provider import select_ledger_backend

    backend = select_ledger_backend()
    backend.write_raw("game_cooldowns_global", "{}")
"""

from typing import Optional, Protocol, runtime_checkable

import structlog

from core.config import Settings, get_settings
from core.exceptions import PersistenceUnavailableError

logger = structlog.get_logger(__name__)


# =============================================================================
# Backend Protocol (Interface)
# =============================================================================


@runtime_checkable
class LedgerBackend(Protocol):
    """Namespaced key -> JSON document store."""

    name: str

    def probe(self) -> None: ...
    def read_raw(self, key: str) -> Optional[str]: ...
    def write_raw(self, key: str, payload: str) -> None: ...
    def close(self) -> None: ...


# =============================================================================
# Backend Selection
# =============================================================================


def is_azure_tables_enabled(settings: Optional[Settings] = None) -> bool:
    """Check if Azure Table Storage is configured."""
    settings = settings or get_settings()
    return settings.azure_tables_configured


def select_ledger_backend(settings: Optional[Settings] = None) -> LedgerBackend:
    """
    Run the capability probe and return the first usable backend.

    Never raises: the in-memory backend is always available.
    """
    settings = settings or get_settings()

    if is_azure_tables_enabled(settings):
        from repositories.table_ledger_repository import AzureTableLedgerRepository

        table_backend = AzureTableLedgerRepository(
            table_name=settings.AZURE_STORAGE_LEDGER_TABLE,
            connection_string=settings.AZURE_STORAGE_CONNECTION_STRING,
            table_endpoint=settings.AZURE_STORAGE_TABLE_ENDPOINT,
        )
        try:
            table_backend.probe()
            logger.info("ledger_backend_selected", backend=table_backend.name)
            return table_backend
        except PersistenceUnavailableError as e:
            logger.warning("ledger_backend_unavailable", backend=table_backend.name, error=str(e))
            table_backend.close()

    if not settings.STORAGE_DISABLE_FILE:
        from repositories.file_ledger_repository import FileLedgerRepository

        file_backend = FileLedgerRepository(settings.STORAGE_DATA_DIR)
        try:
            file_backend.probe()
            logger.info("ledger_backend_selected", backend=file_backend.name, path=str(file_backend.data_dir))
            return file_backend
        except PersistenceUnavailableError as e:
            logger.warning("ledger_backend_unavailable", backend=file_backend.name, error=str(e))

    from repositories.memory_ledger_repository import MemoryLedgerRepository

    logger.info("ledger_backend_selected", backend=MemoryLedgerRepository.name)
    return MemoryLedgerRepository()
