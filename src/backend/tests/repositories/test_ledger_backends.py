"""
Tests for ledger backends and the startup capability probe.
"""

from unittest.mock import MagicMock

import pytest
from azure.core.exceptions import ResourceNotFoundError, ServiceRequestError

from core.config import Settings
from core.exceptions import PersistenceUnavailableError
from repositories import FileLedgerRepository, LedgerBackend, MemoryLedgerRepository, select_ledger_backend
from repositories import table_ledger_repository
from repositories.table_ledger_repository import LEDGER_PARTITION, AzureTableLedgerRepository


def make_settings(**overrides) -> Settings:
    values = {"STORAGE_DISABLE_FILE": True, "IP_RISK_LOOKUP_ENABLED": False}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def table_client(monkeypatch) -> MagicMock:
    """Patch the Azure SDK so no request leaves the process."""
    table = MagicMock()
    service = MagicMock()
    service.create_table_if_not_exists.return_value = table
    service_cls = MagicMock()
    service_cls.from_connection_string.return_value = service
    monkeypatch.setattr(table_ledger_repository, "TableServiceClient", service_cls)
    return table


@pytest.mark.unit
class TestFileLedgerRepository:
    """JSON files on local disk."""

    def test_probe_creates_directory(self, tmp_path):
        backend = FileLedgerRepository(tmp_path / "ledgers")

        backend.probe()

        assert (tmp_path / "ledgers").is_dir()

    def test_write_and_read(self, tmp_path):
        backend = FileLedgerRepository(tmp_path)

        backend.write_raw("referral_anticheat_ips", '{"a":1}')

        assert backend.read_raw("referral_anticheat_ips") == '{"a":1}'
        assert (tmp_path / "referral_anticheat_ips.json").read_text(encoding="utf-8") == '{"a":1}'

    def test_missing_document(self, tmp_path):
        assert FileLedgerRepository(tmp_path).read_raw("missing") is None

    def test_overwrite_leaves_no_temp_files(self, tmp_path):
        backend = FileLedgerRepository(tmp_path)

        backend.write_raw("doc", "1")
        backend.write_raw("doc", "2")

        assert backend.read_raw("doc") == "2"
        assert [p.name for p in tmp_path.iterdir()] == ["doc.json"]

    def test_unwritable_directory_fails_probe(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")

        with pytest.raises(PersistenceUnavailableError):
            FileLedgerRepository(blocker / "ledgers").probe()

    def test_write_into_missing_directory_raises(self, tmp_path):
        backend = FileLedgerRepository(tmp_path / "missing")

        with pytest.raises(PersistenceUnavailableError):
            backend.write_raw("doc", "{}")


@pytest.mark.unit
class TestAzureTableLedgerRepository:
    """One entity per namespace in a single table."""

    def test_write_upserts_entity(self, table_client):
        backend = AzureTableLedgerRepository("ledgers", connection_string="UseDevelopmentStorage=true")

        backend.write_raw("game_cooldowns_global", "{}")

        table_client.upsert_entity.assert_called_once_with(
            entity={"PartitionKey": LEDGER_PARTITION, "RowKey": "game_cooldowns_global", "Payload": "{}"}
        )

    def test_read_returns_payload(self, table_client):
        table_client.get_entity.return_value = {"Payload": '{"a":1}'}
        backend = AzureTableLedgerRepository("ledgers", connection_string="UseDevelopmentStorage=true")

        assert backend.read_raw("doc") == '{"a":1}'

    def test_missing_entity_reads_as_none(self, table_client):
        table_client.get_entity.side_effect = ResourceNotFoundError("missing")
        backend = AzureTableLedgerRepository("ledgers", connection_string="UseDevelopmentStorage=true")

        assert backend.read_raw("doc") is None

    def test_sdk_errors_are_wrapped(self, table_client):
        table_client.upsert_entity.side_effect = ServiceRequestError("unreachable")
        backend = AzureTableLedgerRepository("ledgers", connection_string="UseDevelopmentStorage=true")

        with pytest.raises(PersistenceUnavailableError):
            backend.write_raw("doc", "{}")

    def test_managed_identity_requires_endpoint(self):
        backend = AzureTableLedgerRepository("ledgers")

        with pytest.raises(PersistenceUnavailableError):
            backend.probe()


@pytest.mark.unit
class TestBackendSelection:
    """Azure Tables, then files, then memory."""

    def test_memory_when_nothing_configured(self):
        backend = select_ledger_backend(make_settings())

        assert isinstance(backend, MemoryLedgerRepository)
        assert isinstance(backend, LedgerBackend)

    def test_file_when_directory_writable(self, tmp_path):
        backend = select_ledger_backend(make_settings(STORAGE_DISABLE_FILE=False, STORAGE_DATA_DIR=str(tmp_path)))

        assert isinstance(backend, FileLedgerRepository)

    def test_falls_back_to_memory_when_directory_unusable(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")

        backend = select_ledger_backend(
            make_settings(STORAGE_DISABLE_FILE=False, STORAGE_DATA_DIR=str(blocker / "ledgers"))
        )

        assert isinstance(backend, MemoryLedgerRepository)

    def test_azure_tables_when_reachable(self, table_client):
        backend = select_ledger_backend(make_settings(AZURE_STORAGE_CONNECTION_STRING="UseDevelopmentStorage=true"))

        assert isinstance(backend, AzureTableLedgerRepository)

    def test_unreachable_azure_falls_back_to_file(self, tmp_path, monkeypatch):
        service_cls = MagicMock()
        service_cls.from_connection_string.side_effect = ServiceRequestError("unreachable")
        monkeypatch.setattr(table_ledger_repository, "TableServiceClient", service_cls)

        backend = select_ledger_backend(
            make_settings(
                AZURE_STORAGE_CONNECTION_STRING="UseDevelopmentStorage=true",
                STORAGE_DISABLE_FILE=False,
                STORAGE_DATA_DIR=str(tmp_path),
            )
        )

        assert isinstance(backend, FileLedgerRepository)
