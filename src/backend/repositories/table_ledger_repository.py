"""
Azure Table Storage ledger backend.

Each ledger namespace is one entity in a single table:
PartitionKey="ledger", RowKey=<namespace>, Payload=<JSON document>.

Uses managed identity authentication in production,
falls back to connection string for local development.
"""

from typing import Optional

import structlog
from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.data.tables import TableClient, TableServiceClient
from azure.identity import DefaultAzureCredential

from core.exceptions import PersistenceUnavailableError

logger = structlog.get_logger(__name__)

LEDGER_PARTITION = "ledger"


class AzureTableLedgerRepository:
    """Durable ledger backend on Azure Table Storage."""

    name = "azure_tables"

    def __init__(
        self,
        table_name: str,
        connection_string: Optional[str] = None,
        table_endpoint: Optional[str] = None,
    ):
        self.table_name = table_name
        self._connection_string = connection_string
        self.table_endpoint = table_endpoint

        self._service_client: Optional[TableServiceClient] = None
        self._table_client: Optional[TableClient] = None

    def _get_table_client(self) -> TableClient:
        if self._table_client is not None:
            return self._table_client

        if self._connection_string:
            # Use connection string (local development)
            self._service_client = TableServiceClient.from_connection_string(self._connection_string)
            logger.info("azure_tables_init", method="connection_string")
        else:
            # Use managed identity (production)
            if not self.table_endpoint:
                raise ValueError("AZURE_STORAGE_TABLE_ENDPOINT must be set for managed identity auth")
            self._service_client = TableServiceClient(
                endpoint=self.table_endpoint,
                credential=DefaultAzureCredential(),
            )
            logger.info("azure_tables_init", method="managed_identity", endpoint=self.table_endpoint)

        self._table_client = self._service_client.create_table_if_not_exists(self.table_name)
        return self._table_client

    def probe(self) -> None:
        """Ensure the ledger table exists and is reachable."""
        try:
            self._get_table_client()
        except (AzureError, ValueError) as e:
            raise PersistenceUnavailableError(self.table_name, str(e)) from e

    def read_raw(self, key: str) -> Optional[str]:
        try:
            entity = self._get_table_client().get_entity(partition_key=LEDGER_PARTITION, row_key=key)
        except ResourceNotFoundError:
            return None
        except (AzureError, ValueError) as e:
            raise PersistenceUnavailableError(key, str(e)) from e
        return entity.get("Payload")

    def write_raw(self, key: str, payload: str) -> None:
        try:
            self._get_table_client().upsert_entity(
                entity={
                    "PartitionKey": LEDGER_PARTITION,
                    "RowKey": key,
                    "Payload": payload,
                }
            )
        except (AzureError, ValueError) as e:
            raise PersistenceUnavailableError(key, str(e)) from e

    def close(self) -> None:
        if self._table_client is not None:
            self._table_client.close()
            self._table_client = None
        if self._service_client is not None:
            self._service_client.close()
            self._service_client = None
