"""
WarehouseTable implementation on top of google-cloud-bigquery.

The client is synchronous; every call runs in a worker thread so the event
loop keeps accepting events while BigQuery is busy. Client exceptions are
translated into the WarehouseError family so callers never depend on
google.api_core types.
"""

from typing import Any, Dict, List
import asyncio
import json
import logging

import requests
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import bigquery
from google.cloud.bigquery.retry import DEFAULT_RETRY
from google.oauth2 import service_account

from core.exceptions import (
    ConfigurationError,
    TableAlreadyExistsError,
    TableNotFoundError,
    WarehouseConnectionError,
    WarehouseInsertError,
)
from export.warehouse import InsertOptions, TableField, TableMetadata, WarehouseTable
from models.base import FieldType

logger = logging.getLogger(__name__)


def _to_schema_field(field: TableField) -> bigquery.SchemaField:
    return bigquery.SchemaField(field.name, field.type.value)


def _to_table_field(field: bigquery.SchemaField) -> TableField:
    try:
        field_type = FieldType(field.field_type)
    except ValueError:
        # columns we do not manage keep whatever type BigQuery reports
        field_type = FieldType.STRING
    return TableField(field.name, field_type)


class BigQueryTable(WarehouseTable):
    """
    Async handle on one BigQuery table.

    Attributes:
        client: bigquery.Client
        table_ref: Reference to project.dataset.table
    """

    def __init__(self, client: bigquery.Client, dataset_id: str, table_id: str):
        self.client = client
        self.dataset_id = dataset_id
        self.table_id = table_id
        self.dataset_ref = bigquery.DatasetReference(client.project, dataset_id)
        self.table_ref = self.dataset_ref.table(table_id)

    @classmethod
    def from_credentials(cls, credentials: Dict[str, Any], dataset_id: str, table_id: str) -> "BigQueryTable":
        """Build a client from a service account key (parsed JSON)"""
        try:
            google_credentials = service_account.Credentials.from_service_account_info(credentials)
        except (ValueError, KeyError) as e:
            raise ConfigurationError(
                "Invalid Google Cloud service account key",
                context={"setting": "GOOGLE_CLOUD_KEY_JSON"},
                original_exception=e
            )

        client = bigquery.Client(
            project=credentials.get("project_id"),
            credentials=google_credentials,
        )
        return cls(client, dataset_id, table_id)

    async def get_metadata(self) -> TableMetadata:
        table = await self._call(self.client.get_table, self.table_ref, retry=None)
        if not table.schema:
            return TableMetadata(fields=None)
        return TableMetadata(fields=[_to_table_field(f) for f in table.schema])

    async def set_metadata(self, fields: List[TableField]) -> TableMetadata:
        table = await self._call(self.client.get_table, self.table_ref, retry=None)

        existing = {f.name for f in table.schema}
        schema = list(table.schema)
        schema.extend(_to_schema_field(f) for f in fields if f.name not in existing)
        table.schema = schema

        updated = await self._call(self.client.update_table, table, ["schema"], retry=None)
        return TableMetadata(fields=[_to_table_field(f) for f in updated.schema])

    async def create_table(self, fields: List[TableField]) -> None:
        table = bigquery.Table(self.table_ref, schema=[_to_schema_field(f) for f in fields])
        await self._call(self.client.create_table, table, retry=None)

    async def insert(self, rows: List[Dict[str, Any]], options: InsertOptions) -> None:
        kwargs: Dict[str, Any] = {
            "retry": DEFAULT_RETRY if options.partial_retries > 0 else None,
        }
        if not options.create_insert_id:
            # a None id turns off best-effort dedup for that row
            kwargs["row_ids"] = [None] * len(rows)

        row_errors = await self._call(self.client.insert_rows_json, self.table_ref, rows, **kwargs)

        if row_errors:
            raise WarehouseInsertError(
                f"BigQuery rejected {len(row_errors)} of {len(rows)} rows: {json.dumps(row_errors[:5], default=str)}",
                context={"row_errors": len(row_errors)}
            )

    async def _call(self, func, *args, **kwargs):
        # metadata and create calls pass retry=None so transport errors surface here
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except google_exceptions.NotFound as e:
            raise TableNotFoundError(f"Not found: {e.message}", original_exception=e)
        except google_exceptions.Conflict as e:
            raise TableAlreadyExistsError(f"Already Exists: {e.message}", original_exception=e)
        except (
            auth_exceptions.TransportError,
            requests.exceptions.ConnectionError,
            google_exceptions.RetryError,
        ) as e:
            raise WarehouseConnectionError(
                f"Connection to BigQuery failed: {e}",
                context={"dataset_id": self.dataset_id, "table_id": self.table_id},
                original_exception=e
            )
