"""
Bring the destination table schema to parity with the export row.

Runs once per process at setup. The last successful reconciliation is
memoized in the metadata cache as (dataset_id, table_id, field count); when
the schema changes incompatibly, bump the field list so the cache is busted.
"""

from typing import Any, Dict, List, Optional
import logging

from core.exceptions import (
    RetryableSetupError,
    SchemaReconciliationError,
)
from export.cache import MetadataCache
from export.warehouse import (
    TableField,
    TableMetadata,
    WarehouseErrorKind,
    WarehouseTable,
    classify_warehouse_error,
    error_message,
)
from models.base import FieldType

logger = logging.getLogger(__name__)

CACHE_KEY = "cachedMetadata"

REQUIRED_FIELDS: List[TableField] = [
    TableField("uuid", FieldType.STRING),
    TableField("event", FieldType.STRING),
    TableField("properties", FieldType.STRING),
    TableField("elements", FieldType.STRING),
    TableField("set", FieldType.STRING),
    TableField("set_once", FieldType.STRING),
    TableField("distinct_id", FieldType.STRING),
    TableField("team_id", FieldType.INT64),
    TableField("ip", FieldType.STRING),
    TableField("site_url", FieldType.STRING),
    TableField("timestamp", FieldType.TIMESTAMP),
    TableField("bq_ingested_timestamp", FieldType.TIMESTAMP),
]


def missing_fields(metadata: Optional[TableMetadata], required: List[TableField] = REQUIRED_FIELDS) -> List[TableField]:
    existing = set(metadata.field_names()) if metadata else set()
    return [f for f in required if f.name not in existing]


class SchemaReconciler:
    """
    Ensure the destination table exists with at least REQUIRED_FIELDS.

    Responsibilities:
    - Skip all metadata calls when the cache says the table is in sync
    - Create the table when it does not exist
    - Add missing columns (never removes or changes existing ones)
    - Refresh the cache after every successful reconciliation
    """

    def __init__(
        self,
        table: WarehouseTable,
        cache: MetadataCache,
        dataset_id: str,
        table_id: str,
        required_fields: List[TableField] = REQUIRED_FIELDS
    ):
        self.table = table
        self.cache = cache
        self.dataset_id = dataset_id
        self.table_id = table_id
        self.required_fields = required_fields

    def cache_value(self) -> Dict[str, Any]:
        return {
            "dataset_id": self.dataset_id,
            "table_id": self.table_id,
            "existing_fields": len(self.required_fields),
        }

    async def is_cached(self) -> bool:
        cached = await self.cache.get(CACHE_KEY, None)
        return cached == self.cache_value()

    async def reconcile(self) -> None:
        """
        Raises:
            RetryableSetupError: Connection failure talking to BigQuery
            SchemaReconciliationError: Table cannot be brought to parity
        """
        if await self.is_cached():
            logger.info(f"Schema for {self.dataset_id}.{self.table_id} in sync according to cache")
            return

        try:
            try:
                metadata = await self.table.get_metadata()
            except Exception as e:
                if classify_warehouse_error(e) != WarehouseErrorKind.NOT_FOUND:
                    raise
                logger.info(f"Table {self.dataset_id}.{self.table_id} not found")
                # a freshly created table already has every field
                await self.create_table()
            else:
                await self.update_schema(metadata)

        except Exception as e:
            if classify_warehouse_error(e) == WarehouseErrorKind.CONNECTION:
                raise RetryableSetupError(
                    f"Operational error encountered: {error_message(e)}",
                    context={"dataset_id": self.dataset_id, "table_id": self.table_id},
                    original_exception=e
                )
            raise

        await self.cache.set(CACHE_KEY, self.cache_value())

    async def create_table(self) -> None:
        logger.info(f"Creating BigQuery Table - {self.dataset_id}:{self.table_id}")

        try:
            await self.table.create_table(self.required_fields)
        except Exception as e:
            if classify_warehouse_error(e) != WarehouseErrorKind.ALREADY_EXISTS:
                logger.error(f"Creating BigQuery Table failed: {error_message(e)}")
                raise
            # another worker created it between our get and create
            logger.info(f"Table {self.dataset_id}.{self.table_id} already created by another worker")

    async def update_schema(self, metadata: TableMetadata) -> None:
        if metadata.fields is None:
            raise SchemaReconciliationError(
                "Can not get metadata for table. Please check if the table schema is defined.",
                context={"dataset_id": self.dataset_id, "table_id": self.table_id}
            )

        fields_to_add = missing_fields(metadata, self.required_fields)
        if not fields_to_add:
            return

        names = [f.name for f in fields_to_add]
        logger.info(f"Incomplete schema on BigQuery table! Adding the following fields to reach parity: {names}")

        try:
            await self.table.set_metadata(fields_to_add)
        except Exception as e:
            if classify_warehouse_error(e) == WarehouseErrorKind.CONNECTION:
                raise
            logger.error(f"Failed to set metadata: {error_message(e)}")

            # a different worker may have updated the table concurrently
            still_missing = missing_fields(await self.table.get_metadata(), self.required_fields)
            if still_missing:
                raise SchemaReconciliationError(
                    "Tried adding fields but some are still missing. Can not start exporter.",
                    context={
                        "dataset_id": self.dataset_id,
                        "table_id": self.table_id,
                        "fields_to_add": names,
                        "missing_fields": [f.name for f in still_missing],
                    },
                    original_exception=e
                )
            logger.info("Schema already brought to parity by another worker")
