"""
Unit tests for table schema reconciliation
"""

import pytest
from core.exceptions import (
    RetryableSetupError,
    SchemaReconciliationError,
    TableAlreadyExistsError,
    TableNotFoundError,
    WarehouseConnectionError,
)
from export.schema import CACHE_KEY, REQUIRED_FIELDS, SchemaReconciler, missing_fields
from export.warehouse import TableField, TableMetadata
from models.base import FieldType

IN_SYNC = {"dataset_id": "1234", "table_id": "1234", "existing_fields": 12}


@pytest.fixture
def reconciler(warehouse_table, memory_cache):
    return SchemaReconciler(warehouse_table, memory_cache, "1234", "1234")


class TestMissingFields:
    """Test schema diffing"""

    def test_all_required_fields_missing_from_empty_schema(self):
        assert missing_fields(TableMetadata(fields=[])) == REQUIRED_FIELDS

    def test_existing_fields_are_not_reported(self):
        metadata = TableMetadata(fields=[TableField("uuid", FieldType.STRING), TableField("extra", FieldType.STRING)])

        names = [f.name for f in missing_fields(metadata)]

        assert "uuid" not in names
        assert len(names) == 11

    def test_required_field_list(self):
        assert [f.name for f in REQUIRED_FIELDS] == [
            "uuid", "event", "properties", "elements", "set", "set_once",
            "distinct_id", "team_id", "ip", "site_url", "timestamp", "bq_ingested_timestamp",
        ]
        types = {f.name: f.type for f in REQUIRED_FIELDS}
        assert types["team_id"] == FieldType.INT64
        assert types["timestamp"] == FieldType.TIMESTAMP
        assert types["bq_ingested_timestamp"] == FieldType.TIMESTAMP


class TestSchemaReconciler:
    """Test setup-time reconciliation against the mocked table"""

    @pytest.mark.asyncio
    async def test_adds_every_field_to_empty_schema(self, reconciler, warehouse_table, memory_cache):
        await reconciler.reconcile()

        warehouse_table.get_metadata.assert_awaited_once()
        warehouse_table.set_metadata.assert_awaited_once_with(REQUIRED_FIELDS)
        warehouse_table.create_table.assert_not_called()
        assert memory_cache.data[CACHE_KEY] == IN_SYNC

    @pytest.mark.asyncio
    async def test_cache_hit_skips_metadata_calls(self, warehouse_table, memory_cache):
        cache = memory_cache
        cache.data[CACHE_KEY] = IN_SYNC
        reconciler = SchemaReconciler(warehouse_table, cache, "1234", "1234")

        await reconciler.reconcile()

        warehouse_table.get_metadata.assert_not_called()
        warehouse_table.set_metadata.assert_not_called()
        assert cache.writes == []

    @pytest.mark.asyncio
    async def test_config_change_busts_cache(self, warehouse_table, memory_cache):
        cache = memory_cache
        cache.data[CACHE_KEY] = {"dataset_id": "wrong", "table_id": "1234", "existing_fields": 12}
        reconciler = SchemaReconciler(warehouse_table, cache, "1234", "1234")

        await reconciler.reconcile()

        warehouse_table.get_metadata.assert_awaited_once()
        warehouse_table.set_metadata.assert_awaited_once()
        assert cache.data[CACHE_KEY] == IN_SYNC

    @pytest.mark.asyncio
    async def test_table_in_sync_only_refreshes_cache(self, reconciler, warehouse_table, memory_cache):
        warehouse_table.get_metadata.return_value = TableMetadata(fields=list(REQUIRED_FIELDS))

        await reconciler.reconcile()

        warehouse_table.set_metadata.assert_not_called()
        assert memory_cache.writes == [(CACHE_KEY, IN_SYNC)]

    @pytest.mark.asyncio
    async def test_adds_only_missing_fields(self, reconciler, warehouse_table):
        existing = [f for f in REQUIRED_FIELDS if f.name != "site_url"]
        warehouse_table.get_metadata.return_value = TableMetadata(fields=existing)

        await reconciler.reconcile()

        warehouse_table.set_metadata.assert_awaited_once_with([TableField("site_url", FieldType.STRING)])

    @pytest.mark.asyncio
    async def test_creates_missing_table(self, reconciler, warehouse_table, memory_cache):
        warehouse_table.get_metadata.side_effect = TableNotFoundError("Not found: Table 1234")

        await reconciler.reconcile()

        warehouse_table.create_table.assert_awaited_once_with(REQUIRED_FIELDS)
        warehouse_table.set_metadata.assert_not_called()
        assert memory_cache.data[CACHE_KEY] == IN_SYNC

    @pytest.mark.asyncio
    async def test_not_found_recognised_by_message(self, reconciler, warehouse_table):
        warehouse_table.get_metadata.side_effect = Exception("Not found: Dataset 1234")

        await reconciler.reconcile()

        warehouse_table.create_table.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_concurrent_create_counts_as_success(self, reconciler, warehouse_table, memory_cache):
        warehouse_table.get_metadata.side_effect = TableNotFoundError("Not found: Table 1234")
        warehouse_table.create_table.side_effect = TableAlreadyExistsError("Already Exists: Table 1234")

        await reconciler.reconcile()

        assert memory_cache.data[CACHE_KEY] == IN_SYNC

    @pytest.mark.asyncio
    async def test_create_failure_propagates(self, reconciler, warehouse_table, memory_cache):
        warehouse_table.get_metadata.side_effect = TableNotFoundError("Not found: Table 1234")
        warehouse_table.create_table.side_effect = Exception("Access Denied")

        with pytest.raises(Exception, match="Access Denied"):
            await reconciler.reconcile()

        assert memory_cache.writes == []

    @pytest.mark.asyncio
    async def test_undefined_schema_is_fatal(self, reconciler, warehouse_table, memory_cache):
        warehouse_table.get_metadata.return_value = TableMetadata(fields=None)

        with pytest.raises(SchemaReconciliationError, match="Can not get metadata for table"):
            await reconciler.reconcile()

        assert memory_cache.writes == []

    @pytest.mark.asyncio
    async def test_concurrent_schema_update_is_tolerated(self, reconciler, warehouse_table, memory_cache):
        warehouse_table.get_metadata.side_effect = [
            TableMetadata(fields=[]),
            TableMetadata(fields=list(REQUIRED_FIELDS)),
        ]
        warehouse_table.set_metadata.side_effect = Exception("Provided Schema does not match Table")

        await reconciler.reconcile()

        assert warehouse_table.get_metadata.await_count == 2
        assert memory_cache.data[CACHE_KEY] == IN_SYNC

    @pytest.mark.asyncio
    async def test_failed_schema_update_is_fatal(self, reconciler, warehouse_table, memory_cache):
        warehouse_table.set_metadata.side_effect = Exception("Permission denied")

        with pytest.raises(SchemaReconciliationError) as exc_info:
            await reconciler.reconcile()

        assert "uuid" in exc_info.value.context["missing_fields"]
        assert memory_cache.writes == []

    @pytest.mark.asyncio
    async def test_connection_error_is_retryable(self, reconciler, warehouse_table, memory_cache):
        warehouse_table.get_metadata.side_effect = WarehouseConnectionError("ECONNRESET")

        with pytest.raises(RetryableSetupError) as exc_info:
            await reconciler.reconcile()

        assert exc_info.value.message == "Operational error encountered: ECONNRESET"
        assert memory_cache.writes == []

    @pytest.mark.asyncio
    async def test_connection_error_during_update_is_retryable(self, reconciler, warehouse_table):
        warehouse_table.set_metadata.side_effect = WarehouseConnectionError("ETIMEDOUT")

        with pytest.raises(RetryableSetupError):
            await reconciler.reconcile()

        warehouse_table.get_metadata.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_other_metadata_errors_propagate(self, reconciler, warehouse_table):
        warehouse_table.get_metadata.side_effect = Exception("Access Denied")

        with pytest.raises(Exception, match="Access Denied"):
            await reconciler.reconcile()

        warehouse_table.create_table.assert_not_called()
