# ============================================================================
# File: export/connector.py
# Description: Export context wiring filter, mapper, buffer and retries together
# ============================================================================
"""
ExportConnector - the per-process export context.

Built once at startup and passed to every entry point:

    on_event          one event from the ingestion pipeline (buffered path)
    export_events     a ready batch of events (buffer-free path)
    run_retry_task    a delayed retry fired by the task facility

Nothing in the export pipeline lives in module globals; tests build their
own connector with fake collaborators.
"""

from typing import Any, Callable, Dict, List, Optional
import json
import logging

from core.config import Settings
from core.exceptions import (
    ConfigurationError,
    ExportException,
    ExporterNotReadyError,
)
from export.buffer import ExportBuffer
from export.cache import MetadataCache
from export.filters import EventFilter
from export.mapper import RowMapper
from export.retry import RetryScheduler
from export.schema import SchemaReconciler
from export.tasks import DelayedTaskQueue
from export.uploader import BatchUploader
from export.warehouse import WarehouseTable
from models.base import BatchState
from schemas.events import Event, ExportBatch, ExportRow

logger = logging.getLogger(__name__)

TableFactory = Callable[[Dict[str, Any], str, str], WarehouseTable]


def default_table_factory(credentials: Dict[str, Any], dataset_id: str, table_id: str) -> WarehouseTable:
    from export.bigquery import BigQueryTable

    return BigQueryTable.from_credentials(credentials, dataset_id, table_id)


def row_size_bytes(row: ExportRow) -> int:
    return len(row.json().encode("utf-8"))


class ExportConnector:
    """
    Export context for one process.

    Responsibilities:
    - Validate configuration and reconcile the table schema (setup)
    - Route events through ignore filter -> mapper -> buffer
    - Hand flushed batches to the retry scheduler
    """

    def __init__(
        self,
        settings: Settings,
        cache: MetadataCache,
        task_queue: DelayedTaskQueue,
        table: Optional[WarehouseTable] = None,
        table_factory: TableFactory = default_table_factory
    ):
        self.settings = settings
        self.cache = cache
        self.task_queue = task_queue
        self.table = table
        self.table_factory = table_factory

        self.event_filter = EventFilter.from_config(settings.EXPORT_EVENTS_TO_IGNORE)
        self.mapper = RowMapper(export_elements_on_any_event=settings.EXPORT_ELEMENTS_ON_ANY_EVENT)
        self.buffer: ExportBuffer[ExportRow] = ExportBuffer(
            limit_bytes=settings.EXPORT_EVENTS_BUFFER_BYTES,
            timeout_seconds=settings.EXPORT_EVENTS_BUFFER_SECONDS,
            on_flush=self.flush_rows,
        )

        self.uploader: Optional[BatchUploader] = None
        self.retry_scheduler: Optional[RetryScheduler] = None
        self.events_ignored = 0

    @property
    def is_ready(self) -> bool:
        return self.retry_scheduler is not None

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def load_credentials(self) -> Dict[str, Any]:
        """Parse the service account key from settings"""
        raw = self.settings.GOOGLE_CLOUD_KEY_JSON
        if not raw and self.settings.GOOGLE_CLOUD_KEY_FILE:
            try:
                with open(self.settings.GOOGLE_CLOUD_KEY_FILE, encoding="utf-8") as f:
                    raw = f.read()
            except OSError as e:
                raise ConfigurationError(
                    "JSON config file could not be read!",
                    context={"setting": "GOOGLE_CLOUD_KEY_FILE"},
                    original_exception=e
                )

        if not raw:
            raise ConfigurationError("JSON config not provided!", context={"setting": "GOOGLE_CLOUD_KEY_JSON"})

        try:
            return json.loads(raw)
        except ValueError as e:
            raise ConfigurationError(
                "JSON config is not valid JSON!",
                context={"setting": "GOOGLE_CLOUD_KEY_JSON"},
                original_exception=e
            )

    def validate_settings(self) -> Dict[str, Any]:
        credentials = self.load_credentials()
        if not self.settings.BQ_DATASET_ID:
            raise ConfigurationError("Dataset ID not provided!", context={"setting": "BQ_DATASET_ID"})
        if not self.settings.BQ_TABLE_ID:
            raise ConfigurationError("Table ID not provided!", context={"setting": "BQ_TABLE_ID"})
        return credentials

    async def setup(self) -> None:
        """
        Validate configuration, reconcile the table schema and start the
        retry machinery.

        Raises:
            ConfigurationError: Missing credentials, dataset or table id
            RetryableSetupError: Transient failure; setup may be called again
            SchemaReconciliationError: Table cannot be brought to parity
        """
        credentials = self.validate_settings()
        dataset_id = self.settings.BQ_DATASET_ID
        table_id = self.settings.BQ_TABLE_ID

        if self.table is None:
            self.table = self.table_factory(credentials, dataset_id, table_id)

        try:
            await SchemaReconciler(self.table, self.cache, dataset_id, table_id).reconcile()
        except ExportException as e:
            logger.error(f"Error encountered in setup: {e.message}", extra={"error_context": e.to_dict()})
            raise

        self.uploader = BatchUploader(self.table)
        self.retry_scheduler = RetryScheduler(
            self.uploader,
            self.task_queue,
            max_retries=self.settings.EXPORT_MAX_RETRIES,
            base_delay_seconds=self.settings.EXPORT_RETRY_BASE_DELAY_SECONDS,
            retry_handler=self.run_retry_task,
        )
        self.task_queue.start()
        logger.info(f"Exporter ready for {dataset_id}.{table_id}")

    async def close(self) -> None:
        """Flush buffered rows and stop scheduling retries"""
        try:
            if self.is_ready:
                flushed = await self.buffer.close()
                if flushed:
                    logger.info(f"Flushed {flushed} buffered rows on shutdown")
        finally:
            self.task_queue.shutdown()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def on_event(self, event: Event) -> bool:
        """
        Accept one event into the buffer.

        Returns:
            False if the event was ignored, True otherwise
        """
        self._ensure_ready()

        if self.event_filter.should_ignore(event.event):
            self.events_ignored += 1
            return False

        row = self.mapper.map(event)
        await self.buffer.add(row, row_size_bytes(row))
        return True

    async def export_events(self, events: List[Event]) -> Optional[BatchState]:
        """
        Export a ready batch without buffering.

        Returns:
            The batch state after the first attempt, or None if every event
            was ignored
        """
        self._ensure_ready()

        accepted = [e for e in events if not self.event_filter.should_ignore(e.event)]
        self.events_ignored += len(events) - len(accepted)
        if not accepted:
            return None

        return await self.flush_rows(self.mapper.map_many(accepted))

    async def run_retry_task(self, payload: Dict[str, Any]) -> BatchState:
        self._ensure_ready()
        return await self.retry_scheduler.run_retry_task(payload)

    async def flush_rows(self, rows: List[ExportRow]) -> BatchState:
        """Flush callback: wrap rows into a new batch and make the first attempt"""
        self._ensure_ready()

        batch = ExportBatch.create(rows)
        self.retry_scheduler.submit(batch)
        return await self.retry_scheduler.export(batch)

    def stats(self) -> Dict[str, Any]:
        retry_stats = self.retry_scheduler.stats.to_dict() if self.retry_scheduler else {}
        return {
            "ready": self.is_ready,
            "events_ignored": self.events_ignored,
            "buffered_rows": self.buffer.pending_count,
            "buffered_bytes": self.buffer.size_bytes,
            "batches_in_flight": self.retry_scheduler.batches_in_flight if self.retry_scheduler else 0,
            "pending_retries": self.task_queue.pending_count(),
            **retry_stats,
        }

    def _ensure_ready(self) -> None:
        if not self.is_ready:
            raise ExporterNotReadyError("No BigQuery client initialized!")
