"""
Event export pipeline components.

Modules:
    filters: Ignore list parsing and membership test
    mapper: Event -> BigQuery row mapping
    buffer: Size/time bounded buffer with a flush callback
    uploader: Streaming insert with oversized-payload bisection
    retry: Per-batch retry state machine with exponential backoff
    tasks: Delayed task facility (APScheduler)
    schema: One-shot table schema reconciliation
    cache: Key-value cache for the schema memo
    warehouse: WarehouseTable interface and error classification
    bigquery: WarehouseTable over google-cloud-bigquery
    connector: ExportConnector, the per-process export context

Architecture:
    ingestion pipeline -> EventFilter -> RowMapper -> ExportBuffer
        -> (flush) RetryScheduler -> BatchUploader -> BigQuery

    Retryable failures are re-run by the RetryScheduler through the delayed
    task facility with a 3s * 2^n backoff, at most 15 times.

Usage:
    from export.connector import ExportConnector
    from export.tasks import APSchedulerTaskQueue
    from export.cache import SQLMetadataCache

    connector = ExportConnector(settings, SQLMetadataCache(async_session_maker), APSchedulerTaskQueue())
    await connector.setup()
    await connector.on_event(event)
"""

__all__ = [
    "EventFilter",
    "RowMapper",
    "ExportBuffer",
    "BatchUploader",
    "RetryScheduler",
    "APSchedulerTaskQueue",
    "SchemaReconciler",
    "SQLMetadataCache",
    "ExportConnector",
]
