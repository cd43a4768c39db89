"""
Core utilities and configuration for the BigQuery event exporter.

Modules:
    config: Settings loaded from the environment / .env file
    database: Async engine and session factory for the metadata cache
    exceptions: Exception hierarchy with retryable / non-retryable mixins
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.exceptions import RetryableInsertError, ConfigurationError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "setup_logging",
    # Exceptions
    "ExportException",
    "RetryableError",
    "NonRetryableError",
    "ConfigurationError",
    "SetupError",
    "RetryableSetupError",
    "SchemaReconciliationError",
    "ExporterNotReadyError",
    "WarehouseError",
    "TableNotFoundError",
    "TableAlreadyExistsError",
    "WarehouseConnectionError",
    "WarehouseInsertError",
    "InsertError",
    "RetryableInsertError",
    "FatalInsertError",
]
