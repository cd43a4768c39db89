"""
Custom exceptions for the export pipeline with structured error context.

This module provides the exception hierarchy used from setup through
delivery. Each exception carries context information for debugging and
monitoring, and retry decisions are made on the exception *type*
(RetryableError / NonRetryableError), never on message text.

Exception Hierarchy:
    ExportException (base)
    ├── ConfigurationError
    ├── SetupError
    │   └── RetryableSetupError
    ├── SchemaReconciliationError
    ├── ExporterNotReadyError
    ├── WarehouseError
    │   ├── TableNotFoundError
    │   ├── TableAlreadyExistsError
    │   ├── WarehouseConnectionError
    │   └── WarehouseInsertError
    ├── InsertError
    │   ├── RetryableInsertError
    │   └── FatalInsertError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class ExportException(Exception):
    """
    Base exception for all export-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (dataset, batch id, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(ExportException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Socket failures while talking to BigQuery
    - Any insert error that is not an oversized payload
    """
    pass


class NonRetryableError(ExportException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Missing configuration
    - A single event that is too large to ever be inserted
    - A table schema that cannot be brought to parity
    """
    pass


# ============================================================================
# Setup Errors
# ============================================================================

class ConfigurationError(NonRetryableError):
    """
    Exception raised when required configuration is missing or invalid.

    Context should include:
        - setting: Name of the offending setting
    """
    pass


class SetupError(ExportException):
    """Base exception for failures while preparing the destination table."""
    pass


class RetryableSetupError(RetryableError, SetupError):
    """Transient failure during setup; setup may be invoked again."""
    pass


class SchemaReconciliationError(NonRetryableError, SetupError):
    """
    Exception raised when the destination schema cannot reach parity.

    Context should include:
        - dataset_id / table_id: Destination table
        - missing_fields: Fields that are still absent
    """
    pass


class ExporterNotReadyError(NonRetryableError):
    """Raised when events arrive before setup has completed."""
    pass


# ============================================================================
# Warehouse Errors (raised by WarehouseTable adapters)
# ============================================================================

class WarehouseError(ExportException):
    """Base exception for errors reported by the warehouse client."""
    pass


class TableNotFoundError(WarehouseError):
    """The destination table (or dataset) does not exist."""
    pass


class TableAlreadyExistsError(WarehouseError):
    """Table creation lost a race against another worker."""
    pass


class WarehouseConnectionError(RetryableError, WarehouseError):
    """Socket / transport level failure reaching the warehouse."""
    pass


class WarehouseInsertError(WarehouseError):
    """
    The warehouse rejected some rows of a streaming insert.

    Context should include:
        - row_errors: Per-row errors as returned by the client
    """
    pass


# ============================================================================
# Insert Errors (raised by the uploader)
# ============================================================================

class InsertError(ExportException):
    """Base exception for failed row inserts."""
    pass


class RetryableInsertError(RetryableError, InsertError):
    """
    Insert failure that the retry scheduler should back off and retry.

    Context should include:
        - rows: Number of rows in the failed call
    """
    pass


class FatalInsertError(NonRetryableError, InsertError):
    """Insert failure that must be surfaced instead of retried."""
    pass
