"""
Warehouse table interface used by the exporter.

Adapters (see export.bigquery) translate client library exceptions into the
WarehouseError family from core.exceptions. Anything that still needs to be
recognised by its message text goes through classify_warehouse_error, the only
place in the code base that inspects error strings.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import enum

from core.exceptions import (
    TableAlreadyExistsError,
    TableNotFoundError,
    WarehouseConnectionError,
)
from models.base import FieldType


@dataclass(frozen=True)
class TableField:
    name: str
    type: FieldType


@dataclass(frozen=True)
class TableMetadata:
    """Table metadata; fields is None when the table has no schema defined"""
    fields: Optional[List[TableField]]

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields or []]


@dataclass(frozen=True)
class InsertOptions:
    """
    Options for streaming inserts.

    The exporter owns retries and tolerates duplicates, so both the client's
    insert-id dedup and its partial retries are off by default.
    """
    create_insert_id: bool = False
    partial_retries: int = 0


class WarehouseTable(ABC):
    """Async handle on the destination table"""

    @abstractmethod
    async def get_metadata(self) -> TableMetadata:
        """Raises TableNotFoundError if the table does not exist"""

    @abstractmethod
    async def set_metadata(self, fields: List[TableField]) -> TableMetadata:
        """Append fields to the table schema and return the updated metadata"""

    @abstractmethod
    async def create_table(self, fields: List[TableField]) -> None:
        """Raises TableAlreadyExistsError if another worker won the race"""

    @abstractmethod
    async def insert(self, rows: List[Dict[str, Any]], options: InsertOptions) -> None:
        """Stream rows into the table"""


class WarehouseErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    ENTITY_TOO_LARGE = "entity_too_large"
    CONNECTION = "connection"
    OTHER = "other"


ENTITY_TOO_LARGE_MARKER = "Request Entity Too Large"
NOT_FOUND_MARKER = "Not found"
ALREADY_EXISTS_MARKER = "Already Exists"


def error_message(error: BaseException) -> str:
    return getattr(error, "message", None) or str(error)


def classify_warehouse_error(error: BaseException) -> WarehouseErrorKind:
    """Decide what kind of failure a warehouse call produced"""
    if isinstance(error, TableNotFoundError):
        return WarehouseErrorKind.NOT_FOUND
    if isinstance(error, TableAlreadyExistsError):
        return WarehouseErrorKind.ALREADY_EXISTS
    if isinstance(error, WarehouseConnectionError):
        return WarehouseErrorKind.CONNECTION

    message = error_message(error)
    if ENTITY_TOO_LARGE_MARKER in message:
        return WarehouseErrorKind.ENTITY_TOO_LARGE
    if NOT_FOUND_MARKER in message:
        return WarehouseErrorKind.NOT_FOUND
    if ALREADY_EXISTS_MARKER in message:
        return WarehouseErrorKind.ALREADY_EXISTS
    return WarehouseErrorKind.OTHER
