"""
Insert export rows into the warehouse.

Every failure is turned into one of two outcomes:
- RetryableInsertError: back off and try the whole batch again later
- FatalInsertError: a single row that is too large to ever be inserted

Oversized multi-row payloads are bisected and each half is uploaded within
the same call, so a batch only reaches the retry scheduler as a unit.
"""

from typing import List
import logging
import time

from core.exceptions import FatalInsertError, RetryableInsertError
from export.warehouse import (
    InsertOptions,
    WarehouseErrorKind,
    WarehouseTable,
    classify_warehouse_error,
    error_message,
)
from schemas.events import ExportRow

logger = logging.getLogger(__name__)

INSERT_OPTIONS = InsertOptions(create_insert_id=False, partial_retries=0)


def _pluralize(count: int) -> str:
    return "events" if count != 1 else "event"


class BatchUploader:
    """
    Upload rows with oversized-payload bisection.

    Attributes:
        table: Destination WarehouseTable
        options: Insert options passed on every call
    """

    def __init__(self, table: WarehouseTable, options: InsertOptions = INSERT_OPTIONS):
        self.table = table
        self.options = options

    async def upload(self, rows: List[ExportRow]) -> int:
        """
        Insert rows, splitting the batch while the payload is too large.

        Returns:
            Number of rows inserted

        Raises:
            RetryableInsertError: For any failure that is worth retrying
            FatalInsertError: When a single row is still too large
        """
        if not rows:
            return 0

        start = time.perf_counter()
        try:
            await self.table.insert([row.dict() for row in rows], self.options)
        except Exception as e:
            message = error_message(e)
            kind = classify_warehouse_error(e)

            if kind == WarehouseErrorKind.ENTITY_TOO_LARGE:
                if len(rows) == 1:
                    logger.error(f"Single event is too large for BigQuery, giving up: {rows[0].uuid}")
                    raise FatalInsertError(
                        f"Error inserting into BigQuery! {message}",
                        context={"rows": 1, "uuid": rows[0].uuid},
                        original_exception=e
                    )

                middle = len(rows) // 2
                logger.warning(
                    f"Insert of {len(rows)} {_pluralize(len(rows))} too large, "
                    f"splitting into {middle} and {len(rows) - middle}"
                )
                inserted = await self.upload(rows[:middle])
                inserted += await self.upload(rows[middle:])
                return inserted

            logger.error(
                f"Error inserting {len(rows)} {_pluralize(len(rows))} into BigQuery: {message}"
            )
            raise RetryableInsertError(
                f"Error inserting into BigQuery! {message}",
                context={"rows": len(rows), "error_kind": kind.value},
                original_exception=e
            )

        elapsed = time.perf_counter() - start
        logger.info(
            f"Inserted {len(rows)} {_pluralize(len(rows))} to BigQuery. Took {elapsed:.3f} seconds."
        )
        return len(rows)
