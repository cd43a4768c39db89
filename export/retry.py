"""
Retry scheduler for export batches.

Each batch moves through:

    PENDING_FIRST_ATTEMPT -> ATTEMPTING -> SUCCESS
                                        -> RETRY_SCHEDULED -> ATTEMPTING ...
                                        -> DROPPED  (retry ceiling reached)
                                        -> FAILED   (non-retryable error)

A retry is a delayed task carrying the full serialized batch with its
batch_id and incremented retry_count. The scheduler itself only keeps the
current state per batch_id, released as soon as the batch reaches a terminal
state.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional
import logging

from core.exceptions import NonRetryableError, RetryableError
from export.tasks import DelayedTaskQueue, TaskHandler
from export.uploader import BatchUploader
from models.base import BatchState
from schemas.events import ExportBatch

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 15
DEFAULT_BASE_DELAY_SECONDS = 3.0


@dataclass
class RetryStats:
    batches_exported: int = 0
    rows_exported: int = 0
    retries_scheduled: int = 0
    batches_dropped: int = 0
    batches_failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class RetryScheduler:
    """
    Deliver batches through the uploader, backing off on retryable failures.

    Attributes:
        max_retries: Retries allowed after the first attempt (default: 15)
        base_delay_seconds: Delay before the first retry, doubled every retry (default: 3.0)
        retry_handler: Entry point the delayed task calls with the batch payload
            (default: run_retry_task)
    """

    def __init__(
        self,
        uploader: BatchUploader,
        task_queue: DelayedTaskQueue,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay_seconds: float = DEFAULT_BASE_DELAY_SECONDS,
        retry_handler: Optional[TaskHandler] = None
    ):
        self.uploader = uploader
        self.task_queue = task_queue
        self.max_retries = max_retries
        self.base_delay_seconds = base_delay_seconds
        self.retry_handler = retry_handler or self.run_retry_task
        self.stats = RetryStats()
        self._states: Dict[int, BatchState] = {}

    def backoff_delay(self, retry_count: int) -> float:
        return self.base_delay_seconds * (2 ** retry_count)

    def state_of(self, batch_id: int) -> Optional[BatchState]:
        return self._states.get(batch_id)

    @property
    def batches_in_flight(self) -> int:
        return len(self._states)

    def submit(self, batch: ExportBatch) -> None:
        """Register a new batch before its first attempt"""
        self._states[batch.batch_id] = BatchState.PENDING_FIRST_ATTEMPT

    async def export(self, batch: ExportBatch) -> BatchState:
        """
        Make one delivery attempt for a batch.

        Returns:
            The state the batch ended up in (SUCCESS, RETRY_SCHEDULED or DROPPED)

        Raises:
            NonRetryableError: Propagated unchanged; the batch is not retried
        """
        self._states[batch.batch_id] = BatchState.ATTEMPTING

        try:
            inserted = await self.uploader.upload(batch.rows)

        except RetryableError as e:
            if batch.retry_count < self.max_retries:
                return self._schedule_retry(batch, e)

            logger.error(
                f"Dropping batch {batch.batch_id} with {len(batch.rows)} rows "
                f"after {batch.retry_count} retries: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            self.stats.batches_dropped += 1
            return self._release(batch, BatchState.DROPPED)

        except NonRetryableError as e:
            logger.error(
                f"Batch {batch.batch_id} failed permanently: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            self.stats.batches_failed += 1
            self._release(batch, BatchState.FAILED)
            raise

        if batch.retry_count > 0:
            logger.info(f"Batch {batch.batch_id} exported on retry {batch.retry_count}")
        self.stats.batches_exported += 1
        self.stats.rows_exported += inserted
        return self._release(batch, BatchState.SUCCESS)

    async def run_retry_task(self, payload: Dict[str, Any]) -> BatchState:
        """Entry point for the delayed task facility"""
        batch = ExportBatch.parse_obj(payload)
        logger.info(
            f"Retrying batch {batch.batch_id} "
            f"(retry {batch.retry_count}/{self.max_retries}, {len(batch.rows)} rows)"
        )
        return await self.export(batch)

    def _schedule_retry(self, batch: ExportBatch, error: RetryableError) -> BatchState:
        delay = self.backoff_delay(batch.retry_count)
        next_batch = batch.next_attempt()

        self.task_queue.schedule(delay, self.retry_handler, next_batch.dict())
        self._states[batch.batch_id] = BatchState.RETRY_SCHEDULED
        self.stats.retries_scheduled += 1

        logger.warning(
            f"Batch {batch.batch_id} failed, retry {next_batch.retry_count}/{self.max_retries} "
            f"in {delay:.0f} seconds: {error.message}"
        )
        return BatchState.RETRY_SCHEDULED

    def _release(self, batch: ExportBatch, state: BatchState) -> BatchState:
        self._states.pop(batch.batch_id, None)
        return state
