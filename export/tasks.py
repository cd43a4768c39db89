"""
Delayed task facility used to re-run failed export batches.

Tasks carry their whole payload (a serialized ExportBatch), so nothing else
needs to be kept in memory while a retry is waiting. The in-memory APScheduler
job store is best effort: jobs pending at shutdown are lost.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional
import itertools
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.jobstores.base import JobLookupError

logger = logging.getLogger(__name__)

TaskHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class DelayedTaskQueue(ABC):
    """Schedules a handler to run once with a payload after a delay"""

    @abstractmethod
    def schedule(self, delay_seconds: float, handler: TaskHandler, payload: Dict[str, Any]) -> str:
        """Schedule handler(payload); returns a task id usable with cancel()"""

    @abstractmethod
    def cancel(self, task_id: str) -> bool:
        """Cancel a pending task; False if it already ran or never existed"""

    @abstractmethod
    def pending_count(self) -> int:
        pass

    def start(self) -> None:
        pass

    def shutdown(self) -> None:
        pass


class APSchedulerTaskQueue(DelayedTaskQueue):
    """DelayedTaskQueue backed by an AsyncIOScheduler with one-shot date triggers"""

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None, prefix: str = "export-task"):
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self.prefix = prefix
        self._counter = itertools.count(1)

    def schedule(self, delay_seconds: float, handler: TaskHandler, payload: Dict[str, Any]) -> str:
        task_id = f"{self.prefix}-{next(self._counter)}"
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)

        self.scheduler.add_job(
            handler,
            trigger=DateTrigger(run_date=run_date, timezone=timezone.utc),
            args=[payload],
            id=task_id,
            misfire_grace_time=None,  # a late retry is still a retry
            replace_existing=False,
        )
        logger.debug(f"Scheduled {task_id} to run at {run_date.isoformat()}")
        return task_id

    def cancel(self, task_id: str) -> bool:
        try:
            self.scheduler.remove_job(task_id)
        except JobLookupError:
            return False
        return True

    def pending_count(self) -> int:
        return len(self.scheduler.get_jobs())

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Export task scheduler started")

    def shutdown(self) -> None:
        if self.scheduler.running:
            pending = self.pending_count()
            self.scheduler.shutdown(wait=False)
            if pending:
                logger.warning(f"Export task scheduler stopped with {pending} pending retries")
            else:
                logger.info("Export task scheduler stopped")
