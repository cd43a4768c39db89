"""
Unit tests for the APScheduler-backed delayed task queue
"""

import asyncio
import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock
from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.date import DateTrigger
from export.tasks import APSchedulerTaskQueue


async def handler(payload):
    return payload


class TestAPSchedulerTaskQueue:
    """Test job registration against a mocked scheduler"""

    def test_schedule_adds_one_shot_job(self):
        scheduler = MagicMock()
        queue = APSchedulerTaskQueue(scheduler=scheduler)
        before = datetime.now(timezone.utc)

        task_id = queue.schedule(3.0, handler, {"batch_id": 1})

        assert task_id == "export-task-1"
        args, kwargs = scheduler.add_job.call_args
        assert args[0] is handler
        assert kwargs["args"] == [{"batch_id": 1}]
        assert kwargs["id"] == task_id
        assert kwargs["misfire_grace_time"] is None
        assert isinstance(kwargs["trigger"], DateTrigger)
        assert (kwargs["trigger"].run_date - before).total_seconds() >= 3.0

    def test_task_ids_are_unique(self):
        queue = APSchedulerTaskQueue(scheduler=MagicMock())

        ids = {queue.schedule(1.0, handler, {}) for _ in range(3)}

        assert ids == {"export-task-1", "export-task-2", "export-task-3"}

    def test_cancel(self):
        scheduler = MagicMock()
        queue = APSchedulerTaskQueue(scheduler=scheduler)

        assert queue.cancel("export-task-1") is True
        scheduler.remove_job.assert_called_once_with("export-task-1")

    def test_cancel_unknown_task(self):
        scheduler = MagicMock()
        scheduler.remove_job.side_effect = JobLookupError("export-task-9")
        queue = APSchedulerTaskQueue(scheduler=scheduler)

        assert queue.cancel("export-task-9") is False

    def test_pending_count(self):
        scheduler = MagicMock()
        scheduler.get_jobs.return_value = [MagicMock(), MagicMock()]

        assert APSchedulerTaskQueue(scheduler=scheduler).pending_count() == 2

    def test_start_and_shutdown(self):
        scheduler = MagicMock()
        scheduler.running = False
        queue = APSchedulerTaskQueue(scheduler=scheduler)

        queue.start()
        scheduler.start.assert_called_once()

        scheduler.running = True
        scheduler.get_jobs.return_value = []
        queue.shutdown()
        scheduler.shutdown.assert_called_once_with(wait=False)


@pytest.mark.asyncio
async def test_scheduled_handler_runs_with_payload():
    fired = asyncio.Event()
    received = []

    async def on_retry(payload):
        received.append(payload)
        fired.set()

    queue = APSchedulerTaskQueue()
    queue.start()
    try:
        queue.schedule(0.05, on_retry, {"batch_id": 7, "retry_count": 1})
        await asyncio.wait_for(fired.wait(), timeout=5)
    finally:
        queue.shutdown()

    assert received == [{"batch_id": 7, "retry_count": 1}]
