"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from typing import Any, Dict, List, Tuple
from unittest.mock import AsyncMock

from core.config import Settings
from export.cache import MetadataCache
from export.connector import ExportConnector
from export.tasks import DelayedTaskQueue, TaskHandler
from export.warehouse import TableMetadata, WarehouseTable
from schemas.events import Event


class MemoryCache(MetadataCache):
    """In-memory MetadataCache that records every write"""

    def __init__(self, data: Dict[str, Any] = None):
        self.data = dict(data or {})
        self.writes: List[Tuple[str, Any]] = []

    async def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    async def set(self, key: str, value: Any) -> None:
        self.data[key] = value
        self.writes.append((key, value))


class InlineTaskQueue(DelayedTaskQueue):
    """
    Task queue double: tasks are recorded and fired on demand with
    run_pending(), ignoring their delay.
    """

    def __init__(self):
        self.pending: List[Tuple[str, float, TaskHandler, Dict[str, Any]]] = []
        self.delays: List[float] = []
        self.started = False
        self.stopped = False
        self._next_id = 0

    def schedule(self, delay_seconds: float, handler: TaskHandler, payload: Dict[str, Any]) -> str:
        self._next_id += 1
        task_id = f"task-{self._next_id}"
        self.pending.append((task_id, delay_seconds, handler, payload))
        self.delays.append(delay_seconds)
        return task_id

    def cancel(self, task_id: str) -> bool:
        for task in self.pending:
            if task[0] == task_id:
                self.pending.remove(task)
                return True
        return False

    def pending_count(self) -> int:
        return len(self.pending)

    def start(self) -> None:
        self.started = True

    def shutdown(self) -> None:
        self.stopped = True

    async def run_pending(self) -> int:
        """Fire tasks (including ones scheduled while firing) until none are left"""
        fired = 0
        while self.pending:
            _, _, handler, payload = self.pending.pop(0)
            await handler(payload)
            fired += 1
        return fired


@pytest.fixture
def memory_cache():
    return MemoryCache()


@pytest.fixture
def task_queue():
    return InlineTaskQueue()


@pytest.fixture
def warehouse_table():
    """Mocked WarehouseTable holding an empty schema"""
    table = AsyncMock(spec=WarehouseTable)
    table.get_metadata.return_value = TableMetadata(fields=[])
    table.set_metadata.return_value = TableMetadata(fields=[])
    table.insert.return_value = None
    return table


@pytest.fixture
def export_settings():
    return Settings(
        _env_file=None,
        GOOGLE_CLOUD_KEY_JSON='{ "project_id": "test-project", "foo": "some secret stuff" }',
        GOOGLE_CLOUD_KEY_FILE=None,
        BQ_DATASET_ID="1234",
        BQ_TABLE_ID="1234",
        EXPORT_EVENTS_TO_IGNORE="ignore me",
        EXPORT_ELEMENTS_ON_ANY_EVENT=False,
        EXPORT_EVENTS_BUFFER_BYTES=1024 * 1024,
        EXPORT_EVENTS_BUFFER_SECONDS=30,
    )


@pytest_asyncio.fixture
async def connector(export_settings, memory_cache, task_queue, warehouse_table):
    """Connector that completed setup against the mocked table"""
    connector = ExportConnector(
        settings=export_settings,
        cache=memory_cache,
        task_queue=task_queue,
        table=warehouse_table,
    )
    await connector.setup()
    warehouse_table.reset_mock()

    yield connector

    await connector.close()


@pytest.fixture
def event_payloads():
    """Raw events as delivered by the ingestion pipeline"""
    return [
        {
            "event": "test",
            "properties": {},
            "distinct_id": "did1",
            "team_id": 1,
            "uuid": "37114ebb-7b13-4301-b849-0d0bd4d5c7e5",
            "ip": "127.0.0.1",
            "timestamp": "2022-08-18T15:42:32.597Z",
        },
        {
            "event": "test2",
            "properties": {},
            "distinct_id": "did1",
            "team_id": 1,
            "uuid": "37114ebb-7b13-4301-b859-0d0bd4d5c7e5",
            "ip": "127.0.0.1",
            "timestamp": "2022-08-18T15:42:32.597Z",
            "elements": [{"attr_id": "haha"}],
        },
    ]


@pytest.fixture
def events(event_payloads):
    return [Event.parse_obj(payload) for payload in event_payloads]


@pytest.fixture
def ignored_event():
    return Event.parse_obj({
        "event": "ignore me",
        "properties": {},
        "distinct_id": "did1",
        "team_id": 1,
        "uuid": "37114ebb-7b13-4301-b849-0d0bd4d5c7e5",
        "ip": "127.0.0.1",
        "timestamp": "2022-08-18T15:42:32.597Z",
    })
