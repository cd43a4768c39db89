"""
Replay a newline-delimited JSON file of events into BigQuery.

Usage:
    python scripts/replay_events.py events.ndjson [--batch-size 500]

Events go through the buffer-free batch path, so each chunk is one export
batch. Retries keep running until every scheduled retry has fired or the
process is interrupted.
"""

import argparse
import asyncio
import json
import logging
import sys
import os

# Add current directory to path to allow imports from core, export, etc.
sys.path.append(os.getcwd())

from pydantic import ValidationError
from core.config import settings
from core.database import async_session_maker, engine
from core.logging import setup_logging
from export.cache import SQLMetadataCache
from export.connector import ExportConnector
from export.tasks import APSchedulerTaskQueue
from schemas.events import Event

logger = logging.getLogger(__name__)


def read_events(path: str):
    with open(path, encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield Event.parse_obj(json.loads(line))
            except (ValueError, ValidationError) as e:
                logger.warning(f"Skipping line {line_number}: {e}")


def chunked(items, size):
    chunk = []
    for item in items:
        chunk.append(item)
        if len(chunk) >= size:
            yield chunk
            chunk = []
    if chunk:
        yield chunk


async def replay(path: str, batch_size: int):
    connector = ExportConnector(
        settings=settings,
        cache=SQLMetadataCache(async_session_maker),
        task_queue=APSchedulerTaskQueue(),
    )

    try:
        await connector.setup()

        total = 0
        for chunk in chunked(read_events(path), batch_size):
            state = await connector.export_events(chunk)
            total += len(chunk)
            logger.info(f"Replayed {total} events (last batch: {state.value if state else 'ignored'})")

        while connector.task_queue.pending_count():
            logger.info(f"Waiting for {connector.task_queue.pending_count()} pending retries")
            await asyncio.sleep(5)

        logger.info(f"Replay finished: {connector.stats()}")

    except Exception as e:
        logger.error(f"Replay failed: {str(e)}")
        sys.exit(1)
    finally:
        await connector.close()
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Replay NDJSON events into BigQuery")
    parser.add_argument("path")
    parser.add_argument("--batch-size", type=int, default=500)
    args = parser.parse_args()

    setup_logging()
    asyncio.run(replay(args.path, args.batch_size))
