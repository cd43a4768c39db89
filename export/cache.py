"""
Key-value cache for the table schema memo
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from datetime import datetime, timezone
import logging

from models.cache_entry import CacheEntry

logger = logging.getLogger(__name__)


class MetadataCache(ABC):
    @abstractmethod
    async def get(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        pass


class SQLMetadataCache(MetadataCache):
    """
    Cache persisted in the cache_entries table.

    Writes are idempotent upserts (INSERT ... ON CONFLICT DO UPDATE), so
    several workers refreshing the same key never conflict.
    """

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def get(self, key: str, default: Any = None) -> Any:
        async with self.session_maker() as session:
            result = await session.execute(
                select(CacheEntry).where(CacheEntry.key == key)
            )
            entry: Optional[CacheEntry] = result.scalar_one_or_none()

        if entry is None or entry.value is None:
            return default
        return entry.value

    async def set(self, key: str, value: Any) -> None:
        async with self.session_maker() as session:
            await self._upsert(session, key, value)

    @staticmethod
    async def _upsert(session: AsyncSession, key: str, value: Any) -> None:
        now = datetime.now(timezone.utc)
        stmt = insert(CacheEntry).values(key=key, value=value, created_at=now, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={
                "value": stmt.excluded.value,
                "updated_at": stmt.excluded.updated_at,
            }
        )

        await session.execute(stmt)
        await session.commit()
        logger.debug(f"Cache entry {key} updated")
