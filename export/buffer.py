"""
Size and time bounded buffer that hands accumulated items to a flush callback
"""

from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar
import asyncio
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")

FlushCallback = Callable[[List[Any]], Awaitable[Any]]


class ExportBuffer(Generic[T]):
    """
    Accumulate items until a byte limit or a timeout is reached.

    Flush triggers:
    - running size >= limit_bytes, checked on every add
    - timeout_seconds after the oldest unflushed item was added

    The pending items are swapped out under the lock before the callback
    runs, so items added while a flush is in progress start a new batch.
    """

    def __init__(self, limit_bytes: int, timeout_seconds: float, on_flush: FlushCallback):
        if limit_bytes <= 0:
            raise ValueError("limit_bytes must be positive")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

        self.limit_bytes = limit_bytes
        self.timeout_seconds = timeout_seconds
        self.on_flush = on_flush

        self._items: List[T] = []
        self._size_bytes = 0
        self._lock = asyncio.Lock()
        self._timer: Optional[asyncio.Task] = None
        # timer task that already took a batch and is inside on_flush
        self._timed_flush: Optional[asyncio.Task] = None

    @property
    def size_bytes(self) -> int:
        return self._size_bytes

    @property
    def pending_count(self) -> int:
        return len(self._items)

    async def add(self, item: T, size_bytes: int) -> bool:
        """
        Add an item. Returns True if this add triggered a flush.

        Errors raised by the flush callback propagate to the caller.
        """
        async with self._lock:
            self._items.append(item)
            self._size_bytes += size_bytes

            if self._size_bytes >= self.limit_bytes:
                batch = self._take()
            else:
                batch = None
                if self._timer is None:
                    self._timer = asyncio.create_task(self._flush_after_timeout())

        if batch is None:
            return False

        logger.debug(f"Buffer limit of {self.limit_bytes} bytes reached, flushing {len(batch)} items")
        await self.on_flush(batch)
        return True

    async def flush(self) -> int:
        """Flush whatever is pending; returns the number of items flushed"""
        async with self._lock:
            batch = self._take()

        if not batch:
            return 0

        await self.on_flush(batch)
        return len(batch)

    async def close(self) -> int:
        """Stop the timer, flush the remaining items and wait for a timed flush in progress"""
        flushed = await self.flush()

        running = self._timed_flush
        if running is not None and not running.done():
            await running

        return flushed

    def _take(self) -> List[T]:
        # Caller holds the lock
        batch = self._items
        self._items = []
        self._size_bytes = 0

        timer = self._timer
        self._timer = None
        if timer is not None:
            if timer is asyncio.current_task():
                self._timed_flush = timer
            else:
                timer.cancel()

        return batch

    async def _flush_after_timeout(self) -> None:
        await asyncio.sleep(self.timeout_seconds)

        try:
            flushed = await self.flush()
        except Exception:
            # the timer task has no caller to raise to
            logger.exception("Timed buffer flush failed")
            return
        finally:
            if self._timed_flush is asyncio.current_task():
                self._timed_flush = None

        if flushed:
            logger.debug(f"Buffer timeout of {self.timeout_seconds}s reached, flushed {flushed} items")
