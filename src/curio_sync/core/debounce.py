"""Per-key debouncing of remote writes."""

import asyncio
import functools
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from ..utils.logging import get_logger

logger = get_logger(__name__)

WriteFactory = Callable[[], Awaitable[None]]


class DebouncedWriter:
    """Coalesce bursts of writes per key into one trailing write.

    Scheduling a key that is still waiting replaces its pending write. Once
    a write has started it runs to completion, and the next write for the
    same key waits for it, so writes for one key reach the server in order.
    Different keys never wait on each other.
    """

    def __init__(self, delay: float = 1.5):
        self.delay = delay
        self._scheduled: Dict[str, Tuple[asyncio.Task, WriteFactory]] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}

    @property
    def pending_keys(self) -> List[str]:
        """Keys with a write that has not completed yet."""
        return list(dict.fromkeys([*self._scheduled, *self._in_flight]))

    def is_pending(self, key: str) -> bool:
        return key in self._scheduled or key in self._in_flight

    def schedule(self, key: str, factory: WriteFactory) -> None:
        """Schedule ``factory`` to run after the debounce window for ``key``."""
        self.cancel(key)
        task = asyncio.get_running_loop().create_task(self._fire_later(key, factory))
        self._scheduled[key] = (task, factory)

    def cancel(self, key: str) -> bool:
        """Drop a write that has not started. In-flight writes are left alone.

        Returns:
            True if a waiting write was cancelled
        """
        entry = self._scheduled.pop(key, None)
        if entry is None:
            return False
        entry[0].cancel()
        return True

    def run_now(self, key: str, factory: WriteFactory) -> asyncio.Task:
        """Replace any waiting write for ``key`` and start ``factory`` immediately.

        The new write still runs after any in-flight write for the same key.
        """
        self.cancel(key)
        return self._start(key, factory)

    async def _fire_later(self, key: str, factory: WriteFactory) -> None:
        await asyncio.sleep(self.delay)
        entry = self._scheduled.get(key)
        if entry is not None and entry[0] is asyncio.current_task():
            del self._scheduled[key]
        self._start(key, factory)

    def _start(self, key: str, factory: WriteFactory) -> asyncio.Task:
        previous = self._in_flight.get(key)
        task = asyncio.get_running_loop().create_task(self._run(key, factory, previous))
        self._in_flight[key] = task
        task.add_done_callback(functools.partial(self._forget, key))
        return task

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _run(self, key: str, factory: WriteFactory, previous: Optional[asyncio.Task]) -> None:
        if previous is not None:
            await asyncio.wait([previous])
        try:
            await factory()
        except Exception as e:
            logger.error("Debounced write failed", key=key, error=str(e))

    async def flush(self) -> None:
        """Start every waiting write now and wait for all writes to finish."""
        scheduled = list(self._scheduled.items())
        self._scheduled.clear()
        for key, (task, factory) in scheduled:
            task.cancel()
            self._start(key, factory)

        while True:
            running = [task for task in self._in_flight.values() if not task.done()]
            if not running:
                break
            await asyncio.wait(running)
