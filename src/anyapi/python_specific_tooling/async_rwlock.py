import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class AsyncRWLock:
    """Reader-writer lock guarding one owner's registrations.

    Lookups share the read side. A writer waits until active readers
    drain, and while any writer waits no new reader is admitted, so a
    steady stream of lookups cannot hold off an upsert.
    """

    def __init__(self) -> None:
        self._condition = asyncio.Condition()
        self._readers = 0
        self._writers_waiting = 0
        self._writer_active = False

    @property
    def readers(self) -> int:
        """Number of tasks currently holding the read side."""
        return self._readers

    @property
    def write_locked(self) -> bool:
        return self._writer_active

    def _can_read(self) -> bool:
        return not self._writer_active and self._writers_waiting == 0

    def _can_write(self) -> bool:
        return not self._writer_active and self._readers == 0

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._condition:
            await self._condition.wait_for(self._can_read)
            self._readers += 1
        try:
            yield
        finally:
            async with self._condition:
                self._readers -= 1
                if self._readers == 0:
                    self._condition.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._condition:
            self._writers_waiting += 1
            try:
                await self._condition.wait_for(self._can_write)
            finally:
                self._writers_waiting -= 1
                # A cancelled writer may have been the one holding readers back
                self._condition.notify_all()
            self._writer_active = True
        try:
            yield
        finally:
            async with self._condition:
                self._writer_active = False
                self._condition.notify_all()
