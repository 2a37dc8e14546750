"""Single-consumer work queue for venue validation."""
from __future__ import annotations

import asyncio
from typing import List, Union

from venue_geo.orchestrator.jobs import ChunkPause, VenueJob

WorkItem = Union[VenueJob, ChunkPause]


class WorkQueue:
    """FIFO of venue jobs and pause markers, drained by one worker."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[WorkItem] = asyncio.Queue()

    async def enqueue(self, item: WorkItem) -> None:
        """Add a job or pause marker to the tail of the queue."""
        await self._queue.put(item)

    async def extend(self, items: List[WorkItem]) -> None:
        for item in items:
            await self.enqueue(item)

    async def dequeue(self) -> WorkItem:
        """Obtain the next item, blocking until one is available."""
        return await self._queue.get()

    def task_done(self) -> None:
        """Mark the current item as complete."""
        self._queue.task_done()

    def empty(self) -> bool:
        """Return True when no items remain."""
        return self._queue.empty()

    def qsize(self) -> int:
        return self._queue.qsize()

    async def join(self) -> None:
        await self._queue.join()
