"""Turns a list of venue ids into chunked work items."""
from __future__ import annotations

from typing import List, Sequence

from venue_geo.errors import InputError
from venue_geo.orchestrator.jobs import ChunkPause, VenueJob
from venue_geo.orchestrator.queue import WorkItem


def plan_chunks(venue_ids: Sequence[str], batch_size: int) -> List[List[str]]:
    """Partition ids into consecutive chunks of at most `batch_size`."""
    if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size < 1:
        raise InputError(f"batch_size must be a positive integer, got {batch_size!r}")
    return [list(venue_ids[i:i + batch_size]) for i in range(0, len(venue_ids), batch_size)]


def plan_jobs(
    *,
    venue_ids: Sequence[str],
    app_id: str,
    batch_size: int,
    pause_seconds: float,
) -> List[WorkItem]:
    """Produce jobs in input order, with a pause after every chunk but the last."""
    chunks = plan_chunks(venue_ids, batch_size)
    items: List[WorkItem] = []
    position = 0
    for index, chunk in enumerate(chunks):
        for venue_id in chunk:
            items.append(VenueJob(venue_id=venue_id, app_id=app_id, chunk_index=index, position=position))
            position += 1
        if index < len(chunks) - 1:
            items.append(ChunkPause(after_chunk=index, seconds=pause_seconds))
    return items
