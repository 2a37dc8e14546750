"""Work items drained by the validation worker."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class VenueJob:
    """Validation of a single venue. Attempted exactly once."""

    venue_id: str
    app_id: str
    chunk_index: int
    position: int
    status: str = "pending"
    last_error: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    def mark_started(self) -> None:
        """Transition the job into the in-progress state."""
        self.status = "in_progress"

    def mark_succeeded(self) -> None:
        """Mark the job as completed, whatever outcome it was classified with."""
        self.status = "succeeded"
        self.finished_at = _utcnow()

    def mark_failed(self, error: Exception | str) -> None:
        """Record a failure and capture the error message."""
        self.status = "failed"
        self.last_error = str(error)
        self.finished_at = _utcnow()


@dataclass(frozen=True)
class ChunkPause:
    """Scheduled backpressure pause placed between two chunks."""

    after_chunk: int
    seconds: float
