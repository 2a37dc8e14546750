"""Per-run counters for validation batches and backend traffic."""
from __future__ import annotations

import contextlib
import time
from pathlib import Path
from typing import Dict, Iterator

import orjson
import structlog

LOGGER = structlog.get_logger(__name__)

VENUE_COUNTERS = ("venues_validated", "venues_invalid", "venues_failed", "chunks_processed")
BACKEND_COUNTERS = ("backend_requests", "backend_retries", "http_2xx", "http_3xx", "http_4xx", "http_5xx")
RESOLVER_COUNTERS = ("fallbacks_used",)


class MetricsRegistry:
    """Counters for one validation run or lookup session.

    Every well-known counter is present from the start so exported files
    always carry the same keys, even for a run that never touched the backend.
    """

    def __init__(self) -> None:
        self._counters: Dict[str, int] = {
            name: 0 for name in (*VENUE_COUNTERS, *BACKEND_COUNTERS, *RESOLVER_COUNTERS, "run_duration_ms")
        }

    def incr(self, name: str, value: int = 1) -> None:
        self._counters[name] = self._counters.get(name, 0) + value

    def get(self, name: str) -> int:
        return self._counters.get(name, 0)

    def snapshot(self) -> Dict[str, int]:
        return dict(self._counters)

    def export(self, *, path: Path, run_id: str) -> Path:
        """Write the counters for `run_id` as JSON, creating parent directories."""
        path.parent.mkdir(parents=True, exist_ok=True)
        document = {
            "run_id": run_id,
            "exported_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "counters": self.snapshot(),
        }
        path.write_bytes(orjson.dumps(document, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS))
        LOGGER.debug("metrics_exported", path=str(path), run_id=run_id)
        return path


@contextlib.contextmanager
def record_duration(registry: MetricsRegistry, metric_name: str) -> Iterator[None]:
    """Add the wall-clock milliseconds spent inside the block to `metric_name`."""
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        registry.incr(metric_name, elapsed_ms)
        LOGGER.info("duration_recorded", metric=metric_name, duration_ms=elapsed_ms)
