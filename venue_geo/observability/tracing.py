"""Tracing helpers for backend calls and per-venue validation."""
from __future__ import annotations

import contextlib
import time
from typing import Iterator, Optional

import structlog
from structlog.contextvars import bind_contextvars, reset_contextvars


def _logger():
    return structlog.get_logger("venue_geo.trace")


@contextlib.contextmanager
def venue_context(*, run_id: str, app_id: str, venue_id: str) -> Iterator[None]:
    """Bind the venue being validated for the duration of the block.

    On exit the previous values of these keys are restored; other bindings
    made by the caller are left alone.
    """
    tokens = bind_contextvars(run_id=run_id, app_id=app_id, venue_id=venue_id)
    try:
        yield
    finally:
        reset_contextvars(**tokens)


@contextlib.contextmanager
def backend_span(operation: str, *, method: str, path: str) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        _logger().debug("backend_span", operation=operation, method=method, path=path, elapsed_ms=elapsed_ms)


def log_retry(
    operation: str,
    *,
    attempt: int,
    max_attempts: int,
    delay_seconds: Optional[float],
    reason: str,
) -> None:
    """`delay_seconds` is None when no further attempt will be made."""
    _logger().warning(
        "backend_retry" if delay_seconds is not None else "backend_gave_up",
        operation=operation,
        attempt=attempt,
        max_attempts=max_attempts,
        delay_seconds=delay_seconds,
        reason=reason,
    )


def log_backend_result(operation: str, *, status: int, elapsed_ms: int) -> None:
    _logger().info("backend_result", operation=operation, status=status, elapsed_ms=elapsed_ms)
