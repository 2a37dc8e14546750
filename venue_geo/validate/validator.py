"""Batch validation of stored venue coordinates against the city hierarchy."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Sequence

import httpx
import structlog
from pydantic import ValidationError

from venue_geo.errors import InputError, NotFoundError, TransportError
from venue_geo.hierarchy.models import Venue
from venue_geo.observability.metrics import MetricsRegistry, record_duration
from venue_geo.observability.tracing import venue_context
from venue_geo.orchestrator.jobs import ChunkPause, VenueJob
from venue_geo.orchestrator.queue import WorkQueue
from venue_geo.orchestrator.scheduler import plan_jobs
from venue_geo.resolve.nearest import NearestCityResolver
from venue_geo.validate.outcomes import BatchReport, Outcome, ReasonCode, VenueValidationDetail

LOGGER = structlog.get_logger(__name__)

MAX_DISTANCE_KM = 5.0
CHUNK_DELAY_SECONDS = 1.0
DEFAULT_BATCH_SIZE = 10

Sleep = Callable[[float], Awaitable[None]]


class VenueRepository(Protocol):
    async def get_venue(self, venue_id: str, app_id: str) -> Optional[Dict[str, Any]]: ...

    async def put_venue(self, venue_id: str, app_id: str, patch: Dict[str, Any]) -> Dict[str, Any]: ...


def new_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")


class VenueGeolocationValidator:
    """Recomputes `isValidVenueGeolocation` for a list of venues.

    Venues are processed one at a time, in input order, by a single worker
    draining a work queue. A pause marker sits between consecutive chunks so
    the backend sees at most `batch_size` venues per `pause_seconds`.
    """

    def __init__(
        self,
        venues: VenueRepository,
        resolver: NearestCityResolver,
        *,
        threshold_km: float = MAX_DISTANCE_KM,
        pause_seconds: float = CHUNK_DELAY_SECONDS,
        sleep: Sleep = asyncio.sleep,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._venues = venues
        self._resolver = resolver
        self._threshold_km = threshold_km
        self._pause_seconds = pause_seconds
        self._sleep = sleep
        self._metrics = metrics or MetricsRegistry()

    @property
    def metrics(self) -> MetricsRegistry:
        return self._metrics

    async def validate(
        self,
        venue_ids: Sequence[str],
        app_id: str = "1",
        batch_size: int = DEFAULT_BATCH_SIZE,
        *,
        run_id: Optional[str] = None,
    ) -> BatchReport:
        """Validate every venue exactly once and return the aggregate report."""
        items = plan_jobs(
            venue_ids=venue_ids,
            app_id=app_id,
            batch_size=batch_size,
            pause_seconds=self._pause_seconds,
        )
        run_id = run_id or new_run_id()
        report = BatchReport()
        if not items:
            return report

        queue = WorkQueue()
        await queue.extend(items)
        LOGGER.info("validation_started", run_id=run_id, app_id=app_id, venues=len(venue_ids), batch_size=batch_size)
        with record_duration(self._metrics, "run_duration_ms"):
            await self._drain(queue, report, run_id)
        self._metrics.incr("chunks_processed")
        LOGGER.info(
            "validation_finished",
            run_id=run_id,
            validated=report.validated,
            invalid=report.invalid,
            failed=report.failed,
        )
        return report

    validate_batch = validate

    async def _drain(self, queue: WorkQueue, report: BatchReport, run_id: str) -> None:
        while not queue.empty():
            item = await queue.dequeue()
            try:
                if isinstance(item, ChunkPause):
                    self._metrics.incr("chunks_processed")
                    LOGGER.debug("chunk_pause", after_chunk=item.after_chunk, seconds=item.seconds)
                    await self._sleep(item.seconds)
                    continue
                detail = await self._process(item, run_id)
                report.add(detail)
                self._metrics.incr(f"venues_{detail.outcome.bucket}")
            finally:
                queue.task_done()

    async def _process(self, job: VenueJob, run_id: str) -> VenueValidationDetail:
        job.mark_started()
        with venue_context(run_id=run_id, app_id=job.app_id, venue_id=job.venue_id):
            try:
                detail = await self._classify(job)
            except (TransportError, httpx.HTTPError) as exc:
                job.mark_failed(exc)
                LOGGER.warning("venue_validation_failed", reason=str(exc))
                detail = VenueValidationDetail(
                    venue_id=job.venue_id,
                    outcome=Outcome.FAILED,
                    reason_code=ReasonCode.TRANSPORT_ERROR,
                    reason=str(exc) or exc.__class__.__name__,
                )
            except Exception as exc:  # one venue must never abort the batch
                job.mark_failed(exc)
                LOGGER.exception("venue_validation_error")
                detail = VenueValidationDetail(
                    venue_id=job.venue_id,
                    outcome=Outcome.FAILED,
                    reason_code=ReasonCode.UNEXPECTED_ERROR,
                    reason=str(exc) or exc.__class__.__name__,
                )
            else:
                if detail.outcome is Outcome.FAILED:
                    job.mark_failed(detail.reason)
                else:
                    job.mark_succeeded()
                LOGGER.info("venue_classified", status=detail.outcome.value, reason=detail.reason)
        return detail

    async def _mark(self, job: VenueJob, patch: Dict[str, Any]) -> None:
        await self._venues.put_venue(job.venue_id, job.app_id, patch)

    async def _classify(self, job: VenueJob) -> VenueValidationDetail:
        raw = await self._venues.get_venue(job.venue_id, job.app_id)
        if raw is None:
            return VenueValidationDetail(
                venue_id=job.venue_id,
                outcome=Outcome.FAILED,
                reason_code=ReasonCode.VENUE_NOT_FOUND,
                reason="Venue not found",
            )
        try:
            venue = Venue.model_validate(raw)
        except ValidationError as exc:
            raise TransportError(f"Malformed venue payload: {exc}") from exc

        coordinates = venue.raw_coordinates()
        if coordinates is None:
            await self._mark(job, {"isValidVenueGeolocation": False})
            return VenueValidationDetail(
                venue_id=job.venue_id,
                venue_name=venue.name,
                outcome=Outcome.INVALID_MISSING_COORDINATES,
                reason_code=ReasonCode.MISSING_COORDINATES,
                reason="Missing coordinates",
            )

        longitude, latitude = coordinates
        try:
            result = await self._resolver.resolve(longitude, latitude, app_id=job.app_id)
        except InputError as exc:
            await self._mark(job, {"isValidVenueGeolocation": False})
            return VenueValidationDetail(
                venue_id=job.venue_id,
                venue_name=venue.name,
                outcome=Outcome.INVALID_MISSING_COORDINATES,
                reason_code=ReasonCode.INVALID_COORDINATES,
                reason=f"Invalid coordinates: {exc}",
            )
        except NotFoundError:
            await self._mark(job, {"isValidVenueGeolocation": False})
            return VenueValidationDetail(
                venue_id=job.venue_id,
                venue_name=venue.name,
                outcome=Outcome.INVALID_TOO_FAR,
                reason_code=ReasonCode.NO_CITY_FOUND,
                reason="No nearby city found",
            )

        distance = result.distance_km if result.distance_km is not None else float("inf")
        if distance > self._threshold_km:
            await self._mark(job, {"isValidVenueGeolocation": False})
            return VenueValidationDetail(
                venue_id=job.venue_id,
                venue_name=venue.name,
                outcome=Outcome.INVALID_TOO_FAR,
                reason_code=ReasonCode.TOO_FAR,
                reason=f"Too far from nearest city {result.city_name} ({distance:.2f} km)",
                city_id=result.city_id,
                city_name=result.city_name,
                distance_km=distance,
            )

        patch: Dict[str, Any] = {"isValidVenueGeolocation": True}
        if not venue.city_id:
            patch["masteredCityId"] = result.city_id
        await self._mark(job, patch)
        return VenueValidationDetail(
            venue_id=job.venue_id,
            venue_name=venue.name,
            outcome=Outcome.VALIDATED,
            reason_code=ReasonCode.WITHIN_THRESHOLD,
            reason=f"Within {self._threshold_km:g} km of {result.city_name} ({distance:.2f} km)",
            city_id=result.city_id,
            city_name=result.city_name,
            distance_km=distance,
        )
