"""Venue and hierarchy operations against the backend, with retries."""
from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import orjson
import structlog

from venue_geo.backend.session import BackendSession, BackendSettings
from venue_geo.errors import TransportError
from venue_geo.geo.point import GeoPoint
from venue_geo.observability.metrics import MetricsRegistry
from venue_geo.observability.tracing import backend_span, log_backend_result, log_retry

LOGGER = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class VenueBackend:
    """The three collaborator operations the validator needs, plus city lookup."""

    def __init__(
        self,
        session: BackendSession,
        settings: BackendSettings,
        *,
        metrics: Optional[MetricsRegistry] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._session = session
        self._settings = settings
        self._metrics = metrics or MetricsRegistry()
        self._sleep = sleep

    async def _send(
        self,
        operation: str,
        method: str,
        url: str,
        *,
        params: Dict[str, Any],
        body: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        content = orjson.dumps(body) if body is not None else None
        headers = {"Content-Type": "application/json"} if body is not None else None
        delay = 1.0
        attempts = self._settings.max_attempts
        attempt = 0
        while True:
            attempt += 1
            try:
                with backend_span(operation, method=method, path=url):
                    start = time.perf_counter()
                    self._metrics.incr("backend_requests")
                    response = await self._session.request(
                        method, url, params=params, content=content, headers=headers
                    )
                elapsed_ms = int((time.perf_counter() - start) * 1000)
                log_backend_result(operation, status=response.status_code, elapsed_ms=elapsed_ms)
                self._metrics.incr(f"http_{response.status_code // 100}xx")
                return response
            except httpx.TransportError as exc:
                reason = str(exc) or exc.__class__.__name__
                exhausted = attempt >= attempts
                log_retry(
                    operation,
                    attempt=attempt,
                    max_attempts=attempts,
                    delay_seconds=None if exhausted else delay,
                    reason=reason,
                )
                if exhausted:
                    raise TransportError(
                        reason,
                        timeout=isinstance(exc, httpx.TimeoutException),
                    ) from exc
                self._metrics.incr("backend_retries")
                await self._sleep(delay)
                delay *= 2

    @staticmethod
    def _decode(response: httpx.Response, *, allow_missing: bool) -> Any:
        if allow_missing and response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.is_error:
            message = response.reason_phrase
            try:
                payload = orjson.loads(response.content)
            except orjson.JSONDecodeError:
                payload = None
            if isinstance(payload, dict):
                message = str(payload.get("message") or payload.get("error") or message)
            raise TransportError(
                f"Backend returned {response.status_code}: {message}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError as exc:
            raise TransportError(f"Invalid JSON from backend: {exc}") from exc

    async def get_venue(self, venue_id: str, app_id: str) -> Optional[Dict[str, Any]]:
        url = self._settings.venue_path.format(venue_id=venue_id)
        response = await self._send("get_venue", "GET", url, params={"appId": app_id})
        payload = self._decode(response, allow_missing=True)
        if payload is not None and not isinstance(payload, dict):
            raise TransportError(f"Unexpected venue payload type: {type(payload).__name__}")
        return payload or None

    async def put_venue(self, venue_id: str, app_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        url = self._settings.venue_path.format(venue_id=venue_id)
        body = {**patch, "appId": app_id}
        response = await self._send("put_venue", "PUT", url, params={"appId": app_id}, body=body)
        payload = self._decode(response, allow_missing=False)
        LOGGER.debug("venue_updated", venue_id=venue_id, fields=sorted(patch))
        return payload if isinstance(payload, dict) else {}

    async def query_nearest_cities(self, point: GeoPoint, app_id: str, limit: int) -> List[Dict[str, Any]]:
        params = {
            "appId": app_id,
            "longitude": point.longitude,
            "latitude": point.latitude,
            "limit": limit,
        }
        response = await self._send("query_nearest_cities", "GET", self._settings.nearest_city_path, params=params)
        payload = self._decode(response, allow_missing=False)
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise TransportError(f"Unexpected nearest-city payload type: {type(payload).__name__}")
        return payload

    async def get_city(self, city_id: str, app_id: str) -> Optional[Dict[str, Any]]:
        url = self._settings.city_path.format(city_id=city_id)
        response = await self._send("get_city", "GET", url, params={"appId": app_id})
        payload = self._decode(response, allow_missing=True)
        return payload if isinstance(payload, dict) else None
