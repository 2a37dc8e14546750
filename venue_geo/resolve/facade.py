"""Geolocation helpers used while authoring venues.

Every entry point here degrades to the fallback location instead of raising,
so that creating a venue never depends on the health of the hierarchy
backend. The one exception is `prepare_venue_for_submission`, which is pure
and only rejects coordinates that cannot be parsed.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from venue_geo.errors import GeoError
from venue_geo.geo.point import GeoPoint, has_value
from venue_geo.hierarchy.store import LocationHierarchyStore
from venue_geo.observability.metrics import MetricsRegistry
from venue_geo.resolve.fallback import BOSTON_FALLBACK, FallbackPolicy
from venue_geo.resolve.nearest import (
    SOURCE_BOSTON_FALLBACK,
    SOURCE_CITY,
    NearestCityResolver,
    ResolutionResult,
)

LOGGER = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CityCoordinates:
    latitude: float
    longitude: float
    source: str

    def as_dict(self) -> Dict[str, Any]:
        return {"latitude": self.latitude, "longitude": self.longitude, "source": self.source}


class GeolocationResolver:
    """Facade over nearest-city resolution with a fixed fallback."""

    def __init__(
        self,
        store: LocationHierarchyStore,
        *,
        fallback: FallbackPolicy = BOSTON_FALLBACK,
        resolver: Optional[NearestCityResolver] = None,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._store = store
        self._fallback = fallback
        self._resolver = resolver or NearestCityResolver(store)
        self._metrics = metrics

    @property
    def fallback(self) -> FallbackPolicy:
        return self._fallback

    def _fallback_coordinates(self) -> CityCoordinates:
        if self._metrics is not None:
            self._metrics.incr("fallbacks_used")
        return CityCoordinates(
            latitude=self._fallback.point.latitude,
            longitude=self._fallback.point.longitude,
            source=SOURCE_BOSTON_FALLBACK,
        )

    async def get_city_coordinates(self, city_id: Optional[str], *, app_id: Optional[str] = None) -> CityCoordinates:
        """Return the city's coordinates, or the fallback pair on any failure."""
        try:
            if not city_id:
                raise GeoError("City ID is required")
            city = await self._store.find_city_by_id(city_id, app_id=app_id)
            if city is None:
                raise GeoError(f"City not found: {city_id}")
            point = city.point
            if point is None:
                raise GeoError("City coordinates not available")
        except Exception as exc:  # degrade to the fallback on any lookup failure
            LOGGER.warning("fallback_used", city_id=city_id, error=exc.__class__.__name__, reason=str(exc))
            return self._fallback_coordinates()
        return CityCoordinates(latitude=point.latitude, longitude=point.longitude, source=SOURCE_CITY)

    resolve_for_city = get_city_coordinates

    async def find_nearest_city(
        self,
        longitude: Any,
        latitude: Any,
        *,
        app_id: Optional[str] = None,
    ) -> ResolutionResult:
        """Resolve the nearest city, substituting the fallback when that fails."""
        try:
            return await self._resolver.resolve(longitude, latitude, app_id=app_id)
        except Exception as exc:  # degrade to the fallback on any resolution failure
            LOGGER.warning(
                "fallback_used",
                longitude=longitude,
                latitude=latitude,
                error=exc.__class__.__name__,
                reason=str(exc),
            )
            if self._metrics is not None:
                self._metrics.incr("fallbacks_used")
            return self._fallback.get_default()

    async def ensure_venue_has_coordinates(
        self,
        venue_draft: Dict[str, Any],
        *,
        app_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        if has_value(venue_draft.get("latitude")) and has_value(venue_draft.get("longitude")):
            return venue_draft
        city_id = venue_draft.get("masteredCityId")
        if not city_id:
            return venue_draft
        coordinates = await self.get_city_coordinates(city_id, app_id=app_id)
        return {
            **venue_draft,
            "latitude": coordinates.latitude,
            "longitude": coordinates.longitude,
            "coordinatesSource": coordinates.source,
        }

    ensure_coordinates = ensure_venue_has_coordinates

    def prepare_venue_for_submission(self, venue_data: Dict[str, Any]) -> Dict[str, Any]:
        """Fill in fallback coordinates and derive the GeoJSON point. No I/O."""
        prepared = dict(venue_data)
        has_coordinates = has_value(prepared.get("latitude")) and has_value(prepared.get("longitude"))
        if not has_coordinates and prepared.get("masteredCityId"):
            prepared["latitude"] = self._fallback.point.latitude
            prepared["longitude"] = self._fallback.point.longitude
            prepared["coordinatesSource"] = SOURCE_BOSTON_FALLBACK
            has_coordinates = True
        if has_coordinates:
            point = GeoPoint.of(prepared["longitude"], prepared["latitude"])
            prepared["geolocation"] = point.to_geojson()
        return prepared

    prepare_for_submission = prepare_venue_for_submission
