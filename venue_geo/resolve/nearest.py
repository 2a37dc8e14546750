"""Nearest-city resolution for arbitrary coordinates."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from venue_geo.errors import NotFoundError
from venue_geo.geo.point import GeoPoint
from venue_geo.hierarchy.store import LocationHierarchyStore

LOGGER = structlog.get_logger(__name__)

SOURCE_CITY = "city"
SOURCE_NEAREST_CITY = "nearest_city"
SOURCE_BOSTON_FALLBACK = "boston_fallback"


@dataclass(frozen=True)
class ResolutionResult:
    """Outcome of a single resolution call. Never persisted."""

    city_id: str
    city_name: str
    division_id: Optional[str]
    region_id: Optional[str]
    distance_km: Optional[float]
    source: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "masteredCityId": self.city_id,
            "masteredCityName": self.city_name,
            "masteredDivisionId": self.division_id or "",
            "masteredRegionId": self.region_id or "",
            "distance": self.distance_km,
            "source": self.source,
        }


class NearestCityResolver:
    """Maps a coordinate pair onto the closest known city.

    No fallback happens here; callers decide what to do with `NotFoundError`.
    """

    def __init__(self, store: LocationHierarchyStore) -> None:
        self._store = store

    async def resolve(self, longitude: Any, latitude: Any, *, app_id: Optional[str] = None) -> ResolutionResult:
        point = GeoPoint.of(longitude, latitude)
        matches = await self._store.find_nearest(point, 1, app_id=app_id)
        if not matches:
            raise NotFoundError("No nearby city found")
        match = matches[0]
        LOGGER.debug(
            "nearest_city_resolved",
            longitude=point.longitude,
            latitude=point.latitude,
            city_id=match.city_id,
            distance_km=match.distance_km,
        )
        return ResolutionResult(
            city_id=match.city_id,
            city_name=match.city_name,
            division_id=match.division_id,
            region_id=match.region_id,
            distance_km=match.distance_km,
            source=SOURCE_NEAREST_CITY,
        )
