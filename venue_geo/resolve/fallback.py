"""Default jurisdiction used when a venue cannot be geolocated."""
from __future__ import annotations

from dataclasses import dataclass

from venue_geo.geo.point import GeoPoint
from venue_geo.resolve.nearest import SOURCE_BOSTON_FALLBACK, ResolutionResult


@dataclass(frozen=True)
class FallbackPolicy:
    """A fixed hierarchy leaf substituted whenever resolution is impossible."""

    city_id: str
    city_name: str
    division_id: str
    division_name: str
    region_id: str
    region_name: str
    point: GeoPoint

    def get_default(self) -> ResolutionResult:
        return ResolutionResult(
            city_id=self.city_id,
            city_name=self.city_name,
            division_id=self.division_id,
            region_id=self.region_id,
            distance_km=None,
            source=SOURCE_BOSTON_FALLBACK,
        )


BOSTON_FALLBACK = FallbackPolicy(
    city_id="64f26a9f75bfc0db12ed7a1e",
    city_name="Boston",
    division_id="64f26a9f75bfc0db12ed7a15",
    division_name="Massachusetts",
    region_id="64f26a9f75bfc0db12ed7a12",
    region_name="New England",
    point=GeoPoint(longitude=-71.0589, latitude=42.3601),
)
