"""Coordinate primitives and great-circle distance."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from venue_geo.errors import InputError

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GeoPoint:
    """Represents a validated coordinate pair."""

    longitude: float
    latitude: float

    @classmethod
    def of(cls, longitude: Any, latitude: Any) -> "GeoPoint":
        """Build a point, raising `InputError` for non-finite or out-of-range values."""
        lon = _to_finite(longitude, "longitude")
        lat = _to_finite(latitude, "latitude")
        if not -180.0 <= lon <= 180.0:
            raise InputError(f"longitude out of range: {lon}")
        if not -90.0 <= lat <= 90.0:
            raise InputError(f"latitude out of range: {lat}")
        return cls(longitude=lon, latitude=lat)

    def to_geojson(self) -> Dict[str, object]:
        """Return the GeoJSON point, longitude first."""
        return {"type": "Point", "coordinates": [self.longitude, self.latitude]}


def _to_finite(value: Any, name: str) -> float:
    if isinstance(value, bool) or value is None:
        raise InputError(f"{name} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise InputError(f"{name} must be a number, got {value!r}") from exc
    if not math.isfinite(number):
        raise InputError(f"{name} must be finite, got {value!r}")
    return number


def has_value(value: Any) -> bool:
    """True unless the coordinate field is unset or blank."""
    return value is not None and value != ""


def is_valid_point(longitude: Any, latitude: Any) -> bool:
    """Return True when the pair would be accepted by `GeoPoint.of`."""
    try:
        GeoPoint.of(longitude, latitude)
    except InputError:
        return False
    return True


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = (b.latitude - a.latitude) * math.pi / 180
    d_lon = (b.longitude - a.longitude) * math.pi / 180
    lat1 = a.latitude * math.pi / 180
    lat2 = b.latitude * math.pi / 180
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    h = min(h, 1.0)
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def point_from_geojson(payload: Optional[Dict[str, object]]) -> Optional[GeoPoint]:
    """Extract a point from a GeoJSON-like mapping, or None when unusable."""
    if not isinstance(payload, dict):
        return None
    coordinates = payload.get("coordinates")
    if isinstance(coordinates, (list, tuple)) and len(coordinates) == 2:
        try:
            return GeoPoint.of(coordinates[0], coordinates[1])
        except InputError:
            return None
    if "latitude" in payload and "longitude" in payload:
        try:
            return GeoPoint.of(payload["longitude"], payload["latitude"])
        except InputError:
            return None
    return None
