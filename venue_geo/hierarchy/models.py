"""Pydantic models for the mastered location hierarchy and venues."""
from __future__ import annotations

from typing import Any, ClassVar, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from venue_geo.geo.point import GeoPoint, has_value, point_from_geojson


def _ref_id(value: Any) -> Any:
    """Accept either a bare id or a populated document carrying `_id`."""
    if isinstance(value, dict):
        return value.get("_id") or value.get("id")
    return value


def _as_text(value: Any) -> Any:
    """Backends hand out numeric ids and names; store them as strings."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class GeoNode(BaseModel):
    """Shared attributes across all hierarchy levels."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    level: ClassVar[str] = ""
    parent_level: ClassVar[Optional[str]] = None

    id: str = Field(alias="_id", min_length=1)
    active: bool = True

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @property
    def parent_id(self) -> Optional[str]:
        return None


class Country(GeoNode):
    """Root of the hierarchy."""

    level: ClassVar[str] = "country"

    name: str = Field(alias="countryName")
    code: str = Field(alias="countryCode")


class Region(GeoNode):
    level: ClassVar[str] = "region"
    parent_level: ClassVar[Optional[str]] = "country"

    name: str = Field(alias="regionName")
    code: str = Field(alias="regionCode")
    country_id: str = Field(alias="masteredCountryId")

    @field_validator("country_id", mode="before")
    @classmethod
    def _resolve_parent(cls, value: Any) -> Any:
        return _ref_id(value)

    @property
    def parent_id(self) -> Optional[str]:
        return self.country_id


class Division(GeoNode):
    level: ClassVar[str] = "division"
    parent_level: ClassVar[Optional[str]] = "region"

    name: str = Field(alias="divisionName")
    code: str = Field(alias="divisionCode")
    region_id: str = Field(alias="masteredRegionId")
    states: list[str] = Field(default_factory=list)

    @field_validator("region_id", mode="before")
    @classmethod
    def _resolve_parent(cls, value: Any) -> Any:
        return _ref_id(value)

    @property
    def parent_id(self) -> Optional[str]:
        return self.region_id


class City(GeoNode):
    """Leaf of the hierarchy; the only level carrying a point."""

    level: ClassVar[str] = "city"
    parent_level: ClassVar[Optional[str]] = "division"

    name: str = Field(alias="cityName")
    code: str = Field(default="", alias="cityCode")
    division_id: str = Field(default="", alias="masteredDivisionId")
    geolocation: Optional[Dict[str, Any]] = None

    @field_validator("division_id", mode="before")
    @classmethod
    def _resolve_parent(cls, value: Any) -> Any:
        return _ref_id(value)

    @property
    def parent_id(self) -> Optional[str]:
        return self.division_id

    @property
    def point(self) -> Optional[GeoPoint]:
        """The city's point, or None when unset or invalid."""
        return point_from_geojson(self.geolocation)


class NearestCityRow(BaseModel):
    """One row of the backend nearest-city query."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="_id")
    name: str = Field(alias="cityName")
    division: Any = Field(default=None, alias="masteredDivisionId")
    distance_km: Optional[float] = Field(default=None, alias="distanceInKm")
    geolocation: Optional[Dict[str, Any]] = None

    @property
    def division_id(self) -> Optional[str]:
        return _ref_id(self.division)

    @property
    def region_id(self) -> Optional[str]:
        if isinstance(self.division, dict):
            return _ref_id(self.division.get("masteredRegionId"))
        return None


class Venue(BaseModel):
    """Venue record as returned by the backend.

    Only the geolocation-related fields are modelled; everything else is
    carried through untouched.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = Field(default=None, alias="_id")
    name: Optional[str] = None
    latitude: Any = None
    longitude: Any = None
    city_id: Optional[str] = Field(default=None, alias="masteredCityId")
    is_valid_venue_geolocation: Optional[bool] = Field(default=None, alias="isValidVenueGeolocation")
    coordinates_source: Optional[str] = Field(default=None, alias="coordinatesSource")
    geolocation: Optional[Dict[str, Any]] = None

    @field_validator("city_id", mode="before")
    @classmethod
    def _resolve_city(cls, value: Any) -> Any:
        return _as_text(_ref_id(value))

    @field_validator("id", "name", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        return _as_text(value)

    def raw_coordinates(self) -> Optional[Tuple[Any, Any]]:
        """Return the stored (longitude, latitude) pair, or None when absent."""
        if has_value(self.latitude) and has_value(self.longitude):
            return self.longitude, self.latitude
        if isinstance(self.geolocation, dict):
            coordinates = self.geolocation.get("coordinates")
            if isinstance(coordinates, (list, tuple)) and len(coordinates) == 2:
                return coordinates[0], coordinates[1]
        return None
