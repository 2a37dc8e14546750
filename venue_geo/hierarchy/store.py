"""Read access to the mastered country/region/division/city tree."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple, Type

import orjson
import structlog
from pydantic import ValidationError

from venue_geo.errors import InputError, NotFoundError, TransportError
from venue_geo.geo.point import GeoPoint, haversine_km, point_from_geojson
from venue_geo.hierarchy.models import City, Country, Division, GeoNode, NearestCityRow, Region

if TYPE_CHECKING:  # pragma: no cover
    from venue_geo.backend.client import VenueBackend

LOGGER = structlog.get_logger(__name__)

_LEVELS: Dict[str, Type[GeoNode]] = {
    "country": Country,
    "region": Region,
    "division": Division,
    "city": City,
}


@dataclass(frozen=True)
class CityMatch:
    """A city returned by a nearest-neighbour query."""

    city_id: str
    city_name: str
    division_id: Optional[str]
    region_id: Optional[str]
    distance_km: float


def check_limit(limit: int) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise InputError(f"limit must be a positive integer, got {limit!r}")
    return limit


class LocationHierarchyStore:
    """Interface shared by the local and backend-backed stores."""

    async def find_city_by_id(self, city_id: str, *, app_id: Optional[str] = None) -> Optional[City]:
        raise NotImplementedError

    async def find_nearest(
        self,
        point: GeoPoint,
        limit: int,
        *,
        app_id: Optional[str] = None,
    ) -> List[CityMatch]:
        """Return up to `limit` active cities ordered by ascending distance."""
        raise NotImplementedError


class InMemoryHierarchyStore(LocationHierarchyStore):
    """Hierarchy held in process, with the same ordering as the geospatial index.

    Nodes must be added parents first. Insertion order breaks distance ties.
    """

    def __init__(self) -> None:
        self._nodes: Dict[str, Dict[str, GeoNode]] = {level: {} for level in _LEVELS}

    def add(self, node: GeoNode) -> GeoNode:
        bucket = self._nodes[node.level]
        if node.id in bucket:
            raise InputError(f"duplicate {node.level} id: {node.id}")
        if node.parent_level is not None:
            parent = self._nodes[node.parent_level].get(node.parent_id or "")
            if parent is None:
                raise InputError(
                    f"{node.level} {node.id} references unknown {node.parent_level} {node.parent_id}"
                )
        bucket[node.id] = node
        return node

    def extend(self, nodes: Iterable[GeoNode]) -> None:
        for node in nodes:
            self.add(node)

    def get(self, level: str, node_id: str) -> Optional[GeoNode]:
        if level not in self._nodes:
            raise InputError(f"unknown hierarchy level: {level}")
        return self._nodes[level].get(node_id)

    def cities(self) -> List[City]:
        return list(self._nodes["city"].values())  # type: ignore[arg-type]

    def parent_chain(self, city_id: str) -> Tuple[Division, Region, Country]:
        """Return the (division, region, country) above the given city."""
        city = self._nodes["city"].get(city_id)
        if city is None:
            raise NotFoundError(f"City not found: {city_id}")
        division = self._nodes["division"][city.parent_id]
        region = self._nodes["region"][division.parent_id]
        country = self._nodes["country"][region.parent_id]
        return division, region, country  # type: ignore[return-value]

    async def find_city_by_id(self, city_id: str, *, app_id: Optional[str] = None) -> Optional[City]:
        return self._nodes["city"].get(city_id)  # type: ignore[return-value]

    async def find_nearest(
        self,
        point: GeoPoint,
        limit: int,
        *,
        app_id: Optional[str] = None,
    ) -> List[CityMatch]:
        check_limit(limit)
        scored: List[Tuple[float, City]] = []
        for city in self.cities():
            city_point = city.point
            if not city.active or city_point is None:
                continue
            scored.append((haversine_km(point, city_point), city))
        scored.sort(key=lambda item: item[0])
        matches: List[CityMatch] = []
        for distance, city in scored[:limit]:
            division = self._nodes["division"].get(city.division_id)
            matches.append(
                CityMatch(
                    city_id=city.id,
                    city_name=city.name,
                    division_id=city.division_id,
                    region_id=division.parent_id if division else None,
                    distance_km=distance,
                )
            )
        return matches


class RemoteHierarchyStore(LocationHierarchyStore):
    """Delegates lookups to the backend geospatial query."""

    def __init__(self, backend: "VenueBackend", *, app_id: str = "1") -> None:
        self._backend = backend
        self._app_id = app_id

    async def find_city_by_id(self, city_id: str, *, app_id: Optional[str] = None) -> Optional[City]:
        payload = await self._backend.get_city(city_id, app_id or self._app_id)
        if payload is None:
            return None
        try:
            return City.model_validate(payload)
        except ValidationError as exc:
            raise TransportError(f"Malformed city payload for {city_id}: {exc}") from exc

    async def find_nearest(
        self,
        point: GeoPoint,
        limit: int,
        *,
        app_id: Optional[str] = None,
    ) -> List[CityMatch]:
        check_limit(limit)
        rows = await self._backend.query_nearest_cities(point, app_id or self._app_id, limit)
        matches: List[CityMatch] = []
        for raw in rows:
            try:
                row = NearestCityRow.model_validate(raw)
            except ValidationError as exc:
                raise TransportError(f"Malformed nearest-city row: {exc}") from exc
            distance = row.distance_km
            if distance is None:
                city_point = point_from_geojson(row.geolocation)
                if city_point is None:
                    LOGGER.warning("nearest_row_without_point", city_id=row.id)
                    continue
                distance = haversine_km(point, city_point)
            matches.append(
                CityMatch(
                    city_id=row.id,
                    city_name=row.name,
                    division_id=row.division_id,
                    region_id=row.region_id,
                    distance_km=float(distance),
                )
            )
        matches.sort(key=lambda match: match.distance_km)
        return matches[:limit]


def load_hierarchy(path: Path) -> InMemoryHierarchyStore:
    """Build an in-memory store from a JSON seed document."""
    payload = orjson.loads(path.read_bytes())
    store = InMemoryHierarchyStore()
    for section, model in (("countries", Country), ("regions", Region), ("divisions", Division), ("cities", City)):
        for raw in payload.get(section, []):
            try:
                store.add(model.model_validate(raw))
            except ValidationError as exc:
                raise InputError(f"Invalid {model.level} in {path}: {exc}") from exc
    LOGGER.info("hierarchy_loaded", path=str(path), cities=len(store.cities()))
    return store
