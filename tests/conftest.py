import pytest

from venue_geo.hierarchy.models import City, Country, Division, Region
from venue_geo.hierarchy.store import InMemoryHierarchyStore

BOSTON = (-71.0589, 42.3601)
NEW_YORK = (-74.0060, 40.7128)


def make_city(city_id, name, division_id, coordinates=None, active=True):
    payload = {"_id": city_id, "cityName": name, "cityCode": name[:3].upper(), "masteredDivisionId": division_id, "active": active}
    if coordinates is not None:
        payload["geolocation"] = {"type": "Point", "coordinates": list(coordinates)}
    return City.model_validate(payload)


def build_store(*cities):
    store = InMemoryHierarchyStore()
    store.add(Country.model_validate({"_id": "us", "countryName": "United States", "countryCode": "US"}))
    store.add(Region.model_validate({"_id": "ne", "regionName": "New England", "regionCode": "NE", "masteredCountryId": "us"}))
    store.add(Region.model_validate({"_id": "mid", "regionName": "Mid-Atlantic", "regionCode": "MA", "masteredCountryId": "us"}))
    store.add(Division.model_validate({"_id": "ma", "divisionName": "Massachusetts", "divisionCode": "MA", "masteredRegionId": "ne", "states": ["MA"]}))
    store.add(Division.model_validate({"_id": "ny", "divisionName": "New York", "divisionCode": "NY", "masteredRegionId": "mid", "states": ["NY"]}))
    for city in cities:
        store.add(city)
    return store


@pytest.fixture()
def hierarchy():
    return build_store(
        make_city("boston", "Boston", "ma", BOSTON),
        make_city("nyc", "New York", "ny", NEW_YORK),
        make_city("ghost", "Ghost Town", "ma", (-71.06, 42.36), active=False),
        make_city("nowhere", "Nowhere", "ma"),
    )


@pytest.fixture()
def empty_hierarchy():
    return build_store()
