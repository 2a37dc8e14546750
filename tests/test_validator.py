import asyncio

import pytest
from structlog.contextvars import bind_contextvars, clear_contextvars, get_contextvars

from conftest import BOSTON, build_store, make_city
from venue_geo.errors import InputError, TransportError
from venue_geo.resolve.nearest import NearestCityResolver
from venue_geo.validate.outcomes import Outcome, ReasonCode
from venue_geo.validate.validator import VenueGeolocationValidator


class FakeVenues:
    """In-memory venue backend recording every call in order."""

    def __init__(self, venues, errors=None):
        self.venues = venues
        self.errors = errors or {}
        self.calls = []

    async def get_venue(self, venue_id, app_id):
        self.calls.append(("get", venue_id, app_id))
        if venue_id in self.errors:
            raise self.errors[venue_id]
        return self.venues.get(venue_id)

    async def put_venue(self, venue_id, app_id, patch):
        self.calls.append(("put", venue_id, patch))
        self.venues[venue_id] = {**self.venues[venue_id], **patch}
        return self.venues[venue_id]

    @property
    def gets(self):
        return [call[1] for call in self.calls if call[0] == "get"]

    def patches(self, venue_id):
        return [call[2] for call in self.calls if call[0] == "put" and call[1] == venue_id]


class CountingStore:
    def __init__(self, inner):
        self.inner = inner
        self.nearest_calls = 0

    async def find_nearest(self, point, limit, *, app_id=None):
        self.nearest_calls += 1
        return await self.inner.find_nearest(point, limit, app_id=app_id)


class RecordingSleep:
    def __init__(self, venues=None):
        self.venues = venues
        self.pauses = []

    async def __call__(self, seconds):
        processed = len(self.venues.gets) if self.venues is not None else None
        self.pauses.append((processed, seconds))


def _validator(venues, store, sleep=None):
    return VenueGeolocationValidator(venues, NearestCityResolver(store), sleep=sleep or RecordingSleep())


def test_identical_coordinates_validate_at_zero_distance(hierarchy):
    venues = FakeVenues({"v1": {"_id": "v1", "name": "Hall", "latitude": 42.3601, "longitude": -71.0589}})
    report = asyncio.run(_validator(venues, hierarchy).validate(["v1"], "1"))
    detail = report.details[0]
    assert detail.outcome is Outcome.VALIDATED
    assert detail.distance_km == 0.0
    assert detail.city_name == "Boston"
    assert "Boston" in detail.reason
    assert venues.patches("v1") == [{"isValidVenueGeolocation": True, "masteredCityId": "boston"}]
    assert report.as_dict()["validated"] == 1


def test_existing_city_reference_is_not_overwritten(hierarchy):
    venues = FakeVenues({"v1": {"_id": "v1", "latitude": 42.3601, "longitude": -71.0589, "masteredCityId": "other"}})
    asyncio.run(_validator(venues, hierarchy).validate(["v1"]))
    assert venues.patches("v1") == [{"isValidVenueGeolocation": True}]


def test_numeric_name_and_city_reference_are_accepted(hierarchy):
    venues = FakeVenues({"v1": {"_id": 7, "name": 1920, "latitude": 42.3601, "longitude": -71.0589, "masteredCityId": 42}})
    report = asyncio.run(_validator(venues, hierarchy).validate(["v1"]))
    detail = report.details[0]
    assert detail.outcome is Outcome.VALIDATED
    assert detail.venue_name == "1920"
    assert venues.patches("v1") == [{"isValidVenueGeolocation": True}]


def test_missing_coordinates_skip_nearest_lookup(hierarchy):
    store = CountingStore(hierarchy)
    venues = FakeVenues({"v1": {"_id": "v1", "name": "No coords", "masteredCityId": "boston"}})
    report = asyncio.run(_validator(venues, store).validate(["v1"]))
    detail = report.details[0]
    assert detail.outcome is Outcome.INVALID_MISSING_COORDINATES
    assert detail.reason == "Missing coordinates"
    assert detail.reason_code is ReasonCode.MISSING_COORDINATES
    assert store.nearest_calls == 0
    assert venues.patches("v1") == [{"isValidVenueGeolocation": False}]


def test_venue_fifty_km_away_is_too_far(hierarchy):
    venues = FakeVenues({"v1": {"_id": "v1", "latitude": BOSTON[1] + 0.4497, "longitude": BOSTON[0]}})
    report = asyncio.run(_validator(venues, hierarchy).validate(["v1"]))
    detail = report.details[0]
    assert detail.outcome is Outcome.INVALID_TOO_FAR
    assert detail.reason_code is ReasonCode.TOO_FAR
    assert "50.0" in detail.reason and "km" in detail.reason
    assert detail.distance_km == pytest.approx(50.0, abs=0.01)
    assert venues.patches("v1") == [{"isValidVenueGeolocation": False}]


def test_empty_hierarchy_reports_no_nearby_city(empty_hierarchy):
    venues = FakeVenues({"v1": {"_id": "v1", "latitude": 10, "longitude": 10}})
    report = asyncio.run(_validator(venues, empty_hierarchy).validate(["v1"]))
    detail = report.details[0]
    assert detail.outcome is Outcome.INVALID_TOO_FAR
    assert detail.reason == "No nearby city found"
    assert detail.reason_code is ReasonCode.NO_CITY_FOUND
    assert venues.patches("v1") == [{"isValidVenueGeolocation": False}]


def test_out_of_range_coordinates_are_invalid(hierarchy):
    venues = FakeVenues({"v1": {"_id": "v1", "latitude": 142.0, "longitude": -71.0}})
    report = asyncio.run(_validator(venues, hierarchy).validate(["v1"]))
    detail = report.details[0]
    assert detail.outcome is Outcome.INVALID_MISSING_COORDINATES
    assert detail.reason_code is ReasonCode.INVALID_COORDINATES
    assert report.invalid == 1


def test_geojson_only_venue_is_validated(hierarchy):
    venues = FakeVenues({"v1": {"_id": "v1", "geolocation": {"type": "Point", "coordinates": [-74.0060, 40.7128]}}})
    report = asyncio.run(_validator(venues, hierarchy).validate(["v1"]))
    assert report.details[0].city_id == "nyc"


def test_missing_venue_and_transport_errors_fail_without_aborting(hierarchy):
    venues = FakeVenues(
        {"ok": {"_id": "ok", "latitude": 42.3601, "longitude": -71.0589}},
        errors={"slow": TransportError("timed out after 10s", timeout=True)},
    )
    report = asyncio.run(_validator(venues, hierarchy).validate(["missing", "slow", "ok"]))
    missing, slow, ok = report.details
    assert (missing.outcome, missing.reason, missing.reason_code) == (Outcome.FAILED, "Venue not found", ReasonCode.VENUE_NOT_FOUND)
    assert (slow.outcome, slow.reason, slow.reason_code) == (Outcome.FAILED, "timed out after 10s", ReasonCode.TRANSPORT_ERROR)
    assert ok.outcome is Outcome.VALIDATED
    assert (report.validated, report.invalid, report.failed) == (1, 0, 2)


def test_unexpected_error_is_recorded(hierarchy):
    class BrokenStore:
        async def find_nearest(self, point, limit, *, app_id=None):
            raise RuntimeError("index corrupted")

    venues = FakeVenues({"v1": {"_id": "v1", "latitude": 1, "longitude": 1}, "v2": {"_id": "v2"}})
    report = asyncio.run(_validator(venues, BrokenStore()).validate(["v1", "v2"]))
    assert report.details[0].reason_code is ReasonCode.UNEXPECTED_ERROR
    assert report.details[0].reason == "index corrupted"
    assert report.details[1].outcome is Outcome.INVALID_MISSING_COORDINATES


def test_twenty_five_venues_run_in_three_chunks_in_order(hierarchy):
    ids = [f"v{i:02d}" for i in range(25)]
    venues = FakeVenues({venue_id: {"_id": venue_id, "latitude": 42.3601, "longitude": -71.0589} for venue_id in ids})
    sleep = RecordingSleep(venues)
    validator = _validator(venues, hierarchy, sleep=sleep)
    report = asyncio.run(validator.validate(ids, "1", batch_size=10))
    assert sleep.pauses == [(10, 1.0), (20, 1.0)]
    assert venues.gets == ids
    assert [detail.venue_id for detail in report.details] == ids
    assert validator.metrics.get("chunks_processed") == 3


@pytest.mark.parametrize("count, batch_size", [(1, 10), (7, 3), (10, 10), (11, 10), (4, 1)])
def test_every_venue_reported_exactly_once(hierarchy, count, batch_size):
    ids = [f"v{i}" for i in range(count)]
    records = {venue_id: {"_id": venue_id, "latitude": 42.0 + i, "longitude": -71.0} for i, venue_id in enumerate(ids)}
    records.pop(ids[0])
    venues = FakeVenues(records)
    sleep = RecordingSleep()
    report = asyncio.run(_validator(venues, hierarchy, sleep=sleep).validate(ids, "1", batch_size))
    assert len(report.details) == count
    assert report.validated + report.invalid + report.failed == count
    assert len(sleep.pauses) == -(-count // batch_size) - 1


def test_empty_id_list_does_no_io(hierarchy):
    venues = FakeVenues({})
    report = asyncio.run(_validator(venues, hierarchy).validate([]))
    assert report.as_dict() == {"validated": 0, "invalid": 0, "failed": 0, "details": []}
    assert venues.calls == []


@pytest.mark.parametrize("batch_size", [0, -1])
def test_bad_batch_size_is_rejected(hierarchy, batch_size):
    with pytest.raises(InputError):
        asyncio.run(_validator(FakeVenues({}), hierarchy).validate(["v1"], "1", batch_size))


def test_app_id_is_forwarded(hierarchy):
    venues = FakeVenues({"v1": {"_id": "v1"}})
    asyncio.run(_validator(venues, hierarchy).validate_batch(["v1"], "42"))
    assert venues.calls[0] == ("get", "v1", "42")


def test_venue_context_is_bound_per_venue_and_caller_bindings_survive(hierarchy):
    seen = []

    class ContextVenues(FakeVenues):
        async def get_venue(self, venue_id, app_id):
            seen.append(get_contextvars().get("venue_id"))
            return await super().get_venue(venue_id, app_id)

    venues = ContextVenues({"v1": {"_id": "v1"}, "v2": {"_id": "v2"}})

    async def _run():
        bind_contextvars(operator="ops@example.org", venue_id="outer")
        try:
            await _validator(venues, hierarchy).validate(["v1", "v2"], "1", run_id="r1")
            return get_contextvars()
        finally:
            clear_contextvars()

    after = asyncio.run(_run())
    assert seen == ["v1", "v2"]
    assert after["operator"] == "ops@example.org"
    assert after["venue_id"] == "outer"
    assert "run_id" not in after
