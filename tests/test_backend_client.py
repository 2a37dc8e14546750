import asyncio

import httpx
import orjson
import pytest
from structlog.testing import capture_logs

from venue_geo.backend.client import VenueBackend
from venue_geo.backend.session import BackendSettings, create_backend_session
from venue_geo.errors import TransportError
from venue_geo.geo.point import GeoPoint
from venue_geo.observability.metrics import MetricsRegistry


def _run(handler, operation, *, max_attempts=3):
    settings = BackendSettings(base_url="http://backend.test", max_attempts=max_attempts)
    metrics = MetricsRegistry()
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    async def _go():
        async with create_backend_session(settings, transport=httpx.MockTransport(handler)) as session:
            backend = VenueBackend(session, settings, metrics=metrics, sleep=fake_sleep)
            return await operation(backend)

    return asyncio.run(_go()), metrics, delays


def test_get_venue_returns_payload_and_passes_app_id():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"_id": "v1", "name": "Hall"})

    venue, metrics, _ = _run(handler, lambda backend: backend.get_venue("v1", "9"))
    assert venue == {"_id": "v1", "name": "Hall"}
    assert seen[0].url.path == "/api/venues/v1"
    assert seen[0].url.params["appId"] == "9"
    assert metrics.get("http_2xx") == 1


def test_get_venue_not_found_is_none():
    venue, metrics, _ = _run(lambda request: httpx.Response(404, json={"message": "nope"}), lambda b: b.get_venue("v1", "1"))
    assert venue is None
    assert metrics.get("http_4xx") == 1


def test_get_venue_null_body_is_none():
    venue, _, _ = _run(lambda request: httpx.Response(200, content=b"null"), lambda b: b.get_venue("v1", "1"))
    assert venue is None


def test_put_venue_sends_patch_with_app_id():
    bodies = []

    def handler(request):
        bodies.append((request.method, orjson.loads(request.content)))
        return httpx.Response(200, json={"_id": "v1", "isValidVenueGeolocation": True})

    result, _, _ = _run(handler, lambda b: b.put_venue("v1", "3", {"isValidVenueGeolocation": True}))
    assert bodies == [("PUT", {"isValidVenueGeolocation": True, "appId": "3"})]
    assert result["isValidVenueGeolocation"] is True


def test_query_nearest_cities_params():
    seen = []

    def handler(request):
        seen.append(request.url.params)
        return httpx.Response(200, json=[{"_id": "boston", "cityName": "Boston", "distanceInKm": 0.4}])

    rows, _, _ = _run(handler, lambda b: b.query_nearest_cities(GeoPoint.of(-71.0589, 42.3601), "1", 1))
    assert rows[0]["cityName"] == "Boston"
    assert seen[0]["longitude"] == "-71.0589"
    assert seen[0]["latitude"] == "42.3601"
    assert seen[0]["limit"] == "1"


def test_transient_connect_error_is_retried():
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"_id": "c1", "cityName": "Boston"})

    city, metrics, delays = _run(handler, lambda b: b.get_city("c1", "1"))
    assert city["_id"] == "c1"
    assert delays == [1.0, 2.0]
    assert metrics.get("backend_retries") == 2
    assert metrics.get("backend_requests") == 3


def test_timeout_exhausts_retries_and_surfaces_message():
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(TransportError) as info:
        _run(handler, lambda b: b.get_venue("v1", "1"), max_attempts=2)
    assert info.value.timeout is True
    assert "read timed out" in str(info.value)


def test_server_error_is_transport_error():
    def handler(request):
        return httpx.Response(503, json={"message": "maintenance"})

    with pytest.raises(TransportError) as info:
        _run(handler, lambda b: b.query_nearest_cities(GeoPoint.of(0, 0), "1", 1))
    assert info.value.status_code == 503
    assert "maintenance" in str(info.value)


def test_backend_settings_from_settings_mapping():
    settings = BackendSettings.from_settings({"backend": {"base_url": "http://x", "app_id": "5", "timeout_seconds": 3}})
    assert (settings.base_url, settings.app_id, settings.timeout_seconds) == ("http://x", "5", 3.0)
    assert BackendSettings.from_settings({}).base_url == "http://localhost:3010"


def test_retries_are_logged_with_operation_and_backoff():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with capture_logs() as logs:
        with pytest.raises(TransportError):
            _run(handler, lambda b: b.get_venue("v1", "1"), max_attempts=2)

    retries = [entry for entry in logs if entry["event"] in {"backend_retry", "backend_gave_up"}]
    assert [(entry["event"], entry["delay_seconds"]) for entry in retries] == [
        ("backend_retry", 1.0),
        ("backend_gave_up", None),
    ]
    assert {entry["operation"] for entry in retries} == {"get_venue"}
