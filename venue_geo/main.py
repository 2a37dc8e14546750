"""Command-line entrypoints for venue geolocation maintenance."""
from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import orjson
import tomllib
from dotenv import load_dotenv

from venue_geo.admin.status import summarise_reports
from venue_geo.backend.client import VenueBackend
from venue_geo.backend.session import BackendSettings, create_backend_session
from venue_geo.errors import InputError
from venue_geo.hierarchy.store import LocationHierarchyStore, RemoteHierarchyStore, load_hierarchy
from venue_geo.observability.log import configure_logging
from venue_geo.observability.metrics import MetricsRegistry
from venue_geo.resolve.facade import GeolocationResolver
from venue_geo.resolve.nearest import NearestCityResolver
from venue_geo.validate.reports import write_report
from venue_geo.validate.validator import DEFAULT_BATCH_SIZE, VenueGeolocationValidator, new_run_id

DEFAULT_SETTINGS = Path("config/settings.toml")
DEFAULT_LOGGING = Path("config/logging.yaml")

_ENV_OVERRIDES = {
    "VENUE_GEO_BE_URL": "base_url",
    "VENUE_GEO_APP_ID": "app_id",
}


def load_settings(path: Path) -> Dict[str, Any]:
    """Read the TOML configuration file and apply environment overrides."""
    with path.open("rb") as handle:
        settings: Dict[str, Any] = tomllib.load(handle)
    backend = settings.setdefault("backend", {})
    for env_name, key in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            backend[key] = value
    return settings


def build_arg_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(prog="venue-geo", description="Venue geolocation maintenance")
    parser.add_argument("--config", type=Path, default=DEFAULT_SETTINGS, help="Path to settings.toml")
    parser.add_argument("--logging", type=Path, default=DEFAULT_LOGGING, help="Path to logging.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    validate = sub.add_parser("validate", help="Validate venue coordinates against the city hierarchy")
    validate.add_argument("venue_ids", nargs="*", help="Venue identifiers, processed in order")
    validate.add_argument("--ids-file", type=Path, help="File with one venue id per line, or a JSON array")
    validate.add_argument("--app-id", help="Application id (defaults to [backend].app_id)")
    validate.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE, help="Venues per chunk")
    validate.add_argument("--no-report", action="store_true", help="Do not write the report file")

    resolve_city = sub.add_parser("resolve-city", help="Coordinates for a city id, with fallback")
    resolve_city.add_argument("city_id")
    resolve_city.add_argument("--app-id")

    nearest = sub.add_parser("nearest", help="Nearest city to a coordinate pair, with fallback")
    nearest.add_argument("--longitude", type=float, required=True)
    nearest.add_argument("--latitude", type=float, required=True)
    nearest.add_argument("--app-id")

    prepare = sub.add_parser("prepare", help="Prepare a venue JSON document for submission")
    prepare.add_argument("path", help="Venue JSON file, or - for stdin")

    reports = sub.add_parser("reports", help="Summarise recent validation reports")
    reports.add_argument("--last", type=int, default=10)

    return parser


def _emit(payload: Any) -> None:
    print(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode())


def read_venue_ids(args: argparse.Namespace) -> List[str]:
    ids: List[str] = list(args.venue_ids or [])
    if args.ids_file is not None:
        text = args.ids_file.read_text(encoding="utf-8")
        if text.lstrip().startswith("["):
            ids.extend(str(item) for item in orjson.loads(text))
        else:
            ids.extend(line.strip() for line in text.splitlines() if line.strip())
    return ids


def build_store(settings: Dict[str, Any], backend: VenueBackend, app_id: str) -> LocationHierarchyStore:
    seed_path = settings.get("hierarchy", {}).get("seed_path")
    if seed_path:
        return load_hierarchy(Path(seed_path))
    return RemoteHierarchyStore(backend, app_id=app_id)


async def run_validate(
    args: argparse.Namespace,
    settings: Dict[str, Any],
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Execute the validate command end-to-end."""
    venue_ids = read_venue_ids(args)
    if not venue_ids:
        raise InputError("at least one venue id is required")
    backend_settings = BackendSettings.from_settings(settings)
    app_id = args.app_id or backend_settings.app_id
    metrics = MetricsRegistry()
    run_id = new_run_id()

    async with create_backend_session(backend_settings, transport=transport) as session:
        backend = VenueBackend(session, backend_settings, metrics=metrics)
        store = build_store(settings, backend, app_id)
        validator = VenueGeolocationValidator(backend, NearestCityResolver(store), metrics=metrics)
        report = await validator.validate(venue_ids, app_id, args.batch_size, run_id=run_id)

    app_settings = settings.get("app", {})
    if not getattr(args, "no_report", False):
        write_report(
            report,
            root=Path(app_settings.get("reports_dir", "data/reports")),
            run_id=run_id,
            app_id=app_id,
            metrics=metrics.snapshot(),
        )
        metrics.export(path=Path(app_settings.get("metrics_dir", "data/metrics")) / f"run_{run_id}.json", run_id=run_id)
    return report.as_dict()


async def run_lookup(
    args: argparse.Namespace,
    settings: Dict[str, Any],
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Execute resolve-city or nearest; both degrade to the fallback."""
    backend_settings = BackendSettings.from_settings(settings)
    app_id = args.app_id or backend_settings.app_id
    async with create_backend_session(backend_settings, transport=transport) as session:
        backend = VenueBackend(session, backend_settings)
        resolver = GeolocationResolver(build_store(settings, backend, app_id))
        if args.command == "resolve-city":
            coordinates = await resolver.resolve_for_city(args.city_id, app_id=app_id)
            return coordinates.as_dict()
        result = await resolver.find_nearest_city(args.longitude, args.latitude, app_id=app_id)
        return result.as_dict()


def run_prepare(args: argparse.Namespace) -> Dict[str, Any]:
    raw = sys.stdin.read() if args.path == "-" else Path(args.path).read_text(encoding="utf-8")
    venue = orjson.loads(raw)
    if not isinstance(venue, dict):
        raise InputError("venue document must be a JSON object")
    # preparation never touches the store, so no backend session is opened
    resolver = GeolocationResolver(LocationHierarchyStore())
    return resolver.prepare_for_submission(venue)


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI."""
    load_dotenv()
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    settings = load_settings(args.config)
    configure_logging(args.logging)

    try:
        if args.command == "validate":
            result = asyncio.run(run_validate(args, settings))
            _emit(result)
            if result["failed"]:
                raise SystemExit(1)
            return

        if args.command in {"resolve-city", "nearest"}:
            _emit(asyncio.run(run_lookup(args, settings)))
            return

        if args.command == "prepare":
            _emit(run_prepare(args))
            return

        if args.command == "reports":
            reports_dir = Path(settings.get("app", {}).get("reports_dir", "data/reports"))
            _emit(summarise_reports(reports_dir, last=args.last))
            return
    except InputError as exc:
        raise SystemExit(f"Invalid input: {exc}")


if __name__ == "__main__":
    main()
