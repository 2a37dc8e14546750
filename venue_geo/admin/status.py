"""Administrative summaries of persisted validation runs."""
from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Dict, List

import orjson
import structlog

from venue_geo.validate.reports import load_report

LOGGER = structlog.get_logger(__name__)


def summarise_reports(report_dir: Path, *, last: int = 10) -> List[Dict[str, object]]:
    """Summarise the most recent validation reports, newest first."""
    if not report_dir.exists():
        return []
    summary: List[Dict[str, object]] = []
    for path in sorted(report_dir.glob("validation-*.json"), reverse=True)[:last]:
        try:
            payload = load_report(path)
        except orjson.JSONDecodeError:
            LOGGER.warning("report_unreadable", path=str(path))
            continue
        reasons: Counter[str] = Counter(
            detail.get("reasonCode", "unknown") for detail in payload.get("details", [])
        )
        summary.append(
            {
                "run_id": payload.get("run_id"),
                "app_id": payload.get("app_id"),
                "validated": payload.get("validated", 0),
                "invalid": payload.get("invalid", 0),
                "failed": payload.get("failed", 0),
                "reasons": dict(reasons),
                "path": str(path),
            }
        )
    return summary
