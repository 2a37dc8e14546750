"""Persistence of validation reports for later inspection."""
from __future__ import annotations

import time
from pathlib import Path
from typing import Dict, Optional

import orjson

from venue_geo.validate.outcomes import BatchReport


def report_path(root: Path, run_id: str) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    return root / f"validation-{run_id}.json"


def write_report(
    report: BatchReport,
    *,
    root: Path,
    run_id: str,
    app_id: str,
    metrics: Optional[Dict[str, int]] = None,
) -> Path:
    """Write the report with its run metadata and return the file path."""
    path = report_path(root, run_id)
    payload = {
        "run_id": run_id,
        "app_id": app_id,
        "generated_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        **report.as_dict(),
        "metrics": metrics or {},
    }
    path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
    return path


def load_report(path: Path) -> Dict[str, object]:
    return orjson.loads(path.read_bytes())
