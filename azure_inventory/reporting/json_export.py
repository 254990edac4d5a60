"""
JSON exporter — Full structured inventory including the redacted property payloads.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .. import __version__
from .csv_export import record_to_row


def export_json(
    run: Any,
    filepath: Path,
    audit: Optional[dict] = None,
    redacted: bool = True,
) -> Path:
    """
    Write every record of a run, with its properties tree, to a JSON file.

    Returns:
        Path to the created JSON file.
    """
    filepath.parent.mkdir(parents=True, exist_ok=True)
    aggregator = run.aggregator

    payload = {
        "metadata": {
            "engine": "Azure Resource Inventory",
            "version": __version__,
            "run_id": run.run_id,
            "generated_utc": datetime.now(timezone.utc).isoformat(),
            "mode": "READ-ONLY",
            "redacted": redacted,
        },
        "summary": run.summary(),
        "resources": [
            {
                **record_to_row(record, aggregator.scope_name(record.scope_id)),
                "ResourceId": record.id,
                "TagMap": record.raw.tags,
                "Properties": record.properties,
            }
            for record in aggregator.records
        ],
    }
    if audit is not None:
        payload["safety_audit"] = audit

    with open(filepath, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str, ensure_ascii=False)

    return filepath
