"""JSON and CSV export of scan results."""

from __future__ import annotations

import csv
import io
import json
import logging
from collections.abc import Iterable
from dataclasses import asdict
from datetime import datetime
from pathlib import Path

from portsweep.core.models import ScanResult

logger = logging.getLogger(__name__)

CSV_HEADER = ["Host", "Online", "Latency", "Port", "Service", "Banner"]
FORMATS = ("json", "csv")


def results_to_json(results: Iterable[ScanResult]) -> str:
    return json.dumps([asdict(r) for r in results], indent=2)


def results_to_csv(results: Iterable[ScanResult]) -> str:
    """One row per open port; hosts without open ports get a single row."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for r in results:
        latency = "" if r.latency_ms is None else r.latency_ms
        if not r.open_ports:
            writer.writerow([r.host, r.is_online, latency, "", "", ""])
            continue
        for p in r.open_ports:
            writer.writerow([r.host, r.is_online, latency, p.port, p.service, p.banner])
    return buf.getvalue()


def default_export_name(fmt: str, now: datetime | None = None) -> str:
    now = now or datetime.now()
    return f"scan_{now:%Y%m%d_%H%M%S}.{fmt}"


def write_export(path: str | Path, results: Iterable[ScanResult], fmt: str | None = None) -> Path:
    """Write results to ``path``; the format defaults to the file suffix."""
    path = Path(path)
    fmt = (fmt or path.suffix.lstrip(".") or "json").lower()
    if fmt not in FORMATS:
        raise ValueError(f"Unknown export format: {fmt}")

    content = results_to_json(results) if fmt == "json" else results_to_csv(results)
    path.write_text(content, encoding="utf-8")
    logger.info("Exported results to %s", path)
    return path
