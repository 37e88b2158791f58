"""Normalization report persistence."""

from __future__ import annotations

from pathlib import Path

from excel_dashboard.io import write_json
from excel_dashboard.models import NormalizationReport


def write_qc_report(out_dir: Path, report: NormalizationReport) -> Path:
    """Write ``qc_report.json`` into *out_dir* and return the path."""
    return write_json(out_dir / "qc_report.json", report.to_dict())
