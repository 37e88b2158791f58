"""In-memory dashboard state for one uploaded sheet.

A session holds the canonical inputs (raw rows, column mapping, company
filter).  Everything else is derived lazily and cached on the instance;
changing an input returns a new session, so derived values are never stale.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from functools import cached_property
from pathlib import Path
from typing import Any

import pandas as pd

from excel_dashboard.aggregate import (
    compute_by_category,
    compute_by_month,
    compute_kpis,
    compute_quantity_by_month,
    compute_stock_analysis,
    compute_top_products,
    filter_company,
    list_companies,
    records_to_frame,
)
from excel_dashboard.io import load_rows
from excel_dashboard.mapping import suggest_mapping
from excel_dashboard.models import ColumnMapping, NormalizationReport, NormalizedRecord, RawRow
from excel_dashboard.normalize import NumberLocale, normalize_with_report

PREVIEW_ROWS = 10


@dataclass(eq=False)
class DashboardSession:
    raw_rows: list[RawRow] = field(default_factory=list)
    mapping: ColumnMapping = field(default_factory=ColumnMapping)
    selected_company: str = ""
    number_locale: NumberLocale = "eu"
    dayfirst: bool = False

    # ── Inputs ───────────────────────────────────────────────────

    @classmethod
    def from_rows(cls, raw_rows: list[RawRow], **kwargs: Any) -> DashboardSession:
        """Start a session on *raw_rows* with a suggested mapping."""
        rows = list(raw_rows)
        return cls(raw_rows=rows, mapping=suggest_mapping(_headers_of(rows)), **kwargs)

    def load(self, path: Path | None, delimiter: str | None = None) -> DashboardSession:
        """Replace the raw rows with the contents of *path*.

        ``None`` (nothing picked) keeps the current session.  The column
        mapping is re-suggested; the company filter is kept.
        """
        if path is None:
            return self
        rows = load_rows(path, delimiter=delimiter)
        return replace(self, raw_rows=rows, mapping=suggest_mapping(_headers_of(rows)))

    def with_mapping(self, overrides: Mapping[str, str]) -> DashboardSession:
        return replace(self, mapping=self.mapping.with_overrides(overrides))

    def with_company(self, company: str | None) -> DashboardSession:
        return replace(self, selected_company=company or "")

    # ── Derived ──────────────────────────────────────────────────

    @cached_property
    def headers(self) -> list[str]:
        return _headers_of(self.raw_rows)

    @cached_property
    def _normalized(self) -> tuple[list[NormalizedRecord], NormalizationReport]:
        return normalize_with_report(
            self.raw_rows,
            self.mapping,
            number_locale=self.number_locale,
            dayfirst=self.dayfirst,
        )

    @property
    def normalized(self) -> list[NormalizedRecord]:
        return self._normalized[0]

    @property
    def report(self) -> NormalizationReport:
        return self._normalized[1]

    @cached_property
    def companies(self) -> list[str]:
        return list_companies(self.normalized)

    @cached_property
    def filtered(self) -> list[NormalizedRecord]:
        return filter_company(self.normalized, self.selected_company)

    @cached_property
    def frame(self) -> pd.DataFrame:
        return records_to_frame(self.filtered)

    @cached_property
    def kpis(self) -> dict[str, Any]:
        return compute_kpis(self.frame, companies=self.companies)

    @cached_property
    def by_month(self) -> pd.DataFrame:
        return compute_by_month(self.frame)

    @cached_property
    def quantity_by_month(self) -> pd.DataFrame:
        return compute_quantity_by_month(self.frame)

    @cached_property
    def by_category(self) -> pd.DataFrame:
        return compute_by_category(self.frame)

    @cached_property
    def top_products(self) -> pd.DataFrame:
        return compute_top_products(self.frame)

    @cached_property
    def stock_analysis(self) -> pd.DataFrame:
        return compute_stock_analysis(self.frame)

    @property
    def preview(self) -> list[NormalizedRecord]:
        return self.filtered[:PREVIEW_ROWS]


def _headers_of(rows: list[RawRow]) -> list[str]:
    return list(rows[0]) if rows else []
