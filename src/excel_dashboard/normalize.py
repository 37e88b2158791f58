"""Row normalization — raw spreadsheet rows to uniform records.

Pure functions, no side effects.  Every malformed cell degrades to a
default: numbers become 0, undated rows are dropped.
"""

from __future__ import annotations

import math
import re
import warnings
from collections.abc import Sequence
from datetime import date, datetime
from typing import Any, Literal

import pandas as pd

from excel_dashboard import MISSING
from excel_dashboard.models import ColumnMapping, NormalizationReport, NormalizedRecord, RawRow

NumberLocale = Literal["auto", "us", "eu"]
NUMBER_LOCALES: tuple[str, ...] = ("eu", "us", "auto")

# Days between the spreadsheet serial epoch (1899-12-30) and 1970-01-01.
SERIAL_EPOCH_OFFSET = 25569
_UNIX_EPOCH = pd.Timestamp("1970-01-01")

_NON_NUMERIC_RE = re.compile(r"[^0-9,.\-]")
_THOUSANDS_COMMA_RE = re.compile(r"^-?[1-9]\d{0,2}(,\d{3})+$")
_THOUSANDS_DOT_RE = re.compile(r"^-?[1-9]\d{0,2}(\.\d{3})+$")
_SERIAL_TEXT_RE = re.compile(r"^-?\d+(\.\d+)?$")

NUMERIC_FIELDS: tuple[str, ...] = ("value", "quantity", "unit_price", "stock")

# ── Numbers ──────────────────────────────────────────────────────


def _normalize_separators(token: str, *, locale: NumberLocale) -> str:
    has_comma = "," in token
    has_dot = "." in token

    if locale == "us":
        return token.replace(",", "")

    # Both separators present: the last one is the decimal mark.
    if has_comma and has_dot:
        if token.rfind(",") > token.rfind("."):
            return token.replace(".", "").replace(",", ".")
        return token.replace(",", "")

    if locale == "eu":
        if has_comma:
            if token.count(",") == 1:
                return token.replace(",", ".")
            return token
        if has_dot and _THOUSANDS_DOT_RE.fullmatch(token):
            return token.replace(".", "")
        return token

    if has_comma:
        if _THOUSANDS_COMMA_RE.fullmatch(token):
            return token.replace(",", "")
        if token.count(",") == 1:
            return token.replace(",", ".")
        return token
    if has_dot and _THOUSANDS_DOT_RE.fullmatch(token):
        return token.replace(".", "")
    return token


def parse_number(value: Any, *, locale: NumberLocale = "eu") -> float | None:
    """Parse a spreadsheet cell as a number, or return None.

    Numeric cells are taken as-is.  Text keeps only digits, ``,``, ``.`` and
    ``-`` before the decimal separator is normalized for *locale*.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        result = float(value)
        return result if math.isfinite(result) else None
    token = _NON_NUMERIC_RE.sub("", "" if value is None else str(value))
    if token in {"", "-"}:
        return None
    try:
        result = float(_normalize_separators(token, locale=locale))
    except ValueError:
        return None
    return result if math.isfinite(result) else None


def coerce_number(value: Any, *, locale: NumberLocale = "eu") -> float:
    """Like :func:`parse_number` but unparsable input becomes ``0.0``."""
    parsed = parse_number(value, locale=locale)
    return 0.0 if parsed is None else parsed


# ── Dates ────────────────────────────────────────────────────────


def serial_to_timestamp(serial: float) -> pd.Timestamp | None:
    """Convert a spreadsheet day serial (``45292`` -> 2024-01-01) to a day timestamp."""
    try:
        ts = _UNIX_EPOCH + pd.Timedelta(days=float(serial) - SERIAL_EPOCH_OFFSET)
    except (OverflowError, ValueError):
        return None
    return ts.floor("D")


def _parse_calendar(value: Any, *, dayfirst: bool) -> pd.Timestamp | None:
    if isinstance(value, (datetime, date)):
        try:
            return pd.Timestamp(value)
        except (OverflowError, ValueError):
            return None
    if not isinstance(value, str) or not value.strip():
        return None
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", UserWarning)
        try:
            ts = pd.to_datetime(value.strip(), errors="coerce", dayfirst=dayfirst)
        except (OverflowError, TypeError, ValueError):
            return None
    if pd.isna(ts):
        return None
    return ts


def parse_date(value: Any, *, dayfirst: bool = False) -> pd.Timestamp | None:
    """Parse a date cell: calendar text or datetime first, then a numeric serial.

    Serials come as numbers from Excel and as digit-only text from CSV.
    """
    ts = _parse_calendar(value, dayfirst=dayfirst)
    if ts is not None or isinstance(value, bool):
        return ts
    if isinstance(value, str) and _SERIAL_TEXT_RE.fullmatch(value.strip()):
        value = float(value.strip())
    if isinstance(value, (int, float)) and math.isfinite(value):
        ts = serial_to_timestamp(value)
    return ts


def _iso_date(ts: pd.Timestamp) -> str:
    return f"{ts.year:04d}-{ts.month:02d}-{ts.day:02d}"


def _iso_month(ts: pd.Timestamp) -> str:
    return f"{ts.year:04d}-{ts.month:02d}"


# ── Text ─────────────────────────────────────────────────────────


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _mapped_text(row: RawRow, column: str) -> str:
    return _text(row.get(column)) if column else MISSING


# ── Records ──────────────────────────────────────────────────────


def normalize_row(
    row: RawRow,
    mapping: ColumnMapping,
    *,
    number_locale: NumberLocale = "eu",
    dayfirst: bool = False,
) -> NormalizedRecord:
    """Coerce one raw row.  The result may be invalid (see ``is_valid``)."""
    ts = parse_date(row.get(mapping.date_col), dayfirst=dayfirst)

    def _number(column: str) -> float:
        if not column:
            return 0.0
        return coerce_number(row.get(column), locale=number_locale)

    return NormalizedRecord(
        company=_text(row.get(mapping.id_col)),
        date=_iso_date(ts) if ts is not None else "",
        month=_iso_month(ts) if ts is not None else MISSING,
        value=_number(mapping.value_col),
        category=_mapped_text(row, mapping.category_col),
        product=_mapped_text(row, mapping.product_col),
        quantity=_number(mapping.quantity_col),
        unit_price=_number(mapping.unit_price_col),
        stock=_number(mapping.stock_col),
        raw=row,
    )


def normalize_with_report(
    raw_rows: Sequence[RawRow],
    mapping: ColumnMapping,
    *,
    number_locale: NumberLocale = "eu",
    dayfirst: bool = False,
) -> tuple[list[NormalizedRecord], NormalizationReport]:
    """Normalize *raw_rows* and describe what was dropped or defaulted.

    Returns ``(records, report)``.  With an incomplete mapping the record
    list is empty and ``report.missing_fields`` says why.
    """
    if number_locale not in NUMBER_LOCALES:
        raise ValueError(f"Invalid number locale: {number_locale!r}. Use eu/us/auto.")

    report = NormalizationReport(rows_in=len(raw_rows), rows_out=0, dropped_rows=len(raw_rows))

    missing = mapping.missing_required()
    if missing:
        report.missing_fields = missing
        report.warnings.append(
            f"Configuration incomplete: map the required fields {', '.join(missing)}"
        )
        return [], report
    if not raw_rows:
        report.warnings.append("No rows to normalize")
        return [], report

    records: list[NormalizedRecord] = []
    no_company = 0
    bad_dates = 0
    defaulted: dict[str, int] = {name: 0 for name in NUMERIC_FIELDS}
    columns = {
        "value": mapping.value_col,
        "quantity": mapping.quantity_col,
        "unit_price": mapping.unit_price_col,
        "stock": mapping.stock_col,
    }

    for row in raw_rows:
        record = normalize_row(row, mapping, number_locale=number_locale, dayfirst=dayfirst)
        if not record.company:
            no_company += 1
            continue
        if not record.date:
            bad_dates += 1
            continue
        for name, column in columns.items():
            if not column:
                continue
            cell = row.get(column)
            if _text(cell) and parse_number(cell, locale=number_locale) is None:
                defaulted[name] += 1
        records.append(record)

    if no_company:
        report.warnings.append(f"Dropped {no_company} rows with an empty company")
    if bad_dates:
        report.warnings.append(f"Dropped {bad_dates} rows with unparseable dates")
    for name, count in defaulted.items():
        if count:
            suffix = "" if count == 1 else "s"
            report.warnings.append(f"Defaulted {count} unparseable {name!r} cell{suffix} to 0")
    if not records:
        report.warnings.append("Normalized dataset is empty — no valid rows remain")

    report.rows_out = len(records)
    report.dropped_rows = report.rows_in - report.rows_out
    return records, report


def normalize_rows(
    raw_rows: Sequence[RawRow],
    mapping: ColumnMapping,
    *,
    number_locale: NumberLocale = "eu",
    dayfirst: bool = False,
) -> list[NormalizedRecord]:
    """Return the records of *raw_rows* with a non-empty company and a valid date."""
    records, _report = normalize_with_report(
        raw_rows, mapping, number_locale=number_locale, dayfirst=dayfirst
    )
    return records
