"""I/O helpers — load the uploaded sheet as raw rows, write JSON artifacts."""

from __future__ import annotations

import json
import math
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Literal, cast

import pandas as pd

from excel_dashboard.models import RawRow

EXCEL_SUFFIXES = (".xlsx", ".xlsm", ".xltx", ".xltm")

# ── Loading ──────────────────────────────────────────────────────


def _read_csv(path: Path, delimiter: str | None) -> pd.DataFrame:
    last_exc: Exception | None = None
    sep = delimiter if delimiter else None
    engine: Literal["c", "python"] = "c" if delimiter else "python"
    for encoding in ("utf-8-sig", "utf-8", "latin-1"):
        try:
            return pd.read_csv(
                path,
                dtype=str,
                sep=sep,
                engine=engine,
                encoding=encoding,
                encoding_errors="strict",
                keep_default_na=False,
            )
        except (UnicodeDecodeError, pd.errors.ParserError) as exc:
            last_exc = exc
    raise ValueError(f"Could not read CSV {path} (decode or parse failed)") from last_exc


def load_table(path: Path, delimiter: str | None = None) -> pd.DataFrame:
    """Load the first sheet of a CSV or Excel file as a raw DataFrame.

    CSV cells stay text; Excel cells keep their native types (numbers,
    dates, text).  The first row is always the header row.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If the extension is not supported, or CSV decoding/parsing fails.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    if path.is_dir():
        raise ValueError(f"Input path is a directory, not a file: {path}")

    suffix = path.suffix.lower()
    if suffix == ".csv":
        return _read_csv(path, delimiter)

    read_excel = cast(Callable[..., pd.DataFrame], getattr(pd, "read_excel"))
    if suffix in EXCEL_SUFFIXES:
        return read_excel(path, sheet_name=0, engine="openpyxl", dtype=object)

    if suffix == ".xls":
        try:
            return read_excel(path, sheet_name=0, engine="xlrd", dtype=object)
        except ImportError as exc:
            raise ValueError(
                "Unsupported .xls input unless 'xlrd' is installed. "
                "Either convert to .xlsx or add dependency: pip install xlrd"
            ) from exc

    raise ValueError(f"Unsupported file type: {suffix!r}. Use .csv, .xlsx, or .xls")


def _raw_cell(value: Any) -> Any:
    """Turn a pandas cell into a plain str / int / float / datetime, blanks as ``""``."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        if pd.isna(value):  # NaN, NaT, pd.NA
            return ""
    except (TypeError, ValueError):
        pass
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    item = getattr(value, "item", None)
    if callable(item):
        value = item()
    if isinstance(value, float) and math.isnan(value):
        return ""
    return value


def frame_to_rows(df: pd.DataFrame) -> list[RawRow]:
    """Convert *df* into one ``{header: cell}`` dict per row."""
    headers = [str(c) for c in df.columns]
    return [
        {header: _raw_cell(val) for header, val in zip(headers, row_vals)}
        for row_vals in df.itertuples(index=False, name=None)
    ]


def load_rows(path: Path, delimiter: str | None = None) -> list[RawRow]:
    """Load *path* and return its rows keyed by header."""
    return frame_to_rows(load_table(path, delimiter=delimiter))


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path
