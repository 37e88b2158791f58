"""Data models used across the package."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, fields, replace
from numbers import Integral
from typing import Any

from excel_dashboard import MISSING, OPTIONAL_FIELDS, REQUIRED_FIELDS

RawRow = dict[str, Any]

FIELD_ATTRS: dict[str, str] = {
    "id": "id_col",
    "date": "date_col",
    "value": "value_col",
    "category": "category_col",
    "product": "product_col",
    "quantity": "quantity_col",
    "unit_price": "unit_price_col",
    "stock": "stock_col",
}
FIELD_ALIASES: dict[str, str] = {"company": "id"}


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_string_list(values: Sequence[Any] | None, field_name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        normalized.append(item)
    return normalized


def _to_column_name(value: Any, field_name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a column header string")
    return value


def resolve_field_name(name: str) -> str:
    """Map a user-facing field name (``date``, ``company``...) to its canonical key.

    Raises ``ValueError`` for unknown names.
    """
    key = name.strip().lower().replace("-", "_")
    if key.endswith("_col"):
        key = key[: -len("_col")]
    key = FIELD_ALIASES.get(key, key)
    if key not in FIELD_ATTRS:
        known = ", ".join(FIELD_ATTRS)
        raise ValueError(f"Unknown field {name!r} (expected one of: {known})")
    return key


@dataclass(frozen=True)
class ColumnMapping:
    """Which spreadsheet header feeds each semantic field.

    An empty string means the field is not mapped. ``id_col``, ``date_col``
    and ``value_col`` are required before any row can be normalized.
    """

    id_col: str = ""
    date_col: str = ""
    value_col: str = ""
    category_col: str = ""
    product_col: str = ""
    quantity_col: str = ""
    unit_price_col: str = ""
    stock_col: str = ""

    def __post_init__(self) -> None:
        for f in fields(self):
            object.__setattr__(self, f.name, _to_column_name(getattr(self, f.name), f.name))

    def get(self, field_name: str) -> str:
        return getattr(self, FIELD_ATTRS[resolve_field_name(field_name)])

    def missing_required(self) -> list[str]:
        return [name for name in REQUIRED_FIELDS if not self.get(name)]

    @property
    def is_complete(self) -> bool:
        return not self.missing_required()

    def optional_count(self) -> int:
        """Number of optional analyses unlocked by this mapping."""
        return sum(1 for name in OPTIONAL_FIELDS if self.get(name))

    def with_overrides(self, overrides: Mapping[str, str]) -> ColumnMapping:
        """Return a copy with ``{field: header}`` overrides applied."""
        changes = {
            FIELD_ATTRS[resolve_field_name(name)]: header for name, header in overrides.items()
        }
        return replace(self, **changes)

    def to_dict(self) -> dict[str, str]:
        return {name: getattr(self, attr) for name, attr in FIELD_ATTRS.items()}


@dataclass(frozen=True)
class NormalizedRecord:
    """One spreadsheet row after type coercion."""

    company: str
    date: str
    month: str
    value: float = 0.0
    category: str = MISSING
    product: str = MISSING
    quantity: float = 0.0
    unit_price: float = 0.0
    stock: float = 0.0
    raw: RawRow = field(default_factory=dict, compare=False, hash=False, repr=False)

    @property
    def is_valid(self) -> bool:
        return bool(self.company) and bool(self.date)

    def to_dict(self) -> dict[str, Any]:
        return {
            "company": self.company,
            "date": self.date,
            "month": self.month,
            "value": self.value,
            "category": self.category,
            "product": self.product,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "stock": self.stock,
        }


@dataclass
class NormalizationReport:
    """What happened while normalizing one upload.

    Contract invariant: ``dropped_rows == rows_in - rows_out``.
    """

    rows_in: int = 0
    rows_out: int = 0
    dropped_rows: int = 0
    missing_fields: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        self.dropped_rows = _to_non_negative_int(self.dropped_rows, "dropped_rows")
        self.missing_fields = _to_string_list(self.missing_fields, "missing_fields")
        self.warnings = _to_string_list(self.warnings, "warnings")
        if self.rows_out > self.rows_in:
            raise ValueError("rows_out must be <= rows_in")
        expected_dropped = self.rows_in - self.rows_out
        if self.dropped_rows != expected_dropped:
            raise ValueError("dropped_rows must equal rows_in - rows_out")

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "dropped_rows": self.dropped_rows,
            "missing_fields": list(self.missing_fields),
            "warnings": list(self.warnings),
        }


@dataclass
class RunManifest:
    """Audit-trail manifest for a single CLI run."""

    tool: str = "excel-dashboard"
    version: str = ""
    run_id: str = ""
    input_path: str = ""
    output_dir: str = ""
    created_at_utc: str = ""
    rows_in: int = 0
    rows_out: int = 0
    sha256: str = ""
    mapping: dict[str, str] = field(default_factory=dict)
    company: str = ""
    status: str = "success"
    error_code: int | None = None
    error_message: str = ""

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        if self.status not in {"success", "failed"}:
            raise ValueError("status must be 'success' or 'failed'")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "run_id": self.run_id,
            "input_path": self.input_path,
            "output_dir": self.output_dir,
            "created_at_utc": self.created_at_utc,
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "sha256": self.sha256,
            "mapping": dict(self.mapping),
            "company": self.company,
            "status": self.status,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }
