"""excel-dashboard — Turn one uploaded spreadsheet into KPIs, charts and a PDF."""

__version__ = "0.2.0"

REQUIRED_FIELDS: list[str] = ["id", "date", "value"]
OPTIONAL_FIELDS: list[str] = ["category", "product", "quantity", "unit_price", "stock"]

MISSING = "—"
"""Placeholder used for unmapped text fields and undated months."""
