"""Grouped aggregates and KPIs over normalized records — pure functions."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from typing import Any

import pandas as pd

from excel_dashboard.models import NormalizedRecord

RECORD_COLUMNS: list[str] = [
    "company",
    "date",
    "month",
    "value",
    "category",
    "product",
    "quantity",
    "unit_price",
    "stock",
]
TOP_N = 10


def records_to_frame(records: Iterable[NormalizedRecord]) -> pd.DataFrame:
    """Build a DataFrame (one row per record, original order)."""
    rows = [r.to_dict() for r in records]
    if not rows:
        return pd.DataFrame(columns=RECORD_COLUMNS)
    return pd.DataFrame(rows, columns=RECORD_COLUMNS)


def list_companies(records: Iterable[NormalizedRecord]) -> list[str]:
    """Distinct companies in order of first appearance."""
    return list(dict.fromkeys(r.company for r in records))


def filter_company(
    records: Sequence[NormalizedRecord], company: str | None
) -> list[NormalizedRecord]:
    """Keep the records of *company*; an empty selection keeps everything."""
    if not company:
        return list(records)
    return [r for r in records if r.company == company]


# ── Series ───────────────────────────────────────────────────────


def _sum_by(df: pd.DataFrame, key: str, col: str, *, sort: bool) -> pd.DataFrame:
    return df.groupby(key, sort=sort, as_index=False)[col].sum()


def _round_half_up(value: float) -> float:
    """Round to a whole number, halves away from zero (2.5 -> 3)."""
    return math.copysign(math.floor(abs(value) + 0.5), value)


def compute_by_month(df: pd.DataFrame) -> pd.DataFrame:
    """Total value per month, oldest month first."""
    if df.empty:
        return pd.DataFrame(columns=["month", "value"])
    monthly = _sum_by(df, "month", "value", sort=True)
    monthly["value"] = monthly["value"].astype(float).round(2)
    return monthly.reset_index(drop=True)


def compute_quantity_by_month(df: pd.DataFrame) -> pd.DataFrame:
    """Total quantity per month, rounded to whole units."""
    if df.empty:
        return pd.DataFrame(columns=["month", "quantity"])
    monthly = _sum_by(df, "month", "quantity", sort=True)
    monthly["quantity"] = monthly["quantity"].astype(float).map(_round_half_up)
    return monthly.reset_index(drop=True)


def compute_by_category(df: pd.DataFrame) -> pd.DataFrame:
    """Total value per category, in order of first appearance."""
    if df.empty:
        return pd.DataFrame(columns=["name", "value"])
    totals = _sum_by(df, "category", "value", sort=False).rename(columns={"category": "name"})
    totals["value"] = totals["value"].astype(float).round(2)
    return totals.reset_index(drop=True)


def compute_top_products(df: pd.DataFrame, n: int = TOP_N) -> pd.DataFrame:
    """Return top N products by value (ties keep first-appearance order)."""
    if df.empty:
        return pd.DataFrame(columns=["name", "value"])
    totals = (
        _sum_by(df, "product", "value", sort=False)
        .sort_values("value", ascending=False, kind="stable")
        .head(n)
        .rename(columns={"product": "name"})
        .reset_index(drop=True)
    )
    totals["value"] = totals["value"].astype(float).round(2)
    return totals


def compute_stock_analysis(df: pd.DataFrame, n: int = TOP_N) -> pd.DataFrame:
    """Rank products by stock / sales, fastest turnover first.

    ``stock`` is taken from the first record of each product and ``sales``
    is the summed quantity.  Products without positive stock are skipped.
    """
    columns = ["product", "stock", "sales", "ratio"]
    if df.empty:
        return pd.DataFrame(columns=columns)
    grouped = (
        df.groupby("product", sort=False, as_index=False)
        .agg(stock=("stock", "first"), sales=("quantity", "sum"))
    )
    grouped = grouped[grouped["stock"] > 0].copy()
    if grouped.empty:
        return pd.DataFrame(columns=columns)
    grouped["ratio"] = grouped["stock"] / grouped["sales"].clip(lower=1)
    return (
        grouped.sort_values("ratio", kind="stable")
        .head(n)
        .reset_index(drop=True)[columns]
    )


# ── KPIs ─────────────────────────────────────────────────────────


def compute_kpis(df: pd.DataFrame, companies: Sequence[str] | None = None) -> dict[str, Any]:
    """Return the dashboard KPI scalars.

    *companies* is the list offered by the company filter; it defaults to
    the distinct companies present in *df*.
    """
    if companies is None:
        companies = list(dict.fromkeys(df["company"])) if not df.empty else []
    if df.empty:
        return {
            "Records": 0,
            "Total Value": 0.0,
            "Total Quantity": 0.0,
            "Average Ticket": 0.0,
            "Companies": len(companies),
        }

    count = len(df)
    total_value = float(df["value"].sum())
    return {
        "Records": count,
        "Total Value": round(total_value, 2),
        "Total Quantity": float(df["quantity"].sum()),
        "Average Ticket": round(total_value / count, 2) if count else 0.0,
        "Companies": len(companies),
    }
