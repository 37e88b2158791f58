"""Report writers — Dashboard.xlsx, relatorio-demo.pdf and display rows."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, cast

import pandas as pd
from openpyxl import Workbook
from openpyxl.chart import BarChart, LineChart, PieChart, Reference
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo
from openpyxl.worksheet.worksheet import Worksheet
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from excel_dashboard.models import NormalizationReport, NormalizedRecord
from excel_dashboard.utils import format_brl, format_number_br

DASHBOARD_FILENAME = "Dashboard.xlsx"
PDF_FILENAME = "relatorio-demo.pdf"
PDF_TITLE = "Relatório Financeiro (Demo)"
ALL_COMPANIES = "Todas"

PREVIEW_HEADERS: list[str] = [
    "Empresa",
    "Data",
    "Produto",
    "Qtd",
    "Valor Unit.",
    "Valor Total",
    "Categoria",
    "Estoque",
]

# ── Style constants ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2563EB", end_color="2563EB", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)

TITLE_FONT = Font(name="Calibri", bold=True, size=14, color="1E3A8A")
SUBTITLE_FONT = Font(name="Calibri", bold=False, size=10, color="808080")
LABEL_FONT = Font(name="Calibri", bold=True, size=11)
VALUE_FONT = Font(name="Calibri", size=11)
WARN_FONT = Font(name="Calibri", italic=True, size=10, color="CC6600")

NOTE_FILL = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")
KPI_FILL = PatternFill(start_color="DBEAFE", end_color="DBEAFE", fill_type="solid")

CURRENCY_FMT = '"R$" #,##0.00'
NUMBER_FMT = '#,##0.##'
INT_FMT = '#,##0'
RATIO_FMT = '0.00'

# Column-name → format mapping for data sheets
_COL_FORMATS: dict[str, str] = {
    "value": CURRENCY_FMT,
    "quantity": NUMBER_FMT,
    "stock": NUMBER_FMT,
    "sales": NUMBER_FMT,
    "ratio": RATIO_FMT,
    "qtd": NUMBER_FMT,
    "valor unit.": CURRENCY_FMT,
    "valor total": CURRENCY_FMT,
    "estoque": NUMBER_FMT,
}

_KPI_FORMATS: dict[str, str | None] = {
    "Records": INT_FMT,
    "Total Value": CURRENCY_FMT,
    "Total Quantity": NUMBER_FMT,
    "Average Ticket": CURRENCY_FMT,
    "Companies": INT_FMT,
}

_AUTO_WIDTH_SAMPLE_ROWS = 300
_EXCEL_FORMULA_PREFIXES = ("=", "+", "-", "@")
_CHART_ANCHOR = "E2"


# ── Display rows ─────────────────────────────────────────────────


def format_kpis(kpis: dict[str, Any]) -> list[tuple[str, str]]:
    """Return ``(label, text)`` pairs for the KPI cards."""
    return [
        ("Registros", str(kpis.get("Records", 0))),
        ("Faturamento (R$)", format_number_br(kpis.get("Total Value", 0.0))),
        ("Qtd. Vendida", format_number_br(kpis.get("Total Quantity", 0.0))),
        ("Ticket Médio (R$)", f"{float(kpis.get('Average Ticket', 0.0)):.2f}"),
        ("Empresas", str(kpis.get("Companies", 0))),
    ]


def format_preview_rows(records: Sequence[NormalizedRecord], limit: int = 10) -> list[list[str]]:
    """Render the first *limit* records as preview table rows."""
    return [
        [
            r.company,
            r.date,
            r.product,
            format_number_br(r.quantity),
            format_brl(r.unit_price),
            format_brl(r.value),
            r.category,
            format_number_br(r.stock),
        ]
        for r in records[:limit]
    ]


def preview_frame(records: Sequence[NormalizedRecord], limit: int = 10) -> pd.DataFrame:
    """Preview rows with numeric cells kept numeric (for the workbook)."""
    rows = [
        [r.company, r.date, r.product, r.quantity, r.unit_price, r.value, r.category, r.stock]
        for r in records[:limit]
    ]
    return pd.DataFrame(rows, columns=PREVIEW_HEADERS)


# ── PDF export ───────────────────────────────────────────────────


@dataclass(frozen=True)
class PdfLine:
    """One line of the exported document.

    ``advance`` is the distance in points from the previous baseline.
    """

    text: str
    size: int = 12
    x: float = 40
    advance: float = 20


def build_pdf_lines(
    *,
    company: str,
    record_count: int,
    total: float,
    by_month: pd.DataFrame,
) -> list[PdfLine]:
    """Lay out the export: title, filter, KPIs and the monthly listing."""
    lines = [
        PdfLine(PDF_TITLE, size=18, advance=50),
        PdfLine(f"Empresa: {company or ALL_COMPANIES}", advance=30),
        PdfLine(f"Registros: {record_count}"),
        PdfLine(f"Total: {format_brl(total)}"),
        PdfLine("Mensal:", advance=30),
    ]
    for idx, (month, value) in enumerate(zip(by_month.get("month", []), by_month.get("value", []))):
        lines.append(
            PdfLine(f"• {month}: {format_brl(value)}", x=50, advance=20 if idx == 0 else 18)
        )
    return lines


def write_pdf_report(out_dir: Path, lines: Iterable[PdfLine], *, bottom_margin: float = 40) -> Path:
    """Draw *lines* onto A4 pages and write ``relatorio-demo.pdf``."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    pdf_path = out_dir / PDF_FILENAME
    tmp_path = out_dir / "relatorio-demo.tmp.pdf"

    c = canvas.Canvas(str(tmp_path), pagesize=A4)
    c.setTitle(PDF_TITLE)
    _width, height = A4
    y = height
    for line in lines:
        y -= line.advance
        if y < bottom_margin:
            c.showPage()
            y = height - 50
        c.setFont("Helvetica", line.size)
        c.drawString(line.x, y, line.text)
    c.save()
    tmp_path.replace(pdf_path)
    return pdf_path


# ── Workbook helpers ─────────────────────────────────────────────


def _style_header(ws: Worksheet, ncols: int) -> None:
    for c in range(1, ncols + 1):
        cell = ws.cell(row=1, column=c)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN


def _auto_width(ws: Worksheet, max_col: int | None = None) -> None:
    max_row = min(ws.max_row, _AUTO_WIDTH_SAMPLE_ROWS + 1)  # include header row
    for c_idx in range(1, (max_col or ws.max_column) + 1):
        letter = get_column_letter(c_idx)
        width = 0
        for row in ws.iter_rows(min_row=1, max_row=max_row, min_col=c_idx, max_col=c_idx):
            width = max(width, len(str(row[0].value or "")))
        ws.column_dimensions[letter].width = min(width + 4, 30)


def _apply_number_formats(ws: Worksheet, col_names: list[str]) -> None:
    """Apply number formats to data columns (rows 2+) by column name."""
    if ws.max_row < 2:
        return

    for c_idx, name in enumerate(col_names, 1):
        fmt = _COL_FORMATS.get(name.lower())
        if fmt:
            for row in ws.iter_rows(min_row=2, max_row=ws.max_row, min_col=c_idx, max_col=c_idx):
                for cell in row:
                    cell.number_format = fmt


def _sanitize_table_name(name: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9_]", "_", name)
    if not cleaned:
        cleaned = "Table"
    if not re.match(r"^[A-Za-z_]", cleaned):
        cleaned = f"_{cleaned}"
    return cleaned[:255]


def _unique_table_name(ws: Worksheet, base_name: str) -> str:
    parent = ws.parent
    if parent is None:
        return base_name

    existing: set[str] = set()
    for sheet in parent.worksheets:
        existing.update(cast(Iterable[str], sheet.tables.keys()))
    if base_name not in existing:
        return base_name

    suffix = 1
    while True:
        suffix_str = f"_{suffix}"
        candidate = f"{base_name[: 255 - len(suffix_str)]}{suffix_str}"
        if candidate not in existing:
            return candidate
        suffix += 1


def _add_excel_table(ws: Worksheet, name: str, ncols: int, nrows: int) -> None:
    """Turn the data range into a proper Excel Table object."""
    if nrows < 1 or ncols < 1:
        return
    ref = f"A1:{get_column_letter(ncols)}{nrows + 1}"  # +1 for header
    table = Table(displayName=_unique_table_name(ws, _sanitize_table_name(name)), ref=ref)
    table.tableStyleInfo = TableStyleInfo(
        name="TableStyleMedium2", showFirstColumn=False,
        showLastColumn=False, showRowStripes=True, showColumnStripes=False,
    )
    ws.add_table(table)


def _excel_value(val: Any) -> Any:
    try:
        if pd.isna(val):
            return None
    except Exception:
        return val

    if isinstance(val, pd.Timestamp):
        dt = val.to_pydatetime()
        return dt.replace(tzinfo=None) if dt.tzinfo else dt

    if isinstance(val, str):
        if val.startswith("'"):
            return val
        stripped = val.lstrip()
        if stripped and stripped[0] in _EXCEL_FORMULA_PREFIXES:
            return f"'{val}"

    item = getattr(val, "item", None)
    if callable(item):
        return item()
    return val


def _df_to_sheet(wb: Workbook, name: str, df: pd.DataFrame) -> Worksheet:
    ws = wb.create_sheet(title=name)
    col_names = [str(c) for c in df.columns]

    if df.empty:
        ws.cell(row=1, column=1, value="No data").font = VALUE_FONT
        ws.column_dimensions["A"].width = 18
        return ws

    for c_idx, col_name in enumerate(col_names, 1):
        ws.cell(row=1, column=c_idx, value=col_name)
    for r_idx, row_vals in enumerate(df.itertuples(index=False, name=None), 2):
        for c_idx, val in enumerate(row_vals, 1):
            ws.cell(row=r_idx, column=c_idx, value=_excel_value(val))
    _style_header(ws, len(col_names))
    _apply_number_formats(ws, col_names)
    ws.freeze_panes = "A2"
    _auto_width(ws, len(col_names))
    _add_excel_table(ws, name, len(col_names), len(df))
    return ws


# ── Charts ───────────────────────────────────────────────────────


def _series_refs(ws: Worksheet, data_col: int, nrows: int) -> tuple[Reference, Reference]:
    data = Reference(ws, min_col=data_col, min_row=1, max_row=nrows + 1)
    cats = Reference(ws, min_col=1, min_row=2, max_row=nrows + 1)
    return data, cats


def _add_line_chart(ws: Worksheet, title: str, data_col: int, nrows: int, anchor: str) -> None:
    chart = LineChart()
    chart.title = title
    chart.height = 7.5
    chart.width = 16
    data, cats = _series_refs(ws, data_col, nrows)
    chart.add_data(data, titles_from_data=True)
    chart.set_categories(cats)
    ws.add_chart(chart, anchor)


def _add_bar_chart(
    ws: Worksheet, title: str, data_cols: Sequence[int], nrows: int, anchor: str
) -> None:
    chart = BarChart()
    chart.type = "col"
    chart.title = title
    chart.height = 7.5
    chart.width = 16
    for col in data_cols:
        data, cats = _series_refs(ws, col, nrows)
        chart.add_data(data, titles_from_data=True)
    chart.set_categories(cats)
    ws.add_chart(chart, anchor)


def _add_pie_chart(ws: Worksheet, title: str, nrows: int) -> None:
    chart = PieChart()
    chart.title = title
    data, cats = _series_refs(ws, 2, nrows)
    chart.add_data(data, titles_from_data=True)
    chart.set_categories(cats)
    ws.add_chart(chart, _CHART_ANCHOR)


# ── Dashboard sheet ──────────────────────────────────────────────


def _fill_row(ws: Worksheet, row: int, fill: PatternFill) -> None:
    for c in range(1, 5):
        ws.cell(row=row, column=c).fill = fill


def _write_dashboard_sheet(
    wb: Workbook, kpis: dict[str, Any], report: NormalizationReport, company: str
) -> None:
    ws = wb.create_sheet(title="Dashboard")

    ws.cell(row=1, column=1, value="Excel → Dashboard").font = TITLE_FONT
    ws.merge_cells("A1:D1")
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    ws.cell(row=2, column=1, value=f"Generated {generated}").font = SUBTITLE_FONT
    ws.merge_cells("A2:D2")
    ws.cell(row=3, column=1, value=f"Empresa: {company or ALL_COMPANIES}").font = VALUE_FONT

    # ── Notes block ──────────────────────────────────────────────
    row = 5
    ws.cell(row=row, column=1, value="Notes").font = LABEL_FONT
    _fill_row(ws, row, NOTE_FILL)
    ws.merge_cells(f"A{row}:D{row}")
    row += 1
    ws.cell(row=row, column=1, value=f"Rows in: {report.rows_in}")
    ws.cell(row=row, column=2, value=f"Rows out: {report.rows_out}")
    ws.cell(row=row, column=3, value=f"Dropped: {report.dropped_rows}")
    _fill_row(ws, row, NOTE_FILL)
    row += 1
    for warn in report.warnings or ["No warnings"]:
        font = WARN_FONT if report.warnings else VALUE_FONT
        text = f"⚠ {warn}" if report.warnings else warn
        ws.cell(row=row, column=1, value=text).font = font
        _fill_row(ws, row, NOTE_FILL)
        row += 1

    # ── KPI cards ────────────────────────────────────────────────
    row += 1
    ws.cell(row=row, column=1, value="Key Metrics").font = LABEL_FONT
    ws.merge_cells(f"A{row}:D{row}")
    _fill_row(ws, row, KPI_FILL)
    row += 1

    extras = sorted(label for label in kpis if label not in _KPI_FORMATS)
    for label in [*_KPI_FORMATS, *extras]:
        if label not in kpis:
            continue
        lbl_cell = ws.cell(row=row, column=1, value=label)
        lbl_cell.font = LABEL_FONT
        lbl_cell.fill = KPI_FILL
        val_cell = ws.cell(row=row, column=2, value=kpis[label])
        val_cell.font = VALUE_FONT
        val_cell.fill = KPI_FILL
        fmt = _KPI_FORMATS.get(label)
        if fmt:
            val_cell.number_format = fmt
            val_cell.alignment = Alignment(horizontal="right")
        row += 1

    for letter, width in zip("ABCD", (22, 22, 18, 18)):
        ws.column_dimensions[letter].width = width


# ── Public API ───────────────────────────────────────────────────


def write_dashboard(
    out_dir: Path,
    *,
    kpis: dict[str, Any],
    by_month: pd.DataFrame,
    quantity_by_month: pd.DataFrame,
    top_products: pd.DataFrame,
    by_category: pd.DataFrame,
    stock_analysis: pd.DataFrame,
    preview: Sequence[NormalizedRecord],
    report: NormalizationReport | None = None,
    company: str = "",
) -> Path:
    """Write ``Dashboard.xlsx`` (KPIs, series, charts, preview) and return the path."""
    if report is None:
        report = NormalizationReport()

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    dashboard_path = out_dir / DASHBOARD_FILENAME

    wb = Workbook()
    active_sheet = wb.active
    if active_sheet is not None:
        wb.remove(active_sheet)  # remove default sheet

    _write_dashboard_sheet(wb, kpis, report, company)

    if by_month.empty:
        monthly = pd.DataFrame(columns=["month", "value", "quantity"])
    else:
        monthly = by_month.merge(quantity_by_month, on="month", how="left")
    ws = _df_to_sheet(wb, "Monthly", monthly)
    if not monthly.empty:
        _add_line_chart(ws, "Evolução Mensal - Faturamento", 2, len(monthly), _CHART_ANCHOR)
        _add_bar_chart(ws, "Evolução Mensal - Quantidade", [3], len(monthly), "E18")

    ws = _df_to_sheet(wb, "Top_Products", top_products)
    if not top_products.empty:
        _add_pie_chart(ws, "Top 10 Produtos", len(top_products))

    ws = _df_to_sheet(wb, "Categories", by_category)
    if not by_category.empty:
        _add_pie_chart(ws, "Por Categoria", len(by_category))

    if not stock_analysis.empty:
        ws = _df_to_sheet(wb, "Stock", stock_analysis)
        _add_bar_chart(
            ws, "Análise de Estoque (Produtos com Menor Giro)", [2, 3], len(stock_analysis),
            "F2",
        )

    _df_to_sheet(wb, "Preview", preview_frame(preview))

    tmp_path = out_dir / "Dashboard.tmp.xlsx"
    wb.save(tmp_path)
    tmp_path.replace(dashboard_path)
    return dashboard_path
