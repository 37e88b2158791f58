"""CLI entry point for excel-dashboard."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table as RichTable

from excel_dashboard import REQUIRED_FIELDS, __version__
from excel_dashboard.io import load_rows, write_json
from excel_dashboard.models import (
    FIELD_ATTRS,
    ColumnMapping,
    NormalizationReport,
    RawRow,
    RunManifest,
    resolve_field_name,
)
from excel_dashboard.qc import write_qc_report
from excel_dashboard.report import (
    ALL_COMPANIES,
    PREVIEW_HEADERS,
    build_pdf_lines,
    format_kpis,
    format_preview_rows,
    write_dashboard,
    write_pdf_report,
)
from excel_dashboard.session import DashboardSession
from excel_dashboard.utils import format_number_br, sha256_file, utcnow_iso

app = typer.Typer(
    name="xdash",
    help="excel-dashboard — Turn one spreadsheet into KPIs, charts and a PDF report.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()


class NumberLocaleOption(str, Enum):
    eu = "eu"
    us = "us"
    auto = "auto"


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"excel-dashboard v{__version__}")
        raise typer.Exit()


def _parse_field_map(raw: list[str] | None, *, quiet: bool = False) -> dict[str, str]:
    """Parse ``--map field=Header`` pairs into ``{field: header}``."""
    if not raw:
        return {}
    mapping: dict[str, str] = {}
    for item in raw:
        if "=" not in item:
            raise ValueError(f"Invalid --map value: {item!r}  (expected field=Header)")
        target, source = item.split("=", 1)
        field_name = resolve_field_name(target) if target.strip() else ""
        header = source.strip()
        if not field_name:
            raise ValueError("--map entries must have a non-empty field (field=Header)")
        if field_name in mapping and not quiet:
            console.print(f"[yellow]![/yellow] Overriding mapping for field {field_name!r}")
        mapping[field_name] = header
    return mapping


def _load_profile_map(profile: Path | None) -> list[str]:
    """Return list of ``field=Header`` strings from a profile file."""
    if not profile:
        return []
    if not profile.exists():
        raise ValueError(f"Profile not found: {profile} (expected lines like value=Valor)")
    if profile.is_dir():
        raise ValueError(f"Profile is a directory, not a file: {profile}")
    try:
        text = profile.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read profile {profile}: {exc}") from exc

    lines: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append(stripped)
    return lines


def _check_headers(overrides: dict[str, str], headers: list[str]) -> None:
    """Reject overrides naming a header the sheet does not have (empty = unmap)."""
    available = set(headers)
    for field_name, header in overrides.items():
        if header and header not in available:
            listing = ", ".join(headers) if headers else "none"
            raise ValueError(
                f"Column {header!r} for field {field_name!r} not found (available: {listing})"
            )


def _write_manifest(
    out_dir: Path,
    input_file: Path,
    run_id: str,
    created_at: str,
    report: NormalizationReport,
    *,
    mapping: ColumnMapping | None = None,
    company: str = "",
    status: str = "success",
    error_code: int | None = None,
    error_message: str = "",
) -> Path:
    sha256 = ""
    try:
        sha256 = sha256_file(input_file)
    except OSError:
        pass

    manifest = RunManifest(
        run_id=run_id,
        version=__version__,
        input_path=str(input_file.resolve()),
        output_dir=str(out_dir.resolve()),
        created_at_utc=created_at,
        rows_in=report.rows_in,
        rows_out=report.rows_out,
        sha256=sha256,
        mapping=mapping.to_dict() if mapping else {},
        company=company,
        status=status,
        error_code=error_code,
        error_message=error_message,
    )
    return write_json(out_dir / "run_manifest.json", manifest.to_dict())


def _fail(
    out_dir: Path,
    input_file: Path,
    run_id: str,
    created_at: str,
    *,
    message: str,
    rows_in: int = 0,
    error_code: int = 2,
) -> typer.Exit:
    """Write failure artifacts, print the error and return the Exit to raise."""
    report = NormalizationReport(
        rows_in=rows_in, rows_out=0, dropped_rows=rows_in, warnings=[message]
    )
    qc_path = write_qc_report(out_dir, report)
    manifest_path = _write_manifest(
        out_dir,
        input_file,
        run_id,
        created_at,
        report,
        status="failed",
        error_code=error_code,
        error_message=message,
    )
    _err(message)
    console.print(f"  QC report -> {qc_path}")
    console.print(f"  Manifest  -> {manifest_path}")
    return typer.Exit(code=error_code)


def _write_text_artifact(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(text, encoding="utf-8")
    tmp_path.replace(path)
    return path


def _summary_date_range(session: DashboardSession) -> str:
    dates = [r.date for r in session.filtered]
    if not dates:
        return "N/A"
    return f"{min(dates)} to {max(dates)}"


def _write_summary_artifact(
    *,
    out_dir: Path,
    input_file: Path,
    session: DashboardSession,
    max_warnings: int = 5,
) -> Path:
    report = session.report
    kpis = session.kpis
    lines: list[str] = [
        "excel-dashboard summary",
        f"tool_version: excel-dashboard v{__version__}",
        f"input_file: {input_file.name}",
        f"company: {session.selected_company or ALL_COMPANIES}",
        f"rows_in: {report.rows_in}",
        f"rows_out: {report.rows_out}",
        f"rows_dropped: {report.dropped_rows}",
        f"warning_count: {len(report.warnings)}",
    ]
    for idx, warning in enumerate(report.warnings[:max_warnings], start=1):
        lines.append(f"warning_{idx}: {warning}")
    if len(report.warnings) > max_warnings:
        lines.append(f"warning_more: {len(report.warnings) - max_warnings}")

    for field_name, header in session.mapping.to_dict().items():
        lines.append(f"map_{field_name}: {header or '-'}")
    lines.append(f"optional_analyses: {session.mapping.optional_count()}")

    lines.extend(
        [
            f"date_range: {_summary_date_range(session)}",
            f"kpi_records: {kpis['Records']}",
            f"kpi_total_value: {float(kpis['Total Value']):.2f}",
            f"kpi_total_quantity: {float(kpis['Total Quantity']):.2f}",
            f"kpi_average_ticket: {float(kpis['Average Ticket']):.2f}",
            f"kpi_companies: {kpis['Companies']}",
        ]
    )
    payload = "\n".join(lines) + "\n"
    return _write_text_artifact(out_dir / "summary.txt", payload)


def _mapping_table(mapping: ColumnMapping, title: str) -> RichTable:
    tbl = RichTable(title=title, show_lines=False)
    tbl.add_column("Field", style="bold")
    tbl.add_column("Column")
    tbl.add_column("Required")
    for field_name in FIELD_ATTRS:
        header = mapping.get(field_name)
        tbl.add_row(
            field_name,
            header if header else "[dim]-[/dim]",
            "yes" if field_name in REQUIRED_FIELDS else "",
        )
    return tbl


def _optional_line(mapping: ColumnMapping) -> str:
    return f"  {mapping.optional_count()} análises extras selecionadas"


def _kpi_table(kpis: dict[str, Any]) -> RichTable:
    tbl = RichTable(title="KPIs", show_lines=True)
    tbl.add_column("KPI", style="bold")
    tbl.add_column("Value", justify="right")
    for label, text in format_kpis(kpis):
        tbl.add_row(label, text)
    return tbl


def _preview_table(session: DashboardSession) -> RichTable:
    tbl = RichTable(title=f"Prévia ({len(session.preview)} linhas)")
    for header in PREVIEW_HEADERS:
        tbl.add_column(header)
    for row in format_preview_rows(session.preview):
        tbl.add_row(*row)
    return tbl


def _load_session(
    input_file: Path,
    overrides: dict[str, str],
    *,
    company: str | None,
    number_locale: NumberLocaleOption,
    dayfirst: bool,
) -> tuple[list[RawRow], DashboardSession]:
    rows = load_rows(input_file)
    session = DashboardSession.from_rows(
        rows, number_locale=number_locale.value, dayfirst=dayfirst
    )
    _check_headers(overrides, session.headers)
    return rows, session.with_mapping(overrides).with_company(company)


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """excel-dashboard CLI."""


# ── suggest command ──────────────────────────────────────────────


@app.command()
def suggest(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to CSV or XLSX input file.",
        exists=True, readable=True,
    ),
    write_profile: Path | None = typer.Option(
        None, "--write-profile",
        help="Write the suggested mapping as a profile file (field=Header lines).",
    ),
) -> None:
    """Show the columns of a sheet and the suggested field mapping."""
    try:
        rows = load_rows(input_file)
    except (FileNotFoundError, ValueError, OSError) as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    session = DashboardSession.from_rows(rows)
    console.print(f"  {len(rows)} rows x {len(session.headers)} columns")
    console.print(f"  Columns: {', '.join(session.headers) if session.headers else 'none'}")
    console.print(_mapping_table(session.mapping, "Suggested mapping"))
    console.print(_optional_line(session.mapping))

    missing = session.mapping.missing_required()
    if missing:
        console.print(
            f"[yellow]![/yellow] No column found for: {', '.join(missing)} "
            "(use --map field=Header)"
        )

    if write_profile:
        lines = ["# excel-dashboard mapping profile"]
        lines.extend(
            f"{field_name}={header}"
            for field_name, header in session.mapping.to_dict().items()
            if header
        )
        path = _write_text_artifact(write_profile, "\n".join(lines) + "\n")
        console.print(f"  Profile -> {path}")


# ── run command ──────────────────────────────────────────────────


@app.command()
def run(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to CSV or XLSX input file.",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for dashboard + PDF + QC + manifest.",
    ),
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m",
        help=(
            "Field mapping: field=Header (overrides the suggestion). "
            "E.g. --map value=Valor --map date=DataVenda"
        ),
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file containing field mappings (field=Header lines).",
    ),
    company: str | None = typer.Option(
        None, "--company", "-c",
        help="Only report this company (exact match). Default: all companies.",
    ),
    dayfirst: bool = typer.Option(
        False,
        "--dayfirst/--monthfirst",
        help="Date parsing mode for ambiguous values like 01/02/2024.",
    ),
    number_locale: NumberLocaleOption = typer.Option(
        NumberLocaleOption.eu,
        "--number-locale",
        help="Decimal separator: eu (1.234,56), us (1,234.56) or auto.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
) -> None:
    """Normalize a spreadsheet and write the dashboard and PDF report."""
    echo = _printer(quiet)
    created_at = utcnow_iso()
    run_id = created_at
    out_dir.mkdir(parents=True, exist_ok=True)
    try:
        overrides = _parse_field_map(_load_profile_map(profile) + (col_map or []), quiet=quiet)
    except ValueError as exc:
        raise _fail(out_dir, input_file, run_id, created_at, message=str(exc))

    if not quiet:
        console.print(Panel(
            f"[bold]excel-dashboard[/bold] v{__version__}\n"
            f"Input:  {input_file}\nOutput: {out_dir}",
            title="Pipeline Start", border_style="blue",
        ))
        if profile:
            console.print(f"  Using profile: {profile}")
        console.print(
            "  Parse mode: "
            f"date={'DD/MM' if dayfirst else 'MM/DD'}, "
            f"number_locale={number_locale.value}"
        )

    # ── Load ─────────────────────────────────────────────────────
    echo("[blue]>[/blue] Loading input file …")
    try:
        rows, session = _load_session(
            input_file,
            overrides,
            company=company,
            number_locale=number_locale,
            dayfirst=dayfirst,
        )
    except (FileNotFoundError, ValueError, OSError) as exc:
        raise _fail(out_dir, input_file, run_id, created_at, message=str(exc))

    echo(f"  {len(rows)} rows x {len(session.headers)} columns")

    try:
        if not quiet:
            console.print(_mapping_table(session.mapping, "Column mapping"))
            console.print(_optional_line(session.mapping))

        # ── Normalize ────────────────────────────────────────────
        echo("[blue]>[/blue] Normalizing …")
        report = session.report
        qc_path = write_qc_report(out_dir, report)
        echo(f"  QC report -> {qc_path}")

        if not quiet:
            for w in report.warnings:
                console.print(f"  [yellow]![/yellow] {w}")
            if report.missing_fields:
                console.print("  Hint: use --map field=Header to pick the required columns")
            console.print(f"  {report.rows_out} records retained")
            if session.selected_company and session.selected_company not in session.companies:
                console.print(
                    f"  [yellow]![/yellow] Company {session.selected_company!r} "
                    "has no records"
                )

        # ── Compute KPIs ─────────────────────────────────────────
        echo("[blue]>[/blue] Computing KPIs …")
        kpis = session.kpis

        # ── Write dashboard + PDF ────────────────────────────────
        echo("[blue]>[/blue] Writing Dashboard.xlsx …")
        dashboard_path = write_dashboard(
            out_dir,
            kpis=kpis,
            by_month=session.by_month,
            quantity_by_month=session.quantity_by_month,
            top_products=session.top_products,
            by_category=session.by_category,
            stock_analysis=session.stock_analysis,
            preview=session.preview,
            report=report,
            company=session.selected_company,
        )
        echo(f"  Dashboard -> {dashboard_path}")

        pdf_path = write_pdf_report(
            out_dir,
            build_pdf_lines(
                company=session.selected_company,
                record_count=kpis["Records"],
                total=kpis["Total Value"],
                by_month=session.by_month,
            ),
        )
        echo(f"  PDF       -> {pdf_path}")

        # ── Manifest + summary ───────────────────────────────────
        manifest_path = _write_manifest(
            out_dir,
            input_file,
            run_id,
            created_at,
            report,
            mapping=session.mapping,
            company=session.selected_company,
        )
        echo(f"  Manifest  -> {manifest_path}")
        summary_path = _write_summary_artifact(
            out_dir=out_dir, input_file=input_file, session=session
        )
        echo(f"  Summary   -> {summary_path}")

        if not quiet:
            console.print(_kpi_table(kpis))
            if session.preview:
                console.print(_preview_table(session))
            total = format_number_br(kpis["Total Value"])
            console.print(Panel(
                f"[green]Done[/green] — {report.rows_out} records, total R$ {total}",
                title="Pipeline Complete", border_style="green",
            ))
    except typer.Exit:
        raise
    except Exception as exc:
        raise _fail(
            out_dir,
            input_file,
            run_id,
            created_at,
            message=f"Unexpected internal error: {exc}",
            rows_in=len(rows),
            error_code=1,
        )


# ── validate command ─────────────────────────────────────────────


@app.command()
def validate(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to CSV or XLSX input file.",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for QC + manifest.",
    ),
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m",
        help="Field mapping: field=Header (overrides the suggestion).",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file containing field mappings (field=Header lines).",
    ),
    dayfirst: bool = typer.Option(
        False,
        "--dayfirst/--monthfirst",
        help="Date parsing mode for ambiguous values like 01/02/2024.",
    ),
    number_locale: NumberLocaleOption = typer.Option(
        NumberLocaleOption.eu,
        "--number-locale",
        help="Decimal separator: eu (1.234,56), us (1,234.56) or auto.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes QC + manifest.",
    ),
) -> None:
    """Check the mapping and normalization without writing the dashboard.

    Writes qc_report.json + run_manifest.json only.
    Exit 0 = OK, exit 2 = configuration incomplete or unreadable input.
    """
    created_at = utcnow_iso()
    run_id = created_at
    out_dir.mkdir(parents=True, exist_ok=True)
    try:
        overrides = _parse_field_map(_load_profile_map(profile) + (col_map or []), quiet=quiet)
    except ValueError as exc:
        raise _fail(out_dir, input_file, run_id, created_at, message=str(exc))

    if not quiet:
        console.print(Panel(
            f"[bold]excel-dashboard[/bold] v{__version__}  [dim]validate mode[/dim]\n"
            f"Input: {input_file}",
            title="Validate", border_style="cyan",
        ))

    try:
        rows, session = _load_session(
            input_file,
            overrides,
            company=None,
            number_locale=number_locale,
            dayfirst=dayfirst,
        )
    except (FileNotFoundError, ValueError, OSError) as exc:
        raise _fail(out_dir, input_file, run_id, created_at, message=str(exc))

    try:
        report = session.report
        if (report.rows_out == 0 and report.rows_in > 0) and (not quiet):
            console.print(
                "[yellow]![/yellow] Validation warning: "
                "normalized dataset is empty (no valid rows)."
            )

        qc_path = write_qc_report(out_dir, report)
        status = "success"
        error_code: int | None = None
        error_message = ""
        if report.missing_fields:
            status = "failed"
            error_code = 2
            error_message = f"Missing required fields: {', '.join(report.missing_fields)}"
        manifest_path = _write_manifest(
            out_dir,
            input_file,
            run_id,
            created_at,
            report,
            mapping=session.mapping,
            status=status,
            error_code=error_code,
            error_message=error_message,
        )

        if not quiet:
            console.print(_mapping_table(session.mapping, "Column mapping"))
            console.print(_optional_line(session.mapping))
            tbl = RichTable(title="Validation Summary", show_lines=True)
            tbl.add_column("Check", style="bold")
            tbl.add_column("Result")
            tbl.add_row("Rows in", str(report.rows_in))
            tbl.add_row("Rows out", str(report.rows_out))
            tbl.add_row("Dropped", str(report.dropped_rows))
            tbl.add_row("Companies", str(len(session.companies)))
            if report.missing_fields:
                tbl.add_row("Missing fields", ", ".join(report.missing_fields))
            else:
                tbl.add_row("Missing fields", "[green]none[/green]")
            for w in report.warnings:
                tbl.add_row("Warning", f"[yellow]{w}[/yellow]")
            tbl.add_row("Status", "[red]FAIL[/red]" if report.missing_fields else "[green]PASS[/green]")
            console.print(tbl)
        console.print(f"  QC       -> {qc_path}")
        console.print(f"  Manifest -> {manifest_path}")

        if report.missing_fields:
            _err(error_message)
            console.print(f"  Required: {', '.join(REQUIRED_FIELDS)}")
            console.print("  Hint: use --map field=Header to pick the required columns")
            raise typer.Exit(code=2)
    except typer.Exit:
        raise
    except Exception as exc:
        raise _fail(
            out_dir,
            input_file,
            run_id,
            created_at,
            message=f"Unexpected internal error: {exc}",
            rows_in=len(rows),
            error_code=1,
        )
