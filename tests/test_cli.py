"""CLI integration tests for excel-dashboard."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from openpyxl import load_workbook
from typer.testing import CliRunner

import excel_dashboard.cli as cli_mod
from excel_dashboard import __version__
from excel_dashboard.cli import app

runner = CliRunner()
DEMO_CSV = Path(__file__).resolve().parent.parent / "examples" / "vendas_demo.csv"
ARTIFACTS = (
    "qc_report.json",
    "Dashboard.xlsx",
    "relatorio-demo.pdf",
    "run_manifest.json",
    "summary.txt",
)


def _write_csv(tmp_path: Path, name: str, rows: str) -> Path:
    path = tmp_path / name
    path.write_text(rows, encoding="utf-8")
    return path


def _read_json(path: Path) -> dict[str, object]:
    return json.loads(path.read_text(encoding="utf-8"))


def _summary(out_dir: Path) -> dict[str, str]:
    lines = (out_dir / "summary.txt").read_text(encoding="utf-8").splitlines()
    return dict(line.split(": ", 1) for line in lines[1:])


# ── run ──────────────────────────────────────────────────────────


def test_run_demo_writes_all_artifacts(tmp_path: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["run", "--input", str(DEMO_CSV), "--out-dir", str(out_dir), "--quiet"]
    )

    assert result.exit_code == 0, result.output
    for name in ARTIFACTS:
        assert (out_dir / name).exists(), name

    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["status"] == "success"
    assert manifest["rows_in"] == 11
    assert manifest["rows_out"] == 9
    assert manifest["company"] == ""
    assert manifest["mapping"]["id"] == "Empresa"  # type: ignore[index]
    assert len(str(manifest["sha256"])) == 64

    summary = _summary(out_dir)
    assert summary["company"] == "Todas"
    assert summary["kpi_total_value"] == "5014.30"
    assert summary["kpi_average_ticket"] == "557.14"
    assert summary["date_range"] == "2024-01-05 to 2024-03-15"
    assert summary["map_date"] == "DataVenda"
    assert summary["optional_analyses"] == "5"

    wb = load_workbook(out_dir / "Dashboard.xlsx")
    assert wb.sheetnames[0] == "Dashboard"
    assert "Stock" in wb.sheetnames
    assert (out_dir / "relatorio-demo.pdf").read_bytes().startswith(b"%PDF")


def test_run_prints_progress_unless_quiet(tmp_path: Path) -> None:
    result = runner.invoke(app, ["run", "--input", str(DEMO_CSV), "--out-dir", str(tmp_path)])

    assert result.exit_code == 0, result.output
    assert "Pipeline Start" in result.output
    assert "Pipeline Complete" in result.output
    assert "Faturamento" in result.output

    quiet = runner.invoke(
        app, ["run", "--input", str(DEMO_CSV), "--out-dir", str(tmp_path), "--quiet"]
    )
    assert quiet.exit_code == 0
    assert "Pipeline Start" not in quiet.output


def test_run_company_filter(tmp_path: Path) -> None:
    out_dir = tmp_path / "sul"

    result = runner.invoke(
        app,
        [
            "run", "--input", str(DEMO_CSV), "--out-dir", str(out_dir),
            "--company", "Loja Sul", "--quiet",
        ],
    )

    assert result.exit_code == 0, result.output
    assert _read_json(out_dir / "run_manifest.json")["company"] == "Loja Sul"
    summary = _summary(out_dir)
    assert summary["company"] == "Loja Sul"
    assert summary["kpi_records"] == "2"
    assert summary["kpi_total_value"] == "149.50"
    assert summary["kpi_companies"] == "3"

    ws = load_workbook(out_dir / "Dashboard.xlsx")["Dashboard"]
    assert ws.cell(row=3, column=1).value == "Empresa: Loja Sul"


def test_run_incomplete_mapping_still_writes_empty_dashboard(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "unknown.csv", "foo,bar\n1,2\n")
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["run", "--input", str(csv_path), "--out-dir", str(out_dir), "--quiet"]
    )

    assert result.exit_code == 0, result.output
    qc = _read_json(out_dir / "qc_report.json")
    assert qc["missing_fields"] == ["id", "date", "value"]
    assert qc["rows_out"] == 0
    assert _summary(out_dir)["kpi_records"] == "0"
    for name in ARTIFACTS:
        assert (out_dir / name).exists(), name


def test_run_map_option_picks_columns(tmp_path: Path) -> None:
    csv_path = _write_csv(
        tmp_path, "renamed.csv", "Loja,Quando,Total\nA,2024-01-01,10\nB,2024-02-01,\"2,5\"\n"
    )
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "run", "--input", str(csv_path), "--out-dir", str(out_dir),
            "--map", "company=Loja",
            "--map", "date=Quando",
            "--map", "value=Total",
            "--quiet",
        ],
    )

    assert result.exit_code == 0, result.output
    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["mapping"]["id"] == "Loja"  # type: ignore[index]
    assert manifest["rows_out"] == 2
    assert _summary(out_dir)["kpi_total_value"] == "12.50"


def test_run_us_number_locale(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "us.csv", 'Empresa,Data,Valor\nA,2024-01-01,"1,234.56"\n')
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "run", "--input", str(csv_path), "--out-dir", str(out_dir),
            "--number-locale", "us", "--quiet",
        ],
    )

    assert result.exit_code == 0, result.output
    assert _summary(out_dir)["kpi_total_value"] == "1234.56"


@pytest.mark.parametrize(
    ("flag", "expected"),
    [("--dayfirst", "2024-02-01"), ("--monthfirst", "2024-01-02")],
)
def test_run_date_order_flag(tmp_path: Path, flag: str, expected: str) -> None:
    csv_path = _write_csv(tmp_path, "dates.csv", "Empresa,Data,Valor\nA,01/02/2024,10\n")
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["run", "--input", str(csv_path), "--out-dir", str(out_dir), flag, "--quiet"]
    )

    assert result.exit_code == 0, result.output
    assert _summary(out_dir)["date_range"] == f"{expected} to {expected}"


@pytest.mark.parametrize(
    ("map_arg", "message"),
    [
        ("value=Nope", "not found"),
        ("colour=Valor", "Unknown field"),
        ("value", "Invalid --map value"),
    ],
)
def test_run_bad_map_fails_with_exit_2(tmp_path: Path, map_arg: str, message: str) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "run", "--input", str(DEMO_CSV), "--out-dir", str(out_dir),
            "--map", map_arg, "--quiet",
        ],
    )

    assert result.exit_code == 2
    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["status"] == "failed"
    assert manifest["error_code"] == 2
    assert message in str(manifest["error_message"])
    assert not (out_dir / "Dashboard.xlsx").exists()


def test_run_unsupported_input_fails_with_exit_2(tmp_path: Path) -> None:
    txt = _write_csv(tmp_path, "data.txt", "a,b\n1,2\n")
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["run", "--input", str(txt), "--out-dir", str(out_dir)])

    assert result.exit_code == 2
    qc = _read_json(out_dir / "qc_report.json")
    assert "Unsupported file type" in qc["warnings"][0]  # type: ignore[index]


def test_run_unexpected_error_exits_1(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def _boom(*_args: object, **_kwargs: object) -> Path:
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(cli_mod, "write_dashboard", _boom)
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["run", "--input", str(DEMO_CSV), "--out-dir", str(out_dir), "--quiet"]
    )

    assert result.exit_code == 1
    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["status"] == "failed"
    assert manifest["error_code"] == 1
    assert str(manifest["error_message"]).startswith("Unexpected internal error")
    assert manifest["rows_in"] == 11


# ── profiles ─────────────────────────────────────────────────────


def test_profile_is_applied_and_map_wins(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "renamed.csv", "Loja,Quando,Total,Bruto\nA,2024-01-01,10,99\n")
    profile = tmp_path / "loja.profile"
    profile.write_text(
        "# mapping for the store export\n\ncompany=Loja\ndate=Quando\nvalue=Bruto\n",
        encoding="utf-8",
    )
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "run", "--input", str(csv_path), "--out-dir", str(out_dir),
            "--profile", str(profile), "--map", "value=Total", "--quiet",
        ],
    )

    assert result.exit_code == 0, result.output
    assert _summary(out_dir)["map_value"] == "Total"
    assert _summary(out_dir)["kpi_total_value"] == "10.00"


def test_missing_profile_fails_with_exit_2(tmp_path: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "validate", "--input", str(DEMO_CSV), "--out-dir", str(out_dir),
            "--profile", str(tmp_path / "absent.profile"), "--quiet",
        ],
    )

    assert result.exit_code == 2
    assert "Profile not found" in str(_read_json(out_dir / "run_manifest.json")["error_message"])


def test_profile_directory_fails_with_exit_2(tmp_path: Path) -> None:
    profile_dir = tmp_path / "profiles"
    profile_dir.mkdir()
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "run", "--input", str(DEMO_CSV), "--out-dir", str(out_dir),
            "--profile", str(profile_dir), "--quiet",
        ],
    )

    assert result.exit_code == 2
    message = str(_read_json(out_dir / "run_manifest.json")["error_message"])
    assert "directory" in message


# ── suggest ──────────────────────────────────────────────────────


def test_suggest_prints_mapping_and_writes_profile(tmp_path: Path) -> None:
    profile = tmp_path / "demo.profile"

    result = runner.invoke(
        app, ["suggest", "--input", str(DEMO_CSV), "--write-profile", str(profile)]
    )

    assert result.exit_code == 0, result.output
    assert "Suggested mapping" in result.output
    assert "5 análises extras selecionadas" in result.output
    text = profile.read_text(encoding="utf-8")
    assert text.startswith("# excel-dashboard mapping profile\n")
    assert "id=Empresa\n" in text
    assert "date=DataVenda\n" in text
    assert "stock=Estoque\n" in text

    out_dir = tmp_path / "out"
    rerun = runner.invoke(
        app,
        ["run", "--input", str(DEMO_CSV), "--out-dir", str(out_dir),
         "--profile", str(profile), "--quiet"],
    )
    assert rerun.exit_code == 0, rerun.output


def test_suggest_warns_about_missing_required_fields(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "partial.csv", "Empresa,Observacao\nA,x\n")

    result = runner.invoke(app, ["suggest", "--input", str(csv_path)])

    assert result.exit_code == 0
    assert "No column found for: date, value" in result.output


# ── validate ─────────────────────────────────────────────────────


def test_validate_pass_writes_qc_and_manifest_only(tmp_path: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["validate", "--input", str(DEMO_CSV), "--out-dir", str(out_dir)])

    assert result.exit_code == 0, result.output
    assert "PASS" in result.output
    assert (out_dir / "qc_report.json").exists()
    assert _read_json(out_dir / "run_manifest.json")["status"] == "success"
    assert not (out_dir / "Dashboard.xlsx").exists()
    assert not (out_dir / "relatorio-demo.pdf").exists()


def test_validate_missing_fields_exits_2(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "partial.csv", "Empresa,Observacao\nA,x\n")
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["validate", "--input", str(csv_path), "--out-dir", str(out_dir), "--quiet"]
    )

    assert result.exit_code == 2
    qc = _read_json(out_dir / "qc_report.json")
    assert qc["missing_fields"] == ["date", "value"]
    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["status"] == "failed"
    assert manifest["error_message"] == "Missing required fields: date, value"


def test_validate_map_can_unmap_a_field(tmp_path: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        ["validate", "--input", str(DEMO_CSV), "--out-dir", str(out_dir),
         "--map", "date=", "--quiet"],
    )

    assert result.exit_code == 2
    assert _read_json(out_dir / "qc_report.json")["missing_fields"] == ["date"]


# ── misc ─────────────────────────────────────────────────────────


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"excel-dashboard v{__version__}" in result.output


def test_validate_reports_optional_analyses(tmp_path: Path) -> None:
    csv_path = _write_csv(
        tmp_path, "partial.csv", "Empresa,Data,Valor,Produto,Estoque\nA,2024-01-01,10,X,3\n"
    )

    result = runner.invoke(
        app, ["validate", "--input", str(csv_path), "--out-dir", str(tmp_path / "out")]
    )

    assert result.exit_code == 0, result.output
    assert "2 análises extras selecionadas" in result.output
