from __future__ import annotations

import json
from pathlib import Path

import pandas as pd
from openpyxl import load_workbook
from typer.testing import CliRunner

from samforecast.cli import app
from samforecast.reporting import aggregations_frame, write_forecast_pack
from samforecast.synth import generate_po_financials

runner = CliRunner()


def test_generate_json_to_stdout() -> None:
    result = runner.invoke(app, ["generate", "PO-001"])
    assert result.exit_code == 0, result.output
    body = json.loads(result.stdout)
    assert body["poNumber"] == "PO-001"
    assert len(body["monthlyData"]) == 72


def test_generate_csv_file(tmp_path: Path) -> None:
    out = tmp_path / "po.csv"
    result = runner.invoke(app, ["generate", "PO-002", "--format", "csv", "--out", str(out)])
    assert result.exit_code == 0, result.output
    df = pd.read_csv(out)
    assert len(df.index) == 72
    assert list(df.columns[:3]) == ["Id", "PO", "Period"]
    assert df["Actual$"].isna().sum() == 66
    assert df.loc[0, "FiscalYear"] == "FY26"


def test_generate_rejects_unknown_format() -> None:
    result = runner.invoke(app, ["generate", "PO-001", "--format", "xml"])
    assert result.exit_code != 0


def test_generate_with_config(tmp_path: Path) -> None:
    cfg = tmp_path / "forecast.yaml"
    cfg.write_text("horizon_months: 12\nclosed_months: 3\napproved_months: 6\n", encoding="utf-8")
    result = runner.invoke(app, ["generate", "PO-001", "--config", str(cfg)])
    assert result.exit_code == 0, result.output
    assert len(json.loads(result.stdout)["monthlyData"]) == 12


def test_summary() -> None:
    result = runner.invoke(app, ["summary", "PO-001"])
    assert result.exit_code == 0, result.output
    assert "FY26" in result.output
    assert "Total forecast" in result.output


def test_report_writes_pack(tmp_path: Path) -> None:
    out = tmp_path / "pack"
    result = runner.invoke(app, ["report", "PO-001", "--out", str(out)])
    assert result.exit_code == 0, result.output
    assert (out / "forecast_pack.xlsx").exists()
    assert (out / "summary.md").exists()
    assert (out / "financials.json").exists()
    assert list((out / "charts").glob("*.png"))


def test_forecast_pack_contents(tmp_path: Path) -> None:
    fin = generate_po_financials("PO-004")
    paths = write_forecast_pack(tmp_path, fin)
    assert paths["chart"].name == "forecast_PO-004.png"

    wb = load_workbook(paths["excel"])
    assert wb.sheetnames == ["Monthly", "Quarterly", "Yearly", "Aggregations"]
    assert wb["Monthly"].max_row == 73
    assert wb["Yearly"].max_row == 7

    summary = paths["summary"].read_text(encoding="utf-8")
    assert summary.startswith("# Forecast Summary: PO-004")
    assert "FY31" in summary

    saved = json.loads(paths["json"].read_text(encoding="utf-8"))
    assert saved == fin.to_dict()


def test_aggregations_frame() -> None:
    df = aggregations_frame(generate_po_financials("PO-001"))
    assert set(df["Amount"]) == {"Forecast", "Commit", "Actuals", "Liability"}
    assert len(df.index) == 4 * 6
    forecast = df[df["Amount"] == "Forecast"]
    liability = df[df["Amount"] == "Liability"]
    assert list(forecast["Total"]) == list(liability["Total"])
