from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import matplotlib.ticker as mtick
import pandas as pd
from openpyxl import Workbook
from openpyxl.utils.dataframe import dataframe_to_rows

from .config import VarianceThresholds
from .io import monthly_to_csv_frame, write_financials_json
from .model import forecast_kpis, quarterly_rollup, yearly_rollup
from .types import POFinancials


def aggregations_frame(financials: POFinancials) -> pd.DataFrame:
    rows = []
    for amount, buckets in [
        ("Forecast", financials.forecast),
        ("Commit", financials.commit),
        ("Actuals", financials.actuals),
        ("Liability", financials.liability),
    ]:
        for fy, q in buckets.items():
            rows.append([amount, fy, q.q1, q.q2, q.q3, q.q4, q.total])
    return pd.DataFrame(rows, columns=["Amount", "FiscalYear", "Q1", "Q2", "Q3", "Q4", "Total"])


def write_summary(path: str | Path, financials: POFinancials, thresholds: VarianceThresholds | None = None) -> None:
    path = Path(path)
    kpis = forecast_kpis(financials.monthly_data, thresholds)
    years = yearly_rollup(financials.monthly_data, thresholds)

    lines: list[str] = []
    lines.append(f"# Forecast Summary: {financials.po_number}")
    lines.append("")
    lines.append("## Totals")
    lines.append(f"- Total forecast: {kpis['total_forecast']:,.2f}")
    lines.append(f"- Actuals to date: {kpis['actuals_to_date']:,.2f}")
    lines.append(f"- Remaining forecast: {kpis['remaining_forecast']:,.2f}")
    lines.append(
        f"- Average variance: {kpis['average_variance']:.1f}% ({kpis['average_variance_classification']})"
    )
    lines.append("")
    lines.append("## Fiscal years")
    for _, row in years.iterrows():
        lines.append(
            f"- {row['fiscal_year']}: forecast {row['amount']:,.2f}, commit {row['commit']:,.2f}, "
            f"actual {row['actual']:,.2f}, variance {row['variance']:.1f}% ({row['classification']})"
        )
    lines.append("")
    u = financials.uplift
    lines.append("## Uplift assumptions")
    lines.append(f"- Price: {u.price}%")
    lines.append(f"- Volume: {u.volume}%")
    lines.append(f"- Expansion: {u.expansion}%")
    lines.append("")
    path.write_text("\n".join(lines), encoding="utf-8")


def save_forecast_chart(out_dir: str | Path, financials: POFinancials) -> Path:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    quarters = quarterly_rollup(financials.monthly_data)

    plt.figure(figsize=(12, 4))
    x = list(range(len(quarters.index)))
    plt.plot(x, quarters["amount"], label="Forecast")
    plt.plot(x, quarters["commit"], label="Commit", linestyle="--")
    closed = quarters[quarters["actual"] != 0]
    if len(closed.index):
        plt.bar([x[i] for i in closed.index], closed["actual"], alpha=0.3, label="Actual")
        # Actuals vs Forecast cutoff line
        plt.axvline(x=x[closed.index.max()] + 0.5, color="gray", linestyle=":", linewidth=1, alpha=0.6)
    plt.xticks(x, quarters["key"], rotation=90, fontsize=7)
    plt.title(f"{financials.po_number} Quarterly Forecast")
    plt.ylabel("Amount")
    plt.gca().yaxis.set_major_formatter(mtick.StrMethodFormatter("{x:,.0f}"))
    plt.grid(True, alpha=0.25)
    plt.legend()
    p = out_dir / f"forecast_{_safe_filename(financials.po_number)}.png"
    plt.tight_layout()
    plt.savefig(p, dpi=160)
    plt.close()
    return p


def write_excel_pack(
    path: str | Path, financials: POFinancials, thresholds: VarianceThresholds | None = None
) -> None:
    path = Path(path)
    wb = Workbook()
    wb.remove(wb.active)

    _add_df_sheet(wb, "Monthly", monthly_to_csv_frame(financials.monthly_data))
    _add_df_sheet(wb, "Quarterly", quarterly_rollup(financials.monthly_data, thresholds))
    _add_df_sheet(wb, "Yearly", yearly_rollup(financials.monthly_data, thresholds))
    _add_df_sheet(wb, "Aggregations", aggregations_frame(financials))

    wb.save(path)


def write_forecast_pack(
    out_dir: str | Path, financials: POFinancials, thresholds: VarianceThresholds | None = None
) -> dict[str, Path]:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    paths = {
        "excel": out_dir / "forecast_pack.xlsx",
        "summary": out_dir / "summary.md",
        "json": out_dir / "financials.json",
    }
    write_excel_pack(paths["excel"], financials, thresholds)
    write_summary(paths["summary"], financials, thresholds)
    write_financials_json(paths["json"], financials)
    paths["chart"] = save_forecast_chart(out_dir / "charts", financials)
    return paths


def _add_df_sheet(wb: Workbook, title: str, df: pd.DataFrame) -> None:
    ws = wb.create_sheet(title=title[:31])
    for r in dataframe_to_rows(df, index=False, header=True):
        ws.append([None if isinstance(v, float) and pd.isna(v) else v for v in r])
    ws.freeze_panes = "A2"


def _safe_filename(s: str) -> str:
    return "".join(ch if ch.isalnum() or ch in ("-", "_") else "_" for ch in s).strip("_") or "po"
