from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import ForecastConfig, default_forecast_config
from .io import load_purchase_orders, write_financials_json, write_monthly_csv
from .model import forecast_kpis, yearly_rollup
from .reporting import write_forecast_pack
from .synth import generate_po_financials

app = typer.Typer(add_completion=False, help="Deterministic PO spend forecasting for software asset management.")
console = Console()

_CLASSIFICATION_STYLE = {"on-track": "green", "watch": "yellow", "alert": "red"}


def _load_config(config: Optional[Path]) -> ForecastConfig:
    return ForecastConfig.from_yaml(config) if config else default_forecast_config()


@app.command()
def generate(
    po_id: str = typer.Argument(..., help="Purchase order identifier, e.g. PO-001."),
    out: Optional[Path] = typer.Option(None, help="Write to this file instead of stdout."),
    fmt: str = typer.Option("json", "--format", help="Output format: json (full financials) or csv (monthly rows)."),
    config: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="Forecast config YAML."),
):
    """Generate the 72-month forecast for a PO."""
    fmt = fmt.lower()
    if fmt not in ("json", "csv"):
        raise typer.BadParameter("format must be 'json' or 'csv'", param_hint="--format")
    financials = generate_po_financials(po_id, _load_config(config))
    if out is None:
        if fmt == "csv":
            from .io import monthly_to_csv_frame

            typer.echo(monthly_to_csv_frame(financials.monthly_data).to_csv(index=False), nl=False)
        else:
            typer.echo(json.dumps(financials.to_dict(), indent=2))
        return
    if fmt == "csv":
        write_monthly_csv(out, financials.monthly_data)
    else:
        write_financials_json(out, financials)
    console.print(f"Wrote {fmt.upper()} forecast for {po_id} to {out}")


@app.command()
def summary(
    po_id: str = typer.Argument(..., help="Purchase order identifier."),
    config: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="Forecast config YAML."),
):
    """Print fiscal-year totals and KPIs for a PO."""
    cfg = _load_config(config)
    financials = generate_po_financials(po_id, cfg)
    years = yearly_rollup(financials.monthly_data, cfg.variance_thresholds)
    kpis = forecast_kpis(financials.monthly_data, cfg.variance_thresholds)

    table = Table(title=f"{po_id} forecast by fiscal year")
    for col in ("Fiscal Year", "Forecast", "Commit", "Actual", "Variance %", "Status"):
        table.add_column(col, justify="left" if col in ("Fiscal Year", "Status") else "right")
    for _, row in years.iterrows():
        style = _CLASSIFICATION_STYLE.get(row["classification"], "")
        table.add_row(
            str(row["fiscal_year"]),
            f"{row['amount']:,.2f}",
            f"{row['commit']:,.2f}",
            f"{row['actual']:,.2f}",
            f"{row['variance']:.1f}",
            f"[{style}]{row['classification']}[/{style}]" if style else str(row["classification"]),
        )
    console.print(table)
    console.print(f"Total forecast: {kpis['total_forecast']:,.2f}")
    console.print(f"Actuals to date: {kpis['actuals_to_date']:,.2f}")
    console.print(f"Remaining forecast: {kpis['remaining_forecast']:,.2f}")
    console.print(f"Average variance: {kpis['average_variance']:.1f}% ({kpis['average_variance_classification']})")


@app.command()
def report(
    po_id: str = typer.Argument(..., help="Purchase order identifier."),
    out: Path = typer.Option(..., help="Output directory for the forecast pack."),
    config: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="Forecast config YAML."),
):
    """Write the Excel pack, chart, summary and JSON for a PO."""
    cfg = _load_config(config)
    paths = write_forecast_pack(out, generate_po_financials(po_id, cfg), cfg.variance_thresholds)
    console.print(f"Wrote forecast pack to {out} ({len(paths)} files)")


@app.command(name="init-db")
def init_db_cmd():
    """Create the purchase_orders table (uses DATABASE_URL)."""
    from .db import init_db

    init_db()
    console.print("Database initialized")


@app.command(name="seed-db")
def seed_db_cmd(
    source: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="PO rows YAML (default: packaged rows)."),
):
    """Load purchase-order rows into PostgreSQL, skipping ones already stored."""
    from .db import get_connection, init_db, seed_purchase_orders

    init_db()
    conn = get_connection()
    try:
        added = seed_purchase_orders(conn, load_purchase_orders(source))
    finally:
        conn.close()
    console.print(f"Seeded {added} purchase orders")


def _find_available_port(host: str, preferred: int) -> int:
    """Return *preferred* if free, otherwise try fallbacks then let the OS pick."""
    import socket

    candidates = [preferred] + [p for p in (8000, 8001, 8080, 8888) if p != preferred]
    for port in candidates:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            try:
                s.bind((host, port))
                return port
            except OSError:
                continue
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return s.getsockname()[1]


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host to bind (use 0.0.0.0 for LAN)."),
    port: int = typer.Option(8000, help="Port to serve the API on."),
):
    """Start the forecast API server."""
    try:
        import uvicorn
    except ImportError as e:  # pragma: no cover
        raise typer.BadParameter('Missing server deps. Install with: pip install -e ".[server]"') from e

    actual_port = _find_available_port(host, port)
    if actual_port != port:
        console.print(f"Port {port} is in use, using port {actual_port} instead.")
    uvicorn.run("samforecast.server:app", host=host, port=actual_port, reload=False)


if __name__ == "__main__":
    app()
