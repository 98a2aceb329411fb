from __future__ import annotations

import importlib.resources
import json
from pathlib import Path
from typing import Any, Mapping, Sequence

import pandas as pd
import yaml

from .model import forecast_frame
from .types import MonthlyForecast, POFinancials, PurchaseOrder, PurchaseOrderField


def purchase_orders_from_mapping(raw: Mapping[str, Any]) -> list[PurchaseOrder]:
    catalog: Mapping[str, Any] = raw.get("fields", {}) or {}
    orders: list[PurchaseOrder] = []
    for idx, row in enumerate(raw.get("purchase_orders", []) or []):
        if "PO_NUMBER" not in row:
            raise ValueError(f"purchase_orders[{idx}] missing required key: PO_NUMBER")
        fields = []
        for key, value in row.items():
            meta = catalog.get(key, {}) or {}
            fields.append(
                PurchaseOrderField(
                    key=str(key),
                    value=value,
                    name=str(meta.get("name", key)),
                    type=str(meta.get("type", "STRING")),
                    read_only=bool(meta.get("read_only", False)),
                )
            )
        orders.append(PurchaseOrder(fields=tuple(fields)))
    return orders


def load_purchase_orders(path: str | Path | None = None) -> list[PurchaseOrder]:
    """Load PO attribute rows from a YAML file, or the packaged seed rows."""
    if path is None:
        text = importlib.resources.files("samforecast.resources").joinpath("purchase_orders.yaml").read_text(encoding="utf-8")
    else:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Missing purchase order file: {path}")
        text = path.read_text(encoding="utf-8")
    return purchase_orders_from_mapping(yaml.safe_load(text) or {})


_CSV_COLUMNS = {
    "id": "Id",
    "po_id": "PO",
    "period": "Period",
    "period_label": "PeriodLabel",
    "fiscal_year": "FiscalYear",
    "quarter": "Quarter",
    "forecast_amount": "Forecast$",
    "actual_amount": "Actual$",
    "commit_amount": "Commit$",
    "variance": "Variance%",
    "status": "Status",
    "basis": "Basis",
}


def monthly_to_csv_frame(monthly: Sequence[MonthlyForecast]) -> pd.DataFrame:
    return forecast_frame(monthly)[list(_CSV_COLUMNS)].rename(columns=_CSV_COLUMNS)


def write_monthly_csv(path: str | Path, monthly: Sequence[MonthlyForecast]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    monthly_to_csv_frame(monthly).to_csv(path, index=False)
    return path


def write_financials_json(path: str | Path, financials: POFinancials) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(financials.to_dict(), indent=2), encoding="utf-8")
    return path
