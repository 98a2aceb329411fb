from __future__ import annotations

from dataclasses import dataclass, field
import importlib.resources
from pathlib import Path
from typing import Any, Mapping

import yaml


@dataclass(frozen=True)
class VarianceThresholds:
    watch: float = 2.0
    alert: float = 5.0


@dataclass(frozen=True)
class ForecastConfig:
    anchor: str = "2025-08"  # YYYY-MM of the first generated month
    horizon_months: int = 72
    closed_months: int = 6
    approved_months: int = 36
    fiscal_year_start_month: int = 8
    modified_by: str = "system"
    snapshot_timestamp: str = "2025-08-01T00:00:00.000Z"
    variance_thresholds: VarianceThresholds = field(default_factory=VarianceThresholds)

    @property
    def anchor_year(self) -> int:
        return int(self.anchor.split("-")[0])

    @property
    def anchor_month(self) -> int:
        return int(self.anchor.split("-")[1])

    @staticmethod
    def from_mapping(raw: Mapping[str, Any]) -> "ForecastConfig":
        thresholds_raw: Mapping[str, Any] = raw.get("variance_thresholds", {}) or {}
        thresholds = VarianceThresholds(
            watch=float(thresholds_raw.get("watch", 2.0)),
            alert=float(thresholds_raw.get("alert", 5.0)),
        )
        cfg = ForecastConfig(
            anchor=str(raw.get("anchor", "2025-08")),
            horizon_months=int(raw.get("horizon_months", 72)),
            closed_months=int(raw.get("closed_months", 6)),
            approved_months=int(raw.get("approved_months", 36)),
            fiscal_year_start_month=int(raw.get("fiscal_year_start_month", 8)),
            modified_by=str(raw.get("modified_by", "system")),
            snapshot_timestamp=str(raw.get("snapshot_timestamp", "2025-08-01T00:00:00.000Z")),
            variance_thresholds=thresholds,
        )
        cfg.validate()
        return cfg

    @staticmethod
    def from_yaml(path: str | Path) -> "ForecastConfig":
        path = Path(path)
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return ForecastConfig.from_mapping(raw)

    def validate(self) -> None:
        parts = self.anchor.split("-")
        if len(parts) != 2 or not all(p.isdigit() for p in parts) or not 1 <= int(parts[1]) <= 12:
            raise ValueError(f"anchor must be YYYY-MM, got {self.anchor!r}")
        if not 1 <= self.fiscal_year_start_month <= 12:
            raise ValueError("fiscal_year_start_month must be between 1 and 12")
        if self.horizon_months < 1:
            raise ValueError("horizon_months must be positive")
        # Counts past the horizon simply mark every generated month.
        if self.closed_months < 0:
            raise ValueError("closed_months must not be negative")
        if self.approved_months < 0:
            raise ValueError("approved_months must not be negative")
        if not 0 <= self.variance_thresholds.watch <= self.variance_thresholds.alert:
            raise ValueError("variance thresholds must satisfy 0 <= watch <= alert")


def default_forecast_config() -> ForecastConfig:
    text = importlib.resources.files("samforecast.resources").joinpath("default_forecast.yaml").read_text(encoding="utf-8")
    return ForecastConfig.from_mapping(yaml.safe_load(text))
