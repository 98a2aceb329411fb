from __future__ import annotations

from pathlib import Path

import pytest

from samforecast.config import ForecastConfig, VarianceThresholds, default_forecast_config
from samforecast.synth import generate_monthly_forecasts
from samforecast.variance import VarianceStatus, classify_variance


@pytest.mark.parametrize(
    "pct,expected",
    [
        (0.0, VarianceStatus.ON_TRACK),
        (1.99, VarianceStatus.ON_TRACK),
        (-1.5, VarianceStatus.ON_TRACK),
        (2.0, VarianceStatus.WATCH),
        (-4.99, VarianceStatus.WATCH),
        (5.0, VarianceStatus.ALERT),
        (-12.0, VarianceStatus.ALERT),
        (float("nan"), VarianceStatus.ALERT),
    ],
)
def test_classify_variance(pct: float, expected: VarianceStatus) -> None:
    assert classify_variance(pct) is expected


def test_classification_values_are_strings() -> None:
    assert classify_variance(3.0).value == "watch"
    assert classify_variance(3.0) == "watch"


def test_custom_thresholds() -> None:
    assert classify_variance(3.0, watch=5.0, alert=10.0) is VarianceStatus.ON_TRACK


def test_default_config_matches_packaged_yaml() -> None:
    cfg = default_forecast_config()
    assert cfg.anchor == "2025-08"
    assert (cfg.anchor_year, cfg.anchor_month) == (2025, 8)
    assert cfg.horizon_months == 72
    assert cfg.closed_months == 6
    assert cfg.approved_months == 36
    assert cfg.fiscal_year_start_month == 8
    assert cfg.variance_thresholds == VarianceThresholds(2.0, 5.0)


def test_config_from_yaml(tmp_path: Path) -> None:
    p = tmp_path / "forecast.yaml"
    p.write_text("anchor: '2024-10'\nhorizon_months: 24\nvariance_thresholds:\n  watch: 1\n  alert: 3\n", encoding="utf-8")
    cfg = ForecastConfig.from_yaml(p)
    assert cfg.anchor_month == 10
    assert cfg.horizon_months == 24
    assert cfg.variance_thresholds.alert == 3.0
    # Unspecified keys keep their defaults.
    assert cfg.closed_months == 6


@pytest.mark.parametrize(
    "raw",
    [
        {"anchor": "August"},
        {"anchor": "2025-13"},
        {"fiscal_year_start_month": 0},
        {"horizon_months": 0},
        {"closed_months": -1},
        {"approved_months": -3},
        {"variance_thresholds": {"watch": 6, "alert": 5}},
    ],
)
def test_invalid_config_rejected(raw) -> None:
    with pytest.raises(ValueError):
        ForecastConfig.from_mapping(raw)


def test_short_horizon_keeps_default_month_counts() -> None:
    cfg = ForecastConfig.from_mapping({"horizon_months": 24})
    assert cfg.approved_months == 36
    assert cfg.closed_months == 6

    cfg = ForecastConfig.from_mapping({"horizon_months": 4})
    months = generate_monthly_forecasts("PO-001", cfg)
    assert len(months) == 4
    assert all(m.status == "locked" and m.basis == "approved" for m in months)
