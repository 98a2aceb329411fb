"""Deterministic synthetic PO financials.

Every figure is derived from a seed hashed out of the PO identifier, so the same
PO always produces the same 72-month forecast without any stored state.
"""

from __future__ import annotations

from .config import ForecastConfig, default_forecast_config
from .fiscal import add_months, fiscal_period, period_label, period_string
from .model import aggregate_to_quarters
from .types import MonthlyForecast, POFinancials, Uplift

_INT32_MASK = 0xFFFFFFFF
_INT32_SIGN = 0x80000000


def _utf16_code_units(text: str) -> list[int]:
    data = text.encode("utf-16-le", "surrogatepass")
    return [data[i] | (data[i + 1] << 8) for i in range(0, len(data), 2)]


def seed_from_id(identifier: str) -> int:
    """Hash ``identifier`` into a non-negative seed.

    Rolling ``hash * 31 + code`` over UTF-16 code units with 32-bit signed
    wrap-around after every step, then the absolute value. This reproduces the
    seeds the dashboard has always shown for existing PO numbers.
    """
    h = 0
    for code in _utf16_code_units(identifier):
        h = (h * 31 + code) & _INT32_MASK
        if h & _INT32_SIGN:
            h -= _INT32_MASK + 1
    return abs(h)


def generate_monthly_forecasts(po_id: str, config: ForecastConfig | None = None) -> list[MonthlyForecast]:
    cfg = config or default_forecast_config()
    seed = seed_from_id(po_id)

    base_amount = (seed % 500_000) + 100_000
    monthly_amount = base_amount / 12

    months: list[MonthlyForecast] = []
    for i in range(cfg.horizon_months):
        year, month = add_months(cfg.anchor_year, cfg.anchor_month, i)
        fp = fiscal_period(year, month, cfg.fiscal_year_start_month)
        closed = i < cfg.closed_months

        month_variance = ((seed + i) % 1000) - 500
        forecast_amount = monthly_amount + month_variance

        months.append(
            MonthlyForecast(
                id=f"{po_id}-{i:03d}",
                po_id=po_id,
                year=year,
                month=month,
                quarter=fp.quarter,
                fiscal_year=fp.label,
                period=period_string(year, month),
                period_label=period_label(year, month),
                forecast_amount=forecast_amount,
                actual_amount=forecast_amount + ((seed % 200) - 100) if closed else None,
                commit_amount=monthly_amount * 0.95 + (month_variance * 0.8),
                variance=(seed % 10) - 5 if closed else 0,
                status="locked" if closed else "draft",
                basis="approved" if i < cfg.approved_months else "auto",
                last_modified=cfg.snapshot_timestamp,
                modified_by=cfg.modified_by,
            )
        )
    return months


def generate_po_financials(po_id: str, config: ForecastConfig | None = None) -> POFinancials:
    seed = seed_from_id(po_id)
    monthly = generate_monthly_forecasts(po_id, config)
    forecast = aggregate_to_quarters(monthly, "forecast")
    return POFinancials(
        po_number=po_id,
        forecast=forecast,
        commit=aggregate_to_quarters(monthly, "commit"),
        actuals=aggregate_to_quarters(monthly, "actual"),
        # Liability tracks the forecast until contract terms are modelled separately.
        liability=dict(forecast),
        uplift=Uplift(price=(seed % 5) + 2, volume=(seed % 3) + 1, expansion=seed % 4),
        monthly_data=monthly,
    )
