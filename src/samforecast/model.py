from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

import pandas as pd

from .config import VarianceThresholds
from .fiscal import parse_quarter_key
from .types import MonthlyForecast, QuarterData
from .variance import classify_variance

_AMOUNT_COLUMNS = {
    "forecast": "forecast_amount",
    "commit": "commit_amount",
    "actual": "actual_amount",
}

_FRAME_COLUMNS = [f.name for f in fields(MonthlyForecast)]


class ForecastEditError(ValueError):
    """Raised when a forecast edit cannot be applied."""


class LockedPeriodError(ForecastEditError):
    pass


class UnknownPeriodError(ForecastEditError):
    pass


@dataclass(frozen=True)
class ForecastEdit:
    target: str  # month id, "YYYY-MM" period or quarter key like "FY26-Q2"
    value: float


def iso_timestamp(ts: datetime | None = None) -> str:
    ts = ts or datetime.now(timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def forecast_frame(monthly: Sequence[MonthlyForecast]) -> pd.DataFrame:
    if not monthly:
        return pd.DataFrame(columns=_FRAME_COLUMNS)
    df = pd.DataFrame([asdict(m) for m in monthly], columns=_FRAME_COLUMNS)
    df["actual_amount"] = pd.to_numeric(df["actual_amount"], errors="coerce")
    return df.sort_values("period", kind="stable").reset_index(drop=True)


def _amount_column(amount: str) -> str:
    try:
        return _AMOUNT_COLUMNS[amount]
    except KeyError:
        raise ValueError(f"Unknown amount type {amount!r}. Known: {sorted(_AMOUNT_COLUMNS)}") from None


def aggregate_to_quarters(monthly: Sequence[MonthlyForecast], amount: str) -> dict[str, QuarterData]:
    """Sum one amount type into ``{fiscal_year: QuarterData}``.

    Missing actuals count as zero. The reduction is keyed by fiscal year and
    quarter, so the input order does not matter.
    """
    col = _amount_column(amount)
    if not monthly:
        return {}
    df = forecast_frame(monthly)
    values = pd.to_numeric(df[col], errors="coerce").fillna(0.0)
    sums = (
        values.groupby([df["fiscal_year"], df["quarter"]])
        .sum()
        .unstack("quarter")
        .reindex(columns=[1, 2, 3, 4])
        .fillna(0.0)
        .sort_index()
    )
    return {
        str(fy): QuarterData(q1=float(row[1]), q2=float(row[2]), q3=float(row[3]), q4=float(row[4]))
        for fy, row in sums.iterrows()
    }


def _rollup(df: pd.DataFrame, key: pd.Series, thresholds: VarianceThresholds | None) -> pd.DataFrame:
    thresholds = thresholds or VarianceThresholds()
    work = df.assign(key=key, actual_amount=df["actual_amount"].fillna(0.0))
    out = (
        work.groupby("key", sort=True)
        .agg(
            fiscal_year=("fiscal_year", "first"),
            quarter=("quarter", "first"),
            amount=("forecast_amount", "sum"),
            actual=("actual_amount", "sum"),
            commit=("commit_amount", "sum"),
            variance=("variance", "sum"),
            months=("id", "count"),
            status=("status", "first"),
        )
        .reset_index()
    )
    out["classification"] = out["variance"].map(
        lambda v: classify_variance(float(v), watch=thresholds.watch, alert=thresholds.alert).value
    )
    return out


def quarterly_rollup(
    monthly: Sequence[MonthlyForecast], thresholds: VarianceThresholds | None = None
) -> pd.DataFrame:
    """One row per fiscal quarter, keyed ``FY26-Q1`` and sorted by key."""
    df = forecast_frame(monthly)
    if df.empty:
        return pd.DataFrame(
            columns=["key", "fiscal_year", "quarter", "amount", "actual", "commit", "variance", "months", "status", "classification"]
        )
    key = df["fiscal_year"] + "-Q" + df["quarter"].astype(int).astype(str)
    return _rollup(df, key, thresholds)


def yearly_rollup(monthly: Sequence[MonthlyForecast], thresholds: VarianceThresholds | None = None) -> pd.DataFrame:
    """One row per fiscal year, sorted by label."""
    df = forecast_frame(monthly)
    if df.empty:
        return pd.DataFrame(
            columns=["key", "fiscal_year", "amount", "actual", "commit", "variance", "months", "status", "classification"]
        )
    return _rollup(df, df["fiscal_year"], thresholds).drop(columns=["quarter"])


def forecast_kpis(monthly: Sequence[MonthlyForecast], thresholds: VarianceThresholds | None = None) -> dict[str, Any]:
    thresholds = thresholds or VarianceThresholds()
    df = forecast_frame(monthly)
    if df.empty:
        avg = 0.0
        return {
            "total_forecast": 0.0,
            "actuals_to_date": 0.0,
            "remaining_forecast": 0.0,
            "average_variance": avg,
            "average_variance_classification": classify_variance(avg, thresholds.watch, thresholds.alert).value,
        }
    closed = df[df["status"] == "locked"]
    avg = float(closed["variance"].abs().mean()) if len(closed.index) else 0.0
    return {
        "total_forecast": float(df["forecast_amount"].sum()),
        "actuals_to_date": float(df["actual_amount"].fillna(0.0).sum()),
        "remaining_forecast": float(df.loc[df["actual_amount"].isna(), "forecast_amount"].sum()),
        "average_variance": avg,
        "average_variance_classification": classify_variance(avg, thresholds.watch, thresholds.alert).value,
    }


def _edited(m: MonthlyForecast, amount: float, modified_by: str, modified_at: str) -> MonthlyForecast:
    return replace(m, forecast_amount=amount, variance=0, modified_by=modified_by, last_modified=modified_at)


def apply_forecast_edit(
    monthly: Sequence[MonthlyForecast],
    target: str,
    value: float,
    *,
    modified_by: str = "User",
    modified_at: str | None = None,
) -> list[MonthlyForecast]:
    """Return a new month list with one edit applied.

    A quarter key sets that quarter's forecast total: the difference is spread
    evenly over the quarter's draft months. Any other target is a month id or
    ``YYYY-MM`` period whose forecast is replaced. Locked months never change.
    """
    if not math.isfinite(value):
        raise ForecastEditError(f"Forecast value for {target!r} must be a finite number")
    stamp = modified_at or iso_timestamp()

    parsed = parse_quarter_key(target)
    if parsed is not None:
        label, quarter = parsed
        in_quarter = [m for m in monthly if m.fiscal_year == label and m.quarter == quarter]
        if not in_quarter:
            raise UnknownPeriodError(f"Unknown forecast quarter {target!r}")
        # Locked months keep their values, so only draft months absorb the difference.
        editable = {m.id for m in in_quarter if not m.is_locked}
        if not editable:
            raise LockedPeriodError(f"All months in {target} are locked")
        split = (value - sum(m.forecast_amount for m in in_quarter)) / len(editable)
        return [_edited(m, m.forecast_amount + split, modified_by, stamp) if m.id in editable else m for m in monthly]

    matches = [m for m in monthly if m.id == target or m.period == target]
    if not matches:
        raise UnknownPeriodError(f"Unknown forecast period {target!r}")
    if any(m.is_locked for m in matches):
        raise LockedPeriodError(f"Forecast period {target} is locked")
    ids = {m.id for m in matches}
    return [_edited(m, value, modified_by, stamp) if m.id in ids else m for m in monthly]


def apply_forecast_edits(
    monthly: Sequence[MonthlyForecast],
    edits: Iterable[ForecastEdit],
    *,
    modified_by: str = "User",
    modified_at: str | None = None,
) -> list[MonthlyForecast]:
    stamp = modified_at or iso_timestamp()
    out = list(monthly)
    for edit in edits:
        out = apply_forecast_edit(out, edit.target, edit.value, modified_by=modified_by, modified_at=stamp)
    return out
