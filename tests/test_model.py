from __future__ import annotations

import random

import pytest

from samforecast.config import ForecastConfig, VarianceThresholds
from samforecast.model import (
    ForecastEdit,
    ForecastEditError,
    LockedPeriodError,
    UnknownPeriodError,
    aggregate_to_quarters,
    apply_forecast_edit,
    apply_forecast_edits,
    forecast_frame,
    forecast_kpis,
    quarterly_rollup,
    yearly_rollup,
)
from samforecast.synth import generate_monthly_forecasts

STAMP = "2026-02-01T12:00:00.000Z"


@pytest.fixture()
def months():
    return generate_monthly_forecasts("PO-001")


def test_aggregation_matches_monthly_totals(months) -> None:
    for amount, attr in [("forecast", "forecast_amount"), ("commit", "commit_amount")]:
        buckets = aggregate_to_quarters(months, amount)
        assert sum(q.total for q in buckets.values()) == pytest.approx(sum(getattr(m, attr) for m in months))


def test_null_actuals_count_as_zero(months) -> None:
    actuals = aggregate_to_quarters(months, "actual")
    assert set(actuals) == {"FY26", "FY27", "FY28", "FY29", "FY30", "FY31"}
    fy26 = actuals["FY26"]
    assert fy26.q1 == pytest.approx(sum(m.actual_amount for m in months[:3]))
    assert fy26.q2 == pytest.approx(sum(m.actual_amount for m in months[3:6]))
    assert fy26.q3 == 0.0
    assert fy26.q4 == 0.0
    assert actuals["FY31"].total == 0.0


def test_aggregation_is_order_independent(months) -> None:
    shuffled = list(months)
    random.Random(3).shuffle(shuffled)
    assert aggregate_to_quarters(shuffled, "forecast") == aggregate_to_quarters(months, "forecast")
    assert aggregate_to_quarters(list(reversed(months)), "actual") == aggregate_to_quarters(months, "actual")


def test_aggregation_quarter_bucket(months) -> None:
    q3 = aggregate_to_quarters(months, "forecast")["FY27"].q3
    # FY27 Q3 is Feb-Apr 2027.
    expected = sum(m.forecast_amount for m in months if m.period in ("2027-02", "2027-03", "2027-04"))
    assert q3 == pytest.approx(expected)


def test_aggregation_rejects_unknown_amount(months) -> None:
    with pytest.raises(ValueError):
        aggregate_to_quarters(months, "liability")


def test_aggregation_of_nothing_is_empty() -> None:
    assert aggregate_to_quarters([], "forecast") == {}


def test_forecast_frame_sorted_by_period(months) -> None:
    df = forecast_frame(list(reversed(months)))
    assert list(df["period"]) == sorted(m.period for m in months)
    assert df["actual_amount"].isna().sum() == 66


def test_quarterly_and_yearly_rollups(months) -> None:
    quarters = quarterly_rollup(months)
    assert len(quarters.index) == 24
    assert quarters.iloc[0]["key"] == "FY26-Q1"
    assert int(quarters.iloc[0]["months"]) == 3
    assert quarters.iloc[0]["status"] == "locked"
    assert quarters["amount"].sum() == pytest.approx(sum(m.forecast_amount for m in months))

    years = yearly_rollup(months)
    assert list(years["fiscal_year"]) == ["FY26", "FY27", "FY28", "FY29", "FY30", "FY31"]
    assert "quarter" not in years.columns
    assert (years["months"] == 12).all()
    # FY26 carries six closed months at 2% each.
    assert float(years.iloc[0]["variance"]) == pytest.approx(12.0)
    assert years.iloc[0]["classification"] == "alert"
    assert years.iloc[1]["classification"] == "on-track"


def test_rollup_thresholds_are_configurable(months) -> None:
    years = yearly_rollup(months, VarianceThresholds(watch=20.0, alert=50.0))
    assert years.iloc[0]["classification"] == "on-track"


def test_kpis(months) -> None:
    kpis = forecast_kpis(months)
    assert kpis["total_forecast"] == pytest.approx(sum(m.forecast_amount for m in months))
    assert kpis["actuals_to_date"] == pytest.approx(sum(m.actual_amount for m in months[:6]))
    assert kpis["remaining_forecast"] == pytest.approx(sum(m.forecast_amount for m in months[6:]))
    assert kpis["average_variance"] == pytest.approx(2.0)
    assert kpis["average_variance_classification"] == "watch"


def test_kpis_of_nothing() -> None:
    kpis = forecast_kpis([])
    assert kpis["total_forecast"] == 0.0
    assert kpis["average_variance_classification"] == "on-track"


def test_month_edit_by_id(months) -> None:
    edited = apply_forecast_edit(months, "PO-001-010", 1234.5, modified_by="alice", modified_at=STAMP)
    assert edited[10].forecast_amount == 1234.5
    assert edited[10].variance == 0
    assert edited[10].modified_by == "alice"
    assert edited[10].last_modified == STAMP
    assert edited[9] == months[9]
    # The input list is left untouched.
    assert months[10].forecast_amount != 1234.5


def test_month_edit_by_period(months) -> None:
    edited = apply_forecast_edit(months, "2026-03", 10.0, modified_at=STAMP)
    changed = [m for m in edited if m.forecast_amount == 10.0]
    assert [m.period for m in changed] == ["2026-03"]
    assert changed[0].modified_by == "User"


def test_quarter_edit_spreads_difference(months) -> None:
    edited = apply_forecast_edit(months, "FY27-Q1", 90_000.0, modified_at=STAMP)
    in_quarter = [m for m in edited if m.fiscal_year == "FY27" and m.quarter == 1]
    assert len(in_quarter) == 3
    assert sum(m.forecast_amount for m in in_quarter) == pytest.approx(90_000.0)
    assert aggregate_to_quarters(edited, "forecast")["FY27"].q1 == pytest.approx(90_000.0)
    before = [m for m in months if m.fiscal_year == "FY27" and m.quarter == 1]
    deltas = {round(a.forecast_amount - b.forecast_amount, 6) for a, b in zip(in_quarter, before)}
    assert len(deltas) == 1


def test_locked_months_cannot_be_edited(months) -> None:
    with pytest.raises(LockedPeriodError):
        apply_forecast_edit(months, "PO-001-000", 1.0)
    with pytest.raises(LockedPeriodError):
        apply_forecast_edit(months, "FY26-Q1", 1.0)


def test_unknown_targets(months) -> None:
    with pytest.raises(UnknownPeriodError):
        apply_forecast_edit(months, "FY99-Q1", 1.0)
    with pytest.raises(UnknownPeriodError):
        apply_forecast_edit(months, "1999-01", 1.0)


def test_non_finite_value_rejected(months) -> None:
    with pytest.raises(ForecastEditError):
        apply_forecast_edit(months, "PO-001-010", float("nan"))


def test_edits_apply_in_sequence(months) -> None:
    edited = apply_forecast_edits(
        months,
        [ForecastEdit("PO-001-012", 5.0), ForecastEdit("PO-001-012", 7.0), ForecastEdit("2026-02", 3.0)],
        modified_by="bob",
        modified_at=STAMP,
    )
    assert edited[12].forecast_amount == 7.0
    assert edited[6].forecast_amount == 3.0
    assert {m.modified_by for m in edited if m.last_modified == STAMP} == {"bob"}


def test_quarter_edit_leaves_locked_months_alone() -> None:
    cfg = ForecastConfig.from_mapping({"closed_months": 4})
    months = generate_monthly_forecasts("PO-001", cfg)
    # FY26-Q2 is Nov (locked), Dec and Jan (draft).
    nov, dec, jan = months[3], months[4], months[5]
    assert nov.is_locked and not dec.is_locked and not jan.is_locked

    edited = apply_forecast_edit(months, "FY26-Q2", 100_000.0, modified_at=STAMP)
    assert edited[3] == nov
    assert edited[4].forecast_amount + edited[5].forecast_amount == pytest.approx(100_000.0 - nov.forecast_amount)
    assert edited[4].forecast_amount - dec.forecast_amount == pytest.approx(edited[5].forecast_amount - jan.forecast_amount)
    assert aggregate_to_quarters(edited, "forecast")["FY26"].q2 == pytest.approx(100_000.0)
