"""Fiscal calendar helpers.

Fiscal years are named after the calendar year in which they end, so with the
default August start, August 2025 through July 2026 is ``FY26``. Quarters are
counted from the fiscal start month: Aug-Oct is Q1, Nov-Jan Q2, Feb-Apr Q3 and
May-Jul Q4.
"""

from __future__ import annotations

from dataclasses import dataclass

FISCAL_YEAR_START_MONTH = 8

_MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


@dataclass(frozen=True)
class FiscalPeriod:
    year: int
    month: int
    fiscal_year: int
    quarter: int

    @property
    def label(self) -> str:
        return fiscal_year_label(self.fiscal_year)

    @property
    def quarter_key(self) -> str:
        return quarter_key(self.label, self.quarter)


def add_months(year: int, month: int, offset: int) -> tuple[int, int]:
    """Return the calendar ``(year, month)`` that is ``offset`` months after ``year-month``."""
    total = year * 12 + (month - 1) + offset
    return total // 12, total % 12 + 1


def fiscal_year_for(year: int, month: int, start_month: int = FISCAL_YEAR_START_MONTH) -> int:
    if start_month > 1 and month >= start_month:
        return year + 1
    return year


def fiscal_quarter_for(month: int, start_month: int = FISCAL_YEAR_START_MONTH) -> int:
    fiscal_month_index = (month + 12 - start_month) % 12
    return fiscal_month_index // 3 + 1


def fiscal_year_label(fiscal_year: int) -> str:
    return f"FY{fiscal_year % 100:02d}"


def fiscal_period(year: int, month: int, start_month: int = FISCAL_YEAR_START_MONTH) -> FiscalPeriod:
    if not 1 <= month <= 12:
        raise ValueError(f"month must be between 1 and 12, got {month}")
    return FiscalPeriod(
        year=year,
        month=month,
        fiscal_year=fiscal_year_for(year, month, start_month),
        quarter=fiscal_quarter_for(month, start_month),
    )


def period_string(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def period_label(year: int, month: int) -> str:
    # Matches the en-US short month/year rendering, e.g. "Aug 2025".
    return f"{_MONTH_ABBR[month - 1]} {year}"


def quarter_key(fiscal_year_label: str, quarter: int) -> str:
    return f"{fiscal_year_label}-Q{quarter}"


def parse_quarter_key(key: str) -> tuple[str, int] | None:
    """Split ``"FY26-Q2"`` into ``("FY26", 2)``; return None for anything else."""
    label, sep, q = key.partition("-Q")
    if not sep or not label.startswith("FY") or not q.isdigit():
        return None
    quarter = int(q)
    if not 1 <= quarter <= 4:
        return None
    return label, quarter
