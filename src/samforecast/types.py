from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

ForecastStatus = Literal["locked", "draft"]
ForecastBasis = Literal["approved", "auto"]


@dataclass(frozen=True)
class MonthlyForecast:
    id: str
    po_id: str
    year: int
    month: int
    quarter: int  # fiscal quarter
    fiscal_year: str  # e.g. "FY26"
    period: str  # calendar "YYYY-MM"
    period_label: str
    forecast_amount: float
    actual_amount: float | None
    commit_amount: float
    variance: float  # percent, 0 when not applicable
    status: ForecastStatus
    basis: ForecastBasis
    last_modified: str
    modified_by: str

    @property
    def is_locked(self) -> bool:
        return self.status == "locked"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "poId": self.po_id,
            "year": self.year,
            "month": self.month,
            "quarter": self.quarter,
            "fiscalYear": self.fiscal_year,
            "period": self.period,
            "periodLabel": self.period_label,
            "forecastAmount": self.forecast_amount,
            "actualAmount": self.actual_amount,
            "commitAmount": self.commit_amount,
            "variance": self.variance,
            "status": self.status,
            "basis": self.basis,
            "lastModified": self.last_modified,
            "modifiedBy": self.modified_by,
        }


@dataclass(frozen=True)
class QuarterData:
    q1: float = 0.0
    q2: float = 0.0
    q3: float = 0.0
    q4: float = 0.0

    @property
    def total(self) -> float:
        return self.q1 + self.q2 + self.q3 + self.q4

    def to_dict(self) -> dict[str, float]:
        return {"q1": self.q1, "q2": self.q2, "q3": self.q3, "q4": self.q4}


@dataclass(frozen=True)
class Uplift:
    price: int
    volume: int
    expansion: int

    def to_dict(self) -> dict[str, int]:
        return {"price": self.price, "volume": self.volume, "expansion": self.expansion}


@dataclass(frozen=True)
class POFinancials:
    po_number: str
    forecast: dict[str, QuarterData]
    commit: dict[str, QuarterData]
    actuals: dict[str, QuarterData]
    liability: dict[str, QuarterData]
    uplift: Uplift
    monthly_data: list[MonthlyForecast] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        def _buckets(b: dict[str, QuarterData]) -> dict[str, dict[str, float]]:
            return {fy: q.to_dict() for fy, q in b.items()}

        return {
            "poNumber": self.po_number,
            "forecast": _buckets(self.forecast),
            "commit": _buckets(self.commit),
            "actuals": _buckets(self.actuals),
            "liability": _buckets(self.liability),
            "uplift": self.uplift.to_dict(),
            "monthlyData": [m.to_dict() for m in self.monthly_data],
        }


@dataclass(frozen=True)
class PurchaseOrderField:
    key: str
    value: Any
    name: str
    type: str
    read_only: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "value": self.value, "name": self.name, "type": self.type, "readOnly": self.read_only}

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> "PurchaseOrderField":
        return PurchaseOrderField(
            key=str(raw["key"]),
            value=raw.get("value"),
            name=str(raw.get("name", raw["key"])),
            type=str(raw.get("type", "STRING")),
            read_only=bool(raw.get("readOnly", raw.get("read_only", False))),
        )


@dataclass(frozen=True)
class PurchaseOrder:
    fields: tuple[PurchaseOrderField, ...]

    @property
    def po_number(self) -> str:
        return str(self.value("PO_NUMBER") or "")

    def get_field(self, key: str) -> PurchaseOrderField | None:
        return next((f for f in self.fields if f.key == key), None)

    def value(self, key: str) -> Any:
        f = self.get_field(key)
        return f.value if f is not None else None

    def to_dict(self) -> dict[str, Any]:
        return {"poNumber": self.po_number, "fields": [f.to_dict() for f in self.fields]}
