from __future__ import annotations

from enum import Enum


class VarianceStatus(str, Enum):
    ON_TRACK = "on-track"
    WATCH = "watch"
    ALERT = "alert"


def classify_variance(pct: float, watch: float = 2.0, alert: float = 5.0) -> VarianceStatus:
    """Bucket a variance percentage by magnitude: below ``watch`` is on track,
    below ``alert`` is watch, anything else (including NaN) is an alert."""
    magnitude = abs(pct)
    if magnitude < watch:
        return VarianceStatus.ON_TRACK
    if magnitude < alert:
        return VarianceStatus.WATCH
    return VarianceStatus.ALERT
