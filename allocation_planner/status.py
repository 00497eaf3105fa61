from __future__ import annotations

from typing import Dict

from .models import UtilizationStatus

OVER_THRESHOLD = 100
HIGH_THRESHOLD = 80
OPTIMAL_THRESHOLD = 60

STATUS_COLORS: Dict[UtilizationStatus, str] = {
    UtilizationStatus.UNDER: "#94a3b8",
    UtilizationStatus.OPTIMAL: "#10b981",
    UtilizationStatus.HIGH: "#f59e0b",
    UtilizationStatus.OVER: "#ef4444",
}


def classify(pct: float) -> UtilizationStatus:
    """Map a utilization percentage to its band; boundaries belong to the higher band."""
    if pct > OVER_THRESHOLD:
        return UtilizationStatus.OVER
    if pct >= HIGH_THRESHOLD:
        return UtilizationStatus.HIGH
    if pct >= OPTIMAL_THRESHOLD:
        return UtilizationStatus.OPTIMAL
    return UtilizationStatus.UNDER


def status_color(status: UtilizationStatus) -> str:
    return STATUS_COLORS[status]


def is_over_allocated(pct: float) -> bool:
    return classify(pct) is UtilizationStatus.OVER
