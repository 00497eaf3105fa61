from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from .models import (
    Allocation,
    DateWindow,
    Project,
    Resource,
    Sprint,
    StandingAllocation,
)
from .status import classify, is_over_allocated

MATRIX_COLUMNS = [
    "resource_id",
    "resource_name",
    "sprint_id",
    "sprint_start",
    "sprint_end",
    "utilization",
    "status",
]


def sprint_window(sprint: Sprint) -> DateWindow:
    return DateWindow(sprint.start_date, sprint.end_date)


def day_window(day: date) -> DateWindow:
    return DateWindow(day, day)


def is_active(allocation: Allocation, window: Optional[DateWindow]) -> bool:
    """Whether an allocation counts towards ``window``.

    Standing allocations are always active. Dated ones are active on any
    overlap with the window; the overlap is not pro-rated. Without a window
    only standing allocations count.
    """
    if isinstance(allocation, StandingAllocation):
        return True
    if window is None:
        return False
    return allocation.start_date <= window.end and allocation.end_date >= window.start


def _matching(
    allocations: Iterable[Allocation],
    resource_id: str,
    window: Optional[DateWindow],
    project_id: Optional[str],
) -> Iterable[Allocation]:
    for allocation in allocations:
        if allocation.resource_id != resource_id:
            continue
        if project_id is not None and allocation.project_id != project_id:
            continue
        if is_active(allocation, window):
            yield allocation


def utilization(
    allocations: Iterable[Allocation],
    resource_id: str,
    window: Optional[DateWindow] = None,
    project_id: Optional[str] = None,
) -> int:
    return sum(a.percentage for a in _matching(allocations, resource_id, window, project_id))


def sprint_utilization(
    allocations: Iterable[Allocation],
    resource_id: str,
    sprint: Sprint,
    project_id: Optional[str] = None,
) -> int:
    return utilization(allocations, resource_id, sprint_window(sprint), project_id)


def pair_percentage(
    allocations: Iterable[Allocation],
    resource_id: str,
    project_id: str,
    window: Optional[DateWindow] = None,
) -> int:
    return utilization(allocations, resource_id, window, project_id)


def utilization_by_resource(
    allocations: Sequence[Allocation],
    resources: Iterable[Resource],
    window: Optional[DateWindow] = None,
) -> Dict[str, int]:
    totals: Dict[str, int] = {resource.id: 0 for resource in resources}
    for allocation in allocations:
        if allocation.resource_id in totals and is_active(allocation, window):
            totals[allocation.resource_id] += allocation.percentage
    return totals


def utilization_matrix(
    allocations: Sequence[Allocation],
    resources: Sequence[Resource],
    sprints: Sequence[Sprint],
) -> pd.DataFrame:
    rows: List[Dict[str, object]] = []
    for resource in resources:
        for sprint in sprints:
            pct = sprint_utilization(allocations, resource.id, sprint)
            rows.append(
                {
                    "resource_id": resource.id,
                    "resource_name": resource.name,
                    "sprint_id": sprint.id,
                    "sprint_start": sprint.start_key,
                    "sprint_end": sprint.end_date.isoformat(),
                    "utilization": pct,
                    "status": classify(pct).label,
                }
            )
    return pd.DataFrame(rows, columns=MATRIX_COLUMNS)


def capacity_summary(
    allocations: Sequence[Allocation],
    resources: Sequence[Resource],
    projects: Sequence[Project],
    window: Optional[DateWindow] = None,
) -> Dict[str, int]:
    """Headline figures for the dashboard."""
    totals = utilization_by_resource(allocations, resources, window)
    active_total = sum(a.percentage for a in allocations if is_active(a, window))
    return {
        "total_resources": len(resources),
        "permanent_count": sum(1 for r in resources if r.resource_type == "Permanent"),
        "contractor_count": sum(1 for r in resources if r.resource_type == "Contractor"),
        "active_projects": sum(1 for p in projects if p.status == "Active"),
        "over_allocated_count": sum(1 for pct in totals.values() if is_over_allocated(pct)),
        "avg_utilization": round(active_total / len(resources)) if resources else 0,
    }


def resource_available_date(
    allocations: Iterable[Allocation],
    projects: Iterable[Project],
    resource_id: str,
) -> Optional[date]:
    """Latest end date among the resource's projects; ``None`` means available now."""
    project_ends = {p.id: p.end_date for p in projects if p.end_date}
    ends = [
        project_ends[a.project_id]
        for a in allocations
        if a.resource_id == resource_id and a.percentage > 0 and a.project_id in project_ends
    ]
    return max(ends) if ends else None


def project_staffing(allocations: Iterable[Allocation], window: Optional[DateWindow] = None) -> Dict[str, float]:
    """Full-time equivalents committed to each project."""
    fte: Dict[str, float] = defaultdict(float)
    for allocation in allocations:
        if is_active(allocation, window):
            fte[allocation.project_id] += allocation.percentage / 100
    return dict(fte)
