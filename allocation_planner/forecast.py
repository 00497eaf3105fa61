from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd
from dateutil.relativedelta import relativedelta

from .models import OPEN_END, OPEN_START, Allocation, Project
from .status import classify

FORECAST_COLUMNS = ["label", "year", "month", "percentage", "status"]
DAY_COLUMNS = ["date", "day", "utilization", "availability", "status", "projects"]

EffectiveAllocation = Tuple[Allocation, date, date]


def _effective_ranges(
    allocations: Sequence[Allocation], projects: Sequence[Project]
) -> List[EffectiveAllocation]:
    """Resolve each allocation's date range, inheriting missing dates from its project."""
    by_id: Dict[str, Project] = {p.id: p for p in projects}
    ranges: List[EffectiveAllocation] = []
    for allocation in allocations:
        project = by_id.get(allocation.project_id)
        start = allocation.start_date or (project.start_date if project else None)
        end = allocation.end_date or (project.end_date if project else None)
        ranges.append((allocation, start or OPEN_START, end or OPEN_END))
    return ranges


def _month_label(month_start: date, first: bool) -> str:
    label = month_start.strftime("%b")
    if first or month_start.month == 1:
        label += f" '{month_start.strftime('%y')}"
    return label


def month_forecast(
    allocations: Sequence[Allocation],
    projects: Sequence[Project],
    months: int = 6,
    month_offset: int = 0,
    today: Optional[date] = None,
) -> pd.DataFrame:
    """Summed allocation per calendar month, starting at the current month plus an offset."""
    if months <= 0:
        raise ValueError("months must be positive")
    anchor = (today or date.today()).replace(day=1) + relativedelta(months=month_offset)
    ranges = _effective_ranges(allocations, projects)
    rows: List[Dict[str, object]] = []
    for idx in range(months):
        month_start = anchor + relativedelta(months=idx)
        month_end = month_start + relativedelta(months=1) - timedelta(days=1)
        total = sum(
            allocation.percentage
            for allocation, start, end in ranges
            if start <= month_end and end >= month_start
        )
        rows.append(
            {
                "label": _month_label(month_start, idx == 0),
                "year": month_start.year,
                "month": month_start.month,
                "percentage": total,
                "status": classify(total).label,
            }
        )
    return pd.DataFrame(rows, columns=FORECAST_COLUMNS)


def day_forecast(
    year: int,
    month: int,
    allocations: Sequence[Allocation],
    projects: Sequence[Project],
) -> pd.DataFrame:
    """Per-day utilization of one calendar month (``month`` is 1-based)."""
    names = {p.id: p.name for p in projects}
    ranges = _effective_ranges(allocations, projects)
    rows: List[Dict[str, object]] = []
    for day_number in range(1, calendar.monthrange(year, month)[1] + 1):
        day = date(year, month, day_number)
        active = [
            {
                "id": allocation.project_id,
                "name": names.get(allocation.project_id, "Unknown Project"),
                "pct": allocation.percentage,
            }
            for allocation, start, end in ranges
            if start <= day <= end
        ]
        util = sum(item["pct"] for item in active)
        rows.append(
            {
                "date": day,
                "day": day_number,
                "utilization": util,
                "availability": max(0, 100 - util),
                "status": classify(util).label,
                "projects": active,
            }
        )
    return pd.DataFrame(rows, columns=DAY_COLUMNS)
