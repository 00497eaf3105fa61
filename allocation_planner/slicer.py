"""
Per-sprint allocation editing.

The sprint editor works on a map of ``sprint start date -> percentage`` for a
single (resource, project) pair. Saving turns the map into one dated
allocation per sprint and replaces every previous record of the pair.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .editing import clamp_percentage, replace_pair_allocations
from .models import (
    OPEN_END,
    OPEN_START,
    Allocation,
    DatedAllocation,
    Project,
    Sprint,
    new_allocation_id,
    parse_iso_date,
)
from .sprint_calendar import DEFAULT_CALENDAR, SprintCalendar

logger = logging.getLogger(__name__)

SprintMap = Dict[str, int]


def load_sprint_map(
    allocations: Iterable[Allocation], resource_id: str, project_id: str
) -> SprintMap:
    """Key every dated record of the pair by its start date.

    Start dates that are not sprint boundaries stay in the map under their own
    key; the editor simply never shows them.
    """
    sprint_map: SprintMap = {}
    for allocation in allocations:
        if allocation.resource_id != resource_id or allocation.project_id != project_id:
            continue
        if allocation.start_date is None:
            continue
        sprint_map[allocation.start_date.isoformat()] = allocation.percentage
    return sprint_map


def _years_in_keys(keys: Iterable[str]) -> Set[int]:
    years: Set[int] = set()
    for key in keys:
        try:
            parsed = parse_iso_date(key, "sprint")
        except ValueError:
            continue
        if parsed is not None:
            years.add(parsed.year)
    return years


def build_sprint_allocations(
    sprint_map: Mapping[str, object],
    resource_id: str,
    project_id: str,
    calendar: Optional[SprintCalendar] = None,
    today: Optional[date] = None,
) -> List[DatedAllocation]:
    """One dated allocation per known sprint with a positive percentage."""
    calendar = calendar or DEFAULT_CALENDAR
    built: List[DatedAllocation] = []
    matched = 0
    for sprint in calendar.iter_known_sprints(today, extra_years=_years_in_keys(sprint_map)):
        if sprint.start_key not in sprint_map:
            continue
        matched += 1
        pct = clamp_percentage(sprint_map[sprint.start_key])
        if pct <= 0:
            continue
        built.append(
            DatedAllocation(
                id=new_allocation_id(),
                resource_id=resource_id,
                project_id=project_id,
                percentage=pct,
                start_date=sprint.start_date,
                end_date=sprint.end_date,
            )
        )
    if matched < len(sprint_map):
        logger.debug(
            "Ignored %d sprint keys off the sprint grid for %s/%s",
            len(sprint_map) - matched,
            resource_id,
            project_id,
        )
    return built


def save_sprint_map(
    allocations: Sequence[Allocation],
    resource_id: str,
    project_id: str,
    sprint_map: Mapping[str, object],
    calendar: Optional[SprintCalendar] = None,
    today: Optional[date] = None,
) -> List[Allocation]:
    """Replace every record of the pair with the slices built from ``sprint_map``."""
    slices = build_sprint_allocations(sprint_map, resource_id, project_id, calendar, today)
    logger.debug("Saving %d sprint slices for %s/%s", len(slices), resource_id, project_id)
    return replace_pair_allocations(allocations, resource_id, project_id, slices)


def is_within_project_bounds(
    sprint: Sprint,
    project_start: Optional[date] = None,
    project_end: Optional[date] = None,
) -> bool:
    start = project_start or OPEN_START
    end = project_end or OPEN_END
    return sprint.start_date <= end and sprint.end_date >= start


def sprint_editor_rows(
    year: int,
    project: Project,
    sprint_map: Mapping[str, object],
    calendar: Optional[SprintCalendar] = None,
) -> List[Dict[str, object]]:
    calendar = calendar or DEFAULT_CALENDAR
    rows: List[Dict[str, object]] = []
    for quarter in calendar.quarters_for_year(year):
        rows.append(
            {
                "quarter": quarter.id,
                "name": quarter.name,
                "sprints": [
                    {
                        **sprint.to_dict(),
                        "percentage": clamp_percentage(sprint_map.get(sprint.start_key, 0)),
                        "withinBounds": is_within_project_bounds(
                            sprint, project.start_date, project.end_date
                        ),
                    }
                    for sprint in quarter.sprints
                ],
            }
        )
    return rows
