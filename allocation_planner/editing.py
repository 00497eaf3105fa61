"""
Allocation edit operations.

Every function takes an allocation list and returns a new one, so the same
call works on the live allocation set and on a scenario sandbox.
"""

from __future__ import annotations

import math
import re
import uuid
from dataclasses import replace
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .models import (
    OPEN_END,
    OPEN_START,
    Allocation,
    AllocationKey,
    DatedAllocation,
    Project,
    Resource,
    StandingAllocation,
    format_date,
    new_allocation_id,
    parse_iso_date,
)

MAX_CELL_PCT = 100
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def coerce_int(value: object) -> int:
    """Integer part of a UI value; anything unparseable becomes 0."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        return int(match.group(1)) if match else 0
    return 0


def clamp_percentage(value: object, upper: int = MAX_CELL_PCT) -> int:
    return min(upper, max(0, coerce_int(value)))


def update_allocation(
    allocations: Sequence[Allocation],
    resource_id: str,
    project_id: str,
    value: object,
) -> List[Allocation]:
    """Set the standing percentage of a (resource, project) cell.

    The existing record keeps its id and position; a value that clamps to 0
    removes it.
    """
    pct = clamp_percentage(value)
    key = (resource_id, project_id, None)
    result: List[Allocation] = []
    found = False
    for allocation in allocations:
        if allocation.key() == key:
            found = True
            if pct > 0:
                result.append(replace(allocation, percentage=pct))
            continue
        result.append(allocation)
    if not found and pct > 0:
        result.append(
            StandingAllocation(
                id=new_allocation_id(),
                resource_id=resource_id,
                project_id=project_id,
                percentage=pct,
            )
        )
    return result


def replace_pair_allocations(
    allocations: Sequence[Allocation],
    resource_id: str,
    project_id: str,
    new_records: Iterable[Allocation],
) -> List[Allocation]:
    kept = [
        a for a in allocations if not (a.resource_id == resource_id and a.project_id == project_id)
    ]
    return kept + [a for a in new_records if a.percentage > 0]


def remove_resource(allocations: Sequence[Allocation], resource_id: str) -> List[Allocation]:
    return [a for a in allocations if a.resource_id != resource_id]


def remove_project(allocations: Sequence[Allocation], project_id: str) -> List[Allocation]:
    return [a for a in allocations if a.project_id != project_id]


def pair_allocations(
    allocations: Iterable[Allocation], resource_id: str, project_id: str
) -> List[Allocation]:
    return [a for a in allocations if a.resource_id == resource_id and a.project_id == project_id]


def build_slices(
    resource_id: str,
    project_id: str,
    slices: Iterable[Mapping[str, object]],
    project: Optional[Project] = None,
) -> List[Allocation]:
    """Turn free-form date-range slices into allocation records.

    Slices without a positive percentage are dropped. When the project has an
    end date, a slice ending later (or open-ended) is cut at that date. Two
    slices with the same allocation key raise ``ValueError``.
    """
    built: List[Allocation] = []
    keys: Set[AllocationKey] = set()
    for entry in slices:
        pct = clamp_percentage(entry.get("percentage"))
        if pct <= 0:
            continue
        start = parse_iso_date(entry.get("startDate"), "startDate")
        end = parse_iso_date(entry.get("endDate"), "endDate")
        if project is not None and project.end_date is not None:
            if end is None or end > project.end_date:
                end = project.end_date
        allocation_id = str(entry.get("id") or new_allocation_id())
        if start is None and end is None:
            built.append(StandingAllocation(allocation_id, resource_id, project_id, pct))
        else:
            built.append(
                DatedAllocation(
                    id=allocation_id,
                    resource_id=resource_id,
                    project_id=project_id,
                    percentage=pct,
                    start_date=start or OPEN_START,
                    end_date=end or OPEN_END,
                )
            )
        key = built[-1].key()
        if key in keys:
            raise ValueError(f"duplicate slice starting {format_date(key[2]) or '(undated)'}")
        keys.add(key)
    return built


def _name_key(name: object) -> str:
    return str(name or "").strip().casefold()


def merge_import_rows(
    rows: Iterable[Mapping[str, object]],
    resources: Sequence[Resource],
    projects: Sequence[Project],
    allocations: Sequence[Allocation],
) -> Tuple[List[Resource], List[Project], List[Allocation]]:
    """Merge already-parsed import rows into the current plan.

    Resources and projects are matched by case-insensitive name and created
    when missing; each row then sets the standing allocation for its pair.
    """
    merged_resources = list(resources)
    merged_projects = list(projects)
    resources_by_name: Dict[str, Resource] = {_name_key(r.name): r for r in merged_resources}
    projects_by_name: Dict[str, Project] = {_name_key(p.name): p for p in merged_projects}
    result = list(allocations)
    for row in rows:
        resource_name = str(row.get("resourceName") or "").strip()
        project_name = str(row.get("projectName") or "").strip()
        if not resource_name or not project_name:
            raise ValueError("import rows require resourceName and projectName")
        resource = resources_by_name.get(_name_key(resource_name))
        if resource is None:
            resource = Resource(
                id=f"r-{uuid.uuid4().hex[:8]}",
                name=resource_name,
                role=str(row.get("role") or ""),
                department=str(row.get("department") or ""),
            )
            merged_resources.append(resource)
            resources_by_name[_name_key(resource_name)] = resource
        project = projects_by_name.get(_name_key(project_name))
        if project is None:
            project = Project(id=f"p-{uuid.uuid4().hex[:8]}", name=project_name)
            merged_projects.append(project)
            projects_by_name[_name_key(project_name)] = project
        result = update_allocation(result, resource.id, project.id, row.get("percentage"))
    return merged_resources, merged_projects, result
