from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from enum import Enum
from functools import total_ordering
from typing import Dict, Optional, Tuple, Union

from dateutil import parser as dateparser

DATE_FMT = "%Y-%m-%d"
OPEN_START = date(2000, 1, 1)
OPEN_END = date(2099, 12, 31)

AllocationKey = Tuple[str, str, Optional[date]]


def new_allocation_id() -> str:
    return f"a-{uuid.uuid4().hex}"


def parse_iso_date(value: object, field_name: str) -> Optional[date]:
    """Parse an ISO date string, dropping any time component."""
    if value is None:
        return None
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip() == "":
        return None
    try:
        return dateparser.isoparse(str(value).split("T")[0]).date()
    except (ValueError, TypeError) as exc:
        raise ValueError(f"invalid date in '{field_name}': {value}") from exc


def format_date(value: Optional[date]) -> Optional[str]:
    return value.strftime(DATE_FMT) if value else None


@total_ordering
class UtilizationStatus(Enum):
    """Utilization bands in ascending order of load."""

    UNDER = 0
    OPTIMAL = 1
    HIGH = 2
    OVER = 3

    def __lt__(self, other: "UtilizationStatus") -> bool:
        if not isinstance(other, UtilizationStatus):
            return NotImplemented
        return self.value < other.value

    @property
    def label(self) -> str:
        return self.name.capitalize()


@dataclass(frozen=True)
class Resource:
    """Person or contract unit that can be allocated to projects."""

    id: str
    name: str
    role: str = ""
    department: str = ""
    resource_type: str = "Permanent"
    total_capacity: int = 100


@dataclass(frozen=True)
class Project:
    id: str
    name: str
    status: str = "Active"
    priority: str = "Medium"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    description: str = ""


@dataclass(frozen=True)
class StandingAllocation:
    """Undated commitment, active at all times."""

    id: str
    resource_id: str
    project_id: str
    percentage: int
    notes: str = ""

    @property
    def start_date(self) -> None:
        return None

    @property
    def end_date(self) -> None:
        return None

    def key(self) -> AllocationKey:
        return self.resource_id, self.project_id, None

    def to_record(self) -> Dict[str, object]:
        record: Dict[str, object] = {
            "id": self.id,
            "resourceId": self.resource_id,
            "projectId": self.project_id,
            "percentage": self.percentage,
        }
        if self.notes:
            record["notes"] = self.notes
        return record


@dataclass(frozen=True)
class DatedAllocation:
    """Commitment over the inclusive range ``[start_date, end_date]``."""

    id: str
    resource_id: str
    project_id: str
    percentage: int
    start_date: date
    end_date: date
    notes: str = ""

    def key(self) -> AllocationKey:
        return self.resource_id, self.project_id, self.start_date

    def to_record(self) -> Dict[str, object]:
        record: Dict[str, object] = {
            "id": self.id,
            "resourceId": self.resource_id,
            "projectId": self.project_id,
            "percentage": self.percentage,
            "startDate": format_date(self.start_date),
            "endDate": format_date(self.end_date),
        }
        if self.notes:
            record["notes"] = self.notes
        return record


Allocation = Union[StandingAllocation, DatedAllocation]


def allocation_from_record(record: Dict[str, object]) -> Allocation:
    """Build an allocation from its persisted flat shape."""
    if not isinstance(record, dict):
        raise ValueError("allocation entries must be objects")
    resource_id = record.get("resourceId")
    project_id = record.get("projectId")
    if not resource_id or not project_id:
        raise ValueError("allocation requires resourceId and projectId")
    try:
        percentage = int(float(record.get("percentage", 0)))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid percentage for allocation {record.get('id')!r}") from exc
    allocation_id = str(record.get("id") or new_allocation_id())
    notes = str(record.get("notes") or "")
    start = parse_iso_date(record.get("startDate"), "startDate")
    end = parse_iso_date(record.get("endDate"), "endDate")
    if start is None and end is None:
        return StandingAllocation(
            id=allocation_id,
            resource_id=str(resource_id),
            project_id=str(project_id),
            percentage=percentage,
            notes=notes,
        )
    return DatedAllocation(
        id=allocation_id,
        resource_id=str(resource_id),
        project_id=str(project_id),
        percentage=percentage,
        start_date=start or OPEN_START,
        end_date=end or OPEN_END,
        notes=notes,
    )


@dataclass(frozen=True)
class Sprint:
    number: int
    start_date: date
    end_date: date

    @property
    def id(self) -> str:
        return f"S{self.number}"

    @property
    def name(self) -> str:
        return f"Sprint {self.number}"

    @property
    def start_key(self) -> str:
        return self.start_date.strftime(DATE_FMT)

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "startDate": self.start_key,
            "endDate": self.end_date.strftime(DATE_FMT),
        }


@dataclass(frozen=True)
class Quarter:
    year: int
    quarter: int
    sprints: Tuple[Sprint, ...] = ()

    @property
    def id(self) -> str:
        return f"{self.year}-Q{self.quarter}"

    @property
    def name(self) -> str:
        return f"Q{self.quarter} {self.year}"

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "year": self.year,
            "sprints": [sprint.to_dict() for sprint in self.sprints],
        }


@dataclass(frozen=True)
class AllocationChange:
    """Percentage of one allocation key before and after a scenario.

    ``start_date`` is ``None`` for the standing record of the pair.
    """

    resource_id: str
    project_id: str
    before: int
    after: int
    start_date: Optional[date] = None

    @property
    def delta(self) -> int:
        return self.after - self.before

    def to_dict(self) -> Dict[str, object]:
        return {
            "resourceId": self.resource_id,
            "projectId": self.project_id,
            "startDate": format_date(self.start_date),
            "before": self.before,
            "after": self.after,
            "delta": self.delta,
        }


@dataclass(frozen=True)
class DateWindow:
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError("window start must not be after window end")


@dataclass(frozen=True)
class PlannerConfig:
    logging_level: str = "INFO"
    forecast_months: int = 6
    forecast_month_offset: int = 0
    report_year: Optional[int] = None
