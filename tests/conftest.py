from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import pytest

from allocation_planner.models import DatedAllocation, Project, Resource, StandingAllocation

RESOURCES = [
    {"id": "r1", "name": "Sarah Chen", "role": "Full Stack Dev", "type": "Permanent", "department": "Engineering"},
    {"id": "r2", "name": "James Wilson", "role": "UI/UX Designer", "type": "Permanent", "department": "Design"},
    {"id": "r3", "name": "Maria Garcia", "role": "Project Manager", "type": "Contractor", "department": "PMO"},
]

PROJECTS = [
    {"id": "p1", "name": "Apollo Revamp", "status": "Active", "startDate": "2026-01-05", "endDate": "2026-04-15"},
    {"id": "p2", "name": "Skyline API", "status": "Active", "startDate": "2026-02-01", "endDate": "2026-06-30"},
    {"id": "p3", "name": "Nebula Analytics", "status": "Planning"},
]

ALLOCATIONS = [
    {"id": "a1", "resourceId": "r1", "projectId": "p1", "percentage": 60},
    {"id": "a2", "resourceId": "r1", "projectId": "p2", "percentage": 50},
    {"id": "a3", "resourceId": "r2", "projectId": "p1", "percentage": 40},
    {"id": "a4", "resourceId": "r3", "projectId": "p3", "percentage": 70, "startDate": "2026-01-07", "endDate": "2026-01-20"},
]


def write_portfolio(root: Path, name: str = "sample") -> Path:
    input_dir = root / name / "input"
    input_dir.mkdir(parents=True)
    (input_dir / "resources.json").write_text(json.dumps(RESOURCES))
    (input_dir / "projects.json").write_text(json.dumps(PROJECTS))
    (input_dir / "allocations.json").write_text(json.dumps(ALLOCATIONS))
    (input_dir / "config.json").write_text(json.dumps({"logging_level": "WARNING", "report_year": 2026}))
    return root / name


@pytest.fixture
def portfolio_dir(tmp_path: Path) -> Path:
    return write_portfolio(tmp_path)


@pytest.fixture
def resources():
    return [
        Resource(id="r1", name="Sarah Chen"),
        Resource(id="r2", name="James Wilson"),
        Resource(id="r3", name="Maria Garcia", resource_type="Contractor"),
    ]


@pytest.fixture
def projects():
    return [
        Project(id="p1", name="Apollo Revamp", start_date=date(2026, 1, 5), end_date=date(2026, 4, 15)),
        Project(id="p2", name="Skyline API", start_date=date(2026, 2, 1), end_date=date(2026, 6, 30)),
        Project(id="p3", name="Nebula Analytics", status="Planning"),
    ]


@pytest.fixture
def allocations():
    return [
        StandingAllocation(id="a1", resource_id="r1", project_id="p1", percentage=60),
        DatedAllocation(
            id="a2",
            resource_id="r1",
            project_id="p2",
            percentage=50,
            start_date=date(2026, 1, 5),
            end_date=date(2026, 1, 18),
        ),
        StandingAllocation(id="a3", resource_id="r2", project_id="p1", percentage=40),
    ]
