from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set

import pandas as pd

from .models import (
    Allocation,
    AllocationKey,
    PlannerConfig,
    Project,
    Resource,
    allocation_from_record,
    format_date,
    parse_iso_date,
)

logger = logging.getLogger(__name__)

RESOURCES_FILE = "resources.json"
PROJECTS_FILE = "projects.json"
ALLOCATIONS_FILE = "allocations.json"
CONFIG_FILE = "config.json"

EXPORT_COLUMNS = ["resourceId", "resourceName", "projectId", "projectName", "percentage"]

_VALID_RESOURCE_TYPES = {"Permanent", "Contractor"}


def _read_json_array(path: str | Path, label: str) -> List[dict]:
    try:
        data = json.loads(Path(path).read_text())
    except json.JSONDecodeError as exc:
        raise ValueError(f"{label} file is not valid JSON") from exc
    if not isinstance(data, list):
        raise ValueError(f"{label} file must be a JSON array")
    for entry in data:
        if not isinstance(entry, dict):
            raise ValueError(f"{label} entries must be objects")
    return data


def load_resources(path: str | Path) -> List[Resource]:
    resources: List[Resource] = []
    seen: Set[str] = set()
    for entry in _read_json_array(path, "resources"):
        resource_id = entry.get("id")
        name = entry.get("name")
        if not resource_id or not name or not isinstance(name, str):
            raise ValueError("resource id and name are required")
        if resource_id in seen:
            raise ValueError(f"duplicate resource id '{resource_id}'")
        seen.add(resource_id)
        resource_type = str(entry.get("type", "Permanent"))
        if resource_type not in _VALID_RESOURCE_TYPES:
            raise ValueError(f"unsupported resource type '{resource_type}' for {name}")
        capacity = entry.get("totalCapacity", 100)
        if not isinstance(capacity, (int, float)) or capacity < 0:
            raise ValueError(f"totalCapacity must be a non-negative number for {name}")
        resources.append(
            Resource(
                id=str(resource_id),
                name=name,
                role=str(entry.get("role", "") or ""),
                department=str(entry.get("department", "") or ""),
                resource_type=resource_type,
                total_capacity=int(capacity),
            )
        )
    return resources


def load_projects(path: str | Path) -> List[Project]:
    projects: List[Project] = []
    for entry in _read_json_array(path, "projects"):
        project_id = entry.get("id")
        name = entry.get("name")
        if not project_id or not name:
            raise ValueError("project id and name are required")
        start = parse_iso_date(entry.get("startDate"), "startDate")
        end = parse_iso_date(entry.get("endDate"), "endDate")
        if start and end and end < start:
            raise ValueError(f"project {project_id} ends before it starts")
        projects.append(
            Project(
                id=str(project_id),
                name=str(name),
                status=str(entry.get("status", "Active") or "Active"),
                priority=str(entry.get("priority", "Medium") or "Medium"),
                start_date=start,
                end_date=end,
                description=str(entry.get("description", "") or ""),
            )
        )
    return projects


def load_allocations(path: str | Path) -> List[Allocation]:
    allocations: List[Allocation] = []
    keys: Set[AllocationKey] = set()
    for entry in _read_json_array(path, "allocations"):
        allocation = allocation_from_record(entry)
        if allocation.percentage <= 0:
            logger.debug("Skipping zero allocation %s", allocation.id)
            continue
        if allocation.key() in keys:
            raise ValueError(f"duplicate allocation for {allocation.key()!r}")
        keys.add(allocation.key())
        allocations.append(allocation)
    return allocations


def save_allocations(allocations: Iterable[Allocation], path: str | Path) -> None:
    _write_json_array([a.to_record() for a in allocations], path)


def _write_json_array(records: List[Dict[str, object]], path: str | Path) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(records, indent=2) + "\n")


def resource_to_record(resource: Resource) -> Dict[str, object]:
    return {
        "id": resource.id,
        "name": resource.name,
        "role": resource.role,
        "department": resource.department,
        "type": resource.resource_type,
        "totalCapacity": resource.total_capacity,
    }


def project_to_record(project: Project) -> Dict[str, object]:
    record: Dict[str, object] = {
        "id": project.id,
        "name": project.name,
        "status": project.status,
        "priority": project.priority,
        "description": project.description,
    }
    if project.start_date:
        record["startDate"] = format_date(project.start_date)
    if project.end_date:
        record["endDate"] = format_date(project.end_date)
    return record


def save_resources(resources: Iterable[Resource], path: str | Path) -> None:
    _write_json_array([resource_to_record(r) for r in resources], path)


def save_projects(projects: Iterable[Project], path: str | Path) -> None:
    _write_json_array([project_to_record(p) for p in projects], path)


def _optional_int(data: dict, key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{key} must be an integer if provided")
    return value


def load_config(path: str | Path | None) -> PlannerConfig:
    if path is None or not Path(path).exists():
        return PlannerConfig()
    data = json.loads(Path(path).read_text())
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    logging_level = data.get("logging_level", "INFO")
    if not isinstance(logging_level, str):
        raise ValueError("logging_level must be a string")
    forecast_months = data.get("forecast_months", 6)
    if not isinstance(forecast_months, int) or forecast_months <= 0:
        raise ValueError("forecast_months must be a positive integer")
    forecast_month_offset = _optional_int(data, "forecast_month_offset") or 0
    report_year = _optional_int(data, "report_year")
    return PlannerConfig(
        logging_level=logging_level,
        forecast_months=forecast_months,
        forecast_month_offset=forecast_month_offset,
        report_year=report_year,
    )


def allocations_frame(
    allocations: Sequence[Allocation],
    resources: Sequence[Resource],
    projects: Sequence[Project],
) -> pd.DataFrame:
    resource_names: Dict[str, str] = {r.id: r.name for r in resources}
    project_names: Dict[str, str] = {p.id: p.name for p in projects}
    rows = [
        {
            "resourceId": a.resource_id,
            "resourceName": resource_names.get(a.resource_id, ""),
            "projectId": a.project_id,
            "projectName": project_names.get(a.project_id, ""),
            "percentage": a.percentage,
        }
        for a in allocations
    ]
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def ensure_directory(path: str | Path) -> Path:
    target = Path(path)
    target.mkdir(parents=True, exist_ok=True)
    return target


def write_csv(df: pd.DataFrame, path: str | Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)


@dataclass(frozen=True)
class Portfolio:
    """Inputs of one portfolio directory (``input/`` and ``output/`` subfolders)."""

    root: Path
    resources: List[Resource]
    projects: List[Project]
    allocations: List[Allocation]
    config: PlannerConfig

    @property
    def input_dir(self) -> Path:
        return self.root / "input"

    @property
    def output_dir(self) -> Path:
        return self.root / "output"

    @property
    def allocations_path(self) -> Path:
        return self.input_dir / ALLOCATIONS_FILE

    @property
    def resources_path(self) -> Path:
        return self.input_dir / RESOURCES_FILE

    @property
    def projects_path(self) -> Path:
        return self.input_dir / PROJECTS_FILE


def load_portfolio(project_dir: str | Path) -> Portfolio:
    root = Path(project_dir)
    input_dir = root / "input"
    if not input_dir.is_dir():
        raise ValueError(f"portfolio directory must contain an input folder: {root}")
    missing = [
        name
        for name in (RESOURCES_FILE, PROJECTS_FILE, ALLOCATIONS_FILE)
        if not (input_dir / name).is_file()
    ]
    if missing:
        raise ValueError(f"portfolio {root} missing input files: {', '.join(missing)}")
    return Portfolio(
        root=root,
        resources=load_resources(input_dir / RESOURCES_FILE),
        projects=load_projects(input_dir / PROJECTS_FILE),
        allocations=load_allocations(input_dir / ALLOCATIONS_FILE),
        config=load_config(input_dir / CONFIG_FILE),
    )
