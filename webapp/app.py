from __future__ import annotations

import os
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

from flask import Flask, jsonify, request

from allocation_planner.aggregation import (
    capacity_summary,
    day_window,
    project_staffing,
    resource_available_date,
    utilization_by_resource,
)
from allocation_planner.editing import (
    build_slices,
    merge_import_rows,
    pair_allocations,
    remove_project,
    remove_resource,
    replace_pair_allocations,
    update_allocation,
)
from allocation_planner.forecast import day_forecast, month_forecast
from allocation_planner.io_utils import (
    load_portfolio,
    save_allocations,
    save_projects,
    save_resources,
)
from allocation_planner.models import DateWindow, Project, format_date, parse_iso_date
from allocation_planner.scenario import ScenarioStateError, utilization_comparison
from allocation_planner.slicer import load_sprint_map, save_sprint_map, sprint_editor_rows
from allocation_planner.sprint_calendar import available_years, quarters_for_year
from allocation_planner.status import classify, status_color

from .sessions import SessionNotFoundError, SessionRecord, SessionStore


PORTFOLIOS_ENV = "PORTFOLIOS_ROOT"


def _portfolios_root(configured: Optional[Path] = None) -> Path:
    """Directory holding one sub-folder per portfolio."""
    if configured is None:
        configured = os.getenv(PORTFOLIOS_ENV) or Path(__file__).resolve().parent.parent / "portfolios"
    return Path(configured).expanduser().resolve()


def _portfolio_dir(name: str, root: Path) -> Path:
    """Portfolio sub-folder of ``root``; names may not escape it."""
    if not name:
        raise ValueError("portfolio is required")
    candidate = (root / name).resolve()
    if root not in candidate.parents:
        raise ValueError(f"portfolio '{name}' is outside {root}")
    if not (candidate / "input").is_dir():
        raise FileNotFoundError(f"portfolio not found: {name}")
    return candidate


def _query_window() -> Optional[DateWindow]:
    start = parse_iso_date(request.args.get("start"), "start")
    end = parse_iso_date(request.args.get("end"), "end")
    if start is None and end is None:
        return None
    return DateWindow(start or end, end or start)


def _utilization_rows(record: SessionRecord, window: Optional[DateWindow]) -> List[Dict[str, object]]:
    resources = record.portfolio.resources
    totals = utilization_by_resource(record.session.active_allocations, resources, window)
    rows = []
    for resource in resources:
        pct = totals[resource.id]
        status = classify(pct)
        rows.append(
            {
                "resourceId": resource.id,
                "name": resource.name,
                "utilization": pct,
                "status": status.label,
                "color": status_color(status),
            }
        )
    return rows


def _find_project(record: SessionRecord, project_id: str) -> Project:
    for project in record.portfolio.projects:
        if project.id == project_id:
            return project
    raise FileNotFoundError(f"project not found: {project_id}")


def _persist_live(record: SessionRecord) -> None:
    """Write live allocations back to the portfolio; scenario edits stay in memory."""
    if not record.session.in_scenario:
        save_allocations(record.session.live_allocations, record.portfolio.allocations_path)


def create_app(portfolios_root: Optional[Path] = None) -> Flask:
    app = Flask(__name__)
    root = _portfolios_root(portfolios_root)
    store = SessionStore()
    app.config["PORTFOLIOS_ROOT"] = root
    app.config["SESSION_STORE"] = store

    @app.errorhandler(ValueError)
    def bad_request(exc: ValueError):
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(FileNotFoundError)
    def not_found(exc: FileNotFoundError):
        return jsonify({"error": str(exc)}), 404

    @app.errorhandler(SessionNotFoundError)
    def unknown_session(exc: SessionNotFoundError):
        return jsonify({"error": f"session not found: {exc}"}), 404

    @app.errorhandler(ScenarioStateError)
    def scenario_conflict(exc: ScenarioStateError):
        return jsonify({"error": str(exc)}), 409

    @app.get("/api/years")
    def years():
        return jsonify({"years": available_years()})

    @app.get("/api/calendar/<int:year>")
    def calendar(year: int):
        return jsonify({"year": year, "quarters": [q.to_dict() for q in quarters_for_year(year)]})

    @app.post("/api/sessions")
    def create_session():
        data = request.get_json(silent=True) or {}
        portfolio_dir = _portfolio_dir(str(data.get("portfolio") or ""), root)
        record = store.create(load_portfolio(portfolio_dir))
        return jsonify(record.to_dict()), 201

    @app.get("/api/sessions")
    def list_sessions():
        return jsonify({"sessions": [record.to_dict() for record in store.list_sessions()]})

    @app.get("/api/sessions/<session_id>")
    def get_session(session_id: str):
        return jsonify(store.run(session_id, lambda record: record.to_dict()))

    @app.delete("/api/sessions/<session_id>")
    def close_session(session_id: str):
        store.close(session_id)
        return jsonify({"success": True})

    @app.get("/api/sessions/<session_id>/allocations")
    def list_allocations(session_id: str):
        def action(record: SessionRecord):
            return [a.to_record() for a in record.session.active_allocations]

        return jsonify({"allocations": store.run(session_id, action)})

    @app.post("/api/sessions/<session_id>/allocations")
    def set_allocation(session_id: str):
        data = request.get_json(silent=True) or {}
        resource_id = data.get("resourceId")
        project_id = data.get("projectId")
        if not resource_id or not project_id:
            raise ValueError("resourceId and projectId are required")

        def action(record: SessionRecord):
            record.session.mutate(update_allocation, resource_id, project_id, data.get("value"))
            _persist_live(record)
            return _utilization_rows(record, None)

        return jsonify({"utilization": store.run(session_id, action)})

    @app.get("/api/sessions/<session_id>/utilization")
    def get_utilization(session_id: str):
        window = _query_window()
        return jsonify({"utilization": store.run(session_id, lambda r: _utilization_rows(r, window))})

    @app.get("/api/sessions/<session_id>/sprints/<resource_id>/<project_id>")
    def get_sprint_map(session_id: str, resource_id: str, project_id: str):
        def action(record: SessionRecord):
            return load_sprint_map(record.session.active_allocations, resource_id, project_id)

        return jsonify({"sprints": store.run(session_id, action)})

    @app.post("/api/sessions/<session_id>/sprints/<resource_id>/<project_id>")
    def put_sprint_map(session_id: str, resource_id: str, project_id: str):
        data = request.get_json(silent=True) or {}
        sprint_map = data.get("sprints")
        if not isinstance(sprint_map, dict):
            raise ValueError("sprints must be an object keyed by sprint start date")

        def action(record: SessionRecord):
            record.session.mutate(save_sprint_map, resource_id, project_id, sprint_map)
            _persist_live(record)
            return load_sprint_map(record.session.active_allocations, resource_id, project_id)

        return jsonify({"sprints": store.run(session_id, action)})

    @app.post("/api/sessions/<session_id>/scenario/enter")
    def enter_scenario(session_id: str):
        def action(record: SessionRecord):
            record.session.enter()
            return record.to_dict()

        return jsonify(store.run(session_id, action))

    @app.get("/api/sessions/<session_id>/scenario/diff")
    def scenario_diff(session_id: str):
        def action(record: SessionRecord):
            session = record.session
            return {
                "changes": [change.to_dict() for change in session.diff()],
                "comparison": utilization_comparison(
                    session.live_allocations, session.active_allocations, record.portfolio.resources
                ),
            }

        return jsonify(store.run(session_id, action))

    @app.post("/api/sessions/<session_id>/scenario/apply")
    def apply_scenario(session_id: str):
        def action(record: SessionRecord):
            changes = len(record.session.diff())
            live = record.session.apply()
            save_allocations(live, record.portfolio.allocations_path)
            return {"success": True, "changes_applied": changes}

        return jsonify(store.run(session_id, action))

    @app.post("/api/sessions/<session_id>/scenario/discard")
    def discard_scenario(session_id: str):
        def action(record: SessionRecord):
            record.session.discard()
            return record.to_dict()

        return jsonify(store.run(session_id, action))

    @app.get("/api/sessions/<session_id>/summary")
    def get_summary(session_id: str):
        window = _query_window() or day_window(date.today())

        def action(record: SessionRecord):
            allocations = record.session.active_allocations
            portfolio = record.portfolio
            available = {
                r.id: format_date(resource_available_date(allocations, portfolio.projects, r.id))
                for r in portfolio.resources
            }
            return {
                **capacity_summary(allocations, portfolio.resources, portfolio.projects, window),
                "project_fte": project_staffing(allocations, window),
                "available_from": available,
            }

        return jsonify(store.run(session_id, action))

    @app.get("/api/sessions/<session_id>/forecast/<resource_id>")
    def get_forecast(session_id: str, resource_id: str):
        months = request.args.get("months", type=int)
        offset = request.args.get("offset", type=int)

        def action(record: SessionRecord):
            allocations = [a for a in record.session.active_allocations if a.resource_id == resource_id]
            config = record.portfolio.config
            frame = month_forecast(
                allocations,
                record.portfolio.projects,
                months=months or config.forecast_months,
                month_offset=config.forecast_month_offset if offset is None else offset,
            )
            return frame.to_dict(orient="records")

        return jsonify({"forecast": store.run(session_id, action)})

    @app.get("/api/sessions/<session_id>/forecast/<resource_id>/<int:year>/<int:month>")
    def get_day_forecast(session_id: str, resource_id: str, year: int, month: int):
        if not 1 <= month <= 12:
            raise ValueError("month must be between 1 and 12")

        def action(record: SessionRecord):
            allocations = [a for a in record.session.active_allocations if a.resource_id == resource_id]
            frame = day_forecast(year, month, allocations, record.portfolio.projects)
            frame["date"] = frame["date"].map(format_date)
            return frame.to_dict(orient="records")

        return jsonify({"days": store.run(session_id, action)})

    @app.get("/api/sessions/<session_id>/sprint-editor/<resource_id>/<project_id>/<int:year>")
    def get_sprint_editor(session_id: str, resource_id: str, project_id: str, year: int):
        def action(record: SessionRecord):
            project = _find_project(record, project_id)
            sprint_map = load_sprint_map(record.session.active_allocations, resource_id, project_id)
            return sprint_editor_rows(year, project, sprint_map)

        return jsonify({"quarters": store.run(session_id, action)})

    @app.post("/api/sessions/<session_id>/slices/<resource_id>/<project_id>")
    def put_slices(session_id: str, resource_id: str, project_id: str):
        data = request.get_json(silent=True) or {}
        slices = data.get("slices")
        if not isinstance(slices, list) or not all(isinstance(s, dict) for s in slices):
            raise ValueError("slices must be an array of objects")

        def action(record: SessionRecord):
            project = _find_project(record, project_id)
            built = build_slices(resource_id, project_id, slices, project)
            record.session.mutate(replace_pair_allocations, resource_id, project_id, built)
            _persist_live(record)
            return [
                a.to_record()
                for a in pair_allocations(record.session.active_allocations, resource_id, project_id)
            ]

        return jsonify({"allocations": store.run(session_id, action)})

    @app.delete("/api/sessions/<session_id>/resources/<resource_id>")
    def delete_resource(session_id: str, resource_id: str):
        def action(record: SessionRecord):
            portfolio = record.portfolio
            if not any(r.id == resource_id for r in portfolio.resources):
                raise FileNotFoundError(f"resource not found: {resource_id}")
            record.portfolio = replace(
                portfolio, resources=[r for r in portfolio.resources if r.id != resource_id]
            )
            record.session.mutate_everywhere(remove_resource, resource_id)
            save_resources(record.portfolio.resources, portfolio.resources_path)
            save_allocations(record.session.live_allocations, portfolio.allocations_path)
            return {"success": True}

        return jsonify(store.run(session_id, action))

    @app.delete("/api/sessions/<session_id>/projects/<project_id>")
    def delete_project(session_id: str, project_id: str):
        def action(record: SessionRecord):
            portfolio = record.portfolio
            _find_project(record, project_id)
            record.portfolio = replace(
                portfolio, projects=[p for p in portfolio.projects if p.id != project_id]
            )
            record.session.mutate_everywhere(remove_project, project_id)
            save_projects(record.portfolio.projects, portfolio.projects_path)
            save_allocations(record.session.live_allocations, portfolio.allocations_path)
            return {"success": True}

        return jsonify(store.run(session_id, action))

    @app.post("/api/sessions/<session_id>/import")
    def import_rows(session_id: str):
        data = request.get_json(silent=True) or {}
        rows = data.get("rows")
        if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
            raise ValueError("rows must be an array of objects")

        def action(record: SessionRecord):
            portfolio = record.portfolio
            resources, projects, allocations = merge_import_rows(
                rows, portfolio.resources, portfolio.projects, record.session.active_allocations
            )
            record.portfolio = replace(portfolio, resources=resources, projects=projects)
            record.session.mutate(lambda _current: allocations)
            save_resources(resources, portfolio.resources_path)
            save_projects(projects, portfolio.projects_path)
            _persist_live(record)
            return {"success": True, "rows_imported": len(rows)}

        return jsonify(store.run(session_id, action))

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
