from datetime import date

import pytest

from allocation_planner.aggregation import day_window
from allocation_planner.editing import remove_resource, update_allocation
from allocation_planner.models import AllocationChange, StandingAllocation
from allocation_planner.scenario import (
    LiveState,
    PlanningSession,
    SandboxedState,
    ScenarioStateError,
    diff_allocations,
    utilization_comparison,
)
from allocation_planner.slicer import save_sprint_map
from allocation_planner.sprint_calendar import SprintCalendar


def test_session_starts_live(allocations):
    session = PlanningSession(allocations)
    assert isinstance(session.state, LiveState)
    assert not session.in_scenario
    assert session.diff() == []


def test_edits_inside_scenario_leave_live_untouched(allocations):
    session = PlanningSession(allocations)
    session.enter()
    assert isinstance(session.state, SandboxedState)
    session.mutate(update_allocation, "r1", "p1", 90)
    session.mutate(remove_resource, "r2")
    assert session.live_allocations == allocations
    assert [a.percentage for a in session.active_allocations] == [90, 50]


def test_snapshot_is_independent_copy(allocations):
    session = PlanningSession(allocations)
    session.enter()
    assert session.active_allocations == session.live_allocations
    assert session.active_allocations[0] is not session.live_allocations[0]


def test_discard_restores_live(allocations):
    session = PlanningSession(allocations)
    session.enter()
    session.mutate(update_allocation, "r1", "p1", 10)
    session.discard()
    assert not session.in_scenario
    assert session.active_allocations == allocations


def test_apply_promotes_snapshot(allocations):
    session = PlanningSession(allocations)
    session.enter()
    session.mutate(update_allocation, "r2", "p1", 70)
    applied = session.apply()
    assert not session.in_scenario
    assert applied == session.live_allocations
    assert [a.percentage for a in applied] == [60, 50, 70]


def test_apply_without_scenario_raises(allocations):
    session = PlanningSession(allocations)
    with pytest.raises(ScenarioStateError):
        session.apply()


def test_enter_again_starts_fresh_copy(allocations):
    session = PlanningSession(allocations)
    session.enter()
    session.mutate(update_allocation, "r1", "p1", 10)
    session.enter()
    assert session.diff() == []


def test_mutate_while_live_changes_live(allocations):
    session = PlanningSession(allocations)
    session.mutate(update_allocation, "r3", "p3", 20)
    assert session.live_allocations[-1].resource_id == "r3"


def test_diff_reports_changed_pairs_only(allocations):
    session = PlanningSession(allocations)
    session.enter()
    session.mutate(update_allocation, "r1", "p1", 80)
    session.mutate(update_allocation, "r2", "p1", 0)
    session.mutate(update_allocation, "r3", "p2", 25)
    changes = session.diff()
    assert changes == [
        AllocationChange("r1", "p1", 60, 80),
        AllocationChange("r2", "p1", 40, 0),
        AllocationChange("r3", "p2", 0, 25),
    ]
    assert [c.delta for c in changes] == [20, -40, 25]
    assert changes[2].to_dict() == {
        "resourceId": "r3",
        "projectId": "p2",
        "startDate": None,
        "before": 0,
        "after": 25,
        "delta": 25,
    }


def test_diff_reports_each_moved_slice(allocations):
    sliced = save_sprint_map(
        allocations, "r1", "p2", {"2026-01-07": 20, "2026-01-21": 30}, SprintCalendar(), date(2026, 6, 1)
    )
    assert diff_allocations(allocations, sliced) == [
        AllocationChange("r1", "p2", 50, 0, date(2026, 1, 5)),
        AllocationChange("r1", "p2", 0, 20, date(2026, 1, 7)),
        AllocationChange("r1", "p2", 0, 30, date(2026, 1, 21)),
    ]


def test_diff_never_sums_slices_across_time():
    live = [StandingAllocation("a1", "r1", "p1", 40)]
    calendar = SprintCalendar()
    sprint_map = {sprint.start_key: 40 for sprint in calendar.sprints_for_year(2026)}
    sandbox = save_sprint_map(live, "r1", "p1", sprint_map, calendar, date(2026, 6, 1))
    changes = diff_allocations(live, sandbox)
    assert len(changes) == 27
    assert changes[0] == AllocationChange("r1", "p1", 40, 0)
    assert all(c.before == 0 and c.after == 40 for c in changes[1:])
    assert max(c.after for c in changes) == 40


def test_diff_of_identical_sets_is_empty(allocations):
    assert diff_allocations(allocations, list(allocations)) == []


def test_utilization_comparison(allocations, resources):
    sandbox = update_allocation(allocations, "r2", "p1", 90)
    rows = utilization_comparison(allocations, sandbox, resources, day_window(date(2026, 1, 10)))
    by_id = {row["resourceId"]: row for row in rows}
    assert by_id["r1"]["delta"] == 0
    assert by_id["r2"] == {
        "resourceId": "r2",
        "before": 40,
        "after": 90,
        "delta": 50,
        "beforeStatus": "Under",
        "afterStatus": "High",
    }


def test_mutate_everywhere_reaches_live_and_sandbox(allocations):
    session = PlanningSession(allocations)
    session.enter()
    session.mutate(update_allocation, "r2", "p1", 70)
    session.mutate_everywhere(remove_resource, "r1")
    assert [a.id for a in session.live_allocations] == ["a3"]
    assert [(a.id, a.percentage) for a in session.active_allocations] == [("a3", 70)]
    session.discard()
    assert [a.resource_id for a in session.live_allocations] == ["r2"]


def test_mutate_everywhere_while_live(allocations):
    session = PlanningSession(allocations)
    session.mutate_everywhere(remove_resource, "r2")
    assert not session.in_scenario
    assert [a.id for a in session.live_allocations] == ["a1", "a2"]
