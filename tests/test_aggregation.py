from datetime import date

import pytest

from allocation_planner.aggregation import (
    MATRIX_COLUMNS,
    capacity_summary,
    day_window,
    is_active,
    pair_percentage,
    project_staffing,
    resource_available_date,
    sprint_utilization,
    utilization,
    utilization_by_resource,
    utilization_matrix,
)
from allocation_planner.models import DatedAllocation, DateWindow, StandingAllocation
from allocation_planner.sprint_calendar import sprints_for_year


def test_standing_allocations_count_everywhere(allocations):
    assert utilization(allocations, "r2") == 40
    assert utilization(allocations, "r2", day_window(date(2031, 5, 1))) == 40


def test_without_window_only_standing_allocations_count(allocations):
    assert utilization(allocations, "r1") == 60


def test_dated_allocation_counts_on_overlap(allocations):
    s1 = sprints_for_year(2026)[0]
    s2 = sprints_for_year(2026)[1]
    assert sprint_utilization(allocations, "r1", s1) == 110
    assert sprint_utilization(allocations, "r1", s2) == 60


def test_overlap_is_inclusive_at_both_ends():
    alloc = DatedAllocation("x", "r1", "p1", 30, date(2026, 3, 1), date(2026, 3, 10))
    assert is_active(alloc, DateWindow(date(2026, 3, 10), date(2026, 3, 20)))
    assert is_active(alloc, DateWindow(date(2026, 2, 20), date(2026, 3, 1)))
    assert not is_active(alloc, DateWindow(date(2026, 3, 11), date(2026, 3, 20)))


def test_partial_overlap_is_not_prorated():
    alloc = DatedAllocation("x", "r1", "p1", 30, date(2026, 1, 20), date(2026, 1, 20))
    s1 = sprints_for_year(2026)[0]
    assert sprint_utilization([alloc], "r1", s1) == 30


def test_project_filter_and_pair_percentage(allocations):
    window = day_window(date(2026, 1, 10))
    assert utilization(allocations, "r1", window, project_id="p2") == 50
    assert pair_percentage(allocations, "r1", "p1", window) == 60
    assert pair_percentage(allocations, "r3", "p1", window) == 0


def test_utilization_by_resource_includes_idle_resources(allocations, resources):
    totals = utilization_by_resource(allocations, resources, day_window(date(2026, 1, 10)))
    assert totals == {"r1": 110, "r2": 40, "r3": 0}


def test_utilization_matrix_frame(allocations, resources):
    sprints = sprints_for_year(2026)[:2]
    frame = utilization_matrix(allocations, resources, sprints)
    assert list(frame.columns) == MATRIX_COLUMNS
    assert len(frame) == 6
    first = frame.iloc[0]
    assert first["resource_id"] == "r1"
    assert first["sprint_id"] == "S1"
    assert first["sprint_start"] == "2026-01-07"
    assert first["utilization"] == 110
    assert first["status"] == "Over"


def test_capacity_summary(allocations, resources, projects):
    summary = capacity_summary(allocations, resources, projects, day_window(date(2026, 1, 10)))
    assert summary == {
        "total_resources": 3,
        "permanent_count": 2,
        "contractor_count": 1,
        "active_projects": 2,
        "over_allocated_count": 1,
        "avg_utilization": 50,
    }


def test_capacity_summary_without_resources():
    assert capacity_summary([], [], [])["avg_utilization"] == 0


def test_resource_available_date(allocations, projects):
    assert resource_available_date(allocations, projects, "r1") == date(2026, 6, 30)
    assert resource_available_date(allocations, projects, "r3") is None


def test_project_staffing(allocations):
    fte = project_staffing(allocations)
    assert fte == pytest.approx({"p1": 1.0})
    fte = project_staffing(allocations, day_window(date(2026, 1, 10)))
    assert fte == pytest.approx({"p1": 1.0, "p2": 0.5})


def test_standing_only_list():
    allocs = [StandingAllocation("a", "r1", "p1", 30), StandingAllocation("b", "r1", "p2", 80)]
    assert utilization(allocs, "r1") == 110
