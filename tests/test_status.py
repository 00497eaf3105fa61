import pytest

from allocation_planner.models import UtilizationStatus
from allocation_planner.status import classify, is_over_allocated, status_color


@pytest.mark.parametrize(
    "pct,expected",
    [
        (0, UtilizationStatus.UNDER),
        (59, UtilizationStatus.UNDER),
        (59.9, UtilizationStatus.UNDER),
        (60, UtilizationStatus.OPTIMAL),
        (79, UtilizationStatus.OPTIMAL),
        (80, UtilizationStatus.HIGH),
        (100, UtilizationStatus.HIGH),
        (101, UtilizationStatus.OVER),
        (250, UtilizationStatus.OVER),
    ],
)
def test_classify_bands(pct, expected):
    assert classify(pct) is expected


def test_classify_is_monotonic():
    previous = classify(0)
    for pct in range(0, 200):
        current = classify(pct)
        assert not current < previous
        previous = current


def test_labels_and_colors():
    assert classify(120).label == "Over"
    assert classify(65).label == "Optimal"
    colors = {status_color(status) for status in UtilizationStatus}
    assert len(colors) == 4


def test_exactly_full_is_not_over_allocated():
    assert not is_over_allocated(100)
    assert is_over_allocated(110)


def test_statuses_support_full_ordering():
    assert UtilizationStatus.OVER > UtilizationStatus.HIGH
    assert UtilizationStatus.OPTIMAL <= UtilizationStatus.OPTIMAL
    assert UtilizationStatus.UNDER >= UtilizationStatus.UNDER
    assert max(classify(pct) for pct in (10, 130, 85)) is UtilizationStatus.OVER
    assert sorted(UtilizationStatus, reverse=True)[0] is UtilizationStatus.OVER
