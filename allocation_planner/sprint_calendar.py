"""
Sprint and quarter calendar.

Sprints are fixed 14-day intervals numbered from a single global anchor:
Sprint 1 starts on 2026-01-07, Sprint 2 on 2026-01-21, and so on in both
directions. A year's quarters hold the sprints that *start* in them, so the
last sprint of a quarter may end in the following quarter (or year).
"""

from __future__ import annotations

import logging
import threading
from datetime import date, timedelta
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .models import Quarter, Sprint

ANCHOR_DATE = date(2026, 1, 7)
SPRINT_LENGTH_DAYS = 14

logger = logging.getLogger(__name__)

QuarterSet = Tuple[Quarter, Quarter, Quarter, Quarter]


def _sprint_at(index: int) -> Sprint:
    start = ANCHOR_DATE + timedelta(days=index * SPRINT_LENGTH_DAYS)
    return Sprint(
        number=index + 1,
        start_date=start,
        end_date=start + timedelta(days=SPRINT_LENGTH_DAYS - 1),
    )


def sprint_index_for_date(day: date) -> int:
    """Zero-based global index of the sprint containing ``day``."""
    return (day - ANCHOR_DATE).days // SPRINT_LENGTH_DAYS


def quarter_number(day: date) -> int:
    return (day.month - 1) // 3 + 1


def _compute_quarters(year: int) -> QuarterSet:
    index = sprint_index_for_date(date(year, 1, 1))
    buckets: Dict[int, List[Sprint]] = {1: [], 2: [], 3: [], 4: []}
    sprint = _sprint_at(index)
    while sprint.start_date.year <= year:
        if sprint.start_date.year == year:
            buckets[quarter_number(sprint.start_date)].append(sprint)
        index += 1
        sprint = _sprint_at(index)
    return tuple(Quarter(year=year, quarter=q, sprints=tuple(buckets[q])) for q in range(1, 5))


def available_years(today: Optional[date] = None) -> List[int]:
    current = (today or date.today()).year
    return [current - 1, current, current + 1, current + 2]


class SprintCalendar:
    """Append-only per-year cache of quarter/sprint structures."""

    def __init__(self) -> None:
        self._years: Dict[int, QuarterSet] = {}
        self._lock = threading.Lock()

    def quarters_for_year(self, year: int) -> QuarterSet:
        cached = self._years.get(year)
        if cached is not None:
            return cached
        quarters = _compute_quarters(year)
        with self._lock:
            # another thread may have filled the year first; keep its value
            cached = self._years.setdefault(year, quarters)
        if cached is quarters:
            logger.debug(
                "Cached sprint calendar for %s (%d sprints)",
                year,
                sum(len(q.sprints) for q in quarters),
            )
        return cached

    def sprints_for_year(self, year: int) -> List[Sprint]:
        return [sprint for quarter in self.quarters_for_year(year) for sprint in quarter.sprints]

    def cached_years(self) -> List[int]:
        with self._lock:
            return sorted(self._years)

    def known_years(self, today: Optional[date] = None) -> List[int]:
        return sorted(set(available_years(today)) | set(self.cached_years()))

    def iter_known_sprints(
        self, today: Optional[date] = None, extra_years: Iterable[int] = ()
    ) -> Iterator[Sprint]:
        years = sorted(set(self.known_years(today)) | set(extra_years))
        for year in years:
            yield from self.sprints_for_year(year)

    def quarter_of(self, sprint: Sprint) -> Quarter:
        quarters = self.quarters_for_year(sprint.start_date.year)
        return quarters[quarter_number(sprint.start_date) - 1]

    def sprint_for_date(self, day: date) -> Sprint:
        return _sprint_at(sprint_index_for_date(day))

    def sprints_between(self, start: date, end: date) -> List[Sprint]:
        """Sprints overlapping the inclusive range ``[start, end]``."""
        if start > end:
            return []
        first = sprint_index_for_date(start)
        last = sprint_index_for_date(end)
        return [_sprint_at(index) for index in range(first, last + 1)]


DEFAULT_CALENDAR = SprintCalendar()


def quarters_for_year(year: int) -> QuarterSet:
    return DEFAULT_CALENDAR.quarters_for_year(year)


def sprints_for_year(year: int) -> List[Sprint]:
    return DEFAULT_CALENDAR.sprints_for_year(year)
