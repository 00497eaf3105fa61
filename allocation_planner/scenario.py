"""
What-if scenarios.

A planning session is either live or sandboxed. Entering a scenario deep
copies the live allocations; edits then go to the copy until the scenario is
applied (the copy becomes live) or discarded.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .aggregation import utilization
from .models import Allocation, AllocationChange, AllocationKey, DateWindow, Resource
from .status import classify

logger = logging.getLogger(__name__)


class ScenarioStateError(RuntimeError):
    pass


@dataclass(frozen=True)
class LiveState:
    allocations: Tuple[Allocation, ...]


@dataclass(frozen=True)
class SandboxedState:
    live: Tuple[Allocation, ...]
    snapshot: Tuple[Allocation, ...]


PlanningState = Union[LiveState, SandboxedState]
EditOp = Callable[..., Sequence[Allocation]]


def _key_percentages(allocations: Iterable[Allocation]) -> Dict[AllocationKey, int]:
    return {allocation.key(): allocation.percentage for allocation in allocations}


def diff_allocations(
    live: Sequence[Allocation], sandbox: Sequence[Allocation]
) -> List[AllocationChange]:
    """Percentage changes per allocation key between live and sandbox.

    A standing record is compared with the standing record of the same pair and
    a dated slice with the slice starting on the same day, so values are never
    summed across time. A key missing on one side counts as 0 there; unchanged
    keys are left out.
    """
    before = _key_percentages(live)
    after = _key_percentages(sandbox)
    keys = list(before) + [key for key in after if key not in before]
    changes: List[AllocationChange] = []
    for resource_id, project_id, start in keys:
        old = before.get((resource_id, project_id, start), 0)
        new = after.get((resource_id, project_id, start), 0)
        if old != new:
            changes.append(AllocationChange(resource_id, project_id, old, new, start))
    return changes


def utilization_comparison(
    live: Sequence[Allocation],
    sandbox: Sequence[Allocation],
    resources: Iterable[Resource],
    window: Optional[DateWindow] = None,
) -> List[Dict[str, object]]:
    rows: List[Dict[str, object]] = []
    for resource in resources:
        before = utilization(live, resource.id, window)
        after = utilization(sandbox, resource.id, window)
        rows.append(
            {
                "resourceId": resource.id,
                "before": before,
                "after": after,
                "delta": after - before,
                "beforeStatus": classify(before).label,
                "afterStatus": classify(after).label,
            }
        )
    return rows


class PlanningSession:
    """Owns the live allocations and at most one scenario."""

    def __init__(self, allocations: Iterable[Allocation] = ()) -> None:
        self._state: PlanningState = LiveState(tuple(allocations))

    @property
    def state(self) -> PlanningState:
        return self._state

    @property
    def in_scenario(self) -> bool:
        return isinstance(self._state, SandboxedState)

    @property
    def live_allocations(self) -> List[Allocation]:
        state = self._state
        if isinstance(state, SandboxedState):
            return list(state.live)
        return list(state.allocations)

    @property
    def active_allocations(self) -> List[Allocation]:
        state = self._state
        if isinstance(state, SandboxedState):
            return list(state.snapshot)
        return list(state.allocations)

    def enter(self) -> List[Allocation]:
        live = tuple(self.live_allocations)
        if self.in_scenario:
            logger.debug("Scenario already active; starting a fresh copy")
        self._state = SandboxedState(live=live, snapshot=copy.deepcopy(live))
        logger.debug("Entered scenario with %d allocations", len(live))
        return self.active_allocations

    def mutate(self, op: EditOp, *args: object, **kwargs: object) -> List[Allocation]:
        """Run an edit function against whichever allocation set is active."""
        updated = tuple(op(self.active_allocations, *args, **kwargs))
        state = self._state
        if isinstance(state, SandboxedState):
            self._state = SandboxedState(live=state.live, snapshot=updated)
        else:
            self._state = LiveState(updated)
        return list(updated)

    def mutate_everywhere(self, op: EditOp, *args: object, **kwargs: object) -> List[Allocation]:
        """Run an edit on live and, inside a scenario, on the sandbox as well.

        For edits that must survive a discard, such as cascades after a
        resource or project is deleted from disk.
        """
        state = self._state
        if isinstance(state, SandboxedState):
            live = tuple(op(list(state.live), *args, **kwargs))
            snapshot = tuple(op(list(state.snapshot), *args, **kwargs))
            self._state = SandboxedState(live=live, snapshot=snapshot)
        else:
            self._state = LiveState(tuple(op(list(state.allocations), *args, **kwargs)))
        return self.active_allocations

    def diff(self) -> List[AllocationChange]:
        state = self._state
        if not isinstance(state, SandboxedState):
            return []
        return diff_allocations(state.live, state.snapshot)

    def apply(self) -> List[Allocation]:
        state = self._state
        if not isinstance(state, SandboxedState):
            raise ScenarioStateError("no scenario is active")
        logger.info("Applying scenario with %d changed allocations", len(self.diff()))
        self._state = LiveState(state.snapshot)
        return self.live_allocations

    def discard(self) -> None:
        if self.in_scenario:
            logger.debug("Discarding scenario")
        self._state = LiveState(tuple(self.live_allocations))
