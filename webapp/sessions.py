from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, TypeVar

from allocation_planner.io_utils import Portfolio
from allocation_planner.scenario import PlanningSession

T = TypeVar("T")


class SessionNotFoundError(LookupError):
    pass


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class SessionRecord:
    id: str
    portfolio: Portfolio
    session: PlanningSession
    created_at: str = field(default_factory=_now_iso)
    updated_at: Optional[str] = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "portfolio": self.portfolio.root.name,
            "in_scenario": self.session.in_scenario,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class SessionStore:
    """In-memory registry of planning sessions, one scenario per session."""

    def __init__(self) -> None:
        self._sessions: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def create(self, portfolio: Portfolio) -> SessionRecord:
        record = SessionRecord(
            id=str(uuid.uuid4()),
            portfolio=portfolio,
            session=PlanningSession(portfolio.allocations),
        )
        with self._lock:
            self._sessions[record.id] = record
        return record

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            return self._sessions.get(session_id)

    def list_sessions(self) -> List[SessionRecord]:
        with self._lock:
            records = list(self._sessions.values())
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    def close(self, session_id: str) -> None:
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                raise SessionNotFoundError(session_id)

    def run(self, session_id: str, action: Callable[[SessionRecord], T]) -> T:
        """Run ``action`` on a session while holding its lock."""
        record = self.get(session_id)
        if record is None:
            raise SessionNotFoundError(session_id)
        with record.lock:
            result = action(record)
            record.updated_at = _now_iso()
        return result
