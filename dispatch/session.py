"""
Purpose: Live dispatch state.
What it does:
- DispatchSession: one ride being offered (mode, ranked candidate queue,
  fixed deadline, the single timer task that expires it)
- DispatchRecord: the persisted mirror of a session, read back on startup
- SessionRegistry: ride id -> session

Rule: the registry is only mutated in synchronous code, so under one event
loop open/release/queue edits are atomic. release() is idempotent and is the
only place timers are cancelled.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from rides.exceptions import ConflictError
from rides.models import DispatchMode

logger = logging.getLogger(__name__)


@dataclass
class DispatchRecord:
    ride_id: str
    mode: DispatchMode
    candidate_ids: List[str]
    deadline: datetime
    started_at: datetime


@dataclass
class DispatchSession:
    ride_id: str
    mode: DispatchMode
    queue: List[str]
    deadline: datetime
    started_at: datetime
    timer: Optional[asyncio.Task] = field(default=None, repr=False)

    def to_record(self) -> DispatchRecord:
        return DispatchRecord(
            ride_id=self.ride_id,
            mode=self.mode,
            candidate_ids=list(self.queue),
            deadline=self.deadline,
            started_at=self.started_at,
        )

    @classmethod
    def from_record(cls, record: DispatchRecord) -> DispatchSession:
        return cls(
            ride_id=record.ride_id,
            mode=record.mode,
            queue=list(record.candidate_ids),
            deadline=record.deadline,
            started_at=record.started_at,
        )

    def seconds_left(self, now: datetime) -> float:
        return max(0.0, (self.deadline - now).total_seconds())


class SessionRegistry:
    def __init__(self):
        self._sessions: Dict[str, DispatchSession] = {}

    def __contains__(self, ride_id: str) -> bool:
        return ride_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[DispatchSession]:
        return iter(list(self._sessions.values()))

    def get(self, ride_id: str) -> Optional[DispatchSession]:
        return self._sessions.get(ride_id)

    def open(self, session: DispatchSession) -> None:
        if session.ride_id in self._sessions:
            raise ConflictError(f"Ride {session.ride_id} is already being dispatched")
        self._sessions[session.ride_id] = session

    def release(self, ride_id: str) -> Optional[DispatchSession]:
        """
        Remove the session and cancel its timer. Returns None when there was
        nothing to release. A timer releasing its own session is not cancelled.
        """
        session = self._sessions.pop(ride_id, None)
        if session is None:
            return None

        timer = session.timer
        session.timer = None
        if timer is not None and not timer.done():
            try:
                current = asyncio.current_task()
            except RuntimeError:
                current = None
            if timer is not current:
                timer.cancel()

        logger.debug("Released dispatch session for ride %s", ride_id)
        return session

    def sessions_for_driver(self, driver_id: str) -> List[DispatchSession]:
        return [s for s in self._sessions.values() if driver_id in s.queue]
