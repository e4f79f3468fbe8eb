"""
Purpose: Outbound notifications (push, websocket, SMS... whatever the host wires in).
What it does:
- Notifier: async interface with per-user and per-ride channels
- LoggingNotifier: logs every event (default when nothing is wired in)
- RecordingNotifier: keeps every event in memory (tests, simulation)
- SafeNotifier: best-effort wrapper; delivery failures are logged, never raised

Rule: a notification failing must never fail or roll back the operation that sent it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class Notifier(ABC):
    @abstractmethod
    async def notify_user(self, user_id: str, event: str, payload: Optional[Dict[str, Any]] = None) -> None: ...

    @abstractmethod
    async def notify_ride(self, ride_id: str, event: str, payload: Optional[Dict[str, Any]] = None) -> None: ...


class LoggingNotifier(Notifier):
    async def notify_user(self, user_id, event, payload=None):
        logger.info("notify user=%s event=%s payload=%s", user_id, event, payload or {})

    async def notify_ride(self, ride_id, event, payload=None):
        logger.info("notify ride=%s event=%s payload=%s", ride_id, event, payload or {})


@dataclass
class SentNotification:
    channel: str  # "user" or "ride"
    target: str
    event: str
    payload: Dict[str, Any] = field(default_factory=dict)


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent: List[SentNotification] = []

    async def notify_user(self, user_id, event, payload=None):
        self.sent.append(SentNotification("user", user_id, event, dict(payload or {})))

    async def notify_ride(self, ride_id, event, payload=None):
        self.sent.append(SentNotification("ride", ride_id, event, dict(payload or {})))

    def events_for(self, target: str) -> List[str]:
        return [n.event for n in self.sent if n.target == target]


class SafeNotifier(Notifier):
    def __init__(self, inner: Notifier):
        self.inner = inner

    async def notify_user(self, user_id, event, payload=None):
        try:
            await self.inner.notify_user(user_id, event, payload)
        except Exception:
            logger.exception("Failed to deliver %s to user %s", event, user_id)

    async def notify_ride(self, ride_id, event, payload=None):
        try:
            await self.inner.notify_ride(ride_id, event, payload)
        except Exception:
            logger.exception("Failed to deliver %s for ride %s", event, ride_id)


def best_effort(notifier: Optional[Notifier]) -> Notifier:
    notifier = notifier or LoggingNotifier()
    return notifier if isinstance(notifier, SafeNotifier) else SafeNotifier(notifier)
