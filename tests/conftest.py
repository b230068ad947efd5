from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest

from trust_safety.config import DEFAULT_WEIGHTS, EngineSettings
from trust_safety.lib.notifications import InboxWriter, NotificationSender
from trust_safety.lib.store import InMemoryStore
from trust_safety.models.enums import DeliveryStatus, NotificationType
from trust_safety.services.engine import SafetyEngine


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 15, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeSender(NotificationSender):
    def __init__(self):
        self.sent: List[Dict] = []
        self.status = DeliveryStatus.SENT
        self.error: Optional[Exception] = None

    async def send(self, user_id, type, title, body, payload=None):
        if self.error is not None:
            raise self.error
        self.sent.append({"user_id": user_id, "type": type, "title": title, "body": body,
                          "payload": payload or {}})
        return self.status

    def types_for(self, user_id: str) -> List[NotificationType]:
        return [n["type"] for n in self.sent if n["user_id"] == user_id]


class FakeInbox(InboxWriter):
    def __init__(self):
        self.messages: List[Dict] = []

    async def send_system_message(self, user_id, title, body, category):
        self.messages.append({"user_id": user_id, "title": title, "body": body, "category": category})


class FixedScores:
    """Scoring backend that returns whatever the test sets."""

    def __init__(self):
        self.scores: Dict[str, float] = {}
        self.calls = 0

    def set_overall(self, overall: float, top: Optional[str] = None, bump: float = 0.05) -> None:
        """
        Scores whose weighted overall equals `overall`. With `top`, that
        category sits `bump` above the rest so it is the top category.
        """
        if top is None:
            self.scores = {name: overall for name in DEFAULT_WEIGHTS}
            return
        base = overall - DEFAULT_WEIGHTS[top] * bump
        self.scores = {name: base for name in DEFAULT_WEIGHTS}
        self.scores[top] = base + bump

    def __call__(self, text: str) -> Dict[str, float]:
        self.calls += 1
        return dict(self.scores)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return EngineSettings(io_backoff_base_seconds=0.0, io_timeout_seconds=1.0)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def inbox():
    return FakeInbox()


@pytest.fixture
def backend():
    return FixedScores()


@pytest.fixture
def engine(store, sender, inbox, settings, backend, clock):
    return SafetyEngine(store, sender=sender, inbox=inbox, settings=settings,
                        scoring_backend=backend, clock=clock)
