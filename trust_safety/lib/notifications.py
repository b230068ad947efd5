"""
Notification collaborators.
Push transport and inbox channel are external; these are their interfaces
plus the defaults used when nothing else is wired in.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

from trust_safety.lib.store import PersistentStore
from trust_safety.models.enums import DeliveryStatus, InboxCategory, NotificationType

logger = logging.getLogger(__name__)

INBOX_TABLE = "inbox_messages"


class NotificationSender(ABC):
    """Push transport. Must not raise when the recipient is unreachable."""

    @abstractmethod
    async def send(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        body: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> DeliveryStatus:
        ...


class InboxWriter(ABC):
    """Non-push audit channel."""

    @abstractmethod
    async def send_system_message(
        self, user_id: str, title: str, body: str, category: InboxCategory
    ) -> None:
        ...


class LoggingNotificationSender(NotificationSender):
    """Logs pushes instead of delivering them (development default)."""

    async def send(self, user_id, type, title, body, payload=None):
        logger.info(f"push -> {user_id} [{type.value}] {title}")
        return DeliveryStatus.SENT


class StoreInboxWriter(InboxWriter):
    """Persists inbox messages in the engine store."""

    def __init__(self, store: PersistentStore, clock: Callable[[], datetime] = datetime.utcnow):
        self.store = store
        self.clock = clock

    async def send_system_message(self, user_id, title, body, category):
        await self.store.insert(INBOX_TABLE, {
            "id": uuid4(),
            "user_id": user_id,
            "title": title,
            "body": body,
            "category": category,
            "read": False,
            "created_at": self.clock(),
        })
