"""
Notification data models.
A single intent object flows to the dispatcher, which applies preferences,
quiet hours and the moderation push budget once.
"""

from datetime import datetime, time
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from trust_safety.models.enums import (
    CRITICAL_NOTIFICATION_TYPES, MODERATION_NOTIFICATION_TYPES,
    DispatchOutcome, InboxCategory, NotificationType
)


class NotificationIntent(BaseModel):
    """Something the engine wants a user to know about."""
    user_id: str
    type: NotificationType
    title: str
    body: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    inbox_category: InboxCategory = InboxCategory.SAFETY

    @property
    def is_moderation(self) -> bool:
        return self.type in MODERATION_NOTIFICATION_TYPES

    @property
    def is_critical(self) -> bool:
        return self.type in CRITICAL_NOTIFICATION_TYPES


class NotificationPreferences(BaseModel):
    """Per-user delivery preferences. Times are "HH:MM" in UTC."""
    id: str     # user id
    safety_moderation_alerts: bool = True
    quiet_hours_start: Optional[str] = None
    quiet_hours_end: Optional[str] = None

    def in_quiet_hours(self, now: datetime) -> bool:
        """True when `now` falls inside the quiet window; overnight windows wrap midnight."""
        if not self.quiet_hours_start or not self.quiet_hours_end:
            return False

        start = _parse_hhmm(self.quiet_hours_start)
        end = _parse_hhmm(self.quiet_hours_end)
        current = now.time().replace(second=0, microsecond=0)

        if start > end:
            return current >= start or current <= end
        return start <= current <= end


class DispatchResult(BaseModel):
    outcome: DispatchOutcome
    pushed: bool = False
    summary_sent: bool = False
    detail: Optional[str] = None


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(':')
    return time(int(hours), int(minutes))
