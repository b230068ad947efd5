"""
Behavioral detectors built on the Rate/Window Tracker.
"""

import logging
from typing import Optional

from trust_safety.config import EngineSettings
from trust_safety.lib.metrics import metrics
from trust_safety.models.enums import NotificationType, RestrictionSource
from trust_safety.models.notification import NotificationIntent
from trust_safety.models.results import SpamCheckResult
from trust_safety.services.notification_dispatcher import NotificationDispatcher
from trust_safety.services.rate_window import RateWindowTracker
from trust_safety.services.restrictions import ScopeRestrictions

logger = logging.getLogger(__name__)


class SpamDetector:
    """
    More than `spam_max_messages` in a `spam_window_seconds` fixed window
    trips once: short timeout, and the counter starts over.
    """

    def __init__(
        self,
        tracker: RateWindowTracker,
        restrictions: ScopeRestrictions,
        dispatcher: NotificationDispatcher,
        settings: Optional[EngineSettings] = None,
    ):
        self.tracker = tracker
        self.restrictions = restrictions
        self.dispatcher = dispatcher
        self.settings = settings or EngineSettings()

    async def check(self, user_id: str, scope_id: str) -> SpamCheckResult:
        key = f"spam:{user_id}"
        window = await self.tracker.increment_with_limit(
            key, self.settings.spam_window_seconds, self.settings.spam_max_messages
        )
        if not window.tripped:
            return SpamCheckResult(tripped=False, message_count=window.count)

        minutes = self.settings.spam_timeout_minutes
        timeout = await self.restrictions.apply_timeout(
            user_id, scope_id, minutes,
            reason=f"Sending messages too quickly ({window.count} in {self.settings.spam_window_seconds}s)",
            source=RestrictionSource.SPAM,
        )
        metrics.record_spam_trip()
        logger.info(f"Spam trip for {user_id} in {scope_id}: {window.count} messages")

        await self.dispatcher.dispatch(NotificationIntent(
            user_id=user_id,
            type=NotificationType.TIMEOUT_APPLIED,
            title="Slow down",
            body=f"You are sending messages too quickly and are timed out for {minutes} minute(s).",
            payload={"scope_id": scope_id, "reason": "spam"},
        ))
        return SpamCheckResult(tripped=True, message_count=window.count, timeout=timeout)


class HarassmentReportDetector:
    """
    Cumulative unique reporters per (reported user, stream). At the threshold
    the user is timed out once; the latch keeps later reports from re-firing.
    """

    def __init__(
        self,
        tracker: RateWindowTracker,
        restrictions: ScopeRestrictions,
        dispatcher: NotificationDispatcher,
        settings: Optional[EngineSettings] = None,
    ):
        self.tracker = tracker
        self.restrictions = restrictions
        self.dispatcher = dispatcher
        self.settings = settings or EngineSettings()

    async def record(self, reported_user_id: str, stream_id: str, scope_id: str, reporter_id: str) -> bool:
        """Returns True only for the report that applied the timeout."""
        key = f"harassment:{reported_user_id}:{stream_id}"
        unique = await self.tracker.add_unique(key, reporter_id)
        if unique < self.settings.harassment_report_threshold:
            return False
        if not await self.tracker.mark_tripped(key):
            return False

        minutes = self.settings.harassment_timeout_minutes
        await self.restrictions.apply_timeout(
            reported_user_id, scope_id, minutes,
            reason=f"Reported for harassment by {unique} viewers",
            source=RestrictionSource.HARASSMENT_REPORTS,
        )
        logger.info(f"Harassment auto-timeout for {reported_user_id} in stream {stream_id} ({unique} reporters)")
        await self.dispatcher.dispatch(NotificationIntent(
            user_id=reported_user_id,
            type=NotificationType.TIMEOUT_APPLIED,
            title="You have been timed out",
            body=f"Several viewers reported you for harassment. You are timed out for {minutes} minutes.",
            payload={"stream_id": stream_id, "scope_id": scope_id, "reason": "harassment_reports"},
        ))
        return True
