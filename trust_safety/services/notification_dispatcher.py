"""
Notification Dispatcher.
Single entry point for user-facing notifications: inbox audit write,
preferences, quiet hours and the moderation push budget are applied once here.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from trust_safety.config import EngineSettings
from trust_safety.lib.errors import SafetyEngineError, TransientIOError
from trust_safety.lib.metrics import metrics
from trust_safety.lib.notifications import InboxWriter, NotificationSender
from trust_safety.lib.retry import retry_async
from trust_safety.lib.store import PersistentStore
from trust_safety.models.enums import DeliveryStatus, DispatchOutcome, NotificationType
from trust_safety.models.notification import DispatchResult, NotificationIntent, NotificationPreferences
from trust_safety.services.rate_window import RateWindowTracker

logger = logging.getLogger(__name__)

PREFERENCES_TABLE = "notification_preferences"


class NotificationDispatcher:
    """
    Never raises on delivery problems; the outcome says what happened.
    """

    SUMMARY_TITLE = "Multiple account updates"

    def __init__(
        self,
        store: PersistentStore,
        sender: NotificationSender,
        inbox: InboxWriter,
        tracker: RateWindowTracker,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.sender = sender
        self.inbox = inbox
        self.tracker = tracker
        self.settings = settings or EngineSettings()
        self.clock = clock

    async def dispatch(self, intent: NotificationIntent) -> DispatchResult:
        try:
            result = await self._dispatch(intent)
        except SafetyEngineError as e:
            # Preference or budget storage down; the caller's own writes stand
            logger.warning(f"Dispatch of {intent.type.value} to {intent.user_id} failed: {e}")
            result = DispatchResult(outcome=DispatchOutcome.FAILED, detail=str(e))
        metrics.record_notification(result.outcome.value)
        return result

    async def _dispatch(self, intent: NotificationIntent) -> DispatchResult:
        # Step 1: inbox copy, always
        await self._write_inbox(intent)

        # Step 2: preferences
        prefs = await self.get_preferences(intent.user_id)
        if intent.is_moderation and not prefs.safety_moderation_alerts:
            return DispatchResult(outcome=DispatchOutcome.DISABLED)

        # Step 3: quiet hours hold everything except critical types
        if not intent.is_critical and prefs.in_quiet_hours(self.clock()):
            return DispatchResult(outcome=DispatchOutcome.QUIET_HOURS)

        # Step 4: moderation push budget
        if intent.is_moderation:
            count = await self._budget_count(intent.user_id)
            cap = self.settings.notification_cap
            if count is not None and count > cap:
                if count == cap + 1:
                    summary = NotificationIntent(
                        user_id=intent.user_id,
                        type=NotificationType.SYSTEM_WARNING,
                        title=self.SUMMARY_TITLE,
                        body="You have several new safety updates. Check your inbox for details.",
                        payload={"summary": True},
                    )
                    pushed = await self._push(summary)
                    return DispatchResult(outcome=DispatchOutcome.BATCHED, pushed=pushed, summary_sent=pushed)
                return DispatchResult(outcome=DispatchOutcome.BATCHED, detail="inbox only")

        # Step 5: push
        if await self._push(intent):
            return DispatchResult(outcome=DispatchOutcome.SENT, pushed=True)
        return DispatchResult(outcome=DispatchOutcome.FAILED, detail="push delivery failed")

    async def get_preferences(self, user_id: str) -> NotificationPreferences:
        record = await self.store.get(PREFERENCES_TABLE, user_id)
        return NotificationPreferences.model_validate(record) if record else NotificationPreferences(id=user_id)

    async def set_preferences(self, preferences: NotificationPreferences) -> NotificationPreferences:
        data = preferences.model_dump()
        existing = await self.store.get(PREFERENCES_TABLE, preferences.id)
        if existing is None:
            stored = await self.store.insert(PREFERENCES_TABLE, data)
        else:
            data.pop("id")
            stored = await self.store.update(PREFERENCES_TABLE, preferences.id, data)
        return NotificationPreferences.model_validate(stored)

    def _budget_key(self, user_id: str) -> str:
        return f"notify:{user_id}:moderation"

    async def _budget_count(self, user_id: str) -> Optional[int]:
        try:
            window = await self.tracker.increment(self._budget_key(user_id),
                                                  self.settings.notification_window_seconds)
            return window.count
        except TransientIOError as e:
            # Budget unavailable: deliver rather than silently drop
            logger.warning(f"Notification budget unavailable for {user_id}: {e}")
            return None

    async def _write_inbox(self, intent: NotificationIntent) -> None:
        try:
            await retry_async(
                lambda: self.inbox.send_system_message(
                    intent.user_id, intent.title, intent.body, intent.inbox_category
                ),
                attempts=self.settings.io_retry_attempts,
                base_delay=self.settings.io_backoff_base_seconds,
                timeout=self.settings.io_timeout_seconds,
                operation="inbox",
            )
        except TransientIOError as e:
            logger.warning(f"Inbox write failed for {intent.user_id} [{intent.type.value}]: {e}")

    async def _push(self, intent: NotificationIntent) -> bool:
        try:
            status = await retry_async(
                lambda: self.sender.send(
                    intent.user_id, intent.type, intent.title, intent.body, intent.payload
                ),
                attempts=self.settings.io_retry_attempts,
                base_delay=self.settings.io_backoff_base_seconds,
                timeout=self.settings.io_timeout_seconds,
                operation="push",
            )
        except TransientIOError as e:
            logger.warning(f"Push to {intent.user_id} [{intent.type.value}] failed: {e}")
            return False
        except Exception as e:
            logger.error(f"Push sender raised for {intent.user_id} [{intent.type.value}]: {e!r}")
            return False
        if status == DeliveryStatus.FAILED:
            logger.warning(f"Push to {intent.user_id} [{intent.type.value}] reported failed")
            return False
        return True
