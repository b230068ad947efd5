"""
Mass-Report Lockdown Detector.
Counts unique reporters per stream over a trailing window and hides the
stream's chat once the threshold is reached. Only the creator's
acknowledgement lifts the lockdown.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import UUID

from trust_safety.config import EngineSettings
from trust_safety.lib.errors import ConcurrencyConflict, InvalidStateTransition, NotFoundError
from trust_safety.lib.metrics import metrics
from trust_safety.lib.store import PersistentStore
from trust_safety.models.enums import NotificationType
from trust_safety.models.notification import NotificationIntent
from trust_safety.models.realtime import MassReportEvent, StreamState
from trust_safety.models.results import LockdownStatus
from trust_safety.services.notification_dispatcher import NotificationDispatcher
from trust_safety.services.rate_window import RateWindowTracker

logger = logging.getLogger(__name__)

EVENT_TABLE = "mass_report_events"
STREAM_STATE_TABLE = "stream_states"


class MassReportDetector:

    def __init__(
        self,
        store: PersistentStore,
        tracker: RateWindowTracker,
        dispatcher: NotificationDispatcher,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.tracker = tracker
        self.dispatcher = dispatcher
        self.settings = settings or EngineSettings()
        self.clock = clock

    def _window_key(self, stream_id: str) -> str:
        return f"mass_report:{stream_id}"

    async def record_report(
        self, stream_id: str, reporter_id: str, creator_id: Optional[str] = None
    ) -> LockdownStatus:
        """Count one reporter against a stream and lock it down at the threshold."""
        unique = await self.tracker.add_unique(
            self._window_key(stream_id), reporter_id, self.settings.mass_report_window_seconds
        )
        if unique < self.settings.mass_report_threshold:
            active = await self.active_event(stream_id)
            return LockdownStatus(triggered=active is not None, event=active, unique_reporters=unique)

        window = await self.tracker.get(self._window_key(stream_id))
        reporters = sorted(window.members) if window else [reporter_id]
        now = self.clock()

        candidate = MassReportEvent(
            stream_id=stream_id,
            creator_id=creator_id,
            report_count=unique,
            reporter_ids=reporters,
            triggered_at=now,
        )
        stored, created = await self.store.insert_unique(
            EVENT_TABLE, candidate.to_record(), {"stream_id": stream_id, "resolved_at": None}
        )
        event = MassReportEvent.model_validate(stored)

        if not created:
            # Already locked down: fold the new reporters into the open event
            merged = sorted(set(event.reporter_ids) | set(reporters))
            try:
                record = await self.store.update(
                    EVENT_TABLE, event.id,
                    {"reporter_ids": merged, "report_count": len(merged)},
                    expected_version=event.version,
                )
                event = MassReportEvent.model_validate(record)
            except ConcurrencyConflict:
                logger.debug(f"Lockdown {event.id} updated concurrently; keeping earlier count")
            return LockdownStatus(triggered=True, event=event, unique_reporters=unique)

        await self._set_chat_hidden(stream_id, True, event.id)
        metrics.record_lockdown()
        logger.warning(f"Stream {stream_id} locked down: {unique} unique reporters")

        if creator_id:
            await self.dispatcher.dispatch(NotificationIntent(
                user_id=creator_id,
                type=NotificationType.SYSTEM_WARNING,
                title="Your stream chat is locked",
                body="Many viewers reported your stream in a short time. Chat is hidden until "
                     "you review our guidelines and acknowledge this notice.",
                payload={"event_id": str(event.id), "stream_id": stream_id},
            ))
        return LockdownStatus(triggered=True, event=event, unique_reporters=unique)

    async def active_event(self, stream_id: str) -> Optional[MassReportEvent]:
        rows = await self.store.query(EVENT_TABLE, {"stream_id": stream_id, "resolved_at": None}, limit=1)
        return MassReportEvent.model_validate(rows[0]) if rows else None

    async def check_lockdown(self, stream_id: str) -> LockdownStatus:
        event = await self.active_event(stream_id)
        window = await self.tracker.get(self._window_key(stream_id))
        unique = 0
        if window:
            cutoff = self.clock() - timedelta(seconds=self.settings.mass_report_window_seconds)
            unique = sum(1 for seen in window.members.values() if seen > cutoff)
        return LockdownStatus(triggered=event is not None, event=event, unique_reporters=unique)

    async def is_locked(self, stream_id: str) -> bool:
        record = await self.store.get(STREAM_STATE_TABLE, stream_id)
        return bool(record and StreamState.model_validate(record).chat_hidden)

    async def acknowledge(self, event_id: UUID, acknowledged_by: Optional[str] = None) -> MassReportEvent:
        """Creator acknowledgement: resolve the event and unhide chat."""
        record = await self.store.get(EVENT_TABLE, event_id)
        if record is None:
            raise NotFoundError(f"Mass report event {event_id} not found")
        event = MassReportEvent.model_validate(record)
        if event.resolved_at is not None:
            raise InvalidStateTransition(f"Mass report event {event_id} is already resolved")

        try:
            record = await self.store.update(
                EVENT_TABLE, event_id,
                {
                    "resolved_at": self.clock(),
                    "creator_acknowledged": True,
                    "acknowledged_by": acknowledged_by or event.creator_id,
                },
                expected_version=event.version,
            )
        except ConcurrencyConflict as e:
            raise InvalidStateTransition(f"Mass report event {event_id} changed concurrently") from e

        await self._set_chat_hidden(event.stream_id, False, None)
        # Earlier reporters do not count towards the next lockdown
        await self.tracker.reset(self._window_key(event.stream_id))
        logger.info(f"Lockdown {event_id} on stream {event.stream_id} acknowledged")
        return MassReportEvent.model_validate(record)

    async def _set_chat_hidden(self, stream_id: str, hidden: bool, event_id: Optional[UUID]) -> None:
        changes = {"chat_hidden": hidden, "lockdown_event_id": event_id, "updated_at": self.clock()}
        existing = await self.store.get(STREAM_STATE_TABLE, stream_id)
        if existing is None:
            try:
                await self.store.insert(STREAM_STATE_TABLE, {"id": stream_id, **changes})
                return
            except ConcurrencyConflict:
                pass
        await self.store.update(STREAM_STATE_TABLE, stream_id, changes)
