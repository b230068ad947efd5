"""
Rate/Window Tracker.
Generic per-subject counters shared by spam detection, notification throttling,
harassment-report tracking and mass-report detection.

Every update is a compare-and-swap against the stored window, so two
concurrent increments can never both observe the same count.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

from trust_safety.config import EngineSettings
from trust_safety.lib.errors import ConcurrencyConflict, TransientIOError
from trust_safety.lib.store import PersistentStore
from trust_safety.models.realtime import RateWindow, WindowCount

logger = logging.getLogger(__name__)

WINDOW_TABLE = "rate_windows"

# (current window or None, now) -> (fields to write, value to return)
Mutation = Callable[[Optional[RateWindow], datetime], Tuple[Dict, object]]


class RateWindowTracker:
    """Keyed fixed/sliding window counters persisted in the store."""

    def __init__(
        self,
        store: PersistentStore,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.settings = settings or EngineSettings()
        self.clock = clock

    async def increment(self, subject_key: str, window_seconds: int) -> WindowCount:
        """
        Fixed, non-overlapping window: the count restarts at 1 once the stored
        window start is at least `window_seconds` old.
        """
        length = timedelta(seconds=window_seconds)

        def bump(window: Optional[RateWindow], now: datetime):
            if window is None or now - window.window_start >= length:
                changes = {"window_start": now, "count": 1, "members": {}, "tripped": False}
                return changes, WindowCount(subject_key=subject_key, count=1,
                                            window_start=now, is_new_window=True)
            count = window.count + 1
            return {"count": count}, WindowCount(subject_key=subject_key, count=count,
                                                 window_start=window.window_start)

        return await self._mutate(subject_key, bump)

    async def increment_with_limit(self, subject_key: str, window_seconds: int, limit: int) -> WindowCount:
        """
        Fixed-window increment that trips once the count exceeds `limit`.
        The tripping write also zeroes the counter and restarts the window, so
        exactly one caller sees `tripped=True` and the next one counts 1.
        """
        length = timedelta(seconds=window_seconds)

        def bump(window: Optional[RateWindow], now: datetime):
            if window is None or now - window.window_start >= length:
                changes = {"window_start": now, "count": 1, "members": {}, "tripped": False}
                return changes, WindowCount(subject_key=subject_key, count=1,
                                            window_start=now, is_new_window=True)
            count = window.count + 1
            if count > limit:
                changes = {"window_start": now, "count": 0}
                return changes, WindowCount(subject_key=subject_key, count=count,
                                            window_start=window.window_start, tripped=True)
            return {"count": count}, WindowCount(subject_key=subject_key, count=count,
                                                 window_start=window.window_start)

        return await self._mutate(subject_key, bump)

    async def add_unique(
        self, subject_key: str, member_id: str, window_seconds: Optional[int] = None
    ) -> int:
        """
        Record `member_id` and return the number of distinct members.
        With `window_seconds` members older than the trailing window drop out;
        without it the set is cumulative until reset.
        """
        def add(window: Optional[RateWindow], now: datetime):
            members = dict(window.members) if window else {}
            if window_seconds is not None:
                cutoff = now - timedelta(seconds=window_seconds)
                members = {m: seen for m, seen in members.items() if seen > cutoff}
            members[member_id] = now
            changes = {"members": members, "count": len(members)}
            if window is None:
                changes.update({"window_start": now, "tripped": False})
            return changes, len(members)

        return await self._mutate(subject_key, add)

    async def mark_tripped(self, subject_key: str) -> bool:
        """One-shot latch. True only for the caller that flips it."""
        def trip(window: Optional[RateWindow], now: datetime):
            if window is not None and window.tripped:
                return None, False
            changes = {"tripped": True}
            if window is None:
                changes.update({"window_start": now, "count": 0, "members": {}})
            return changes, True

        return await self._mutate(subject_key, trip)

    async def get(self, subject_key: str) -> Optional[RateWindow]:
        record = await self.store.get(WINDOW_TABLE, subject_key)
        return RateWindow.model_validate(record) if record else None

    async def reset(self, subject_key: str) -> None:
        await self.store.delete(WINDOW_TABLE, subject_key)

    async def _mutate(self, subject_key: str, mutation: Mutation):
        attempts = self.settings.cas_retry_attempts
        for attempt in range(1, attempts + 1):
            now = self.clock()
            record = await self.store.get(WINDOW_TABLE, subject_key)
            window = RateWindow.model_validate(record) if record else None
            changes, result = mutation(window, now)
            if changes is None:
                return result

            try:
                if window is None:
                    await self.store.insert(WINDOW_TABLE, {"id": subject_key, **changes})
                else:
                    await self.store.update(WINDOW_TABLE, subject_key, changes,
                                            expected_version=window.version)
                return result
            except ConcurrencyConflict:
                logger.debug(f"Window {subject_key} CAS conflict (attempt {attempt}/{attempts})")

        raise TransientIOError(f"Window {subject_key} stayed contended after {attempts} attempts")
