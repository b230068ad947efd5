"""
Strike Ledger.
Per (user, scope) escalating strikes with 30-day decay.

Level effects:
    1 -> warning
    2 -> 10 minute timeout in the scope
    3 -> 24 hour scope ban (the strike's own expiry is the ban window)
    4 -> permanent scope ban, never expires

Strikes never cross scopes: a strike in one creator's stream has no
effect anywhere else.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import UUID

from trust_safety.config import EngineSettings
from trust_safety.lib.errors import NotFoundError
from trust_safety.lib.locks import KeyedLocks
from trust_safety.lib.metrics import metrics
from trust_safety.lib.store import PersistentStore
from trust_safety.models.enforcement import Strike
from trust_safety.models.enums import NotificationType, RestrictionSource
from trust_safety.models.notification import NotificationIntent
from trust_safety.services.notification_dispatcher import NotificationDispatcher
from trust_safety.services.restrictions import ScopeRestrictions

logger = logging.getLogger(__name__)

STRIKE_TABLE = "strikes"

MAX_LEVEL = 4


class StrikeLedger:

    def __init__(
        self,
        store: PersistentStore,
        restrictions: ScopeRestrictions,
        dispatcher: NotificationDispatcher,
        locks: Optional[KeyedLocks] = None,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.restrictions = restrictions
        self.dispatcher = dispatcher
        self.locks = locks or KeyedLocks()
        self.settings = settings or EngineSettings()
        self.clock = clock

    async def apply_strike(
        self,
        user_id: str,
        scope_id: str,
        strike_type: str,
        reason: str,
        issued_by_ai: bool = True,
        violation_id: Optional[UUID] = None,
    ) -> Strike:
        """
        Record a strike at level min(live strikes + 1, 4) and apply its effect.
        Count and insert run under the (user, scope) lock so concurrent strikes
        always get distinct levels.
        """
        async with self.locks.hold(f"strike:{user_id}:{scope_id}"):
            now = self.clock()
            live = await self.active_strikes(user_id, scope_id)
            level = min(len(live) + 1, MAX_LEVEL)

            strike = Strike(
                user_id=user_id,
                scope_id=scope_id,
                level=level,
                strike_type=strike_type,
                reason=reason,
                issued_by_ai=issued_by_ai,
                violation_id=violation_id,
                expires_at=self._expiry_for(level, now),
                created_at=now,
            )
            stored = Strike.model_validate(await self.store.insert(STRIKE_TABLE, strike.to_record()))

        logger.info(f"Strike level {level} for {user_id} in {scope_id} ({strike_type}): {reason}")
        metrics.record_strike(level)
        await self._apply_level_effect(stored)
        return stored

    def _expiry_for(self, level: int, now: datetime) -> Optional[datetime]:
        if level >= MAX_LEVEL:
            return None
        if level == 3:
            return now + timedelta(hours=self.settings.strike_ban_hours)
        return now + timedelta(days=self.settings.strike_decay_days)

    async def _apply_level_effect(self, strike: Strike) -> None:
        if strike.level == 1:
            intent = NotificationIntent(
                user_id=strike.user_id,
                type=NotificationType.MODERATION_WARNING,
                title="Warning issued",
                body=f"You received a warning in this stream: {strike.reason}. "
                     "Further violations will lead to timeouts and bans.",
            )
        elif strike.level == 2:
            minutes = self.settings.strike_timeout_minutes
            await self.restrictions.apply_timeout(
                strike.user_id, strike.scope_id, minutes,
                reason=f"Strike 2: {strike.reason}", source=RestrictionSource.STRIKE,
                strike_id=strike.id,
            )
            intent = NotificationIntent(
                user_id=strike.user_id,
                type=NotificationType.TIMEOUT_APPLIED,
                title="You have been timed out",
                body=f"You are timed out for {minutes} minutes in this stream: {strike.reason}.",
            )
        elif strike.level == 3:
            intent = NotificationIntent(
                user_id=strike.user_id,
                type=NotificationType.BAN_APPLIED,
                title="Stream ban",
                body=f"You are banned from this creator's streams for "
                     f"{self.settings.strike_ban_hours} hours: {strike.reason}. You can appeal this decision.",
            )
        else:
            intent = NotificationIntent(
                user_id=strike.user_id,
                type=NotificationType.BAN_APPLIED,
                title="Permanent stream ban",
                body=f"You are permanently banned from this creator's streams: {strike.reason}. "
                     "You can appeal this decision.",
            )

        intent.payload.update({
            "strike_id": str(strike.id),
            "scope_id": strike.scope_id,
            "level": strike.level,
        })
        await self.dispatcher.dispatch(intent)

    async def get(self, strike_id: UUID) -> Strike:
        record = await self.store.get(STRIKE_TABLE, strike_id)
        if record is None:
            raise NotFoundError(f"Strike {strike_id} not found")
        return Strike.model_validate(record)

    async def active_strikes(self, user_id: str, scope_id: str) -> List[Strike]:
        """Active, non-decayed strikes for one (user, scope)."""
        now = self.clock()
        rows = await self.store.query(
            STRIKE_TABLE, {"user_id": user_id, "scope_id": scope_id, "is_active": True}
        )
        return [s for s in (Strike.model_validate(r) for r in rows) if s.is_live(now)]

    async def is_banned(self, user_id: str, scope_id: str) -> bool:
        """True iff a live level-4 strike or an unexpired level-3 strike exists for this exact pair."""
        now = self.clock()
        rows = await self.store.query(
            STRIKE_TABLE, {"user_id": user_id, "scope_id": scope_id, "is_active": True}
        )
        return any(Strike.model_validate(r).is_ban(now) for r in rows)

    async def revoke_strike(self, strike_id: UUID, actor_id: str) -> Strike:
        """Deactivate a strike. Revoking an already revoked strike is a no-op."""
        strike = await self.get(strike_id)
        if not strike.is_active:
            return strike

        record = await self.store.update(
            STRIKE_TABLE, strike_id,
            {"is_active": False, "revoked_at": self.clock(), "revoked_by": actor_id},
        )
        logger.info(f"Strike {strike_id} (level {strike.level}) revoked by {actor_id}")
        return Strike.model_validate(record)

    async def strikes_for_user(self, user_id: str, limit: int = 20) -> List[Strike]:
        rows = await self.store.query(STRIKE_TABLE, {"user_id": user_id}, limit=limit)
        return [Strike.model_validate(r) for r in rows]

    async def strikes_for_violation(self, violation_id: UUID) -> List[Strike]:
        rows = await self.store.query(STRIKE_TABLE, {"violation_id": violation_id, "is_active": True})
        return [Strike.model_validate(r) for r in rows]

    async def ended_bans_pending_notice(self) -> List[Strike]:
        """Level-3 strikes whose ban window has passed and whose user was not yet told."""
        now = self.clock()
        rows = await self.store.query(
            STRIKE_TABLE,
            {"level": 3, "is_active": True, "expiry_notified": False},
            until=now,
            time_field="expires_at",
        )
        return [Strike.model_validate(r) for r in rows]

    async def mark_expiry_notified(self, strike: Strike) -> None:
        await self.store.update(STRIKE_TABLE, strike.id, {"expiry_notified": True})
