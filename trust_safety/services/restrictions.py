"""
Scope restrictions: timeouts and blocks, always keyed by (user, scope).
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import UUID

from trust_safety.config import EngineSettings
from trust_safety.lib.errors import ConcurrencyConflict, NotFoundError, TransientIOError
from trust_safety.lib.store import PersistentStore
from trust_safety.models.enforcement import ScopeBlock, Timeout
from trust_safety.models.enums import RestrictionSource

logger = logging.getLogger(__name__)

TIMEOUT_TABLE = "timeouts"
BLOCK_TABLE = "scope_blocks"


class ScopeRestrictions:

    def __init__(
        self,
        store: PersistentStore,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.settings = settings or EngineSettings()
        self.clock = clock

    # Timeouts

    async def apply_timeout(
        self,
        user_id: str,
        scope_id: str,
        minutes: int,
        reason: str,
        source: RestrictionSource,
        issued_by: Optional[str] = None,
        strike_id: Optional[UUID] = None,
        violation_id: Optional[UUID] = None,
    ) -> Timeout:
        """
        Time a user out in one scope.

        Timeouts from other sources are left alone. A repeat from the same
        source (and link) only ever moves the end later, so a short automatic
        timeout never cuts a longer one short.
        """
        now = self.clock()
        ends_at = now + timedelta(minutes=minutes)
        timeout = Timeout(
            user_id=user_id,
            scope_id=scope_id,
            ends_at=ends_at,
            reason=reason,
            source=source,
            issued_by=issued_by,
            strike_id=strike_id,
            violation_id=violation_id,
            created_at=now,
        )
        unique = {"user_id": user_id, "scope_id": scope_id, "source": source,
                  "strike_id": strike_id, "violation_id": violation_id}

        attempts = self.settings.cas_retry_attempts
        for attempt in range(1, attempts + 1):
            stored, created = await self.store.insert_unique(TIMEOUT_TABLE, timeout.to_record(), unique)
            existing = Timeout.model_validate(stored)
            if created:
                logger.info(f"Timeout {minutes}m for {user_id} in {scope_id} ({source.value}): {reason}")
                return existing
            if existing.ends_at >= ends_at:
                return existing
            try:
                record = await self.store.update(
                    TIMEOUT_TABLE, existing.id,
                    {"ends_at": ends_at, "reason": reason, "issued_by": issued_by, "created_at": now},
                    expected_version=existing.version,
                )
            except (ConcurrencyConflict, NotFoundError):
                # raced another writer or the expiry sweep; look again
                logger.debug(f"Timeout {existing.id} changed underneath (attempt {attempt}/{attempts})")
                continue
            logger.info(f"Timeout for {user_id} in {scope_id} ({source.value}) extended to {ends_at}: {reason}")
            return Timeout.model_validate(record)

        raise TransientIOError(f"Timeout for {user_id} in {scope_id} stayed contended after {attempts} attempts")

    async def active_timeout(self, user_id: str, scope_id: str) -> Optional[Timeout]:
        now = self.clock()
        rows = await self.store.query(TIMEOUT_TABLE, {"user_id": user_id, "scope_id": scope_id})
        timeouts = [Timeout.model_validate(r) for r in rows]
        live = [t for t in timeouts if t.ends_at > now]
        return max(live, key=lambda t: t.ends_at) if live else None

    async def is_timed_out(self, user_id: str, scope_id: str) -> bool:
        return await self.active_timeout(user_id, scope_id) is not None

    async def lift_timeout(
        self,
        user_id: str,
        scope_id: str,
        source: Optional[RestrictionSource] = None,
        strike_id: Optional[UUID] = None,
        violation_id: Optional[UUID] = None,
    ) -> int:
        """Remove timeouts in a scope, narrowed to one source or linked record when given."""
        filters = {"user_id": user_id, "scope_id": scope_id}
        if source is not None:
            filters["source"] = source
        if strike_id is not None:
            filters["strike_id"] = strike_id
        if violation_id is not None:
            filters["violation_id"] = violation_id
        rows = await self.store.query(TIMEOUT_TABLE, filters)
        for row in rows:
            await self.store.delete(TIMEOUT_TABLE, row["id"])
        if rows:
            logger.info(f"Lifted {len(rows)} timeout(s) for {user_id} in {scope_id}")
        return len(rows)

    async def remove_expired_timeouts(self) -> int:
        now = self.clock()
        expired = await self.store.query(TIMEOUT_TABLE, until=now, time_field="ends_at")
        for row in expired:
            await self.store.delete(TIMEOUT_TABLE, row["id"])
        return len(expired)

    async def timeouts_for_user(self, user_id: str, limit: int = 20) -> List[Timeout]:
        rows = await self.store.query(TIMEOUT_TABLE, {"user_id": user_id}, limit=limit)
        return [Timeout.model_validate(r) for r in rows]

    # Blocks

    async def apply_block(
        self,
        user_id: str,
        scope_id: str,
        reason: str,
        source: RestrictionSource = RestrictionSource.AI_POLICY,
        violation_id: Optional[UUID] = None,
    ) -> ScopeBlock:
        """Block from one scope. An existing active block is returned unchanged."""
        block = ScopeBlock(
            user_id=user_id,
            scope_id=scope_id,
            reason=reason,
            source=source,
            violation_id=violation_id,
            created_at=self.clock(),
        )
        stored, created = await self.store.insert_unique(
            BLOCK_TABLE,
            block.to_record(),
            {"user_id": user_id, "scope_id": scope_id, "is_active": True},
        )
        if created:
            logger.info(f"Blocked {user_id} from {scope_id}: {reason}")
        return ScopeBlock.model_validate(stored)

    async def is_blocked(self, user_id: str, scope_id: str) -> bool:
        rows = await self.store.query(
            BLOCK_TABLE, {"user_id": user_id, "scope_id": scope_id, "is_active": True}, limit=1
        )
        return bool(rows)

    async def lift_block(self, user_id: str, scope_id: str, violation_id: Optional[UUID] = None) -> int:
        """Lift active blocks in a scope, optionally only the one tied to a violation."""
        filters = {"user_id": user_id, "scope_id": scope_id, "is_active": True}
        if violation_id is not None:
            filters["violation_id"] = violation_id
        rows = await self.store.query(BLOCK_TABLE, filters)
        for row in rows:
            await self.store.update(BLOCK_TABLE, row["id"], {"is_active": False, "lifted_at": self.clock()})
        if rows:
            logger.info(f"Lifted {len(rows)} block(s) for {user_id} in {scope_id}")
        return len(rows)

    async def blocks_for_user(self, user_id: str, limit: int = 20) -> List[ScopeBlock]:
        rows = await self.store.query(BLOCK_TABLE, {"user_id": user_id}, limit=limit)
        return [ScopeBlock.model_validate(r) for r in rows]
