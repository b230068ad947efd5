"""
Violation records.
Writes are fail-loud: retried with backoff, then tried once more directly,
then surfaced as EnforcementWriteError.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional
from uuid import UUID

from trust_safety.config import EngineSettings
from trust_safety.lib.errors import EnforcementWriteError, NotFoundError, TransientIOError
from trust_safety.lib.metrics import metrics
from trust_safety.lib.retry import retry_async
from trust_safety.lib.store import PersistentStore
from trust_safety.models.content import Violation

logger = logging.getLogger(__name__)

VIOLATION_TABLE = "violations"


class ViolationRecords:

    def __init__(
        self,
        store: PersistentStore,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.settings = settings or EngineSettings()
        self.clock = clock

    async def record(self, violation: Violation) -> Violation:
        record = violation.to_record()
        try:
            stored = await retry_async(
                lambda: self._insert_once(record),
                attempts=self.settings.io_retry_attempts,
                base_delay=self.settings.io_backoff_base_seconds,
                timeout=self.settings.io_timeout_seconds,
                operation="violation write",
            )
            return Violation.model_validate(stored)
        except TransientIOError as e:
            logger.error(f"Violation write for {violation.user_id} failed after retries: {e}; trying once more")

        try:
            stored = await self._insert_once(record)
        except Exception as e:
            metrics.record_enforcement_write_failure()
            logger.error(f"Violation for {violation.user_id} in {violation.scope_id} was NOT persisted: {e!r}")
            raise EnforcementWriteError(f"Could not persist violation {violation.id}: {e}") from e
        return Violation.model_validate(stored)

    async def _insert_once(self, record):
        # A timed-out attempt may have landed; do not write the row twice
        existing = await self.store.get(VIOLATION_TABLE, record["id"])
        if existing is not None:
            return existing
        return await self.store.insert(VIOLATION_TABLE, record)

    async def get(self, violation_id: UUID) -> Violation:
        record = await self.store.get(VIOLATION_TABLE, violation_id)
        if record is None:
            raise NotFoundError(f"Violation {violation_id} not found")
        return Violation.model_validate(record)

    async def find(self, violation_id: Optional[UUID]) -> Optional[Violation]:
        if violation_id is None:
            return None
        record = await self.store.get(VIOLATION_TABLE, violation_id)
        return Violation.model_validate(record) if record else None

    async def resolve(self, violation_id: UUID, actor_id: str) -> Violation:
        """Mark resolved. Already resolved violations are returned unchanged."""
        violation = await self.get(violation_id)
        if violation.resolved:
            return violation
        record = await self.store.update(
            VIOLATION_TABLE, violation_id,
            {"resolved": True, "resolved_at": self.clock(), "resolved_by": actor_id},
        )
        return Violation.model_validate(record)

    async def soft_delete(self, violation_id: UUID, admin_id: str) -> Violation:
        violation = await self.get(violation_id)
        if violation.deleted_at is not None:
            return violation
        record = await self.store.update(
            VIOLATION_TABLE, violation_id,
            {"deleted_at": self.clock(), "deleted_by": admin_id},
        )
        logger.info(f"Violation {violation_id} soft-deleted by {admin_id}")
        return Violation.model_validate(record)

    async def for_user(self, user_id: str, limit: int = 20, include_deleted: bool = False) -> List[Violation]:
        filters = {"user_id": user_id}
        if not include_deleted:
            filters["deleted_at"] = None
        rows = await self.store.query(VIOLATION_TABLE, filters, limit=limit)
        return [Violation.model_validate(r) for r in rows]
