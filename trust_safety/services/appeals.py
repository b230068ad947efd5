"""
Appeal Resolver.
Users appeal a penalty, strike or violation; admins accept or deny.
Accepting reverses the linked enforcement: the penalty is deactivated, the
strike revoked, the violation resolved and any scope block or timeout it
caused is lifted. Both decisions are terminal.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from trust_safety.config import EngineSettings
from trust_safety.lib.errors import (
    ConcurrencyConflict, InvalidStateTransition, NotFoundError,
    PolicyViolationBlocked, ValidationError
)
from trust_safety.lib.locks import KeyedLocks
from trust_safety.lib.metrics import metrics
from trust_safety.lib.store import PersistentStore
from trust_safety.models.appeal import Appeal
from trust_safety.models.enums import (
    Action, AppealDecision, AppealStatus, AppealTarget, NotificationType, PenaltySeverity
)
from trust_safety.models.notification import NotificationIntent
from trust_safety.services.enforcement import EnforcementExecutor
from trust_safety.services.notification_dispatcher import NotificationDispatcher
from trust_safety.services.restrictions import ScopeRestrictions
from trust_safety.services.strike_ledger import StrikeLedger
from trust_safety.services.violations import ViolationRecords

logger = logging.getLogger(__name__)

APPEAL_TABLE = "appeals"


class AppealResolver:

    def __init__(
        self,
        store: PersistentStore,
        enforcement: EnforcementExecutor,
        ledger: StrikeLedger,
        violations: ViolationRecords,
        restrictions: ScopeRestrictions,
        dispatcher: NotificationDispatcher,
        locks: Optional[KeyedLocks] = None,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.enforcement = enforcement
        self.ledger = ledger
        self.violations = violations
        self.restrictions = restrictions
        self.dispatcher = dispatcher
        self.locks = locks or KeyedLocks()
        self.settings = settings or EngineSettings()
        self.clock = clock

    async def submit_appeal(
        self,
        user_id: str,
        target_id: UUID,
        reason: str,
        evidence: Optional[str] = None,
        target_type: Optional[AppealTarget] = None,
    ) -> Appeal:
        """
        Raises ValidationError for a short reason, a target that is not the
        user's or no longer in force, or a duplicate pending appeal; raises
        PolicyViolationBlocked for non-appealable penalties.
        """
        reason = (reason or "").strip()
        if len(reason) < self.settings.appeal_min_reason_length:
            raise ValidationError(
                f"Appeal reason must be at least {self.settings.appeal_min_reason_length} characters"
            )

        target_type, links = await self._resolve_target(user_id, target_id, target_type)
        appeal = Appeal(
            user_id=user_id,
            target_type=target_type,
            target_id=target_id,
            penalty_id=links[0],
            strike_id=links[1],
            violation_id=links[2],
            appeal_reason=reason,
            evidence=evidence,
            created_at=self.clock(),
        )
        stored, created = await self.store.insert_unique(
            APPEAL_TABLE, appeal.to_record(),
            {"target_id": target_id, "status": AppealStatus.PENDING},
        )
        if not created:
            raise ValidationError(f"An appeal for {target_type.value} {target_id} is already pending")

        appeal = Appeal.model_validate(stored)
        metrics.record_appeal("submitted")
        logger.info(f"Appeal {appeal.id} submitted by {user_id} against {target_type.value} {target_id}")
        await self.dispatcher.dispatch(NotificationIntent(
            user_id=user_id,
            type=NotificationType.APPEAL_RECEIVED,
            title="Appeal received",
            body="We received your appeal and will review it shortly.",
            payload={"appeal_id": str(appeal.id)},
        ))
        return appeal

    async def _resolve_target(
        self, user_id: str, target_id: UUID, target_type: Optional[AppealTarget]
    ) -> Tuple[AppealTarget, Tuple[Optional[UUID], Optional[UUID], Optional[UUID]]]:
        """Find the appealed record; returns its kind and (penalty, strike, violation) links."""
        if target_type in (None, AppealTarget.PENALTY):
            penalty = await self.enforcement.find_penalty(target_id)
            if penalty is not None:
                self._check_owner(penalty.user_id, user_id, target_id)
                if not penalty.is_active:
                    raise ValidationError(f"Penalty {target_id} is no longer active")
                if (penalty.severity == PenaltySeverity.PERMANENT
                        and penalty.category in self.settings.non_appealable_categories):
                    raise PolicyViolationBlocked(
                        f"Penalties for {penalty.category} cannot be appealed"
                    )
                return AppealTarget.PENALTY, (penalty.id, penalty.strike_id, penalty.violation_id)

        if target_type in (None, AppealTarget.STRIKE):
            try:
                strike = await self.ledger.get(target_id)
            except NotFoundError:
                strike = None
            if strike is not None:
                self._check_owner(strike.user_id, user_id, target_id)
                if not strike.is_active:
                    raise ValidationError(f"Strike {target_id} was already removed")
                if strike.level == 4 and strike.strike_type in self.settings.non_appealable_categories:
                    raise PolicyViolationBlocked(
                        f"Strikes for {strike.strike_type} cannot be appealed"
                    )
                return AppealTarget.STRIKE, (None, strike.id, strike.violation_id)

        if target_type in (None, AppealTarget.VIOLATION):
            violation = await self.violations.find(target_id)
            if violation is not None:
                self._check_owner(violation.user_id, user_id, target_id)
                if violation.resolved or violation.deleted_at is not None:
                    raise ValidationError(f"Violation {target_id} is already resolved")
                return AppealTarget.VIOLATION, (None, None, violation.id)

        raise NotFoundError(f"Nothing to appeal with id {target_id}")

    @staticmethod
    def _check_owner(owner_id: str, user_id: str, target_id: UUID) -> None:
        if owner_id != user_id:
            raise ValidationError(f"{target_id} does not belong to user {user_id}")

    async def resolve_appeal(
        self, appeal_id: UUID, decision: AppealDecision, admin_id: str, message: str
    ) -> Appeal:
        if not message or not message.strip():
            raise ValidationError("A resolution message is required")

        async with self.locks.hold(f"appeal:{appeal_id}"):
            appeal = await self.get(appeal_id)
            if appeal.status != AppealStatus.PENDING:
                raise InvalidStateTransition(f"Appeal {appeal_id} is already {appeal.status.value}")

            # Reversal steps are idempotent and run before the status write
            if decision == AppealDecision.ACCEPT:
                await self._reverse(appeal, admin_id)

            status = AppealStatus.APPROVED if decision == AppealDecision.ACCEPT else AppealStatus.DENIED
            try:
                record = await self.store.update(
                    APPEAL_TABLE, appeal_id,
                    {
                        "status": status,
                        "reviewer_id": admin_id,
                        "resolution_message": message.strip(),
                        "resolved_at": self.clock(),
                    },
                    expected_version=appeal.version,
                )
            except ConcurrencyConflict as e:
                raise InvalidStateTransition(f"Appeal {appeal_id} changed concurrently") from e

        resolved = Appeal.model_validate(record)
        metrics.record_appeal(status.value)
        logger.info(f"Appeal {appeal_id} {status.value} by {admin_id}")

        if status == AppealStatus.APPROVED:
            intent = NotificationIntent(
                user_id=appeal.user_id,
                type=NotificationType.APPEAL_APPROVED,
                title="Appeal approved",
                body=f"Your appeal was approved and the restriction has been removed. {resolved.resolution_message}",
                payload={"appeal_id": str(appeal_id)},
            )
        else:
            intent = NotificationIntent(
                user_id=appeal.user_id,
                type=NotificationType.APPEAL_DENIED,
                title="Appeal denied",
                body=resolved.resolution_message,
                payload={"appeal_id": str(appeal_id)},
            )
        await self.dispatcher.dispatch(intent)
        return resolved

    async def _reverse(self, appeal: Appeal, admin_id: str) -> None:
        actor = f"appeal:{admin_id}"

        if appeal.penalty_id:
            await self.enforcement.deactivate_penalty(appeal.penalty_id, f"Appeal {appeal.id} approved")

        strike_ids = {appeal.strike_id} if appeal.strike_id else set()
        if appeal.violation_id:
            strike_ids.update(s.id for s in await self.ledger.strikes_for_violation(appeal.violation_id))

        for strike_id in strike_ids:
            strike = await self.ledger.revoke_strike(strike_id, actor)
            if strike.level == 2:
                await self.restrictions.lift_timeout(strike.user_id, strike.scope_id, strike_id=strike.id)

        if appeal.violation_id:
            violation = await self.violations.resolve(appeal.violation_id, actor)
            if violation.action == Action.BLOCK:
                await self.restrictions.lift_block(violation.user_id, violation.scope_id, violation.id)
            elif violation.action == Action.TIMEOUT:
                await self.restrictions.lift_timeout(violation.user_id, violation.scope_id, violation_id=violation.id)

    async def get(self, appeal_id: UUID) -> Appeal:
        record = await self.store.get(APPEAL_TABLE, appeal_id)
        if record is None:
            raise NotFoundError(f"Appeal {appeal_id} not found")
        return Appeal.model_validate(record)

    async def list_appeals(self, status: Optional[AppealStatus] = AppealStatus.PENDING) -> List[Appeal]:
        filters = {"status": status} if status else {}
        rows = await self.store.query(APPEAL_TABLE, filters, order_desc=False)
        return [Appeal.model_validate(r) for r in rows]

    async def appeals_for_user(self, user_id: str, limit: int = 20) -> List[Appeal]:
        rows = await self.store.query(APPEAL_TABLE, {"user_id": user_id}, limit=limit)
        return [Appeal.model_validate(r) for r in rows]
