"""
Enforcement Executor.
Applies the policy action for one classified event: persists the Violation,
writes timeouts/blocks, issues strikes, queues reviews and notifies the user.
Also owns admin penalties.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import UUID

from trust_safety.config import EngineSettings
from trust_safety.lib.errors import (
    EnforcementWriteError, NotFoundError, SafetyEngineError, ValidationError
)
from trust_safety.lib.locks import KeyedLocks
from trust_safety.lib.metrics import metrics
from trust_safety.lib.store import PersistentStore
from trust_safety.models.content import ClassificationScore, EnforcementResult, ScopeContext, Violation
from trust_safety.models.enforcement import AdminPenalty
from trust_safety.models.enums import (
    Action, NotificationType, PenaltySeverity, RestrictionSource, RiskCategory
)
from trust_safety.models.notification import NotificationIntent
from trust_safety.services.decision_policy import DecisionPolicy, PolicyContext
from trust_safety.services.escalation_queue import EscalationQueue
from trust_safety.services.notification_dispatcher import NotificationDispatcher
from trust_safety.services.restrictions import ScopeRestrictions
from trust_safety.services.strike_ledger import StrikeLedger
from trust_safety.services.violations import ViolationRecords

logger = logging.getLogger(__name__)

PENALTY_TABLE = "admin_penalties"

# Repeat-offence categories: a timeout or block in these also adds a strike
STRIKE_CATEGORIES = frozenset({RiskCategory.HATE_SPEECH, RiskCategory.HARASSMENT})
STRIKE_ACTIONS = frozenset({Action.TIMEOUT, Action.BLOCK})


class EnforcementExecutor:

    def __init__(
        self,
        store: PersistentStore,
        policy: DecisionPolicy,
        violations: ViolationRecords,
        ledger: StrikeLedger,
        restrictions: ScopeRestrictions,
        queue: EscalationQueue,
        dispatcher: NotificationDispatcher,
        locks: Optional[KeyedLocks] = None,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.policy = policy
        self.violations = violations
        self.ledger = ledger
        self.restrictions = restrictions
        self.queue = queue
        self.dispatcher = dispatcher
        self.locks = locks or KeyedLocks()
        self.settings = settings or EngineSettings()
        self.clock = clock

    @metrics.track_latency("enforce")
    async def enforce(
        self,
        user_id: str,
        scores: ClassificationScore,
        context: ScopeContext,
        text: str = "",
        policy_context: Optional[PolicyContext] = None,
    ) -> EnforcementResult:
        """
        Raises EnforcementWriteError when the Violation or a restriction could
        not be persisted. Escalation and notification problems are logged only.
        """
        action = self.policy.decide(scores.overall, policy_context)
        metrics.record_event(action.value, context.scope.value)

        if action == Action.ALLOW:
            return EnforcementResult(allowed=True, action=action, scores=scores)

        category = scores.top_category()
        reason = self._reason_for(action, category)

        # Step 1: violation + scope restriction, serialized per (user, scope)
        async with self.locks.hold(f"{user_id}:{context.scope_id}"):
            violation = await self.violations.record(Violation(
                user_id=user_id,
                scope=context.scope,
                scope_id=context.scope_id,
                stream_id=context.stream_id,
                content_id=context.content_id,
                content_snippet=text[:self.settings.content_preview_length],
                category=category,
                **scores.model_dump(),
                action=action,
                hidden_from_others=action.hides_content,
                created_at=self.clock(),
            ))
            await self._apply_restriction(action, user_id, context, reason, violation)

        result = EnforcementResult(
            allowed=not action.hides_content,
            action=action,
            scores=scores,
            reason=reason if action != Action.FLAG else None,
            violation_id=violation.id,
        )
        logger.info(
            f"{action.value} for {user_id} in {context.describe()} "
            f"(overall={scores.overall:.2f}, top={category.value})"
        )

        # Step 2: strike for repeat-offence categories
        if action in STRIKE_ACTIONS and category in STRIKE_CATEGORIES:
            try:
                strike = await self.ledger.apply_strike(
                    user_id, context.scope_id, strike_type=category.value,
                    reason=reason, issued_by_ai=True, violation_id=violation.id,
                )
            except SafetyEngineError as e:
                metrics.record_enforcement_write_failure()
                raise EnforcementWriteError(f"Strike for violation {violation.id} not recorded: {e}") from e
            result.strike_level = strike.level

        # Step 3: human review
        if action == Action.ESCALATE:
            try:
                item = await self.queue.escalate_violation(violation)
                result.review_item_id = item.id
            except SafetyEngineError as e:
                logger.error(f"Violation {violation.id} persisted but could not be queued for review: {e}")

        # Step 4: tell the user
        if self.policy.notifies(action):
            await self.dispatcher.dispatch(self._intent_for(action, user_id, reason, violation, context))

        return result

    async def _apply_restriction(
        self, action: Action, user_id: str, context: ScopeContext, reason: str, violation: Violation
    ) -> None:
        try:
            if action == Action.TIMEOUT:
                await self.restrictions.apply_timeout(
                    user_id, context.scope_id, self.settings.ai_timeout_minutes,
                    reason=reason, source=RestrictionSource.AI_POLICY, violation_id=violation.id,
                )
            elif action == Action.BLOCK:
                await self.restrictions.apply_block(
                    user_id, context.scope_id, reason=reason,
                    source=RestrictionSource.AI_POLICY, violation_id=violation.id,
                )
        except SafetyEngineError as e:
            metrics.record_enforcement_write_failure()
            logger.error(f"{action.value} record for violation {violation.id} not written: {e}")
            raise EnforcementWriteError(f"Could not apply {action.value} for {user_id}: {e}") from e

    def _reason_for(self, action: Action, category: RiskCategory) -> str:
        label = category.value.replace('_', ' ')
        if action == Action.FLAG:
            return f"Flagged for {label}"
        if action == Action.HIDE:
            return f"Your message was hidden for {label}"
        if action == Action.ESCALATE:
            return f"Your message is hidden pending review for {label}"
        if action == Action.TIMEOUT:
            return f"Timed out for {self.settings.ai_timeout_minutes} minutes for {label}"
        return f"Removed from this stream for {label}"

    def _intent_for(
        self, action: Action, user_id: str, reason: str, violation: Violation, context: ScopeContext
    ) -> NotificationIntent:
        payload = {"violation_id": str(violation.id), "scope_id": context.scope_id, "action": action.value}
        if action == Action.TIMEOUT:
            return NotificationIntent(user_id=user_id, type=NotificationType.TIMEOUT_APPLIED,
                                      title="You have been timed out", body=reason, payload=payload)
        if action == Action.BLOCK:
            return NotificationIntent(user_id=user_id, type=NotificationType.BAN_APPLIED,
                                      title="Removed from stream",
                                      body=f"{reason}. You can appeal this decision.", payload=payload)
        title = "Message under review" if action == Action.ESCALATE else "Message hidden"
        return NotificationIntent(user_id=user_id, type=NotificationType.MODERATION_WARNING,
                                  title=title, body=reason, payload=payload)

    # Admin penalties

    async def apply_admin_penalty(
        self,
        user_id: str,
        admin_id: str,
        severity: PenaltySeverity,
        reason: str,
        duration_hours: Optional[int] = None,
        category: Optional[str] = None,
        evidence_link: Optional[str] = None,
        policy_reference: Optional[str] = None,
        review_item_id: Optional[UUID] = None,
        violation_id: Optional[UUID] = None,
        strike_id: Optional[UUID] = None,
    ) -> AdminPenalty:
        if not reason or not reason.strip():
            raise ValidationError("A penalty needs a reason")

        now = self.clock()
        if severity == PenaltySeverity.TEMPORARY:
            if not duration_hours or duration_hours <= 0:
                raise ValidationError("A temporary penalty needs a positive duration_hours")
            expires_at = now + timedelta(hours=duration_hours)
        else:
            duration_hours = None
            expires_at = None

        penalty = AdminPenalty(
            user_id=user_id,
            admin_id=admin_id,
            severity=severity,
            reason=reason.strip(),
            category=category,
            duration_hours=duration_hours,
            expires_at=expires_at,
            evidence_link=evidence_link,
            policy_reference=policy_reference,
            review_item_id=review_item_id,
            violation_id=violation_id,
            strike_id=strike_id,
            created_at=now,
        )
        try:
            stored = AdminPenalty.model_validate(await self.store.insert(PENALTY_TABLE, penalty.to_record()))
        except SafetyEngineError as e:
            metrics.record_enforcement_write_failure()
            raise EnforcementWriteError(f"Penalty for {user_id} not recorded: {e}") from e

        logger.info(f"{severity.value} penalty {stored.id} on {user_id} by {admin_id}: {reason}")
        if severity == PenaltySeverity.TEMPORARY:
            body = f"Your account is restricted for {duration_hours} hours: {stored.reason}."
        else:
            body = f"Your account is permanently restricted: {stored.reason}."
        await self.dispatcher.dispatch(NotificationIntent(
            user_id=user_id,
            type=NotificationType.BAN_APPLIED,
            title="Account restricted",
            body=body,
            payload={"penalty_id": str(stored.id), "severity": severity.value},
        ))
        return stored

    async def get_penalty(self, penalty_id: UUID) -> AdminPenalty:
        record = await self.store.get(PENALTY_TABLE, penalty_id)
        if record is None:
            raise NotFoundError(f"Penalty {penalty_id} not found")
        return AdminPenalty.model_validate(record)

    async def find_penalty(self, penalty_id: UUID) -> Optional[AdminPenalty]:
        record = await self.store.get(PENALTY_TABLE, penalty_id)
        return AdminPenalty.model_validate(record) if record else None

    async def deactivate_penalty(self, penalty_id: UUID, reason: str) -> AdminPenalty:
        """Idempotent: an inactive penalty is returned unchanged."""
        penalty = await self.get_penalty(penalty_id)
        if not penalty.is_active:
            return penalty
        record = await self.store.update(
            PENALTY_TABLE, penalty_id,
            {"is_active": False, "deactivated_at": self.clock(), "deactivation_reason": reason},
        )
        logger.info(f"Penalty {penalty_id} deactivated: {reason}")
        return AdminPenalty.model_validate(record)

    async def expired_penalties(self) -> List[AdminPenalty]:
        rows = await self.store.query(
            PENALTY_TABLE, {"is_active": True}, until=self.clock(), time_field="expires_at"
        )
        return [AdminPenalty.model_validate(r) for r in rows]

    async def penalties_for_user(self, user_id: str, active_only: bool = False, limit: int = 20) -> List[AdminPenalty]:
        filters = {"user_id": user_id}
        if active_only:
            filters["is_active"] = True
        rows = await self.store.query(PENALTY_TABLE, filters, limit=limit)
        return [AdminPenalty.model_validate(r) for r in rows]
