"""
Escalation Queue.
Moderator review items and the admin escalation branch.

    pending -> approved | rejected | escalated
    escalated -> admin resolved (penalty applied)

Every transition is a compare-and-swap on the item version, so two
moderators deciding the same item cannot both win.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional
from uuid import UUID

from trust_safety.config import EngineSettings
from trust_safety.lib.errors import (
    ConcurrencyConflict, InvalidStateTransition, NotFoundError, ValidationError
)
from trust_safety.lib.metrics import metrics
from trust_safety.lib.store import PersistentStore
from trust_safety.models.content import Violation
from trust_safety.models.enums import (
    ContentScope, EscalationEntry, ModeratorDecision, NotificationType,
    RestrictionSource, ReviewStatus
)
from trust_safety.models.notification import NotificationIntent
from trust_safety.models.review import ModeratorReviewItem
from trust_safety.services.notification_dispatcher import NotificationDispatcher
from trust_safety.services.restrictions import ScopeRestrictions
from trust_safety.services.violations import ViolationRecords

logger = logging.getLogger(__name__)

REVIEW_TABLE = "review_items"

# Categories an item may be handed to admins for
ADMIN_ESCALATION_CATEGORIES = frozenset({
    'hate_speech',
    'threat',
    'violent_threats',
    'sexual_content_minors',
    'impersonation',
    'racism_identity_targeting',
    'hate_extremist_messaging',
})

AdminEscalationPredicate = Callable[[ModeratorReviewItem, int], bool]


def default_admin_predicate(min_prior_rejections: int = 2) -> AdminEscalationPredicate:
    """Trigger categories, or a user with enough earlier rejected items."""
    def predicate(item: ModeratorReviewItem, prior_rejections: int) -> bool:
        return item.category in ADMIN_ESCALATION_CATEGORIES or prior_rejections >= min_prior_rejections
    return predicate


class EscalationQueue:

    def __init__(
        self,
        store: PersistentStore,
        violations: ViolationRecords,
        restrictions: ScopeRestrictions,
        dispatcher: NotificationDispatcher,
        settings: Optional[EngineSettings] = None,
        admin_predicate: Optional[AdminEscalationPredicate] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.violations = violations
        self.restrictions = restrictions
        self.dispatcher = dispatcher
        self.settings = settings or EngineSettings()
        self.admin_predicate = admin_predicate or default_admin_predicate(
            self.settings.admin_rejection_threshold
        )
        self.clock = clock

    # Creation

    async def escalate_violation(self, violation: Violation) -> ModeratorReviewItem:
        """Queue a violation for review. Re-escalating returns the existing item."""
        item = ModeratorReviewItem(
            violation_id=violation.id,
            user_id=violation.user_id,
            scope_id=violation.scope_id,
            source_type=violation.scope,
            entry=EscalationEntry.AI_POLICY,
            content_preview=violation.content_snippet[:self.settings.content_preview_length],
            risk_score=violation.overall,
            category=violation.category.value,
            created_at=self.clock(),
        )
        stored, created = await self.store.insert_unique(
            REVIEW_TABLE, item.to_record(), {"violation_id": violation.id}
        )
        if created:
            metrics.record_escalation(EscalationEntry.AI_POLICY.value)
            logger.info(f"Violation {violation.id} queued for review ({item.category}, {item.risk_score:.2f})")
        return ModeratorReviewItem.model_validate(stored)

    async def escalate_behavior(
        self,
        user_id: str,
        scope_id: Optional[str],
        category: str,
        reason: str,
        risk_score: float = 0.0,
        source_type: ContentScope = ContentScope.STREAM,
    ) -> ModeratorReviewItem:
        """Queue a behavioral pattern. One pending item per (user, scope, category)."""
        item = ModeratorReviewItem(
            user_id=user_id,
            scope_id=scope_id,
            source_type=source_type,
            entry=EscalationEntry.BEHAVIORAL,
            content_preview=reason[:self.settings.content_preview_length],
            risk_score=risk_score,
            category=category,
            created_at=self.clock(),
        )
        stored, created = await self.store.insert_unique(
            REVIEW_TABLE,
            item.to_record(),
            {
                "entry": EscalationEntry.BEHAVIORAL,
                "user_id": user_id,
                "scope_id": scope_id,
                "category": category,
                "status": ReviewStatus.PENDING,
            },
        )
        if created:
            metrics.record_escalation(EscalationEntry.BEHAVIORAL.value)
            logger.info(f"Behavioral review queued for {user_id} in {scope_id}: {category}")
        return ModeratorReviewItem.model_validate(stored)

    # Reads

    async def get(self, item_id: UUID) -> ModeratorReviewItem:
        record = await self.store.get(REVIEW_TABLE, item_id)
        if record is None:
            raise NotFoundError(f"Review item {item_id} not found")
        return ModeratorReviewItem.model_validate(record)

    async def list_items(
        self, status: Optional[ReviewStatus] = ReviewStatus.PENDING, limit: Optional[int] = None
    ) -> List[ModeratorReviewItem]:
        """Oldest first."""
        filters = {"status": status} if status else {}
        rows = await self.store.query(REVIEW_TABLE, filters, order_desc=False, limit=limit)
        items = [ModeratorReviewItem.model_validate(r) for r in rows]
        if status == ReviewStatus.PENDING and limit is None:
            metrics.update_queue_depth(status.value, len(items))
        return items

    async def prior_rejections(self, user_id: str) -> int:
        rows = await self.store.query(REVIEW_TABLE, {"user_id": user_id, "status": ReviewStatus.REJECTED})
        return len(rows)

    # Moderator decisions

    async def assign(self, item_id: UUID, moderator_id: str) -> ModeratorReviewItem:
        item = await self.get(item_id)
        if item.status != ReviewStatus.PENDING:
            raise InvalidStateTransition(f"Review item {item_id} is already {item.status.value}")
        changes = {"assigned_to": moderator_id, "assigned_at": self.clock()}
        return await self._transition(item, changes)

    async def moderator_decide(
        self,
        item_id: UUID,
        decision: ModeratorDecision,
        moderator_id: str,
        notes: Optional[str] = None,
        timeout_minutes: Optional[int] = None,
    ) -> ModeratorReviewItem:
        item = await self.get(item_id)
        if item.status != ReviewStatus.PENDING:
            raise InvalidStateTransition(f"Review item {item_id} is already {item.status.value}")

        now = self.clock()
        changes = {"resolved_by": moderator_id, "resolved_at": now, "moderator_notes": notes}

        if decision == ModeratorDecision.APPROVE:
            changes["status"] = ReviewStatus.APPROVED

        elif decision == ModeratorDecision.REJECT:
            if not notes or not notes.strip():
                raise ValidationError("A rejection needs moderator notes")
            changes["status"] = ReviewStatus.REJECTED

        elif decision == ModeratorDecision.TIMEOUT:
            low = self.settings.moderator_timeout_min_minutes
            high = self.settings.moderator_timeout_max_minutes
            if timeout_minutes is None or not low <= timeout_minutes <= high:
                raise ValidationError(f"Timeout must be between {low} and {high} minutes, got {timeout_minutes}")
            changes.update({"status": ReviewStatus.REJECTED, "timeout_minutes": timeout_minutes})

        elif decision == ModeratorDecision.ESCALATE:
            if not notes or not notes.strip():
                raise ValidationError("Escalating to an admin needs a reason")
            prior = await self.prior_rejections(item.user_id)
            if not self.admin_predicate(item, prior):
                raise ValidationError(
                    f"Category '{item.category}' does not qualify for admin escalation"
                )
            changes.update({"status": ReviewStatus.ESCALATED, "escalation_reason": notes})
            # Admin owns the item from here; no moderator resolution stamp
            changes.pop("resolved_at")

        else:
            raise ValidationError(f"Unknown decision {decision!r}")

        updated = await self._transition(item, changes)
        metrics.record_moderator_decision(decision.value)
        logger.info(f"Review item {item_id} -> {updated.status.value} by {moderator_id}")

        await self._apply_decision_effects(updated, decision, moderator_id)
        return updated

    async def _apply_decision_effects(
        self, item: ModeratorReviewItem, decision: ModeratorDecision, moderator_id: str
    ) -> None:
        if decision == ModeratorDecision.APPROVE:
            if item.violation_id:
                await self.violations.resolve(item.violation_id, moderator_id)
                title = "Content restored"
                body = "A moderator reviewed your content and found no violation. It is visible again."
            else:
                # Behavioral items have no content to restore
                title = "Report reviewed"
                body = "A moderator reviewed reports about your account and took no action."
            await self.dispatcher.dispatch(NotificationIntent(
                user_id=item.user_id,
                type=NotificationType.REVIEW_APPROVED,
                title=title,
                body=body,
                payload={"review_item_id": str(item.id)},
            ))

        elif decision == ModeratorDecision.REJECT:
            await self.dispatcher.dispatch(NotificationIntent(
                user_id=item.user_id,
                type=NotificationType.MODERATION_WARNING,
                title="Content removed",
                body=f"A moderator reviewed your content and it stays removed. {item.moderator_notes}",
                payload={"review_item_id": str(item.id)},
            ))

        elif decision == ModeratorDecision.TIMEOUT:
            scope_id = item.scope_id or "global"
            await self.restrictions.apply_timeout(
                item.user_id, scope_id, item.timeout_minutes,
                reason=item.moderator_notes or "Moderator timeout",
                source=RestrictionSource.MODERATOR, issued_by=moderator_id,
            )
            await self.dispatcher.dispatch(NotificationIntent(
                user_id=item.user_id,
                type=NotificationType.TIMEOUT_APPLIED,
                title="You have been timed out",
                body=f"A moderator timed you out for {item.timeout_minutes} minutes.",
                payload={"review_item_id": str(item.id), "scope_id": scope_id},
            ))

    # Admin branch

    async def mark_admin_resolved(
        self, item_id: UUID, admin_id: str, penalty_id: Optional[UUID] = None
    ) -> ModeratorReviewItem:
        item = await self.get(item_id)
        if not item.awaiting_admin:
            raise InvalidStateTransition(f"Review item {item_id} is not awaiting an admin decision")
        changes = {"admin_id": admin_id, "admin_resolved_at": self.clock(), "admin_penalty_id": penalty_id}
        return await self._transition(item, changes)

    async def _transition(self, item: ModeratorReviewItem, changes: dict) -> ModeratorReviewItem:
        try:
            record = await self.store.update(REVIEW_TABLE, item.id, changes, expected_version=item.version)
        except ConcurrencyConflict as e:
            raise InvalidStateTransition(f"Review item {item.id} was changed concurrently") from e
        return ModeratorReviewItem.model_validate(record)
