"""
SafetyEngine.
Wires the services together over explicit collaborators and exposes the
operations used by the pipeline, the HTTP API and admin tooling.

Operations a caller can be refused on return ServiceResult; classification
and enforcement raise EnforcementWriteError when a Violation could not be
persisted.
"""

import logging
import os
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, TypeVar
from uuid import UUID

from trust_safety.config import EngineSettings
from trust_safety.lib.errors import InvalidStateTransition, SafetyEngineError, ValidationError
from trust_safety.lib.locks import KeyedLocks
from trust_safety.lib.notifications import (
    InboxWriter, LoggingNotificationSender, NotificationSender, StoreInboxWriter
)
from trust_safety.lib.store import InMemoryStore, PersistentStore
from trust_safety.models.appeal import Appeal
from trust_safety.models.content import EnforcementResult, ScopeContext, Violation
from trust_safety.models.enforcement import AdminPenalty, Strike
from trust_safety.models.enums import (
    Action, AppealDecision, AppealTarget, ContentScope, ModeratorDecision,
    PenaltySeverity, ReportCategory, ReviewStatus
)
from trust_safety.models.notification import NotificationPreferences
from trust_safety.models.realtime import ChatMessage, MassReportEvent
from trust_safety.models.results import LockdownStatus, ReportOutcome, ServiceResult, SweepSummary, UserHistory
from trust_safety.models.review import ModeratorReviewItem
from trust_safety.services.appeals import AppealResolver
from trust_safety.services.classifier import Classifier, ScoringBackend
from trust_safety.services.decision_policy import DecisionPolicy, PolicyContext
from trust_safety.services.detectors import HarassmentReportDetector, SpamDetector
from trust_safety.services.enforcement import EnforcementExecutor
from trust_safety.services.escalation_queue import AdminEscalationPredicate, EscalationQueue
from trust_safety.services.expiry_sweep import ExpirySweeper
from trust_safety.services.mass_report import MassReportDetector
from trust_safety.services.notification_dispatcher import NotificationDispatcher
from trust_safety.services.rate_window import RateWindowTracker
from trust_safety.services.report_service import ReportService
from trust_safety.services.restrictions import ScopeRestrictions
from trust_safety.services.strike_ledger import StrikeLedger
from trust_safety.services.violations import ViolationRecords

logger = logging.getLogger(__name__)

T = TypeVar('T')


class SafetyEngine:

    def __init__(
        self,
        store: PersistentStore,
        sender: Optional[NotificationSender] = None,
        inbox: Optional[InboxWriter] = None,
        settings: Optional[EngineSettings] = None,
        scoring_backend: Optional[ScoringBackend] = None,
        admin_predicate: Optional[AdminEscalationPredicate] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.settings = settings or EngineSettings()
        self.clock = clock
        self.locks = KeyedLocks()

        self.tracker = RateWindowTracker(store, self.settings, clock)
        self.dispatcher = NotificationDispatcher(
            store,
            sender or LoggingNotificationSender(),
            inbox or StoreInboxWriter(store, clock),
            self.tracker,
            self.settings,
            clock,
        )
        self.classifier = Classifier(scoring_backend, self.settings)
        self.policy = DecisionPolicy(self.settings)
        self.restrictions = ScopeRestrictions(store, self.settings, clock)
        self.violations = ViolationRecords(store, self.settings, clock)
        self.ledger = StrikeLedger(store, self.restrictions, self.dispatcher, self.locks, self.settings, clock)
        self.queue = EscalationQueue(
            store, self.violations, self.restrictions, self.dispatcher,
            self.settings, admin_predicate, clock,
        )
        self.enforcement = EnforcementExecutor(
            store, self.policy, self.violations, self.ledger, self.restrictions,
            self.queue, self.dispatcher, self.locks, self.settings, clock,
        )
        self.appeals = AppealResolver(
            store, self.enforcement, self.ledger, self.violations, self.restrictions,
            self.dispatcher, self.locks, self.settings, clock,
        )
        self.mass_report = MassReportDetector(store, self.tracker, self.dispatcher, self.settings, clock)
        self.spam = SpamDetector(self.tracker, self.restrictions, self.dispatcher, self.settings)
        self.harassment = HarassmentReportDetector(self.tracker, self.restrictions, self.dispatcher, self.settings)
        self.reports = ReportService(store, self.mass_report, self.harassment, self.queue, clock)
        self.sweeper = ExpirySweeper(self.enforcement, self.ledger, self.restrictions, self.dispatcher)

    @classmethod
    def from_env(
        cls,
        sender: Optional[NotificationSender] = None,
        scoring_backend: Optional[ScoringBackend] = None,
    ) -> 'SafetyEngine':
        """PostgreSQL when DATABASE_URL or DB_HOST is set, otherwise in-memory."""
        settings = EngineSettings.from_env()
        if os.getenv('DATABASE_URL') or os.getenv('DB_HOST'):
            from trust_safety.lib.database import PostgresStore
            store = PostgresStore()
            store.create_schema()
        else:
            logger.warning("No database configured; using in-memory store")
            store = InMemoryStore()
        return cls(store, sender=sender, settings=settings, scoring_backend=scoring_backend)

    async def _result(self, call: Awaitable[T], operation: str) -> ServiceResult[T]:
        try:
            return ServiceResult.success(await call)
        except SafetyEngineError as e:
            logger.info(f"{operation} refused ({e.kind.value}): {e}")
            return ServiceResult.failure(e)

    # Classification and enforcement

    async def classify_and_enforce(self, user_id: str, text: str, context: ScopeContext) -> EnforcementResult:
        scores = await self.classifier.classify(text)
        return await self.enforcement.enforce(user_id, scores, context, text)

    async def handle_chat_message(self, message: ChatMessage) -> EnforcementResult:
        """Restriction and lockdown checks, then spam, then classification."""
        refusal = await self._chat_refusal(message)
        if refusal is not None:
            return refusal

        spam = await self.spam.check(message.user_id, message.scope_id)
        if spam.tripped:
            return EnforcementResult(
                allowed=False, action=Action.TIMEOUT,
                reason=f"Sending messages too quickly; timed out for {self.settings.spam_timeout_minutes} minute(s)",
            )

        context = ScopeContext(
            scope=ContentScope.STREAM,
            scope_id=message.scope_id,
            stream_id=message.stream_id,
            content_id=str(message.id),
        )
        return await self.classify_and_enforce(message.user_id, message.text, context)

    async def _chat_refusal(self, message: ChatMessage) -> Optional[EnforcementResult]:
        user_id, scope_id = message.user_id, message.scope_id
        if await self.ledger.is_banned(user_id, scope_id) or await self.restrictions.is_blocked(user_id, scope_id):
            return EnforcementResult(allowed=False, action=Action.BLOCK,
                                     reason="You are banned from this creator's streams")
        now = self.clock()
        penalties = await self.enforcement.penalties_for_user(user_id, active_only=True)
        if any(p.expires_at is None or p.expires_at > now for p in penalties):
            return EnforcementResult(allowed=False, action=Action.BLOCK,
                                     reason="Your account is restricted")
        timeout = await self.restrictions.active_timeout(user_id, scope_id)
        if timeout is not None:
            return EnforcementResult(allowed=False, action=Action.TIMEOUT,
                                     reason=f"You are timed out until {timeout.ends_at:%H:%M} UTC")
        if await self.mass_report.is_locked(message.stream_id):
            return EnforcementResult(allowed=False, action=Action.HIDE,
                                     reason="Chat is paused while the creator reviews community guidelines")
        return None

    async def check_profile_text(self, user_id: str, text: str, field: str = "username") -> EnforcementResult:
        """Username/bio screening: at most hidden, never timeouts, blocks or strikes."""
        scores = await self.classifier.classify(text)
        context = ScopeContext(scope=ContentScope.PROFILE, scope_id=user_id, content_id=field)
        return await self.enforcement.enforce(
            user_id, scores, context, text, policy_context=PolicyContext(max_action=Action.HIDE)
        )

    # Strikes

    async def apply_strike(self, user_id: str, scope_id: str, strike_type: str, reason: str) -> Strike:
        return await self.ledger.apply_strike(user_id, scope_id, strike_type, reason, issued_by_ai=False)

    async def is_banned(self, user_id: str, scope_id: str) -> bool:
        return await self.ledger.is_banned(user_id, scope_id)

    async def remove_strike(self, strike_id: UUID, actor_id: str) -> ServiceResult[Strike]:
        return await self._result(self.ledger.revoke_strike(strike_id, actor_id), "remove_strike")

    # Review queue

    async def get_escalation_queue(
        self, status: Optional[ReviewStatus] = ReviewStatus.PENDING
    ) -> List[ModeratorReviewItem]:
        return await self.queue.list_items(status)

    async def moderator_decide(
        self,
        item_id: UUID,
        decision: ModeratorDecision,
        moderator_id: str,
        notes: Optional[str] = None,
        timeout_minutes: Optional[int] = None,
    ) -> ServiceResult[ModeratorReviewItem]:
        return await self._result(
            self.queue.moderator_decide(item_id, decision, moderator_id, notes, timeout_minutes),
            "moderator_decide",
        )

    async def admin_apply_penalty(
        self,
        admin_id: str,
        severity: PenaltySeverity,
        reason: str,
        item_id: Optional[UUID] = None,
        user_id: Optional[str] = None,
        duration_hours: Optional[int] = None,
        evidence_link: Optional[str] = None,
        policy_reference: Optional[str] = None,
    ) -> ServiceResult[AdminPenalty]:
        return await self._result(
            self._admin_apply_penalty(admin_id, severity, reason, item_id, user_id,
                                      duration_hours, evidence_link, policy_reference),
            "admin_apply_penalty",
        )

    async def _admin_apply_penalty(
        self, admin_id, severity, reason, item_id, user_id, duration_hours, evidence_link, policy_reference
    ) -> AdminPenalty:
        item = None
        if item_id is not None:
            item = await self.queue.get(item_id)
            if not item.awaiting_admin:
                raise InvalidStateTransition(f"Review item {item_id} is not awaiting an admin decision")
            user_id = item.user_id
        if not user_id:
            raise ValidationError("A penalty needs a review item or a user")

        penalty = await self.enforcement.apply_admin_penalty(
            user_id, admin_id, severity, reason,
            duration_hours=duration_hours,
            category=item.category if item else None,
            evidence_link=evidence_link,
            policy_reference=policy_reference,
            review_item_id=item.id if item else None,
            violation_id=item.violation_id if item else None,
        )
        if item is not None:
            await self.queue.mark_admin_resolved(item.id, admin_id, penalty.id)
        return penalty

    # Appeals

    async def submit_appeal(
        self,
        user_id: str,
        penalty_id: UUID,
        reason: str,
        evidence: Optional[str] = None,
        target_type: Optional[AppealTarget] = None,
    ) -> ServiceResult[Appeal]:
        return await self._result(
            self.appeals.submit_appeal(user_id, penalty_id, reason, evidence, target_type),
            "submit_appeal",
        )

    async def resolve_appeal(
        self, appeal_id: UUID, decision: AppealDecision, admin_id: str, message: str
    ) -> ServiceResult[Appeal]:
        return await self._result(
            self.appeals.resolve_appeal(appeal_id, decision, admin_id, message), "resolve_appeal"
        )

    # Reports and lockdown

    async def submit_report(
        self,
        reporter_id: str,
        reported_user_id: str,
        category: ReportCategory,
        stream_id: Optional[str] = None,
        scope_id: Optional[str] = None,
        notes: Optional[str] = None,
        creator_id: Optional[str] = None,
    ) -> ServiceResult[ReportOutcome]:
        return await self._result(
            self.reports.submit_report(reporter_id, reported_user_id, category,
                                       stream_id, scope_id, notes, creator_id),
            "submit_report",
        )

    async def check_mass_report_lockdown(self, stream_id: str) -> LockdownStatus:
        return await self.mass_report.check_lockdown(stream_id)

    async def acknowledge_lockdown(
        self, event_id: UUID, creator_id: Optional[str] = None
    ) -> ServiceResult[MassReportEvent]:
        return await self._result(self.mass_report.acknowledge(event_id, creator_id), "acknowledge_lockdown")

    # Admin tooling

    async def get_user_history(self, user_id: str, limit: int = 20) -> UserHistory:
        return UserHistory(
            user_id=user_id,
            violations=await self.violations.for_user(user_id, limit),
            strikes=await self.ledger.strikes_for_user(user_id, limit),
            timeouts=await self.restrictions.timeouts_for_user(user_id, limit),
            blocks=await self.restrictions.blocks_for_user(user_id, limit),
            penalties=await self.enforcement.penalties_for_user(user_id, limit=limit),
            appeals=await self.appeals.appeals_for_user(user_id, limit),
        )

    async def soft_delete_violation(self, violation_id: UUID, admin_id: str) -> ServiceResult[Violation]:
        return await self._result(self.violations.soft_delete(violation_id, admin_id), "soft_delete_violation")

    async def set_notification_preferences(self, preferences: NotificationPreferences) -> NotificationPreferences:
        return await self.dispatcher.set_preferences(preferences)

    async def run_expiry_sweep(self) -> SweepSummary:
        return await self.sweeper.run_once()
