"""
Report intake.
Persists user reports and feeds the mass-report and harassment detectors.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from trust_safety.lib.errors import SafetyEngineError, ValidationError
from trust_safety.lib.store import PersistentStore
from trust_safety.models.enums import HARASSMENT_REPORT_CATEGORIES, ContentScope, ReportCategory
from trust_safety.models.realtime import UserReport
from trust_safety.models.results import LockdownStatus, ReportOutcome
from trust_safety.services.detectors import HarassmentReportDetector
from trust_safety.services.escalation_queue import EscalationQueue
from trust_safety.services.mass_report import MassReportDetector

logger = logging.getLogger(__name__)

REPORT_TABLE = "user_reports"

# Reports at this severity go straight to a moderator
REVIEW_SEVERITY = 3


class ReportService:

    def __init__(
        self,
        store: PersistentStore,
        mass_report: MassReportDetector,
        harassment: HarassmentReportDetector,
        queue: EscalationQueue,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.mass_report = mass_report
        self.harassment = harassment
        self.queue = queue
        self.clock = clock

    async def submit_report(
        self,
        reporter_id: str,
        reported_user_id: str,
        category: ReportCategory,
        stream_id: Optional[str] = None,
        scope_id: Optional[str] = None,
        notes: Optional[str] = None,
        creator_id: Optional[str] = None,
    ) -> ReportOutcome:
        """
        scope_id is the stream owner (defaults to creator_id, then stream_id);
        harassment timeouts are applied there.
        """
        if not reporter_id or not reported_user_id:
            raise ValidationError("Reporter and reported user are required")
        if reporter_id == reported_user_id:
            raise ValidationError("You cannot report yourself")

        report = UserReport(
            reporter_id=reporter_id,
            reported_user_id=reported_user_id,
            stream_id=stream_id,
            scope=ContentScope.STREAM if stream_id else ContentScope.PROFILE,
            category=category,
            severity=category.severity,
            notes=notes,
            created_at=self.clock(),
        )
        report = UserReport.model_validate(await self.store.insert(REPORT_TABLE, report.to_record()))
        logger.info(f"Report {report.id}: {reporter_id} -> {reported_user_id} ({category.value})")

        outcome = ReportOutcome(report=report, lockdown=LockdownStatus(triggered=False))
        if not stream_id:
            return outcome

        scope_id = scope_id or creator_id or stream_id
        outcome.lockdown = await self.mass_report.record_report(stream_id, reporter_id, creator_id)

        if category in HARASSMENT_REPORT_CATEGORIES:
            outcome.auto_timeout_applied = await self.harassment.record(
                reported_user_id, stream_id, scope_id, reporter_id
            )

        if category.severity >= REVIEW_SEVERITY:
            try:
                item = await self.queue.escalate_behavior(
                    reported_user_id, scope_id, category.value,
                    reason=notes or f"Reported for {category.value.replace('_', ' ')}",
                    risk_score=1.0,
                )
                outcome.review_item_id = item.id
            except SafetyEngineError as e:
                logger.error(f"Report {report.id} stored but not queued for review: {e}")
        return outcome

    async def reports_against(self, user_id: str, limit: int = 50) -> List[UserReport]:
        rows = await self.store.query(REPORT_TABLE, {"reported_user_id": user_id}, limit=limit)
        return [UserReport.model_validate(r) for r in rows]
