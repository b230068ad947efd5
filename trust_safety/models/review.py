"""
Human review data models.
Manages the moderator queue and the admin escalation branch.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from trust_safety.models.base import StoredModel
from trust_safety.models.enums import ContentScope, EscalationEntry, ReviewStatus


class ModeratorReviewItem(StoredModel):
    """
    Moderator queue entry.
    Created at most once per violation; behavioral escalations have no violation.
    """
    violation_id: Optional[UUID] = None
    user_id: str
    scope_id: Optional[str] = None
    source_type: ContentScope = ContentScope.STREAM
    entry: EscalationEntry = EscalationEntry.AI_POLICY
    content_preview: str = ""
    risk_score: float = Field(ge=0.0, le=1.0, default=0.0)
    category: str

    # Assignment
    assigned_to: Optional[str] = None
    assigned_at: Optional[datetime] = None

    # Moderator resolution
    status: ReviewStatus = ReviewStatus.PENDING
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    moderator_notes: Optional[str] = None
    timeout_minutes: Optional[int] = None

    # Admin branch (status == escalated)
    escalation_reason: Optional[str] = None
    admin_id: Optional[str] = None
    admin_resolved_at: Optional[datetime] = None
    admin_penalty_id: Optional[UUID] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def awaiting_admin(self) -> bool:
        return self.status == ReviewStatus.ESCALATED and self.admin_resolved_at is None
