"""
Appeal data model.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from trust_safety.models.base import StoredModel
from trust_safety.models.enums import AppealStatus, AppealTarget


class Appeal(StoredModel):
    """User appeal against a penalty, strike or violation."""
    user_id: str
    target_type: AppealTarget
    target_id: UUID

    # Resolved links (filled from the target at submission)
    penalty_id: Optional[UUID] = None
    strike_id: Optional[UUID] = None
    violation_id: Optional[UUID] = None

    appeal_reason: str
    evidence: Optional[str] = None

    status: AppealStatus = AppealStatus.PENDING
    reviewer_id: Optional[str] = None
    resolution_message: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
