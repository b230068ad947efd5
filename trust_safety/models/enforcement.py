"""
Enforcement records: strikes, scope restrictions and admin penalties.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from trust_safety.models.base import StoredModel
from trust_safety.models.enums import PenaltySeverity, RestrictionSource


class Strike(StoredModel):
    """
    Escalating, scope-local penalty record.
    Level is min(active strikes in scope + 1, 4). Level 4 never expires.
    """
    user_id: str
    scope_id: str
    level: int = Field(ge=1, le=4)
    strike_type: str
    reason: str
    issued_by_ai: bool = True
    violation_id: Optional[UUID] = None
    expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Reversal (admin removal or accepted appeal)
    is_active: bool = True
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[str] = None

    # Set by the expiry sweep once the level-3 ban window has ended
    expiry_notified: bool = False

    def is_live(self, now: datetime) -> bool:
        """Active and not yet decayed."""
        return self.is_active and (self.expires_at is None or self.expires_at > now)

    def is_ban(self, now: datetime) -> bool:
        if not self.is_active:
            return False
        if self.level == 4:
            return True
        return self.level == 3 and self.expires_at is not None and self.expires_at > now


class Timeout(StoredModel):
    """
    Temporary mute in one scope. One record per (user, scope, source, linked
    strike or violation); the user is muted until the latest live `ends_at`.
    """
    user_id: str
    scope_id: str
    ends_at: datetime
    reason: str
    source: RestrictionSource
    issued_by: Optional[str] = None
    strike_id: Optional[UUID] = None
    violation_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ScopeBlock(StoredModel):
    """Block from one scope (stream/session) issued by the block band."""
    user_id: str
    scope_id: str
    reason: str
    source: RestrictionSource = RestrictionSource.AI_POLICY
    violation_id: Optional[UUID] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    lifted_at: Optional[datetime] = None


class AdminPenalty(StoredModel):
    """Platform penalty applied by an admin, directly or from an escalated review item."""
    user_id: str
    admin_id: str
    severity: PenaltySeverity
    reason: str
    category: Optional[str] = None
    duration_hours: Optional[int] = None
    expires_at: Optional[datetime] = None
    evidence_link: Optional[str] = None
    policy_reference: Optional[str] = None

    # Links used when the penalty is reversed
    review_item_id: Optional[UUID] = None
    violation_id: Optional[UUID] = None
    strike_id: Optional[UUID] = None

    is_active: bool = True
    deactivated_at: Optional[datetime] = None
    deactivation_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
