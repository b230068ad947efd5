"""
Enumeration definitions for the trust-and-safety enforcement engine.
Scopes, risk categories, enforcement actions and workflow states.
"""

from enum import Enum
from typing import Dict


class ContentScope(str, Enum):
    """Where a piece of content lives. Strikes and bans never cross scopes."""
    STREAM = "stream"
    POST = "post"
    STORY = "story"
    MESSAGE = "message"
    PROFILE = "profile"     # Usernames and bios


class RiskCategory(str, Enum):
    """Categories scored by the classifier."""
    TOXICITY = "toxicity"
    HARASSMENT = "harassment"
    HATE_SPEECH = "hate_speech"
    SEXUAL_CONTENT = "sexual_content"
    THREAT = "threat"
    SPAM = "spam"


class Action(str, Enum):
    """Enforcement action chosen by the decision policy."""
    ALLOW = "allow"
    FLAG = "flag"           # Silent, logged, not hidden
    HIDE = "hide"           # Hidden from others, sender notified
    ESCALATE = "escalate"   # Hidden pending moderator review
    TIMEOUT = "timeout"     # Short scope timeout
    BLOCK = "block"         # Blocked from the current scope

    @property
    def severity(self) -> int:
        return ACTION_SEVERITY[self]

    @property
    def hides_content(self) -> bool:
        return self.severity >= ACTION_SEVERITY[Action.HIDE]


ACTION_SEVERITY: Dict[Action, int] = {
    Action.ALLOW: 0,
    Action.FLAG: 1,
    Action.HIDE: 2,
    Action.ESCALATE: 3,
    Action.TIMEOUT: 4,
    Action.BLOCK: 5,
}


class ReviewStatus(str, Enum):
    """Moderator review queue states."""
    PENDING = "pending"
    APPROVED = "approved"     # Content restored
    REJECTED = "rejected"     # Content stays removed
    ESCALATED = "escalated"   # Handed to admin review


class ModeratorDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    TIMEOUT = "timeout"
    ESCALATE = "escalate"


class EscalationEntry(str, Enum):
    """Entry point that created a review item."""
    AI_POLICY = "ai_policy"         # Decision policy escalate band
    BEHAVIORAL = "behavioral"       # Pattern detectors (repeated reports etc.)


class PenaltySeverity(str, Enum):
    TEMPORARY = "temporary"
    PERMANENT = "permanent"


class AppealStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class AppealDecision(str, Enum):
    ACCEPT = "accept"
    DENY = "deny"


class AppealTarget(str, Enum):
    """Kind of record an appeal is linked to."""
    PENALTY = "penalty"
    STRIKE = "strike"
    VIOLATION = "violation"


class RestrictionSource(str, Enum):
    """Who imposed a timeout or block."""
    AI_POLICY = "ai_policy"
    STRIKE = "strike"
    SPAM = "spam"
    HARASSMENT_REPORTS = "harassment_reports"
    MODERATOR = "moderator"
    ADMIN = "admin"


class NotificationType(str, Enum):
    """Push notification types emitted by the engine."""
    SYSTEM_WARNING = "SYSTEM_WARNING"
    MODERATION_WARNING = "MODERATION_WARNING"
    TIMEOUT_APPLIED = "TIMEOUT_APPLIED"
    BAN_APPLIED = "BAN_APPLIED"
    BAN_EXPIRED = "BAN_EXPIRED"
    APPEAL_RECEIVED = "APPEAL_RECEIVED"
    APPEAL_APPROVED = "APPEAL_APPROVED"
    APPEAL_DENIED = "APPEAL_DENIED"
    REVIEW_APPROVED = "REVIEW_APPROVED"
    SAFETY_REMINDER = "SAFETY_REMINDER"


# Counted against the per-user moderation push budget
MODERATION_NOTIFICATION_TYPES = frozenset({
    NotificationType.MODERATION_WARNING,
    NotificationType.TIMEOUT_APPLIED,
    NotificationType.BAN_APPLIED,
    NotificationType.BAN_EXPIRED,
    NotificationType.SAFETY_REMINDER,
})

# Delivered immediately even during quiet hours
CRITICAL_NOTIFICATION_TYPES = frozenset({
    NotificationType.BAN_APPLIED,
    NotificationType.TIMEOUT_APPLIED,
    NotificationType.APPEAL_APPROVED,
    NotificationType.APPEAL_DENIED,
})


class InboxCategory(str, Enum):
    SAFETY = "safety"
    SYSTEM = "system"


class DeliveryStatus(str, Enum):
    """Status reported by the push transport."""
    SENT = "sent"
    PENDING = "pending"
    FAILED = "failed"


class DispatchOutcome(str, Enum):
    """What the dispatcher did with a notification intent."""
    SENT = "sent"
    BATCHED = "batched"                 # Over budget, folded into one summary push
    QUIET_HOURS = "quiet_hours"         # Held, inbox only
    DISABLED = "disabled"               # User turned these alerts off
    FAILED = "failed"


class ReportCategory(str, Enum):
    """User report reasons."""
    HARASSMENT_BULLYING = "harassment_bullying"
    VIOLENT_THREATS = "violent_threats"
    SEXUAL_CONTENT_MINORS = "sexual_content_minors"
    ILLEGAL_CONTENT = "illegal_content"
    SELF_HARM_ENCOURAGEMENT = "self_harm_encouragement"
    RACISM_IDENTITY_TARGETING = "racism_identity_targeting"
    SPAM_BOT_BEHAVIOR = "spam_bot_behavior"
    HATE_EXTREMIST_MESSAGING = "hate_extremist_messaging"
    IMPERSONATION = "impersonation"

    @property
    def severity(self) -> int:
        return REPORT_SEVERITY[self]


REPORT_SEVERITY: Dict[ReportCategory, int] = {
    ReportCategory.HARASSMENT_BULLYING: 2,
    ReportCategory.VIOLENT_THREATS: 3,
    ReportCategory.SEXUAL_CONTENT_MINORS: 3,
    ReportCategory.ILLEGAL_CONTENT: 3,
    ReportCategory.SELF_HARM_ENCOURAGEMENT: 3,
    ReportCategory.RACISM_IDENTITY_TARGETING: 2,
    ReportCategory.SPAM_BOT_BEHAVIOR: 1,
    ReportCategory.HATE_EXTREMIST_MESSAGING: 3,
    ReportCategory.IMPERSONATION: 2,
}

# Reports that feed the per-stream harassment tracker
HARASSMENT_REPORT_CATEGORIES = frozenset({
    ReportCategory.HARASSMENT_BULLYING,
    ReportCategory.VIOLENT_THREATS,
    ReportCategory.RACISM_IDENTITY_TARGETING,
})
