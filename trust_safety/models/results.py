"""
Result types returned across the engine boundary.
"""

from dataclasses import dataclass, field
from typing import Generic, List, Optional, TypeVar
from uuid import UUID

from trust_safety.lib.errors import ErrorKind, SafetyEngineError
from trust_safety.models.appeal import Appeal
from trust_safety.models.content import Violation
from trust_safety.models.enforcement import AdminPenalty, ScopeBlock, Strike, Timeout
from trust_safety.models.realtime import MassReportEvent, UserReport

T = TypeVar('T')


@dataclass
class ServiceResult(Generic[T]):
    """Typed success/failure so callers can tell validation, policy and I/O failures apart."""
    ok: bool
    value: Optional[T] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> 'ServiceResult[T]':
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: SafetyEngineError) -> 'ServiceResult[T]':
        return cls(ok=False, error_kind=error.kind, message=str(error))


@dataclass
class LockdownStatus:
    triggered: bool
    event: Optional[MassReportEvent] = None
    unique_reporters: int = 0


@dataclass
class SpamCheckResult:
    tripped: bool
    message_count: int
    timeout: Optional[Timeout] = None


@dataclass
class ReportOutcome:
    report: UserReport
    lockdown: LockdownStatus
    auto_timeout_applied: bool = False
    review_item_id: Optional[UUID] = None


@dataclass
class UserHistory:
    """Admin context view of one user."""
    user_id: str
    violations: List[Violation] = field(default_factory=list)
    strikes: List[Strike] = field(default_factory=list)
    timeouts: List[Timeout] = field(default_factory=list)
    blocks: List[ScopeBlock] = field(default_factory=list)
    penalties: List[AdminPenalty] = field(default_factory=list)
    appeals: List[Appeal] = field(default_factory=list)


@dataclass
class SweepSummary:
    penalties_expired: int = 0
    strike_bans_ended: int = 0
    timeouts_removed: int = 0
