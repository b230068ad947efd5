"""
Error taxonomy for the enforcement engine.
"""

from enum import Enum


class ErrorKind(str, Enum):
    TRANSIENT_IO = "transient_io"
    VALIDATION = "validation"
    POLICY_BLOCKED = "policy_blocked"
    CONCURRENCY_CONFLICT = "concurrency_conflict"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    ENFORCEMENT_WRITE = "enforcement_write"


class SafetyEngineError(Exception):
    """Base class for all engine errors."""
    kind: ErrorKind = ErrorKind.TRANSIENT_IO


class TransientIOError(SafetyEngineError):
    """Storage or notification call timed out or failed; retried, then degraded."""
    kind = ErrorKind.TRANSIENT_IO


class ValidationError(SafetyEngineError):
    """Malformed request. Rejected synchronously, never retried."""
    kind = ErrorKind.VALIDATION


class PolicyViolationBlocked(SafetyEngineError):
    """Request is terminally refused by policy (e.g. non-appealable penalty)."""
    kind = ErrorKind.POLICY_BLOCKED


class ConcurrencyConflict(SafetyEngineError):
    """Lost a compare-and-swap race."""
    kind = ErrorKind.CONCURRENCY_CONFLICT


class NotFoundError(SafetyEngineError):
    kind = ErrorKind.NOT_FOUND


class InvalidStateTransition(SafetyEngineError):
    """Workflow item is already in a terminal state."""
    kind = ErrorKind.INVALID_STATE


class EnforcementWriteError(SafetyEngineError):
    """A Violation or enforcement record could not be persisted."""
    kind = ErrorKind.ENFORCEMENT_WRITE
