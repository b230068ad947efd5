"""
Engine configuration.
Policy constants for thresholds, windows and durations, overridable from the environment.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, FrozenSet


# Category weights for the overall risk score (sum to 1.0)
DEFAULT_WEIGHTS: Dict[str, float] = {
    'toxicity': 0.20,
    'harassment': 0.20,
    'hate_speech': 0.25,
    'sexual_content': 0.15,
    'threat': 0.15,
    'spam': 0.05,
}


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, '') else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, '') else default


@dataclass(frozen=True)
class EngineSettings:
    """All tunables consumed by the enforcement services."""

    weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))

    # Decision bands (lower bounds, inclusive)
    flag_threshold: float = 0.30
    hide_threshold: float = 0.50
    escalate_threshold: float = 0.60
    timeout_threshold: float = 0.70
    block_threshold: float = 0.85
    ai_timeout_minutes: int = 2

    # Strike ledger
    strike_decay_days: int = 30
    strike_timeout_minutes: int = 10    # level 2
    strike_ban_hours: int = 24          # level 3

    # Spam detection
    spam_window_seconds: int = 10
    spam_max_messages: int = 10
    spam_timeout_minutes: int = 1

    # Notification throttling
    notification_window_seconds: int = 1800
    notification_cap: int = 5

    # Harassment reports (cumulative, one-shot)
    harassment_report_threshold: int = 3
    harassment_timeout_minutes: int = 5

    # Mass-report lockdown
    mass_report_window_seconds: int = 60
    mass_report_threshold: int = 15

    # Moderator / admin workflow
    moderator_timeout_min_minutes: int = 5
    moderator_timeout_max_minutes: int = 60
    admin_rejection_threshold: int = 2
    appeal_min_reason_length: int = 10
    non_appealable_categories: FrozenSet[str] = frozenset({'sexual_content_minors'})
    content_preview_length: int = 200

    # Outbound calls
    io_timeout_seconds: float = 2.0
    io_retry_attempts: int = 3
    io_backoff_base_seconds: float = 0.05
    cas_retry_attempts: int = 5

    @classmethod
    def from_env(cls) -> 'EngineSettings':
        """Build settings, letting TS_* environment variables override defaults."""
        return cls(
            flag_threshold=_env_float('TS_FLAG_THRESHOLD', cls.flag_threshold),
            hide_threshold=_env_float('TS_HIDE_THRESHOLD', cls.hide_threshold),
            escalate_threshold=_env_float('TS_ESCALATE_THRESHOLD', cls.escalate_threshold),
            timeout_threshold=_env_float('TS_TIMEOUT_THRESHOLD', cls.timeout_threshold),
            block_threshold=_env_float('TS_BLOCK_THRESHOLD', cls.block_threshold),
            ai_timeout_minutes=_env_int('TS_AI_TIMEOUT_MINUTES', cls.ai_timeout_minutes),
            strike_decay_days=_env_int('TS_STRIKE_DECAY_DAYS', cls.strike_decay_days),
            spam_window_seconds=_env_int('TS_SPAM_WINDOW_SECONDS', cls.spam_window_seconds),
            spam_max_messages=_env_int('TS_SPAM_MAX_MESSAGES', cls.spam_max_messages),
            notification_window_seconds=_env_int(
                'TS_NOTIFICATION_WINDOW_SECONDS', cls.notification_window_seconds
            ),
            notification_cap=_env_int('TS_NOTIFICATION_CAP', cls.notification_cap),
            mass_report_window_seconds=_env_int(
                'TS_MASS_REPORT_WINDOW_SECONDS', cls.mass_report_window_seconds
            ),
            mass_report_threshold=_env_int('TS_MASS_REPORT_THRESHOLD', cls.mass_report_threshold),
            io_timeout_seconds=_env_float('TS_IO_TIMEOUT_SECONDS', cls.io_timeout_seconds),
            io_retry_attempts=_env_int('TS_IO_RETRY_ATTEMPTS', cls.io_retry_attempts),
        )
