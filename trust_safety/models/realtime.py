"""
Real-time event data models.
Live chat messages, user reports, rate windows and stream lockdown state.
"""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from trust_safety.models.base import StoredModel
from trust_safety.models.enums import ContentScope, ReportCategory


class ChatMessage(BaseModel):
    """
    Live chat message entering the enforcement pipeline.
    scope_id is the stream owner; strikes and bans are keyed on it.
    """
    id: UUID = Field(default_factory=uuid4)
    user_id: str
    stream_id: str
    scope_id: str
    text: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ProfileTextEvent(BaseModel):
    """Username or bio change to screen."""
    user_id: str
    field: str = "username"
    text: str


class UserReport(StoredModel):
    """Report filed by one user against another."""
    reporter_id: str
    reported_user_id: str
    stream_id: Optional[str] = None
    scope: ContentScope = ContentScope.STREAM
    category: ReportCategory
    severity: int = 1
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class RateWindow(BaseModel):
    """
    Counter state for one subject key.
    `count` drives fixed windows; `members` maps member id to last-seen time
    for unique-member windows. `tripped` is a one-shot latch.
    """
    id: str
    version: int = 0
    window_start: datetime
    count: int = 0
    members: Dict[str, datetime] = Field(default_factory=dict)
    tripped: bool = False


class WindowCount(BaseModel):
    """Result of a counter update."""
    subject_key: str
    count: int
    window_start: datetime
    is_new_window: bool = False
    tripped: bool = False


class MassReportEvent(StoredModel):
    """Burst of unique reporters against one stream. At most one unresolved per stream."""
    stream_id: str
    creator_id: Optional[str] = None
    report_count: int = 0
    reporter_ids: List[str] = Field(default_factory=list)
    triggered_at: datetime = Field(default_factory=datetime.utcnow)
    resolved_at: Optional[datetime] = None
    creator_acknowledged: bool = False
    acknowledged_by: Optional[str] = None


class StreamState(BaseModel):
    """Per-stream chat visibility."""
    id: str     # stream id
    version: int = 0
    chat_hidden: bool = False
    lockdown_event_id: Optional[UUID] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)
