"""
Classification and Violation data models.
Pydantic models for type safety and validation.
"""

from datetime import datetime
from typing import Dict, Mapping, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from trust_safety.config import DEFAULT_WEIGHTS
from trust_safety.models.base import StoredModel
from trust_safety.models.enums import Action, ContentScope, RiskCategory


CATEGORY_FIELDS = tuple(c.value for c in RiskCategory)


class ClassificationScore(BaseModel):
    """
    Per-category risk scores plus the weighted overall score.
    Produced once per event and never modified.
    """
    model_config = ConfigDict(frozen=True)

    toxicity: float = Field(ge=0.0, le=1.0, default=0.0)
    harassment: float = Field(ge=0.0, le=1.0, default=0.0)
    hate_speech: float = Field(ge=0.0, le=1.0, default=0.0)
    sexual_content: float = Field(ge=0.0, le=1.0, default=0.0)
    threat: float = Field(ge=0.0, le=1.0, default=0.0)
    spam: float = Field(ge=0.0, le=1.0, default=0.0)
    overall: float = Field(ge=0.0, le=1.0, default=0.0)

    @classmethod
    def from_scores(
        cls,
        scores: Mapping[str, float],
        weights: Optional[Mapping[str, float]] = None,
    ) -> 'ClassificationScore':
        """Clamp raw backend scores into [0, 1] and derive the weighted overall score."""
        weights = weights or DEFAULT_WEIGHTS
        clamped: Dict[str, float] = {}
        for name in CATEGORY_FIELDS:
            value = float(scores.get(name, 0.0) or 0.0)
            if value != value:  # NaN
                value = 0.0
            clamped[name] = min(1.0, max(0.0, value))

        overall = sum(clamped[name] * weights.get(name, 0.0) for name in CATEGORY_FIELDS)
        return cls(**clamped, overall=min(1.0, max(0.0, overall)))

    @classmethod
    def zero(cls) -> 'ClassificationScore':
        return cls()

    def category_scores(self) -> Dict[RiskCategory, float]:
        return {c: getattr(self, c.value) for c in RiskCategory}

    def top_category(self) -> RiskCategory:
        """Highest scoring category. Ties resolve in declaration order."""
        scores = self.category_scores()
        return max(scores, key=lambda c: scores[c])


class ScopeContext(BaseModel):
    """Where an event happened. scope_id is the counterpart (usually the creator)."""
    scope: ContentScope = ContentScope.STREAM
    scope_id: str
    stream_id: Optional[str] = None
    content_id: Optional[str] = None

    def describe(self) -> str:
        return f"{self.scope.value}:{self.scope_id}"


class Violation(StoredModel):
    """
    One classified event that crossed the flag threshold.
    Never mutated after creation apart from resolution and soft deletion.
    """
    user_id: str
    scope: ContentScope
    scope_id: str
    stream_id: Optional[str] = None
    content_id: Optional[str] = None
    content_snippet: str = ""
    category: RiskCategory

    # Scores
    toxicity: float = 0.0
    harassment: float = 0.0
    hate_speech: float = 0.0
    sexual_content: float = 0.0
    threat: float = 0.0
    spam: float = 0.0
    overall: float = 0.0

    action: Action
    hidden_from_others: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Resolution (moderator approval or accepted appeal)
    resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None

    # Admin soft delete
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None

    def scores(self) -> ClassificationScore:
        return ClassificationScore(**{name: getattr(self, name) for name in CATEGORY_FIELDS},
                                   overall=self.overall)


class EnforcementResult(BaseModel):
    """Outcome of classifying and enforcing one event."""
    allowed: bool
    action: Action
    scores: ClassificationScore = Field(default_factory=ClassificationScore.zero)
    reason: Optional[str] = None
    violation_id: Optional[UUID] = None
    review_item_id: Optional[UUID] = None
    strike_level: Optional[int] = None
