"""
Decision Policy.
Pure mapping from an overall risk score to an enforcement action.
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from trust_safety.config import EngineSettings
from trust_safety.lib.errors import ValidationError
from trust_safety.models.enums import Action


@dataclass(frozen=True)
class PolicyContext:
    """
    Call-site constraints on the decision.
    `max_action` caps severity, e.g. profile text can only ever be hidden.
    """
    max_action: Optional[Action] = None


class DecisionPolicy:
    """
    Banded thresholds, each band a half-open interval [lower, next_lower):

        [0.00, 0.30)  allow
        [0.30, 0.50)  flag
        [0.50, 0.60)  hide
        [0.60, 0.70)  escalate
        [0.70, 0.85)  timeout
        [0.85, 1.00]  block

    Escalate stops where timeout starts, so a higher score never yields a
    milder action.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        settings = settings or EngineSettings()
        self.bands: List[Tuple[float, Action]] = [
            (settings.block_threshold, Action.BLOCK),
            (settings.timeout_threshold, Action.TIMEOUT),
            (settings.escalate_threshold, Action.ESCALATE),
            (settings.hide_threshold, Action.HIDE),
            (settings.flag_threshold, Action.FLAG),
        ]
        lowers = [lower for lower, _ in self.bands]
        if lowers != sorted(lowers, reverse=True):
            raise ValueError(f"Decision thresholds must be increasing: {list(reversed(lowers))}")

    def decide(self, overall: float, context: Optional[PolicyContext] = None) -> Action:
        if overall is None or math.isnan(overall) or not 0.0 <= overall <= 1.0:
            raise ValidationError(f"overall score must be within [0, 1], got {overall!r}")

        action = Action.ALLOW
        for lower, band_action in self.bands:
            if overall >= lower:
                action = band_action
                break

        if context and context.max_action and action.severity > context.max_action.severity:
            action = context.max_action
        return action

    @staticmethod
    def notifies(action: Action) -> bool:
        """Every band past flag tells the affected user."""
        return action.severity > Action.FLAG.severity
