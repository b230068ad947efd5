"""Tests for the score-to-action bands."""

import pytest

from trust_safety.config import EngineSettings
from trust_safety.lib.errors import ValidationError
from trust_safety.models.enums import Action
from trust_safety.services.decision_policy import DecisionPolicy, PolicyContext


@pytest.fixture
def policy():
    return DecisionPolicy()


@pytest.mark.parametrize("overall,expected", [
    (0.0, Action.ALLOW),
    (0.2999, Action.ALLOW),
    (0.30, Action.FLAG),
    (0.4999, Action.FLAG),
    (0.50, Action.HIDE),
    (0.55, Action.HIDE),
    (0.5999, Action.HIDE),
    (0.60, Action.ESCALATE),
    (0.6999, Action.ESCALATE),
    (0.70, Action.TIMEOUT),
    (0.75, Action.TIMEOUT),
    (0.8499, Action.TIMEOUT),
    (0.85, Action.BLOCK),
    (0.92, Action.BLOCK),
    (1.0, Action.BLOCK),
])
def test_band_edges(policy, overall, expected):
    assert policy.decide(overall) == expected


def test_severity_never_decreases_as_score_rises(policy):
    grid = [i / 10000 for i in range(10001)]
    severities = [policy.decide(x).severity for x in grid]
    for lower, higher in zip(severities, severities[1:]):
        assert higher >= lower


def test_every_action_is_reachable(policy):
    seen = {policy.decide(i / 1000) for i in range(1001)}
    assert seen == set(Action)


@pytest.mark.parametrize("bad", [-0.01, 1.01, float("nan")])
def test_out_of_range_score_is_rejected(policy, bad):
    with pytest.raises(ValidationError):
        policy.decide(bad)


def test_max_action_caps_severity(policy):
    context = PolicyContext(max_action=Action.HIDE)
    assert policy.decide(0.95, context) == Action.HIDE
    assert policy.decide(0.40, context) == Action.FLAG


def test_only_bands_past_flag_notify(policy):
    assert not policy.notifies(Action.ALLOW)
    assert not policy.notifies(Action.FLAG)
    assert all(policy.notifies(a) for a in (Action.HIDE, Action.ESCALATE, Action.TIMEOUT, Action.BLOCK))


def test_thresholds_must_increase():
    with pytest.raises(ValueError):
        DecisionPolicy(EngineSettings(timeout_threshold=0.9, block_threshold=0.85))
