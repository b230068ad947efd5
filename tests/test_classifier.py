"""Tests for the classifier and its fail-open behaviour."""

import asyncio

import pytest

from trust_safety.config import EngineSettings
from trust_safety.models.content import ClassificationScore
from trust_safety.models.enums import RiskCategory
from trust_safety.services.classifier import Classifier, KeywordScorer

FAST = EngineSettings(io_retry_attempts=2, io_backoff_base_seconds=0.0, io_timeout_seconds=0.05)


def test_weighted_overall():
    score = ClassificationScore.from_scores({
        'toxicity': 1.0, 'harassment': 0.5, 'hate_speech': 0.0,
        'sexual_content': 0.0, 'threat': 0.0, 'spam': 1.0,
    })
    assert score.overall == pytest.approx(0.20 + 0.10 + 0.05)
    assert score.top_category() == RiskCategory.TOXICITY


def test_scores_are_clamped_and_nan_is_zero():
    score = ClassificationScore.from_scores({'toxicity': 3.0, 'threat': -1.0, 'spam': float('nan')})
    assert score.toxicity == 1.0
    assert score.threat == 0.0
    assert score.spam == 0.0


@pytest.mark.asyncio
async def test_keyword_scorer_is_deterministic():
    classifier = Classifier(settings=FAST)
    first = await classifier.classify("I will kill you, you stupid idiot")
    second = await classifier.classify("I will kill you, you stupid idiot")
    assert first == second
    assert first.threat > 0
    assert first.toxicity == pytest.approx(0.7)


def test_keyword_scorer_clean_text():
    assert all(v == 0.0 for v in KeywordScorer()("great stream today").values())


@pytest.mark.asyncio
async def test_empty_text_scores_zero():
    classifier = Classifier(lambda text: {'toxicity': 1.0}, FAST)
    assert await classifier.classify("   ") == ClassificationScore.zero()


@pytest.mark.asyncio
async def test_backend_error_fails_open():
    def broken(text):
        raise RuntimeError("model endpoint 500")

    classifier = Classifier(broken, FAST)
    assert await classifier.classify("anything") == ClassificationScore.zero()


@pytest.mark.asyncio
async def test_backend_timeout_fails_open_after_retries():
    calls = []

    async def slow(text):
        calls.append(text)
        await asyncio.sleep(1)
        return {'toxicity': 1.0}

    classifier = Classifier(slow, FAST)
    assert await classifier.classify("hello") == ClassificationScore.zero()
    assert len(calls) == FAST.io_retry_attempts


@pytest.mark.asyncio
async def test_async_backend_is_awaited():
    async def backend(text):
        return {'hate_speech': 1.0}

    score = await Classifier(backend, FAST).classify("x")
    assert score.hate_speech == 1.0
    assert score.overall == pytest.approx(0.25)
