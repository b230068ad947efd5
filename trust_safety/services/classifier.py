"""
Classifier.
Turns raw text into per-category risk scores and the weighted overall score.
The scoring backend is pluggable; the classifier fails open on backend errors.
"""

import logging
from typing import Awaitable, Callable, Dict, Mapping, Optional, Union

from trust_safety.config import EngineSettings
from trust_safety.lib.errors import TransientIOError
from trust_safety.lib.metrics import metrics
from trust_safety.lib.retry import retry_async
from trust_safety.models.content import ClassificationScore

logger = logging.getLogger(__name__)

RawScores = Mapping[str, float]
ScoringBackend = Callable[[str], Union[RawScores, Awaitable[RawScores]]]


class KeywordScorer:
    """
    Deterministic lexicon scorer.
    Development backend only; production wires in a model endpoint.
    """

    LEXICON: Dict[str, tuple] = {
        'toxicity': ('stupid', 'idiot', 'moron', 'loser', 'trash', 'shut up', 'pathetic'),
        'harassment': ('you should', 'you are a', 'people like you', 'nobody likes you', 'go away'),
        'hate_speech': ('subhuman', 'vermin', 'go back to', 'inferior race', 'degenerates'),
        'sexual_content': ('nudes', 'send pics', 'sexy', 'nsfw', 'onlyfans'),
        'threat': ('kill', 'hurt you', 'attack', 'destroy you', 'find where you live'),
        'spam': ('buy now', 'click here', 'free', '$$$', 'limited time', 'follow for follow'),
    }

    # Score added per matched phrase
    HIT_WEIGHT = 0.35

    def __call__(self, text: str) -> Dict[str, float]:
        text_lower = text.lower()
        scores = {}
        for category, phrases in self.LEXICON.items():
            hits = sum(1 for phrase in phrases if phrase in text_lower)
            scores[category] = min(1.0, hits * self.HIT_WEIGHT)

        # Shouting bumps toxicity a little
        letters = [c for c in text if c.isalpha()]
        if len(letters) >= 8 and sum(1 for c in letters if c.isupper()) / len(letters) > 0.7:
            scores['toxicity'] = min(1.0, scores['toxicity'] + 0.15)
        return scores


class Classifier:
    """
    Wraps a scoring backend with timeout + retry and clamps its output.
    Never raises: any backend failure yields zero scores.
    """

    def __init__(
        self,
        backend: Optional[ScoringBackend] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.backend = backend or KeywordScorer()
        self.settings = settings or EngineSettings()

    async def classify(
        self,
        text: str,
        weights: Optional[Mapping[str, float]] = None,
    ) -> ClassificationScore:
        weights = weights or self.settings.weights
        if not text or not text.strip():
            return ClassificationScore.zero()

        try:
            raw = await retry_async(
                lambda: self._call_backend(text),
                attempts=self.settings.io_retry_attempts,
                base_delay=self.settings.io_backoff_base_seconds,
                timeout=self.settings.io_timeout_seconds,
                operation="classifier",
            )
            return ClassificationScore.from_scores(raw, weights)
        except TransientIOError as e:
            logger.warning(f"Classifier unavailable, failing open: {e}")
            metrics.record_classifier_failure("unavailable")
        except Exception as e:
            logger.warning(f"Classifier error, failing open: {e!r}")
            metrics.record_classifier_failure(type(e).__name__)
        return ClassificationScore.zero()

    async def _call_backend(self, text: str) -> RawScores:
        result = self.backend(text)
        if hasattr(result, '__await__'):
            result = await result
        return result
