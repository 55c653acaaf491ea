"""Feature-based strength scoring for memory candidates."""

import math
from collections.abc import Iterable

from psychmem.config.schema import ScoringWeights
from psychmem.memory.text import jaccard
from psychmem.memory.types import MemoryFeatureVector, MemoryUnit, clamp01

RECENCY_WINDOW_HOURS = 168.0  # one week
FREQUENCY_SATURATION = 10

# Same topic but divergent content; above the upper bound it is a duplicate
INTERFERENCE_LOWER = 0.3
INTERFERENCE_UPPER = 0.8
INTERFERENCE_SCALE = 0.5
INTERFERENCE_DAMPING = 0.2


def normalize_frequency(frequency: int) -> float:
    """Logarithmic saturation of repetition: 9 repetitions reach 1.0."""
    return min(1.0, math.log(max(0, frequency) + 1) / math.log(FREQUENCY_SATURATION))


def recency_factor(recency_hours: float) -> float:
    """1.0 when fresh, falling linearly to 0.0 after one week."""
    return 1.0 - min(1.0, max(0.0, recency_hours) / RECENCY_WINDOW_HOURS)


class FeatureScorer:
    """
    Pure scoring functions: feature vector -> strength, candidate text vs corpus -> novelty/interference.

    Nothing here touches the store; callers pass the (bounded) corpus in.
    """

    def __init__(self, weights: ScoringWeights | None = None):
        self.weights = weights or ScoringWeights()

    def score(self, features: MemoryFeatureVector) -> float:
        """Weighted sum of the seven features, clamped to [0, 1]."""
        w = self.weights
        strength = (
            w.recency * recency_factor(features.recency)
            + w.frequency * normalize_frequency(features.frequency)
            + w.importance * features.importance
            + w.utility * features.utility
            + w.novelty * features.novelty
            + w.confidence * features.confidence
            + w.interference * features.interference
        )
        return clamp01(strength)

    @staticmethod
    def novelty(summary: str, corpus: Iterable[MemoryUnit]) -> float:
        """1 - max similarity to any corpus member; 1.0 for an empty corpus."""
        max_similarity = 0.0
        for memory in corpus:
            max_similarity = max(max_similarity, jaccard(summary, memory.summary))
        return clamp01(1.0 - max_similarity)

    @staticmethod
    def interference(summary: str, corpus: Iterable[MemoryUnit]) -> float:
        """Strongest same-topic-different-content overlap, scaled by 0.5."""
        interference = 0.0
        for memory in corpus:
            similarity = jaccard(summary, memory.summary)
            if INTERFERENCE_LOWER < similarity < INTERFERENCE_UPPER:
                interference = max(interference, similarity * INTERFERENCE_SCALE)
        return clamp01(interference)

    @staticmethod
    def dampen(strength: float, interference: float) -> float:
        """Apply the post-hoc interference penalty."""
        return clamp01(strength * (1.0 - interference * INTERFERENCE_DAMPING))
