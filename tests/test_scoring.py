"""Tests for FeatureScorer and the lexical similarity helpers."""

import itertools
import math

import pytest

from psychmem.config.schema import ScoringWeights
from psychmem.memory.scoring import FeatureScorer, normalize_frequency, recency_factor
from psychmem.memory.text import jaccard, query_keywords, word_set
from psychmem.memory.types import Classification, MemoryFeatureVector, MemoryStoreKind, MemoryUnit


def _unit(summary: str) -> MemoryUnit:
    return MemoryUnit(id=summary[:8], store=MemoryStoreKind.STM, classification=Classification.EPISODIC, summary=summary)


def _features(**overrides) -> MemoryFeatureVector:
    values = dict(recency=0.0, frequency=1, importance=0.8, utility=0.5, novelty=1.0, confidence=0.9, interference=0.0)
    values.update(overrides)
    return MemoryFeatureVector(**values)


# ============================================================================
# Text similarity
# ============================================================================


def test_word_set_drops_short_words_and_casefolds():
    assert word_set("I am The Best at it") == {"the", "best"}


def test_jaccard_identical_and_disjoint():
    assert jaccard("Fix login Bug", "fix LOGIN bug") == 1.0
    assert jaccard("fix login bug", "deploy docker image") == 0.0


def test_jaccard_empty_inputs_are_zero():
    assert jaccard("", "anything here") == 0.0
    assert jaccard("a b c", "a b c") == 0.0  # every word too short


def test_jaccard_partial_overlap():
    # {database, connection, pool, timeout} shared, 6 words in union
    a = "database connection pool timeout increased"
    b = "database connection pool timeout reduced"
    assert jaccard(a, b) == pytest.approx(4 / 6)


def test_query_keywords_keep_order_and_duplicates():
    assert query_keywords("the bug in the auth bug") == ["the", "bug", "the", "auth", "bug"]


# ============================================================================
# Feature normalisation
# ============================================================================


def test_normalize_frequency_saturates_logarithmically():
    assert normalize_frequency(0) == 0.0
    assert normalize_frequency(1) == pytest.approx(math.log(2) / math.log(10))
    assert normalize_frequency(9) == pytest.approx(1.0)
    assert normalize_frequency(1000) == 1.0


def test_recency_factor_linear_over_one_week():
    assert recency_factor(0) == 1.0
    assert recency_factor(84) == pytest.approx(0.5)
    assert recency_factor(168) == 0.0
    assert recency_factor(10_000) == 0.0


# ============================================================================
# Strength
# ============================================================================


def test_score_intake_features_with_default_weights():
    scorer = FeatureScorer()
    expected = (
        0.20 * 1.0
        + 0.15 * (math.log(2) / math.log(10))
        + 0.25 * 0.8
        + 0.20 * 0.5
        + 0.10 * 1.0
        + 0.10 * 0.9
    )
    assert scorer.score(_features()) == pytest.approx(expected)


def test_score_is_clamped_to_unit_interval():
    high = FeatureScorer(ScoringWeights(**{k: 1.0 for k in ScoringWeights.model_fields}))
    low = FeatureScorer(ScoringWeights(**{k: -1.0 for k in ScoringWeights.model_fields}))
    features = _features(frequency=9, importance=1.0, utility=1.0, confidence=1.0, interference=1.0)

    assert high.score(features) == 1.0
    assert low.score(features) == 0.0


def test_score_stays_in_range_across_feature_grid():
    scorer = FeatureScorer()
    grid = [0.0, 0.5, 1.0]
    for importance, utility, novelty, confidence, interference in itertools.product(grid, repeat=5):
        for recency, frequency in [(0, 0), (24, 1), (500, 50)]:
            features = MemoryFeatureVector(recency, frequency, importance, utility, novelty, confidence, interference)
            assert 0.0 <= scorer.score(features) <= 1.0


def test_negative_interference_weight_lowers_strength():
    scorer = FeatureScorer()
    assert scorer.score(_features(interference=0.5)) < scorer.score(_features())


# ============================================================================
# Novelty and interference
# ============================================================================


def test_novelty_of_empty_corpus_is_one():
    assert FeatureScorer.novelty("user prefers tabs over spaces", []) == 1.0


def test_novelty_of_duplicate_is_zero():
    corpus = [_unit("user prefers tabs over spaces"), _unit("deploy with docker compose")]
    assert FeatureScorer.novelty("User prefers tabs over spaces", corpus) == pytest.approx(0.0)


def test_novelty_uses_closest_member():
    corpus = [_unit("database connection pool timeout increased")]
    assert FeatureScorer.novelty("database connection pool timeout reduced", corpus) == pytest.approx(1 - 4 / 6)


def test_interference_in_conflict_band():
    corpus = [_unit("database connection pool timeout increased")]
    interference = FeatureScorer.interference("database connection pool timeout reduced", corpus)
    assert interference == pytest.approx(4 / 6 * 0.5)


def test_interference_ignores_unrelated_and_duplicates():
    corpus = [_unit("database connection pool timeout increased"), _unit("deploy with docker compose")]
    assert FeatureScorer.interference("database connection pool timeout increased", corpus) == 0.0
    assert FeatureScorer.interference("render the settings page", corpus) == 0.0
    assert FeatureScorer.interference("anything", []) == 0.0


def test_dampen():
    assert FeatureScorer.dampen(0.8, 0.5) == pytest.approx(0.72)
    assert FeatureScorer.dampen(0.8, 0.0) == pytest.approx(0.8)
