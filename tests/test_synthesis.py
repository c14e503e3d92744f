"""
Tests for trait, pitfall and threshold synthesis.

- Threshold keys are exactly the metric keys
- Short, simple sentences with a varied vocabulary give a short-sentence trait
  and no limited-vocabulary pitfall
- Bands follow the documented tolerance policy
"""

import pytest

from backend.voiceprint.models.traits import NGram, StylometricMetrics
from backend.voiceprint.services.semantic import DEFAULT_SEMANTIC_SIGNATURE
from backend.voiceprint.services.stylometry import analyze_text
from backend.voiceprint.services.synthesis import (
    ThresholdPolicy,
    calculate_target_thresholds,
    identify_pitfalls,
    identify_signature_traits,
    synthesize_traits,
)


def _signature(**overrides):
    return DEFAULT_SEMANTIC_SIGNATURE.model_copy(update=overrides, deep=True)


def test_threshold_keys_match_metric_keys(sample_texts):
    metrics = analyze_text(" ".join(sample_texts))
    synthesis = synthesize_traits(metrics, _signature())
    assert set(synthesis.target_thresholds) == set(metrics.as_dict())


def test_short_sentences_with_varied_vocabulary():
    metrics = StylometricMetrics(
        average_sentence_length=6,
        sentence_length_std_dev=1.5,
        average_word_length=4.2,
        vocabulary_diversity=0.85,
        complex_sentence_ratio=0.1,
        punctuation_period=1.0,
    )
    synthesis = synthesize_traits(metrics, _signature())

    trait_ids = [t.id for t in synthesis.signature_traits]
    pitfall_names = [p.name.lower() for p in synthesis.pitfalls]
    assert "short_declarative" in trait_ids
    assert "limited vocabulary range" not in pitfall_names


def test_low_diversity_is_a_pitfall():
    metrics = StylometricMetrics(average_sentence_length=14, vocabulary_diversity=0.25)
    pitfalls = identify_pitfalls(metrics, _signature())
    limited = [p for p in pitfalls if p.id == "limited_vocabulary"]
    assert limited and limited[0].severity == "high"


def test_no_sentences_means_no_sentence_rules():
    synthesis = synthesize_traits(StylometricMetrics(), _signature())
    ids = {t.id for t in synthesis.signature_traits} | {p.id for p in synthesis.pitfalls}
    assert "short_declarative" not in ids
    assert "choppy_rhythm" not in ids
    assert "limited_vocabulary" not in ids


def test_default_signature_skips_theme_pitfall():
    metrics = StylometricMetrics(average_sentence_length=14, vocabulary_diversity=0.6)
    assert "inconsistent_themes" not in {p.id for p in identify_pitfalls(metrics, _signature())}

    scattered = _signature(centroid_vector=[0.5] * 10, semantic_cohesion=0.1)
    themes = [p for p in identify_pitfalls(metrics, scattered) if p.id == "inconsistent_themes"]
    assert themes and themes[0].severity == "high"


def test_semantic_traits():
    signature = _signature(
        centroid_vector=[0.5] * 10,
        semantic_cohesion=0.9,
        distinctive_unigrams=[NGram(phrase=f"w{i}", frequency=4, distinctiveness=2.0) for i in range(6)],
    )
    traits = {t.id: t for t in identify_signature_traits(StylometricMetrics(), signature)}
    assert traits["thematic_consistency"].strength == 0.9
    assert "distinctive_voice" in traits


def test_traits_sorted_by_strength():
    metrics = StylometricMetrics(
        average_sentence_length=6,
        vocabulary_diversity=0.75,
        tone_creative=0.95,
    )
    strengths = [t.strength for t in identify_signature_traits(metrics, _signature())]
    assert strengths == sorted(strengths, reverse=True)


def test_sentence_length_band_uses_deviation():
    metrics = StylometricMetrics(average_sentence_length=12, sentence_length_std_dev=4)
    bands = calculate_target_thresholds(metrics, _signature(semantic_cohesion=1.0))
    band = bands["average_sentence_length"]
    assert band.min == pytest.approx(6.0)
    assert band.max == pytest.approx(18.0)
    assert band.target == 12


def test_sentence_length_band_has_floor():
    metrics = StylometricMetrics(average_sentence_length=12, sentence_length_std_dev=0.5)
    band = calculate_target_thresholds(metrics, _signature(semantic_cohesion=1.0))["average_sentence_length"]
    assert band.min == pytest.approx(10.0)
    assert band.max == pytest.approx(14.0)


def test_low_cohesion_widens_bands():
    metrics = StylometricMetrics(average_sentence_length=12, sentence_length_std_dev=4)
    tight = calculate_target_thresholds(metrics, _signature(semantic_cohesion=1.0))
    loose = calculate_target_thresholds(metrics, _signature(semantic_cohesion=0.0))
    assert loose["average_sentence_length"].max == pytest.approx(21.0)
    assert loose["average_sentence_length"].max > tight["average_sentence_length"].max


def test_ratio_bands_clamped_to_unit_interval():
    metrics = StylometricMetrics(vocabulary_diversity=0.98, passive_voice_ratio=0.0)
    bands = calculate_target_thresholds(metrics, _signature(semantic_cohesion=1.0))
    assert bands["vocabulary_diversity"].max == 1.0
    assert bands["passive_voice_ratio"].min == 0.0
    assert bands["passive_voice_ratio"].max == pytest.approx(0.1)


def test_policy_is_configurable():
    metrics = StylometricMetrics(average_sentence_length=12, sentence_length_std_dev=4)
    bands = calculate_target_thresholds(
        metrics, _signature(semantic_cohesion=1.0), ThresholdPolicy(deviation_multiplier=1.0)
    )
    assert bands["average_sentence_length"].max == pytest.approx(16.0)


def test_synthesis_is_deterministic(sample_texts):
    metrics = analyze_text(" ".join(sample_texts))
    assert synthesize_traits(metrics, _signature()) == synthesize_traits(metrics, _signature())


def test_summary_mentions_top_trait():
    metrics = StylometricMetrics(average_sentence_length=6, vocabulary_diversity=0.9)
    synthesis = synthesize_traits(metrics, _signature())
    assert synthesis.summary.startswith("A distinctive writing voice characterized by")
    assert synthesis.signature_traits[0].name.lower() in synthesis.summary
