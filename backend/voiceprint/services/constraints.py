"""Rewrite gating against a fingerprint's thresholds and locks."""

from typing import Dict, List, Tuple

from ..models.fingerprint import EffectiveConstraints, Lock, RewriteCheck
from ..models.traits import StylometricMetrics, ThresholdBand, TraitSet

# Lock category governing each metric
METRIC_CATEGORIES: Dict[str, str] = {
    "average_sentence_length": "structure",
    "sentence_length_std_dev": "structure",
    "complex_sentence_ratio": "structure",
    "tone_formal": "tone",
    "tone_casual": "tone",
    "tone_technical": "tone",
    "tone_creative": "tone",
    "average_word_length": "style",
    "vocabulary_diversity": "style",
    "passive_voice_ratio": "style",
    "punctuation_period": "style",
    "punctuation_comma": "style",
    "punctuation_semicolon": "style",
    "punctuation_exclamation": "style",
    "cliche_ratio": "style",
}


def score_against_thresholds(
    metrics: StylometricMetrics, thresholds: Dict[str, ThresholdBand]
) -> Tuple[float, List[str]]:
    """Share of in-band metrics (0-100) and the sorted out-of-band names."""
    values = metrics.as_dict()
    violations = sorted(
        name for name, band in thresholds.items()
        if name in values and not band.contains(values[name])
    )
    if not thresholds:
        return 100.0, []
    score = 100.0 * (len(thresholds) - len(violations)) / len(thresholds)
    return round(score, 2), violations


def resolve_locks(locks: Dict[str, bool], traits: TraitSet) -> List[Lock]:
    """Attach the latest trait set's trait ids to each lock category."""
    resolved = []
    for category in ("style", "tone", "structure"):
        trait_ids = [t.id for t in traits.signature_traits if t.category == category]
        resolved.append(
            Lock(category=category, enabled=locks.get(category, False), trait_ids=trait_ids)
        )
    return resolved


def check_rewrite(metrics: StylometricMetrics, constraints: EffectiveConstraints) -> RewriteCheck:
    """Reject rewrites that break a locked category; penalize other drift."""
    score, violations = score_against_thresholds(metrics, constraints.target_thresholds)
    locked = {lock.category for lock in constraints.locks if lock.enabled}
    locked_violations = [v for v in violations if METRIC_CATEGORIES.get(v) in locked]

    if locked_violations:
        verdict = "rejected"
    elif violations:
        verdict = "penalized"
    else:
        verdict = "accepted"

    return RewriteCheck(
        verdict=verdict,
        score=score,
        violations=violations,
        locked_violations=locked_violations,
        version=constraints.version,
    )
