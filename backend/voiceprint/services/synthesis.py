"""Trait, pitfall and threshold synthesis.

``synthesize_traits`` is a pure function of one version's stylometric metrics
and semantic signature. Traits and pitfalls come from fixed reference bands
(``TRAIT_RULES`` / ``PITFALL_RULES``), so identical inputs always give
identical outputs.

Threshold tolerance policy, per metric value ``v``:

* ``average_sentence_length``: ``v ± max(k * sentence_length_std_dev, 2)``
  with ``k = deviation_multiplier`` (1.5 by default);
* other length metrics: ``v ± max(0.25 * v, 0.5)``;
* ratio metrics: ``v ± max(0.25 * v, 0.1)``;
* each tolerance is multiplied by ``1 + 0.5 * (1 - semantic_cohesion)``;
* bands are clamped to the metric's domain (``[0, 1]`` for ratios, ``>= 0``
  for lengths), so bands near the edges are asymmetric.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

from ..models.traits import (
    Pitfall,
    SemanticSignature,
    SignatureTrait,
    StylometricMetrics,
    ThresholdBand,
    TraitSynthesis,
)

LENGTH_METRICS = {"average_sentence_length", "sentence_length_std_dev", "average_word_length"}

TRANSITION_WORDS = {
    "however", "moreover", "furthermore", "additionally", "therefore",
    "consequently", "firstly", "secondly", "finally", "overall",
}

SEVERITY_ORDER = {"high": 3, "medium": 2, "low": 1}


class ThresholdPolicy(BaseModel):
    """Tolerance policy for target thresholds. Changing it changes every band."""
    deviation_multiplier: float = 1.5
    min_sentence_band: float = 2.0
    relative_tolerance: float = 0.25
    min_length_band: float = 0.5
    min_ratio_band: float = 0.1
    cohesion_widening: float = 0.5


@dataclass(frozen=True)
class TraitRule:
    id: str
    name: str
    description: str
    category: str
    applies: Callable[[StylometricMetrics, SemanticSignature], bool]
    strength: Callable[[StylometricMetrics, SemanticSignature], float]


@dataclass(frozen=True)
class PitfallRule:
    id: str
    name: str
    description: str
    suggestion: str
    category: str
    applies: Callable[[StylometricMetrics, SemanticSignature], bool]
    severity: Callable[[StylometricMetrics, SemanticSignature], str]


def _cap(value: float) -> float:
    return round(min(1.0, max(0.0, value)), 6)


def _has_sentences(m: StylometricMetrics) -> bool:
    return m.average_sentence_length > 0


def _repeated_transitions(s: SemanticSignature) -> bool:
    return any(
        g.phrase in TRANSITION_WORDS and g.frequency >= 3 for g in s.distinctive_unigrams
    )


def _distinctiveness(s: SemanticSignature) -> float:
    top = s.distinctive_unigrams[:5]
    return sum(g.distinctiveness for g in top) / 5 if top else 0.0


TRAIT_RULES: List[TraitRule] = [
    TraitRule(
        "rich_vocabulary", "Rich Vocabulary",
        "Uses a diverse range of words, avoiding repetition.",
        "style",
        lambda m, s: m.vocabulary_diversity > 0.7,
        lambda m, s: m.vocabulary_diversity,
    ),
    TraitRule(
        "short_declarative", "Short Declarative Sentences",
        "Frequent short declarative sentences that keep the prose direct.",
        "structure",
        lambda m, s: _has_sentences(m) and m.average_sentence_length < 10,
        lambda m, s: 1 - m.average_sentence_length / 20,
    ),
    TraitRule(
        "varied_rhythm", "Varied Rhythm",
        "Varies sentence length to create a dynamic prose rhythm.",
        "structure",
        lambda m, s: m.sentence_length_std_dev > 8,
        lambda m, s: m.sentence_length_std_dev / 12,
    ),
    TraitRule(
        "sophisticated_structure", "Sophisticated Structure",
        "Constructs multi-clause sentences that carry nuanced ideas.",
        "structure",
        lambda m, s: m.complex_sentence_ratio > 0.4,
        lambda m, s: m.complex_sentence_ratio / 0.6,
    ),
    TraitRule(
        "active_voice", "Active Voice",
        "Keeps subjects acting rather than being acted upon.",
        "style",
        lambda m, s: _has_sentences(m) and m.passive_voice_ratio < 0.1,
        lambda m, s: 1 - m.passive_voice_ratio * 5,
    ),
    TraitRule(
        "precise_diction", "Precise Diction",
        "Prefers longer, more exact words.",
        "style",
        lambda m, s: m.average_word_length > 5.5,
        lambda m, s: (m.average_word_length - 4) / 3,
    ),
    TraitRule(
        "formal_register", "Formal Register",
        "Writes in a measured, formal register.",
        "tone",
        lambda m, s: m.tone_formal >= 0.5,
        lambda m, s: m.tone_formal,
    ),
    TraitRule(
        "conversational_warmth", "Conversational Warmth",
        "Sounds like someone talking: contractions and everyday words.",
        "tone",
        lambda m, s: m.tone_casual >= 0.5,
        lambda m, s: m.tone_casual,
    ),
    TraitRule(
        "technical_precision", "Technical Precision",
        "Comfortable with domain vocabulary and figures.",
        "tone",
        lambda m, s: m.tone_technical >= 0.5,
        lambda m, s: m.tone_technical,
    ),
    TraitRule(
        "vivid_imagery", "Vivid Imagery",
        "Reaches for sensory, figurative language.",
        "tone",
        lambda m, s: m.tone_creative >= 0.5,
        lambda m, s: m.tone_creative,
    ),
    TraitRule(
        "thematic_consistency", "Thematic Consistency",
        "Maintains strong thematic coherence across pieces of writing.",
        "semantic",
        lambda m, s: s.semantic_cohesion > 0.7,
        lambda m, s: s.semantic_cohesion,
    ),
    TraitRule(
        "distinctive_voice", "Distinctive Voice",
        "Uses characteristic word choices that form a recognizable signature.",
        "semantic",
        lambda m, s: len(s.distinctive_unigrams) > 5,
        lambda m, s: _distinctiveness(s) / 3,
    ),
    TraitRule(
        "conceptual_depth", "Conceptual Depth",
        "Explores abstract ideas with rigor.",
        "semantic",
        lambda m, s: s.conceptual_depth > 0.4,
        lambda m, s: s.conceptual_depth / 0.6,
    ),
]

PITFALL_RULES: List[PitfallRule] = [
    PitfallRule(
        "limited_vocabulary", "Limited vocabulary range",
        "Reuses the same words frequently, which can flatten engagement.",
        "Expand word choice with synonyms and varied expressions.",
        "engagement",
        lambda m, s: _has_sentences(m) and m.vocabulary_diversity < 0.4,
        lambda m, s: "high" if m.vocabulary_diversity < 0.3 else "medium",
    ),
    PitfallRule(
        "long_sentences", "Overlong sentences",
        "Sentences may be too long for comfortable reading.",
        "Break longer sentences into shorter chunks.",
        "clarity",
        lambda m, s: m.average_sentence_length > 25,
        lambda m, s: "high" if m.average_sentence_length > 30 else "medium",
    ),
    PitfallRule(
        "choppy_rhythm", "Choppy rhythm",
        "Very short sentences can read as abrupt and disconnected.",
        "Combine related ideas into longer, flowing sentences.",
        "engagement",
        lambda m, s: _has_sentences(m) and m.average_sentence_length < 8,
        lambda m, s: "medium" if m.average_sentence_length >= 5 else "high",
    ),
    PitfallRule(
        "monotonous_structure", "Monotonous structure",
        "Little variation in sentence length makes prose predictable.",
        "Vary sentence length to create a more dynamic rhythm.",
        "engagement",
        lambda m, s: _has_sentences(m) and m.sentence_length_std_dev < 2,
        lambda m, s: "low",
    ),
    PitfallRule(
        "overly_formal", "Overly formal",
        "A very formal tone may distance readers.",
        "Add conversational elements to increase relatability.",
        "formality",
        lambda m, s: m.tone_formal > 0.8,
        lambda m, s: "medium",
    ),
    PitfallRule(
        "too_casual", "Too casual",
        "An informal tone may undermine credibility in professional contexts.",
        "Add more formal vocabulary and structured expressions.",
        "formality",
        lambda m, s: m.tone_casual > 0.8,
        lambda m, s: "medium",
    ),
    PitfallRule(
        "cliche_usage", "Cliche usage",
        "Common stock phrases reduce originality.",
        "Replace overused expressions with fresh language.",
        "engagement",
        lambda m, s: m.cliche_ratio > 0.02,
        lambda m, s: "high" if m.cliche_ratio > 0.05 else "low",
    ),
    PitfallRule(
        "predictable_transitions", "Predictable transition phrases",
        "The same transition words open sentence after sentence.",
        "Let ideas connect through content instead of stock connectives.",
        "engagement",
        lambda m, s: _repeated_transitions(s),
        lambda m, s: "medium",
    ),
    PitfallRule(
        "inconsistent_themes", "Inconsistent themes",
        "Ideas lack a cohesive connection across samples.",
        "Strengthen thematic links between pieces.",
        "consistency",
        lambda m, s: s.centroid_vector is not None and s.semantic_cohesion < 0.4,
        lambda m, s: "high" if s.semantic_cohesion < 0.2 else "medium",
    ),
    PitfallRule(
        "passive_voice_overuse", "Passive voice overuse",
        "Frequent passive constructions weaken impact and clarity.",
        "Convert passive constructions to active voice.",
        "clarity",
        lambda m, s: m.passive_voice_ratio > 0.3,
        lambda m, s: "high" if m.passive_voice_ratio > 0.5 else "medium",
    ),
    PitfallRule(
        "exclamation_overuse", "Exclamation overuse",
        "Exclamation marks carry a large share of the punctuation.",
        "Let word choice carry emphasis instead of punctuation.",
        "engagement",
        lambda m, s: m.punctuation_exclamation > 0.3,
        lambda m, s: "low",
    ),
]


def identify_signature_traits(
    metrics: StylometricMetrics, signature: SemanticSignature
) -> List[SignatureTrait]:
    traits = [
        SignatureTrait(
            id=rule.id,
            name=rule.name,
            description=rule.description,
            strength=_cap(rule.strength(metrics, signature)),
            category=rule.category,
        )
        for rule in TRAIT_RULES
        if rule.applies(metrics, signature)
    ]
    return sorted(traits, key=lambda t: (-t.strength, t.id))


def identify_pitfalls(
    metrics: StylometricMetrics, signature: SemanticSignature
) -> List[Pitfall]:
    pitfalls = [
        Pitfall(
            id=rule.id,
            name=rule.name,
            description=rule.description,
            severity=rule.severity(metrics, signature),
            suggestion=rule.suggestion,
            category=rule.category,
        )
        for rule in PITFALL_RULES
        if rule.applies(metrics, signature)
    ]
    return sorted(pitfalls, key=lambda p: (-SEVERITY_ORDER[p.severity], p.id))


def calculate_target_thresholds(
    metrics: StylometricMetrics,
    signature: SemanticSignature,
    policy: Optional[ThresholdPolicy] = None,
) -> Dict[str, ThresholdBand]:
    """One band per metric key, derived only from this version's inputs."""
    policy = policy or ThresholdPolicy()
    widen = 1 + policy.cohesion_widening * (1 - signature.semantic_cohesion)
    values = metrics.as_dict()

    thresholds: Dict[str, ThresholdBand] = {}
    for name, value in values.items():
        if name == "average_sentence_length":
            tolerance = max(
                policy.deviation_multiplier * metrics.sentence_length_std_dev,
                policy.min_sentence_band,
            )
        elif name in LENGTH_METRICS:
            tolerance = max(policy.relative_tolerance * value, policy.min_length_band)
        else:
            tolerance = max(policy.relative_tolerance * value, policy.min_ratio_band)
        tolerance *= widen

        upper = value + tolerance
        if name not in LENGTH_METRICS:
            upper = min(1.0, upper)
        thresholds[name] = ThresholdBand(
            min=round(max(0.0, value - tolerance), 6),
            max=round(upper, 6),
            target=value,
        )
    return thresholds


def generate_summary(synthesis: TraitSynthesis) -> str:
    """One display sentence from the top two traits and the top pitfall."""
    top_traits = [t.name.lower() for t in synthesis.signature_traits[:2]]
    if len(top_traits) > 1:
        trait_text = f"{top_traits[0]} and {top_traits[1]}"
    elif top_traits:
        trait_text = top_traits[0]
    else:
        trait_text = "a developing writing style"

    if synthesis.pitfalls:
        pitfall_text = synthesis.pitfalls[0].name.lower()
    else:
        pitfall_text = "minor areas for improvement"

    return (
        f"A distinctive writing voice characterized by {trait_text}, "
        f"with opportunities to address {pitfall_text}."
    )


def synthesize_traits(
    metrics: StylometricMetrics,
    signature: SemanticSignature,
    policy: Optional[ThresholdPolicy] = None,
) -> TraitSynthesis:
    """Traits, pitfalls, thresholds and summary for one computation cycle."""
    synthesis = TraitSynthesis(
        signature_traits=identify_signature_traits(metrics, signature),
        pitfalls=identify_pitfalls(metrics, signature),
        target_thresholds=calculate_target_thresholds(metrics, signature, policy),
    )
    synthesis.summary = generate_summary(synthesis)
    return synthesis
