"""Metric, signature and trait-set models."""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

TraitCategory = Literal["style", "tone", "structure", "semantic"]
Severity = Literal["low", "medium", "high"]


class StylometricMetrics(BaseModel):
    """Flat numeric feature vector of a corpus.

    Every field is a metric name; target thresholds use exactly these keys.
    """

    average_sentence_length: float = 0.0
    sentence_length_std_dev: float = 0.0
    average_word_length: float = 0.0
    vocabulary_diversity: float = 0.0
    tone_formal: float = 0.0
    tone_casual: float = 0.0
    tone_technical: float = 0.0
    tone_creative: float = 0.0
    passive_voice_ratio: float = 0.0
    complex_sentence_ratio: float = 0.0
    punctuation_period: float = 0.0
    punctuation_comma: float = 0.0
    punctuation_semicolon: float = 0.0
    punctuation_exclamation: float = 0.0
    cliche_ratio: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return self.model_dump()


class TextStats(BaseModel):
    """Basic counts used for intake validation and coverage."""
    word_count: int
    sentence_count: int
    paragraph_count: int
    character_count: int


class NGram(BaseModel):
    phrase: str
    frequency: int
    distinctiveness: float


class SemanticSignature(BaseModel):
    """Cross-sample thematic consistency, computed over all samples jointly."""

    centroid_vector: Optional[List[float]] = None
    semantic_cohesion: float = 0.0
    topic_diversity: float = 0.0
    distinctive_unigrams: List[NGram] = Field(default_factory=list)
    distinctive_bigrams: List[NGram] = Field(default_factory=list)
    distinctive_trigrams: List[NGram] = Field(default_factory=list)
    vocabulary_richness: float = 0.5
    conceptual_depth: float = 0.3
    writing_tempo: float = 0.5


class SignatureTrait(BaseModel):
    """A characteristic the writer reliably exhibits."""
    id: str
    name: str
    description: str
    strength: float
    category: TraitCategory


class Pitfall(BaseModel):
    """A risk pattern detected in the writer's samples."""
    id: str
    name: str
    description: str
    severity: Severity
    suggestion: str
    category: Literal["clarity", "engagement", "consistency", "formality"]


class ThresholdBand(BaseModel):
    """Acceptable range for one metric; ``target`` is the measured value."""
    min: float
    max: float
    target: float

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


class TraitSynthesis(BaseModel):
    """Output of the trait & threshold synthesizer."""
    signature_traits: List[SignatureTrait]
    pitfalls: List[Pitfall]
    target_thresholds: Dict[str, ThresholdBand]
    summary: str = ""


class TraitSet(BaseModel):
    """Versioned output of one computation cycle."""
    id: Optional[str] = None
    voiceprint_id: str
    version: int
    stylometric_metrics: StylometricMetrics
    semantic_signature: SemanticSignature
    signature_traits: List[SignatureTrait]
    pitfalls: List[Pitfall]
    target_thresholds: Dict[str, ThresholdBand]
    summary: str
    skipped_sample_ids: List[str] = Field(default_factory=list)
    sample_count: int = 0
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
