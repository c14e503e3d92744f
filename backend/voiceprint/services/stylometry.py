"""Stylometric feature extraction.

Pure functions over raw text: no I/O, no randomness, so the same corpus always
produces bit-identical metrics.
"""

import math
import re
from typing import Iterable, List, Union

from ..models.traits import StylometricMetrics, TextStats

MIN_CORPUS_TOKENS = 20

# Marker vocabularies for the four tone axes
FORMAL_WORDS = {
    "therefore", "consequently", "furthermore", "moreover", "nevertheless",
    "subsequently", "accordingly", "thus", "hence", "whereas", "wherein",
    "utilize", "demonstrate", "indicate", "establish", "maintain", "acquire",
    "indeed", "shall", "ought", "propose", "ascertain", "determine",
    "certainly", "undoubtedly", "respectfully", "precisely", "nonetheless",
}

INFORMAL_WORDS = {
    "yeah", "okay", "stuff", "things", "guys", "gonna", "wanna", "gotta",
    "kinda", "sorta", "really", "pretty", "super", "awesome", "cool",
    "yo", "dude", "nah", "yep", "yup", "whatever", "chill", "totally",
    "lemme", "gimme", "ugh", "whoa", "omg", "lol", "dunno", "hey",
}

TECHNICAL_WORDS = {
    "system", "data", "algorithm", "function", "process", "implementation",
    "analysis", "parameter", "configuration", "protocol", "interface",
    "metric", "model", "api", "database", "server", "network", "software",
    "hardware", "framework", "architecture", "latency", "throughput",
    "deploy", "module", "variable", "query", "cache", "compute", "schema",
}

CREATIVE_WORDS = {
    "imagine", "dream", "whisper", "shimmer", "soul", "heart", "wild",
    "silence", "shadow", "light", "story", "wonder", "magic", "breath",
    "glow", "ocean", "storm", "moon", "stars", "echo", "velvet", "ember",
    "haunting", "luminous", "tender", "ache", "bloom", "drift", "fierce",
}

CLICHES = [
    "at the end of the day",
    "think outside the box",
    "low hanging fruit",
    "game changer",
    "moving forward",
    "circle back",
    "touch base",
    "best practices",
    "leverage",
    "synergy",
]

CONTRACTIONS_RE = re.compile(
    r"\b(?:don't|can't|won't|isn't|aren't|wasn't|weren't|hasn't|haven't|"
    r"doesn't|didn't|couldn't|shouldn't|wouldn't|i'm|i'll|i've|i'd|"
    r"you're|you'll|you've|he's|she's|it's|we're|we'll|they're|they'll)\b",
    re.IGNORECASE,
)
PASSIVE_RE = re.compile(r"\b(?:is|are|was|were|been|being)\s+\w+(?:ed|en)\b", re.IGNORECASE)
CONJUNCTION_RE = re.compile(
    r"\b(?:and|but|or|because|since|although|while|if|when)\b", re.IGNORECASE
)
CLICHE_RES = [re.compile(r"\b" + re.escape(c) + r"\b") for c in CLICHES]
SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
NON_WORD_RE = re.compile(r"[^\w\s'-]")

PUNCTUATION_MARKS = {
    "punctuation_period": ".",
    "punctuation_comma": ",",
    "punctuation_semicolon": ";",
    "punctuation_exclamation": "!",
}

# Marker density at which a tone weight saturates: 10 % of tokens -> 1.0
TONE_SCALE = 10.0


class _InsufficientData:
    """Sentinel returned when a corpus is too small to measure."""

    __slots__ = ()

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "INSUFFICIENT_DATA"


INSUFFICIENT_DATA = _InsufficientData()


def tokenize_words(text: str) -> List[str]:
    """Lower-cased word tokens; apostrophes and hyphens stay inside words."""
    return NON_WORD_RE.sub(" ", text.lower()).split()


def tokenize_sentences(text: str) -> List[str]:
    """Split on runs of terminal punctuation, dropping empty fragments."""
    return [s.strip() for s in SENTENCE_SPLIT_RE.split(text) if s.strip()]


def get_basic_stats(text: str) -> TextStats:
    clean = text.strip()
    paragraphs = [p for p in re.split(r"\n\s*\n", clean) if p.strip()]
    return TextStats(
        word_count=len(tokenize_words(clean)),
        sentence_count=len(tokenize_sentences(clean)),
        paragraph_count=len(paragraphs),
        character_count=len(clean),
    )


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(high, max(low, value))


def _ratio(part: int, whole: int) -> float:
    return part / whole if whole else 0.0


def _tone_weight(hits: int, total: int) -> float:
    return _clamp(_ratio(hits, total) * TONE_SCALE)


def _sentence_length_std_dev(sentences: List[str]) -> float:
    if len(sentences) <= 1:
        return 0.0
    lengths = [len(tokenize_words(s)) for s in sentences]
    mean = sum(lengths) / len(lengths)
    variance = sum((n - mean) ** 2 for n in lengths) / len(lengths)
    return math.sqrt(variance)


def _is_complex(sentence: str) -> bool:
    return bool(CONJUNCTION_RE.search(sentence)) or sentence.count(",") > 1


def _punctuation_distribution(text: str) -> dict:
    counts = {name: text.count(mark) for name, mark in PUNCTUATION_MARKS.items()}
    total = sum(counts.values())
    return {name: _ratio(count, total) for name, count in counts.items()}


def analyze_text(text: str) -> StylometricMetrics:
    """Measure any text, however short. Empty text yields all-zero metrics."""
    words = tokenize_words(text)
    sentences = tokenize_sentences(text)
    total = len(words)

    technical_hits = sum(
        1 for w in words if w in TECHNICAL_WORDS or any(ch.isdigit() for ch in w)
    )
    casual_hits = sum(1 for w in words if w in INFORMAL_WORDS)
    casual_hits += len(CONTRACTIONS_RE.findall(text))
    lowered = text.lower()
    cliche_hits = sum(len(rx.findall(lowered)) for rx in CLICHE_RES)

    values = {
        "average_sentence_length": _ratio(total, len(sentences)),
        "sentence_length_std_dev": _sentence_length_std_dev(sentences),
        "average_word_length": _ratio(sum(len(w) for w in words), total),
        "vocabulary_diversity": _clamp(_ratio(len(set(words)), total)),
        "tone_formal": _tone_weight(sum(1 for w in words if w in FORMAL_WORDS), total),
        "tone_casual": _tone_weight(casual_hits, total),
        "tone_technical": _tone_weight(technical_hits, total),
        "tone_creative": _tone_weight(sum(1 for w in words if w in CREATIVE_WORDS), total),
        "passive_voice_ratio": _ratio(sum(1 for s in sentences if PASSIVE_RE.search(s)), len(sentences)),
        "complex_sentence_ratio": _ratio(sum(1 for s in sentences if _is_complex(s)), len(sentences)),
        "cliche_ratio": _clamp(_ratio(cliche_hits, total)),
    }
    values.update(_punctuation_distribution(text))
    return StylometricMetrics(**{k: round(v, 6) for k, v in values.items()})


def extract_stylometric_features(
    text: str, min_tokens: int = MIN_CORPUS_TOKENS
) -> Union[StylometricMetrics, _InsufficientData]:
    """Metrics for a corpus, or ``INSUFFICIENT_DATA`` below ``min_tokens`` tokens."""
    if len(tokenize_words(text)) < min_tokens:
        return INSUFFICIENT_DATA
    return analyze_text(text)


def combine_samples(texts: Iterable[str]) -> str:
    """Join sample texts into one corpus independent of submission order."""
    return "\n\n".join(sorted(t.strip() for t in texts))
