"""Semantic signature extraction across a fingerprint's samples.

Sample boundaries matter here: each sample is scored separately by a
text-understanding service and the signature describes how consistent those
scores are across samples. The service may time out, refuse, or return junk
for some samples; the extractor records those as skipped and builds the best
signature it can from the rest. With nothing usable it returns
``DEFAULT_SEMANTIC_SIGNATURE``.
"""

import asyncio
import json
import math
import re
from collections import Counter
from typing import Dict, List, Literal, Optional, Protocol, Sequence, Tuple

import anthropic
from pydantic import BaseModel, Field

from ..errors import SemanticServiceError
from ..log import get_logger
from ..models.traits import NGram, SemanticSignature

logger = get_logger(__name__)

DIMENSIONS = [
    "length_complexity",
    "formality",
    "creativity",
    "technical_depth",
    "emotional_tone",
    "clarity",
    "persuasiveness",
    "narrative_style",
    "analytical_thinking",
    "personal_voice",
]

DEFAULT_SEMANTIC_SIGNATURE = SemanticSignature(
    centroid_vector=None,
    semantic_cohesion=0.0,
    topic_diversity=0.0,
    distinctive_unigrams=[],
    distinctive_bigrams=[],
    distinctive_trigrams=[],
    vocabulary_richness=0.5,
    conceptual_depth=0.3,
    writing_tempo=0.5,
)

# Errors that consume the retry budget instead of failing the computation
RETRYABLE_ERRORS = (asyncio.TimeoutError, ConnectionError, SemanticServiceError)


class SemanticClient(Protocol):
    """A text-understanding service scoring texts on ``DIMENSIONS``."""

    async def embed_batch(self, texts: List[str]) -> List[Optional[List[float]]]:
        """One vector (or None) per input text, in order."""
        ...


class SemanticResult(BaseModel):
    """Signature plus the bookkeeping of which samples contributed."""
    signature: SemanticSignature
    processed_sample_ids: List[str] = Field(default_factory=list)
    skipped_sample_ids: List[str] = Field(default_factory=list)
    source: Literal["service", "default"] = "service"


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------

FORMAL_MARKERS = ["however", "therefore", "consequently", "furthermore", "moreover"]
INFORMAL_MARKERS = ["yeah", "okay", "stuff", "things", "really"]
CREATIVE_MARKERS = ["imagine", "creativity", "innovative", "unique", "original", "artistic"]
EMOTIONAL_WORDS = {"feel", "love", "hate", "excited", "sad", "happy", "angry", "surprised"}
PERSUASIVE_MARKERS = ["should", "must", "need to", "important", "crucial", "essential"]
NARRATIVE_MARKERS = ["then", "next", "after", "before", "when", "while", "during"]
ANALYTICAL_MARKERS = ["analysis", "because", "therefore", "result", "conclusion", "evidence"]
PERSONAL_MARKERS = ["i", "my", "me", "personally", "in my opinion", "i believe"]
ABSTRACT_WORDS = ["concept", "idea", "theory", "principle", "philosophy", "meaning"]


def _marker_hits(text: str, markers: Sequence[str]) -> int:
    return sum(1 for m in markers if re.search(r"\b" + re.escape(m) + r"\b", text))


def heuristic_embedding(text: str) -> List[float]:
    """Ten-dimension embedding built from marker words, in ``DIMENSIONS`` order."""
    lowered = text.lower()
    words = lowered.split()
    sentences = [s for s in re.split(r"[.!?]+", text) if s.strip()]
    n_words = max(1, len(words))

    formal = _marker_hits(lowered, FORMAL_MARKERS)
    informal = _marker_hits(lowered, INFORMAL_MARKERS)
    formality = formal / (formal + informal) if formal + informal else 0.5

    technical = sum(1 for w in text.split() if len(w) > 8 or re.fullmatch(r"[A-Z]{2,}", w))
    emotional = sum(1 for w in words if w.strip(".,!?;:") in EMOTIONAL_WORDS)

    if sentences:
        avg_len = sum(len(s.split()) for s in sentences) / len(sentences)
        clarity = max(0.0, min(1.0, 1 - (avg_len - 15) / 30))
    else:
        clarity = 0.0

    return [
        min(len(words) / 100, 1.0),
        formality,
        min(_marker_hits(lowered, CREATIVE_MARKERS) / 10, 1.0),
        min(technical / n_words * 5, 1.0),
        min(emotional / n_words * 10, 1.0),
        clarity,
        min(_marker_hits(lowered, PERSUASIVE_MARKERS) / 5, 1.0),
        min(_marker_hits(lowered, NARRATIVE_MARKERS) / 5, 1.0),
        min(_marker_hits(lowered, ANALYTICAL_MARKERS) / 5, 1.0),
        min(_marker_hits(lowered, PERSONAL_MARKERS) / 10, 1.0),
    ]


class HeuristicSemanticClient:
    """Local stand-in used when no text-understanding service is configured."""

    async def embed_batch(self, texts: List[str]) -> List[Optional[List[float]]]:
        return [heuristic_embedding(t) for t in texts]


SCORING_PROMPT = """Score each of the {count} writing samples below on these dimensions, \
each a number between 0 and 1: {dimensions}.

Respond with only a JSON array containing one object per sample, in order, \
mapping every dimension name to its score.

{samples}"""


class AnthropicSemanticClient:
    """Scores samples with Claude; one request per batch."""

    def __init__(self, api_key: str, model: str, max_tokens: int = 2048):
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens

    def _build_prompt(self, texts: List[str]) -> str:
        samples = "\n\n".join(
            f"<sample index=\"{i}\">\n{text}\n</sample>" for i, text in enumerate(texts)
        )
        return SCORING_PROMPT.format(
            count=len(texts), dimensions=", ".join(DIMENSIONS), samples=samples
        )

    def _parse(self, content: str, expected: int) -> List[Optional[List[float]]]:
        start, end = content.find("["), content.rfind("]")
        if start == -1 or end <= start:
            raise SemanticServiceError("Response did not contain a JSON array")
        try:
            items = json.loads(content[start:end + 1])
        except json.JSONDecodeError as e:
            raise SemanticServiceError(f"Malformed JSON in response: {e}") from e
        if not isinstance(items, list) or len(items) != expected:
            raise SemanticServiceError(
                f"Expected {expected} scored samples, got {len(items) if isinstance(items, list) else 'none'}"
            )

        vectors: List[Optional[List[float]]] = []
        for item in items:
            if isinstance(item, dict) and all(d in item for d in DIMENSIONS):
                try:
                    vectors.append([float(item[d]) for d in DIMENSIONS])
                except (TypeError, ValueError):
                    vectors.append(None)
            else:
                vectors.append(None)
        return vectors

    async def embed_batch(self, texts: List[str]) -> List[Optional[List[float]]]:
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": self._build_prompt(texts)}],
            )
        except anthropic.APIError as e:
            raise SemanticServiceError(str(e)) from e

        content = "".join(block.text for block in response.content if block.type == "text")
        return self._parse(content, len(texts))


# ---------------------------------------------------------------------------
# Signature math
# ---------------------------------------------------------------------------

def _euclidean(a: List[float], b: List[float]) -> float:
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))


def calculate_centroid(vectors: List[List[float]]) -> List[float]:
    dims = len(vectors[0])
    return [sum(v[i] for v in vectors) / len(vectors) for i in range(dims)]


def calculate_cohesion(vectors: List[List[float]]) -> float:
    """1 minus the mean distance to the centroid, normalised by sqrt(dims)."""
    if len(vectors) < 2:
        return 0.0
    centroid = calculate_centroid(vectors)
    mean_distance = sum(_euclidean(v, centroid) for v in vectors) / len(vectors)
    return max(0.0, min(1.0, 1 - mean_distance / math.sqrt(len(centroid))))


def calculate_topic_diversity(vectors: List[List[float]]) -> float:
    """Mean pairwise distance between sample vectors."""
    pairs = [
        _euclidean(vectors[i], vectors[j])
        for i in range(len(vectors))
        for j in range(i + 1, len(vectors))
    ]
    return sum(pairs) / len(pairs) if pairs else 0.0


def _top_ngrams(counts: Counter, limit: int) -> List[NGram]:
    scored = [
        NGram(
            phrase=phrase,
            frequency=freq,
            distinctiveness=round(math.log(freq + 1) + len(phrase.split()) * 0.1, 6),
        )
        for phrase, freq in counts.items()
    ]
    scored.sort(key=lambda g: (-g.distinctiveness, g.phrase))
    return scored[:limit]


def extract_distinctive_ngrams(texts: List[str]) -> Dict[str, List[NGram]]:
    unigrams: Counter = Counter()
    bigrams: Counter = Counter()
    trigrams: Counter = Counter()
    for text in texts:
        words = [w for w in re.sub(r"[^\w\s]", " ", text.lower()).split() if len(w) > 2]
        unigrams.update(words)
        bigrams.update(" ".join(words[i:i + 2]) for i in range(len(words) - 1))
        trigrams.update(" ".join(words[i:i + 3]) for i in range(len(words) - 2))
    return {
        "unigrams": _top_ngrams(unigrams, 10),
        "bigrams": _top_ngrams(bigrams, 5),
        "trigrams": _top_ngrams(trigrams, 3),
    }


def _vocabulary_richness(text: str) -> float:
    words = text.lower().split()
    return len(set(words)) / len(words) if words else 0.0


def _conceptual_depth(text: str) -> float:
    return min(_marker_hits(text.lower(), ABSTRACT_WORDS) / 3, 1.0)


def _writing_tempo(text: str) -> float:
    sentences = [s for s in re.split(r"[.!?]+", text) if s.strip()]
    if not sentences:
        return 0.5
    avg_len = sum(len(s.split()) for s in sentences) / len(sentences)
    return max(0.0, min(1.0, 0.5 + (15 - avg_len) / 30))


def build_signature(texts: List[str], vectors: List[List[float]]) -> SemanticSignature:
    """Signature over the successfully processed samples only."""
    combined = " ".join(texts)
    ngrams = extract_distinctive_ngrams(texts)
    return SemanticSignature(
        centroid_vector=[round(x, 6) for x in calculate_centroid(vectors)],
        semantic_cohesion=round(calculate_cohesion(vectors), 6),
        topic_diversity=round(calculate_topic_diversity(vectors), 6),
        distinctive_unigrams=ngrams["unigrams"],
        distinctive_bigrams=ngrams["bigrams"],
        distinctive_trigrams=ngrams["trigrams"],
        vocabulary_richness=round(_vocabulary_richness(combined), 6),
        conceptual_depth=round(_conceptual_depth(combined), 6),
        writing_tempo=round(_writing_tempo(combined), 6),
    )


def is_valid_vector(vector: Optional[List[float]]) -> bool:
    if not isinstance(vector, list) or len(vector) != len(DIMENSIONS):
        return False
    return all(
        isinstance(x, (int, float)) and math.isfinite(x) and 0.0 <= x <= 1.0
        for x in vector
    )


class SemanticSignatureExtractor:
    """Batches samples through a ``SemanticClient`` within a bounded budget."""

    def __init__(
        self,
        client: SemanticClient,
        timeout_seconds: float = 20.0,
        max_retries: int = 1,
        batch_size: int = 5,
    ):
        self.client = client
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.batch_size = max(1, batch_size)

    async def _embed_with_budget(self, texts: List[str]) -> Optional[List[Optional[List[float]]]]:
        """Call the service with a timeout per attempt; None once the budget is spent."""
        for attempt in range(self.max_retries + 1):
            try:
                return await asyncio.wait_for(
                    self.client.embed_batch(texts), timeout=self.timeout_seconds
                )
            except RETRYABLE_ERRORS as e:
                logger.warning(
                    "semantic_batch_attempt_failed",
                    attempt=attempt + 1,
                    max_attempts=self.max_retries + 1,
                    batch_size=len(texts),
                    error=str(e) or type(e).__name__,
                )
        return None

    async def extract(self, samples: Sequence[Tuple[str, str]]) -> SemanticResult:
        """Build a signature from ``(sample_id, text)`` pairs."""
        batches = [
            list(samples[i:i + self.batch_size])
            for i in range(0, len(samples), self.batch_size)
        ]
        responses = await asyncio.gather(
            *(self._embed_with_budget([text for _, text in batch]) for batch in batches)
        )

        processed: List[Tuple[str, str, List[float]]] = []
        skipped: List[str] = []
        for batch, vectors in zip(batches, responses):
            if vectors is None or len(vectors) != len(batch):
                skipped.extend(sample_id for sample_id, _ in batch)
                continue
            for (sample_id, text), vector in zip(batch, vectors):
                if is_valid_vector(vector):
                    processed.append((sample_id, text, [float(x) for x in vector]))
                else:
                    skipped.append(sample_id)

        if skipped:
            logger.warning(
                "semantic_samples_skipped",
                skipped=len(skipped),
                total=len(samples),
            )

        if not processed:
            return SemanticResult(
                signature=DEFAULT_SEMANTIC_SIGNATURE.model_copy(deep=True),
                processed_sample_ids=[],
                skipped_sample_ids=skipped,
                source="default",
            )

        signature = build_signature(
            [text for _, text, _ in processed], [vector for _, _, vector in processed]
        )
        return SemanticResult(
            signature=signature,
            processed_sample_ids=[sample_id for sample_id, _, _ in processed],
            skipped_sample_ids=skipped,
        )
