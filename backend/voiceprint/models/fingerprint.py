"""Voice fingerprint, lock, coverage and constraint models."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .traits import ThresholdBand, TraitSet

LockCategory = Literal["style", "tone", "structure"]
LOCK_CATEGORIES: List[str] = ["style", "tone", "structure"]
ConfidenceTier = Literal["low", "medium", "high"]


class FingerprintStatus(str, Enum):
    PENDING = "pending"
    COMPUTING = "computing"
    ACTIVE = "active"
    FAILED = "failed"
    SUPERSEDED = "superseded"


# Statuses a computation cycle may start from
COMPUTABLE_STATUSES = [
    FingerprintStatus.PENDING,
    FingerprintStatus.ACTIVE,
    FingerprintStatus.FAILED,
]


class VoiceFingerprint(BaseModel):
    """Top-level artifact, one per owner at a time."""
    id: str
    user_id: str
    name: str = "My Writing Voice"
    status: FingerprintStatus
    version: int = 0
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class Lock(BaseModel):
    """A user toggle that makes every trait of one category non-negotiable."""
    category: LockCategory
    enabled: bool = False
    trait_ids: List[str] = Field(default_factory=list)
    updated_at: Optional[datetime] = None


class Coverage(BaseModel):
    """Derived confidence summary over the current evidence base."""
    sample_count: int
    word_count: int
    confidence: ConfidenceTier

    @classmethod
    def from_counts(cls, sample_count: int, word_count: int) -> "Coverage":
        if word_count >= 3000 and sample_count >= 5:
            confidence = "high"
        elif word_count >= 1000 and sample_count >= 3:
            confidence = "medium"
        else:
            confidence = "low"
        return cls(sample_count=sample_count, word_count=word_count, confidence=confidence)


class EffectiveConstraints(BaseModel):
    """What the rewrite service must honour for one fingerprint version."""
    voiceprint_id: str
    version: int
    target_thresholds: Dict[str, ThresholdBand]
    locks: List[Lock]
    summary: str


class ProfileView(BaseModel):
    """State rendered by the profile screen.

    ``state`` is one of ``accumulating`` (below the minimum evidence),
    ``computing``, ``active`` or ``failed``. A failed fingerprint still reports
    the last good ``version`` and its trait set.
    """
    state: Literal["accumulating", "computing", "active", "failed"]
    fingerprint: Optional[VoiceFingerprint] = None
    version: int = 0
    coverage: Coverage
    samples_needed: int = 0
    last_error: Optional[str] = None
    traits: Optional[TraitSet] = None


class RewriteCheck(BaseModel):
    """Verdict on a candidate rewrite against a fingerprint's constraints."""
    verdict: Literal["accepted", "penalized", "rejected"]
    score: float
    violations: List[str]
    locked_violations: List[str]
    version: int
