"""Data models."""

from .sample import Sample, SampleCreate, SampleSource, WritingSample
from .traits import (
    NGram,
    Pitfall,
    SemanticSignature,
    SignatureTrait,
    StylometricMetrics,
    TextStats,
    ThresholdBand,
    TraitSet,
    TraitSynthesis,
)
from .fingerprint import (
    COMPUTABLE_STATUSES,
    LOCK_CATEGORIES,
    Coverage,
    EffectiveConstraints,
    FingerprintStatus,
    Lock,
    ProfileView,
    RewriteCheck,
    VoiceFingerprint,
)
from .events import (
    EVENT_PAYLOADS,
    ConstraintsChanged,
    EventType,
    SampleAnalyzed,
    SampleCreated,
    SampleUpdated,
    VoiceProfileEvent,
    VoiceProfileUpdated,
)
