"""Event payloads published on the voice-profile event bus.

Each event type has exactly one payload model, tagged by its ``type`` field,
so consumers can match on ``VoiceProfileEvent`` exhaustively.
"""

from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from .fingerprint import Coverage, LockCategory

EventType = Literal[
    "sample.created",
    "sample.updated",
    "sample.analyzed",
    "voiceProfile.updated",
    "voiceProfile.constraints.changed",
]


class SampleCreated(BaseModel):
    type: Literal["sample.created"] = "sample.created"
    sample_id: str
    word_count: int
    source: str


class SampleUpdated(BaseModel):
    type: Literal["sample.updated"] = "sample.updated"
    sample_id: str
    voiceprint_id: Optional[str] = None
    integrity: Optional[float] = None
    reason: Literal["voice_aware_rewrite", "manual_edit", "batch_update"] = "batch_update"


class SampleAnalyzed(BaseModel):
    type: Literal["sample.analyzed"] = "sample.analyzed"
    sample_id: str
    voiceprint_id: str
    version: int
    integrity: float
    violations: List[str] = Field(default_factory=list)


class VoiceProfileUpdated(BaseModel):
    type: Literal["voiceProfile.updated"] = "voiceProfile.updated"
    voiceprint_id: str
    version: int
    coverage: Coverage
    average_integrity: float
    semantic_cohesion: float
    reason: Literal["add_sample", "edit_sample", "profile_creation", "recompute"]


class ConstraintsChanged(BaseModel):
    type: Literal["voiceProfile.constraints.changed"] = "voiceProfile.constraints.changed"
    voiceprint_id: str
    version: int
    locks: Dict[LockCategory, bool]
    reason: Literal["lock_change", "threshold_change"]


VoiceProfileEvent = Annotated[
    Union[SampleCreated, SampleUpdated, SampleAnalyzed, VoiceProfileUpdated, ConstraintsChanged],
    Field(discriminator="type"),
]

EVENT_PAYLOADS: Dict[str, type] = {
    "sample.created": SampleCreated,
    "sample.updated": SampleUpdated,
    "sample.analyzed": SampleAnalyzed,
    "voiceProfile.updated": VoiceProfileUpdated,
    "voiceProfile.constraints.changed": ConstraintsChanged,
}
