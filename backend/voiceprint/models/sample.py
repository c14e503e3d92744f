"""Writing sample models."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

SampleSource = Literal[
    "manual_upload",
    "writing_analysis",
    "continuous_learning",
    "document_upload",
]


class SampleCreate(BaseModel):
    """A sample submitted for analysis."""
    title: str = "Untitled"
    content: str
    source: SampleSource = "manual_upload"


class WritingSample(BaseModel):
    """An analyzed sample owned by a user, before or outside any fingerprint."""
    id: str
    user_id: str
    title: str
    content: str
    word_count: int
    source: SampleSource
    created_at: datetime

    class Config:
        from_attributes = True


class Sample(BaseModel):
    """One excerpt of a fingerprint's evidence base. Immutable once stored."""
    id: str
    voiceprint_id: str
    user_id: str
    title: str
    content: str
    word_count: int
    source: SampleSource
    created_at: datetime
    writing_sample_id: Optional[str] = None

    class Config:
        from_attributes = True
