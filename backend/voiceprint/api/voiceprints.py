"""Voice fingerprint endpoints."""

from typing import List

from fastapi import APIRouter, Depends, File, Request, UploadFile
from pydantic import BaseModel, Field

from ..models.fingerprint import (
    EffectiveConstraints,
    Lock,
    ProfileView,
    RewriteCheck,
    VoiceFingerprint,
)
from ..models.sample import SampleCreate
from ..models.traits import TraitSet
from ..services.auth import JWTBearer
from ..services.intake import parse_docx
from ..services.lifecycle import FingerprintLifecycleManager, IngestResult

router = APIRouter(prefix="/api/voiceprints", tags=["voiceprints"])


class FingerprintCreateRequest(BaseModel):
    name: str = "My Writing Voice"
    samples: List[SampleCreate]


class LockUpdateRequest(BaseModel):
    enabled: bool


class LockResponse(BaseModel):
    locks: List[Lock]


class RewriteCheckRequest(BaseModel):
    text: str = Field(..., min_length=1)


def get_lifecycle(request: Request) -> FingerprintLifecycleManager:
    return request.app.state.lifecycle


@router.post("", response_model=VoiceFingerprint, status_code=201)
async def create_voiceprint(
    body: FingerprintCreateRequest,
    current_user: dict = Depends(JWTBearer()),
    lifecycle: FingerprintLifecycleManager = Depends(get_lifecycle),
):
    """Onboarding: create a pending fingerprint from 3-5 samples."""
    return await lifecycle.create_fingerprint(current_user["id"], body.samples, body.name)


@router.post("/samples", response_model=IngestResult, status_code=201)
async def add_sample(
    body: SampleCreate,
    current_user: dict = Depends(JWTBearer()),
    lifecycle: FingerprintLifecycleManager = Depends(get_lifecycle),
):
    """Submit a pasted sample; it may create or feed the caller's fingerprint."""
    return await lifecycle.ingest_sample(
        current_user["id"], body.content, title=body.title, source=body.source
    )


@router.post("/samples/upload", response_model=IngestResult, status_code=201)
async def upload_sample(
    file: UploadFile = File(...),
    current_user: dict = Depends(JWTBearer()),
    lifecycle: FingerprintLifecycleManager = Depends(get_lifecycle),
):
    """Submit a .docx document as a sample."""
    parsed = await parse_docx(file)
    return await lifecycle.ingest_sample(
        current_user["id"], parsed["content"], title=parsed["title"], source="document_upload"
    )


@router.get("/me", response_model=ProfileView)
async def get_my_profile(
    current_user: dict = Depends(JWTBearer()),
    lifecycle: FingerprintLifecycleManager = Depends(get_lifecycle),
):
    """Profile screen state: accumulating, computing, active or failed."""
    return lifecycle.get_profile_view(current_user["id"])


@router.delete("/me")
async def delete_my_data(
    current_user: dict = Depends(JWTBearer()),
    lifecycle: FingerprintLifecycleManager = Depends(get_lifecycle),
):
    removed = lifecycle.delete_owner_data(current_user["id"])
    return {"deleted_fingerprints": removed}


@router.post("/{voiceprint_id}/compute", response_model=TraitSet)
async def compute_voiceprint(
    voiceprint_id: str,
    current_user: dict = Depends(JWTBearer()),
    lifecycle: FingerprintLifecycleManager = Depends(get_lifecycle),
):
    """Run a computation cycle and return the new trait set."""
    return await lifecycle.compute(voiceprint_id, owner_id=current_user["id"])


@router.get("/{voiceprint_id}/constraints", response_model=EffectiveConstraints)
async def get_constraints(
    voiceprint_id: str,
    current_user: dict = Depends(JWTBearer()),
    lifecycle: FingerprintLifecycleManager = Depends(get_lifecycle),
):
    """Thresholds and locks the rewrite service must honour."""
    return lifecycle.get_effective_constraints(voiceprint_id, owner_id=current_user["id"])


@router.put("/{voiceprint_id}/locks/{category}", response_model=LockResponse)
async def set_lock(
    voiceprint_id: str,
    category: str,
    body: LockUpdateRequest,
    current_user: dict = Depends(JWTBearer()),
    lifecycle: FingerprintLifecycleManager = Depends(get_lifecycle),
):
    locks = lifecycle.set_lock(voiceprint_id, category, body.enabled, owner_id=current_user["id"])
    return LockResponse(locks=locks)


@router.post("/{voiceprint_id}/check", response_model=RewriteCheck)
async def check_rewrite(
    voiceprint_id: str,
    body: RewriteCheckRequest,
    current_user: dict = Depends(JWTBearer()),
    lifecycle: FingerprintLifecycleManager = Depends(get_lifecycle),
):
    """Accept, penalize or reject a candidate rewrite."""
    return lifecycle.check_rewrite(voiceprint_id, body.text, owner_id=current_user["id"])
