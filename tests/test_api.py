"""
Tests for the voiceprint HTTP API.

- POST /api/voiceprints creates a pending fingerprint from 3-5 samples
- POST /api/voiceprints/{id}/compute activates it and returns the trait set
- GET /api/voiceprints/me reports accumulating, active or failed state
- Constraints, locks and rewrite checks are served per fingerprint
- Errors render as {"error": {"code", "message", "details"}}
"""

import io

import pytest
from docx import Document
from httpx import AsyncClient


def _samples(texts):
    return [{"title": f"Sample {i}", "content": t} for i, t in enumerate(texts)]


async def _active_voiceprint(client: AsyncClient, texts):
    created = await client.post("/api/voiceprints", json={"samples": _samples(texts)})
    voiceprint_id = created.json()["id"]
    computed = await client.post(f"/api/voiceprints/{voiceprint_id}/compute")
    assert computed.status_code == 200
    return voiceprint_id


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_requires_authentication(app):
    from httpx import ASGITransport

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as anonymous:
        response = await anonymous.get("/api/voiceprints/me")
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_invalid_token_rejected(client: AsyncClient):
    response = await client.get(
        "/api/voiceprints/me", headers={"Authorization": "Bearer invalid-token"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_onboarding_and_compute(client: AsyncClient, sample_texts):
    created = await client.post(
        "/api/voiceprints", json={"name": "Essays", "samples": _samples(sample_texts[:3])}
    )
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "pending"
    assert body["version"] == 0
    assert body["name"] == "Essays"
    assert body["user_id"] == "user-alice"

    computed = await client.post(f"/api/voiceprints/{body['id']}/compute")
    assert computed.status_code == 200
    traits = computed.json()
    assert traits["version"] == 1
    assert set(traits["target_thresholds"]) == set(traits["stylometric_metrics"])

    profile = await client.get("/api/voiceprints/me")
    assert profile.status_code == 200
    view = profile.json()
    assert view["state"] == "active"
    assert view["version"] == 1
    assert view["coverage"]["sample_count"] == 3
    assert view["traits"]["summary"]


@pytest.mark.asyncio
async def test_onboarding_with_too_few_samples(client: AsyncClient, sample_texts):
    response = await client.post("/api/voiceprints", json={"samples": _samples(sample_texts[:2])})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_accumulating_then_auto_created(client: AsyncClient, app, sample_texts):
    for text in sample_texts[:2]:
        response = await client.post("/api/voiceprints/samples", json={"content": text})
        assert response.status_code == 201
        assert response.json()["fingerprint"] is None

    view = (await client.get("/api/voiceprints/me")).json()
    assert view["state"] == "accumulating"
    assert view["samples_needed"] == 1

    third = await client.post(
        "/api/voiceprints/samples", json={"content": sample_texts[2], "source": "writing_analysis"}
    )
    assert third.json()["computation_scheduled"] is True

    await app.state.lifecycle.wait_for_scheduled()

    view = (await client.get("/api/voiceprints/me")).json()
    assert view["state"] == "active"
    assert view["version"] == 1


@pytest.mark.asyncio
async def test_docx_upload(client: AsyncClient, sample_texts):
    document = Document()
    for paragraph in sample_texts[0].split(". "):
        document.add_paragraph(paragraph)
    buffer = io.BytesIO()
    document.save(buffer)

    response = await client.post(
        "/api/voiceprints/samples/upload",
        files={"file": ("river.docx", buffer.getvalue(),
                        "application/vnd.openxmlformats-officedocument.wordprocessingml.document")},
    )

    assert response.status_code == 201
    sample = response.json()["writing_sample"]
    assert sample["title"] == "river"
    assert sample["source"] == "document_upload"
    assert sample["word_count"] > 20


@pytest.mark.asyncio
async def test_upload_rejects_other_formats(client: AsyncClient):
    response = await client.post(
        "/api/voiceprints/samples/upload",
        files={"file": ("notes.txt", b"plain text", "text/plain")},
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_upload_rejects_corrupt_docx(client: AsyncClient):
    response = await client.post(
        "/api/voiceprints/samples/upload",
        files={"file": ("broken.docx", b"not a zip archive", "application/octet-stream")},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_compute_unknown_voiceprint(client: AsyncClient):
    response = await client.post("/api/voiceprints/does-not-exist/compute")
    assert response.status_code == 404
    error = response.json()["error"]
    assert error["code"] == "NOT_FOUND"
    assert error["details"]["fingerprint_id"] == "does-not-exist"


@pytest.mark.asyncio
async def test_other_users_voiceprint_is_forbidden(client: AsyncClient, sample_texts):
    voiceprint_id = await _active_voiceprint(client, sample_texts[:3])
    response = await client.get(
        f"/api/voiceprints/{voiceprint_id}/constraints",
        headers={"Authorization": "Bearer bob"},
    )
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_constraints_locks_and_check(client: AsyncClient, sample_texts):
    voiceprint_id = await _active_voiceprint(client, sample_texts[:3])

    constraints = await client.get(f"/api/voiceprints/{voiceprint_id}/constraints")
    assert constraints.status_code == 200
    assert constraints.json()["version"] == 1
    assert all(not lock["enabled"] for lock in constraints.json()["locks"])

    locked = await client.put(
        f"/api/voiceprints/{voiceprint_id}/locks/structure", json={"enabled": True}
    )
    assert locked.status_code == 200
    states = {lock["category"]: lock["enabled"] for lock in locked.json()["locks"]}
    assert states == {"style": False, "tone": False, "structure": True}

    rambling = " ".join(["and the river kept going on"] * 15) + "."
    check = await client.post(f"/api/voiceprints/{voiceprint_id}/check", json={"text": rambling})
    assert check.status_code == 200
    assert check.json()["verdict"] == "rejected"

    bad_lock = await client.put(
        f"/api/voiceprints/{voiceprint_id}/locks/rhythm", json={"enabled": True}
    )
    assert bad_lock.status_code == 400


@pytest.mark.asyncio
async def test_delete_my_data(client: AsyncClient, sample_texts):
    await _active_voiceprint(client, sample_texts[:3])

    response = await client.delete("/api/voiceprints/me")
    assert response.status_code == 200
    assert response.json() == {"deleted_fingerprints": 1}

    view = (await client.get("/api/voiceprints/me")).json()
    assert view["state"] == "accumulating"
    assert view["fingerprint"] is None


@pytest.mark.asyncio
async def test_parse_docx_returns_title_and_text(sample_texts):
    from fastapi import UploadFile

    from backend.voiceprint.services.intake import parse_docx

    document = Document()
    document.add_paragraph(sample_texts[1])
    document.add_paragraph("")
    document.add_paragraph(sample_texts[2])
    buffer = io.BytesIO()
    document.save(buffer)
    buffer.seek(0)

    parsed = await parse_docx(UploadFile(file=buffer, filename="drafts.docx"))

    assert parsed == {
        "title": "drafts",
        "content": f"{sample_texts[1]}\n\n{sample_texts[2]}",
    }
