"""Transcription job API — upload audio, start a job, poll status."""

import os
from typing import List, Optional

from fastapi import APIRouter, File, HTTPException, Query, UploadFile
from pydantic import BaseModel

from app.config import settings
from app.jobs.models import JobInputs, JobMode, ProviderId
from app.jobs.query import JobView

router = APIRouter(prefix="/transcription")

# These will be set by main.py during lifespan
_dispatcher = None
_query_service = None
_upload_store = None


def set_dispatcher(dispatcher):
    global _dispatcher
    _dispatcher = dispatcher


def set_query_service(service):
    global _query_service
    _query_service = service


def set_upload_store(store):
    global _upload_store
    _upload_store = store


# AWS: amr, flac, m4a, mp3, mp4, ogg, webm, wav
# Deepgram: the above plus aac, wma, opus, 3gp and many container formats
SUPPORTED_AUDIO_EXTENSIONS = frozenset({
    "mp3", "wav", "m4a", "mp4", "webm", "ogg", "flac", "amr", "aac", "wma",
    "opus", "3gp", "aiff", "aif", "ape", "avi", "dss", "m4p", "m4v", "mov",
    "mpc", "mpg", "mpeg", "qt", "ra", "rm", "voc", "wv",
})

_CHUNK_BYTES = 1024 * 1024


class JobSubmitResponse(BaseModel):
    job_id: str
    status: str
    mode: JobMode
    providers: List[str]
    message: str


@router.post("/jobs", response_model=JobSubmitResponse, status_code=202)
async def submit_comparison_job(
    file: Optional[UploadFile] = File(None),
    language: Optional[str] = Query(None),
    providers: str = Query("aws,deepgram"),
    deepgram_model: Optional[str] = Query(None),
):
    """Upload audio and transcribe it with every requested provider concurrently."""
    return await _submit(file, _parse_providers(providers), language, deepgram_model)


@router.post("/jobs/{provider}", response_model=JobSubmitResponse, status_code=202)
async def submit_single_provider_job(
    provider: str,
    file: Optional[UploadFile] = File(None),
    language: Optional[str] = Query(None),
    deepgram_model: Optional[str] = Query(None),
):
    """Upload audio and transcribe it with a single provider."""
    return await _submit(file, _parse_providers(provider), language, deepgram_model)


@router.get("/jobs/{job_id}", response_model=JobView)
async def get_job_status(job_id: str):
    """Get the current status and per-provider results of a job."""
    if _query_service is None:
        raise HTTPException(status_code=503, detail="Job store not initialized")

    view = _query_service.query(job_id)
    if view is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return view


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_providers(raw: str) -> List[ProviderId]:
    names = [name.strip().lower() for name in raw.split(",") if name.strip()]
    valid = ", ".join(f'"{p.value}"' for p in ProviderId)
    if not names:
        raise HTTPException(status_code=400, detail=f"No provider requested. Choose from {valid}")

    parsed: List[ProviderId] = []
    for name in names:
        try:
            provider = ProviderId(name)
        except ValueError:
            raise HTTPException(
                status_code=400, detail=f"Invalid provider '{name}'. Choose from {valid}"
            )
        if provider not in parsed:
            parsed.append(provider)
    return parsed


async def _submit(
    file: Optional[UploadFile],
    providers: List[ProviderId],
    language: Optional[str],
    deepgram_model: Optional[str],
) -> JobSubmitResponse:
    if _dispatcher is None or _upload_store is None:
        raise HTTPException(status_code=503, detail="Job dispatcher not initialized")
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    ext = os.path.splitext(file.filename)[1].lstrip(".").lower()
    if ext not in SUPPORTED_AUDIO_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=(
                "Unsupported audio format. Supported formats: mp3, wav, m4a, mp4, webm, "
                "ogg, flac, amr, aac, wma, opus, 3gp, aiff, ape, avi, and more"
            ),
        )

    upload_path = await _save_upload(file)
    inputs = JobInputs(
        file_name=file.filename,
        file_path=upload_path,
        language_code=language or settings.default_language,
        options={"deepgram_model": deepgram_model or settings.deepgram_model},
    )

    try:
        job_id = await _dispatcher.submit(inputs, providers)
    except ValueError as e:
        _upload_store.release(upload_path)
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        _upload_store.release(upload_path)
        raise

    mode = JobMode.COMPARISON if len(providers) > 1 else JobMode.SINGLE
    return JobSubmitResponse(
        job_id=job_id,
        status="pending",
        mode=mode,
        providers=[p.value for p in providers],
        message="Job submitted successfully. Poll GET /api/v1/transcription/jobs/{id} for status.",
    )


async def _save_upload(file: UploadFile) -> str:
    upload_path = _upload_store.new_path(file.filename)
    max_bytes = settings.max_upload_mb * 1024 * 1024

    total = 0
    try:
        with open(upload_path, "wb") as dst:
            while True:
                chunk = await file.read(_CHUNK_BYTES)
                if not chunk:
                    break
                total += len(chunk)
                if total > max_bytes:
                    raise HTTPException(
                        status_code=413, detail=f"File too large (max {settings.max_upload_mb} MB)"
                    )
                dst.write(chunk)
    except HTTPException:
        _upload_store.release(upload_path)
        raise
    except OSError as exc:
        _upload_store.release(upload_path)
        raise HTTPException(status_code=500, detail=f"Failed to save upload: {exc}")
    return upload_path
