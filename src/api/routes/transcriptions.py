"""Transcription record endpoints: create, status, and the transcribe trigger."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException

from src.api.deps import SpeechDep, SupabaseDep, UserDep, load_owned_record, require_uuid
from src.api.models import (
    CreateTranscriptionRequest,
    TranscribeRequest,
    TranscribeResponse,
    TranscriptionView,
)
from src.errors import MediaTooLargeError, StorageError, TranscriptionError
from src.pipeline_config import TranscriptionStatus
from src.storage.media import signed_media_url
from src.storage.models import TranscriptionRecord
from src.storage.records import create_record
from src.transcription.pipeline import (
    ProviderJob,
    await_provider_transcript,
    continue_transcription,
    start_transcription,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _view(record: TranscriptionRecord) -> TranscriptionView:
    return TranscriptionView(
        id=record.id,
        file_name=record.file_name,
        media_url=record.media_url,
        status=record.status.value,
        transcription_text=record.transcription_text,
        transcription_progress=record.transcription_progress,
        summary_status=record.summary_status.value,
        summary_text=record.summary_text,
        analysis_status=record.analysis_status.value,
        analysis_data=record.analysis_data,
        error=record.error,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


@router.post("/api/transcription/create", response_model=TranscriptionView)
async def create_transcription(
    request: CreateTranscriptionRequest, user: UserDep, client: SupabaseDep
) -> TranscriptionView:
    """Create a pending transcription record owned by the caller."""
    if request.user_id and request.user_id != user.id:
        raise HTTPException(
            status_code=403, detail="Cannot create a transcription for another user"
        )
    record_id = require_uuid(request.id, "id") if request.id else None
    record = await asyncio.to_thread(
        create_record,
        client,
        user.id,
        record_id=record_id,
        file_name=request.file_name,
        media_path=request.media_path,
        media_url=request.media_url,
        content_type=request.content_type,
        file_size=request.file_size,
    )
    logger.info("Created transcription %s for user %s", record.id, user.id)
    return _view(record)


@router.get("/api/transcriptions/{transcription_id}", response_model=TranscriptionView)
async def get_transcription(
    transcription_id: str, user: UserDep, client: SupabaseDep
) -> TranscriptionView:
    """Current status of the transcript, summary and analysis for one record."""
    record = await asyncio.to_thread(load_owned_record, client, transcription_id, user)
    return _view(record)


@router.post("/api/transcribe", response_model=TranscribeResponse)
async def transcribe(
    request: TranscribeRequest,
    background_tasks: BackgroundTasks,
    user: UserDep,
    client: SupabaseDep,
    speech: SpeechDep,
) -> TranscribeResponse:
    """Transcribe a record's media.

    Small media completes inside the request. Large MP3/AAC media returns the
    first slice with ``isPartial`` set while the rest runs as a background job.
    Large container media (MP4, WAV, ...) is handed to the speech provider whole
    and comes back as ``processing``. Poll ``GET /api/transcriptions/{id}`` for
    completion.
    """
    if not speech.configured:
        raise HTTPException(
            status_code=501,
            detail="Audio transcription is not configured (set ASSEMBLYAI_API_KEY).",
        )

    record = await asyncio.to_thread(load_owned_record, client, request.transcription_id, user)

    media_url = request.media_url or record.media_url
    try:
        if not media_url and record.media_path:
            media_url = await asyncio.to_thread(signed_media_url, client, record.media_path)
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    if not media_url:
        raise HTTPException(
            status_code=400, detail="No media URL or storage path for transcription"
        )
    if not media_url.startswith(("http://", "https://")):
        raise HTTPException(
            status_code=400, detail="Invalid media URL. URL must start with http:// or https://"
        )

    try:
        outcome = await asyncio.to_thread(start_transcription, client, speech, record, media_url)
    except MediaTooLargeError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except TranscriptionError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    if isinstance(outcome.job, ProviderJob):
        background_tasks.add_task(await_provider_transcript, client, speech, outcome.job)
        message = "Media submitted for transcription; it may take several minutes"
    elif outcome.job is not None:
        background_tasks.add_task(
            continue_transcription, client, speech, outcome.job, outcome.media
        )
        message = "Partial transcription completed; remaining audio is being processed"
    else:
        message = "Transcription completed successfully"

    return TranscribeResponse(
        message=message,
        status=outcome.status.value,
        transcription_text=outcome.text,
        is_partial=outcome.status is TranscriptionStatus.PARTIAL,
    )
