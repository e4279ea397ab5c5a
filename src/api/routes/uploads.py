"""Chunked upload endpoints: receive fragments, then finalize into one media object."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from src.api.deps import ChunkStoreDep, SupabaseDep, UserDep, require_uuid
from src.api.models import FinalizeUploadRequest, FinalizeUploadResponse, UploadChunkResponse
from src.errors import (
    MissingChunksError,
    RecordOwnershipError,
    StorageError,
    UploadNotFoundError,
    UploadOwnershipError,
)
from src.uploads.chunks import receive_chunk
from src.uploads.finalize import finalize_upload

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/upload-chunk", response_model=UploadChunkResponse)
async def upload_chunk(
    user: UserDep,
    store: ChunkStoreDep,
    file: Annotated[UploadFile, File(...)],
    chunk_index: Annotated[int, Form(alias="chunkIndex")],
    total_chunks: Annotated[int, Form(alias="totalChunks")],
    upload_id: Annotated[str, Form(alias="uploadId")],
    file_name: Annotated[str | None, Form(alias="fileName")] = None,
    file_type: Annotated[str | None, Form(alias="fileType")] = None,
    file_size: Annotated[int | None, Form(alias="fileSize")] = None,
    transcription_id: Annotated[str | None, Form(alias="transcriptionId")] = None,
) -> UploadChunkResponse:
    """Store one chunk of a chunked upload.

    Chunks may arrive in any order; re-sending an index overwrites it. The
    first chunk claims the session for the caller and chunk 0 records the
    file metadata.
    """
    if transcription_id:
        transcription_id = require_uuid(transcription_id)
    data = await file.read()
    try:
        await asyncio.to_thread(
            receive_chunk,
            store,
            session_id=upload_id,
            chunk_index=chunk_index,
            total_chunks=total_chunks,
            data=data,
            owner_id=user.id,
            file_name=file_name or file.filename,
            mime_type=file_type or file.content_type,
            file_size=file_size,
            transcription_id=transcription_id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except UploadOwnershipError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except StorageError as exc:
        logger.error("Chunk %d of upload %s failed to store: %s", chunk_index, upload_id, exc)
        raise HTTPException(
            status_code=500, detail=f"Failed to store chunk {chunk_index}: {exc}"
        ) from exc

    return UploadChunkResponse(
        message=f"Chunk {chunk_index + 1}/{total_chunks} uploaded successfully",
        chunk_index=chunk_index,
        total_chunks=total_chunks,
        upload_id=upload_id,
    )


@router.post("/api/finalize-upload", response_model=FinalizeUploadResponse)
async def finalize(
    request: FinalizeUploadRequest,
    user: UserDep,
    store: ChunkStoreDep,
    client: SupabaseDep,
) -> FinalizeUploadResponse:
    """Reassemble all chunks of an upload and create its transcription record.

    Fails with 400 naming every missing chunk index; nothing is assembled in
    that case and the stored chunks are kept for a retry.
    """
    transcription_id = (
        require_uuid(request.transcription_id) if request.transcription_id else None
    )
    try:
        result = await asyncio.to_thread(
            finalize_upload,
            store,
            client,
            session_id=request.upload_id,
            total_chunks=request.total_chunks,
            owner_id=user.id,
            file_name=request.file_name,
            mime_type=request.file_type,
            transcription_id=transcription_id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except MissingChunksError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except UploadNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (UploadOwnershipError, RecordOwnershipError) as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except StorageError as exc:
        logger.error("Finalize of upload %s failed: %s", request.upload_id, exc)
        raise HTTPException(status_code=500, detail=f"Failed to store media: {exc}") from exc

    return FinalizeUploadResponse(
        transcription_id=result.record_id,
        media_url=result.media_url,
        media_path=result.media_path,
        size=result.size,
    )
