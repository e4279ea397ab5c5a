"""Finalize a chunked upload: verify, reassemble, persist, clean up."""

from __future__ import annotations

import logging
import uuid

from supabase import Client

from src.errors import (
    MissingChunksError,
    RecordNotFoundError,
    RecordOwnershipError,
    UploadNotFoundError,
    UploadOwnershipError,
)
from src.storage.media import media_object_path, upload_media
from src.storage.models import TranscriptionRecord
from src.storage.records import create_record, get_record, update_record
from src.uploads.chunks import ChunkStore, validate_session_id
from src.uploads.models import FinalizedUpload

logger = logging.getLogger(__name__)


def missing_chunks(store: ChunkStore, session_id: str, total_chunks: int) -> list[int]:
    """Indices in ``0..total_chunks-1`` that are absent or zero-length."""
    sizes = store.chunk_sizes(session_id)
    return [i for i in range(total_chunks) if sizes.get(i, 0) <= 0]


def assemble_chunks(store: ChunkStore, session_id: str, total_chunks: int) -> bytes:
    """Concatenate every chunk in ascending index order.

    Arrival order is irrelevant; only the index decides placement.

    Raises:
        MissingChunksError: Any index is absent or empty. Nothing is assembled.
    """
    missing = missing_chunks(store, session_id, total_chunks)
    if missing:
        raise MissingChunksError(session_id, missing)
    return b"".join(store.read_chunk(session_id, i) for i in range(total_chunks))


def _owned_record(client: Client, record_id: str, owner_id: str) -> TranscriptionRecord | None:
    """The pre-created record with this id, or None when it does not exist yet."""
    try:
        uuid.UUID(record_id)
    except ValueError:
        raise ValueError(f"Invalid transcriptionId: {record_id!r}") from None
    try:
        record = get_record(client, record_id)
    except RecordNotFoundError:
        return None
    if record.user_id != owner_id:
        raise RecordOwnershipError(record_id)
    return record


def finalize_upload(
    store: ChunkStore,
    client: Client,
    *,
    session_id: str,
    total_chunks: int,
    owner_id: str,
    file_name: str | None = None,
    mime_type: str | None = None,
    transcription_id: str | None = None,
) -> FinalizedUpload:
    """Reassemble a session into one media object and create its record.

    Steps: presence check, ordered concatenation, upload to the media bucket,
    the transcription record, then best-effort removal of the chunk set. A
    ``transcription_id`` naming a record the caller already created (see
    ``POST /api/transcription/create``) gets the media fields written onto it;
    otherwise a new pending record is inserted under that id.

    Args:
        store: Chunk store holding the session.
        client: Supabase client for the media bucket and records table.
        session_id: Upload session id.
        total_chunks: Number of chunks the client says it sent.
        owner_id: Authenticated caller.
        file_name: Original file name; falls back to session metadata.
        mime_type: Content type; falls back to session metadata.
        transcription_id: Optional record id, existing or client-chosen.

    Returns:
        FinalizedUpload describing the stored object and its record.

    Raises:
        RecordOwnershipError: ``transcription_id`` names another user's record.
    """
    validate_session_id(session_id)
    if total_chunks < 1:
        raise ValueError("totalChunks must be at least 1")
    if not store.session_exists(session_id):
        raise UploadNotFoundError(session_id)

    session = store.read_session(session_id)
    if session is not None and session.owner_id != owner_id:
        raise UploadOwnershipError(session_id)

    file_name = file_name or (session.file_name if session else None) or f"{session_id}.bin"
    mime_type = mime_type or (session.mime_type if session else None)
    transcription_id = transcription_id or (session.transcription_id if session else None)

    data = assemble_chunks(store, session_id, total_chunks)
    logger.info(
        "Assembled upload %s: %d chunks, %d bytes", session_id, total_chunks, len(data)
    )

    # Ownership of a pre-created record is settled before anything is uploaded
    existing = _owned_record(client, transcription_id, owner_id) if transcription_id else None

    media_path = media_object_path(owner_id, file_name)
    media_url = upload_media(client, media_path, data, mime_type)

    media_fields = {
        "file_name": file_name,
        "media_path": media_path,
        "media_url": media_url,
        "content_type": mime_type,
        "file_size": len(data),
    }
    if existing is not None:
        update_record(client, existing.id, **media_fields)
        record_id = existing.id
        logger.info("Attached upload %s to existing transcription %s", session_id, record_id)
    else:
        record_id = create_record(client, owner_id, record_id=transcription_id, **media_fields).id

    try:
        store.delete_session(session_id)
    except Exception:
        logger.exception("Failed to clean up chunks for upload %s", session_id)

    return FinalizedUpload(
        session_id=session_id,
        record_id=record_id,
        media_path=media_path,
        media_url=media_url,
        size=len(data),
    )
