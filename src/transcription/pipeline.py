"""Transcription pipeline: direct for small media, sliced or provider-side for large.

Media at or under ``settings.transcription_size_threshold`` is transcribed in
one call and the record goes straight to ``completed``. Larger media takes
one of two routes:

* Headerless frame streams (MP3, ADTS AAC) are cut into fixed-size slices:
  the first slice is transcribed inside the request (record becomes
  ``partial``) and a TranscriptionJob covering the remaining slices is handed
  back to the caller to schedule. The job writes ``transcription_progress``
  after every slice, so a re-invoked transcription on a ``partial`` (or
  failed mid-way) record resumes from the last finished slice.
* Container formats (MP4, M4A, WAV, WebM, ...) cannot be cut at arbitrary
  bytes, so the media URL is submitted to the speech provider once. The
  record goes to ``processing`` with the provider job id as its checkpoint,
  and a ProviderJob waits for the result in the background. A re-invoked
  transcription on such a record re-attaches to the same provider job.

There is no cancellation; a failure flips the record to ``error`` with the
message attached.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

from supabase import Client

from src.config import settings
from src.errors import MediaTooLargeError, TranscriptionError
from src.pipeline_config import TranscriptionStatus
from src.storage.models import TranscriptionRecord
from src.storage.records import get_record, mark_failed, update_record
from src.transcription.media import fetch_media
from src.transcription.retry import retry_call
from src.transcription.speech import SpeechClient

logger = logging.getLogger(__name__)

FRAME_STREAM_TYPES = {"audio/mpeg", "audio/mp3", "audio/mpeg3", "audio/aac", "audio/aacp"}
FRAME_STREAM_SUFFIXES = {".mp3", ".aac"}


@dataclass
class TranscriptionJob:
    """Remaining work for a sliced transcription."""

    record_id: str
    media_url: str
    start_slice: int
    total_slices: int
    slice_bytes: int


@dataclass
class ProviderJob:
    """A whole-file transcription running on the speech provider."""

    record_id: str
    provider_job_id: str


@dataclass
class TranscribeOutcome:
    status: TranscriptionStatus
    text: str
    job: TranscriptionJob | ProviderJob | None = None
    media: bytes | None = None  # already-fetched bytes the job may reuse


def split_slices(data: bytes, slice_bytes: int) -> list[bytes]:
    if slice_bytes <= 0:
        raise ValueError("slice_bytes must be positive")
    return [data[i : i + slice_bytes] for i in range(0, len(data), slice_bytes)]


def frame_stream_hint(content_type: str | None, name: str | None) -> bool | None:
    """Whether declared type or file name says the media survives byte slicing.

    None when neither says anything useful.
    """
    if content_type:
        return content_type.split(";")[0].strip().lower() in FRAME_STREAM_TYPES
    if name:
        suffix = posixpath.splitext(urlparse(name).path)[1].lower()
        if suffix:
            return suffix in FRAME_STREAM_SUFFIXES
    return None


def looks_like_frame_stream(data: bytes) -> bool:
    """ID3 tag or an MPEG/ADTS frame sync at the start of the data."""
    if data[:3] == b"ID3":
        return True
    return len(data) >= 2 and data[0] == 0xFF and (data[1] & 0xE0) == 0xE0


def _checkpoint(completed: int, total: int, slice_bytes: int) -> dict[str, int]:
    return {"completed_slices": completed, "total_slices": total, "slice_bytes": slice_bytes}


def _resumable_job(record: TranscriptionRecord, media_url: str) -> TranscriptionJob | None:
    if record.status not in (TranscriptionStatus.PARTIAL, TranscriptionStatus.ERROR):
        return None
    progress: dict[str, Any] = record.transcription_progress or {}
    try:
        done = int(progress["completed_slices"])
        total = int(progress["total_slices"])
        slice_bytes = int(progress["slice_bytes"])
    except (KeyError, TypeError, ValueError):
        return None
    if not 0 < done < total:
        return None
    return TranscriptionJob(record.id, media_url, done, total, slice_bytes)


def _pending_provider_job(record: TranscriptionRecord) -> ProviderJob | None:
    if record.status is not TranscriptionStatus.PROCESSING:
        return None
    job_id = (record.transcription_progress or {}).get("provider_job_id")
    return ProviderJob(record.id, str(job_id)) if job_id else None


def _submit_to_provider(
    client: Client, speech: SpeechClient, record: TranscriptionRecord, media_url: str
) -> TranscribeOutcome:
    job_id = retry_call(speech.submit_url, media_url)
    update_record(
        client,
        record.id,
        status="processing",
        transcription_progress={"provider_job_id": job_id},
    )
    return TranscribeOutcome(
        TranscriptionStatus.PROCESSING, "", job=ProviderJob(record.id, job_id)
    )


def start_transcription(
    client: Client,
    speech: SpeechClient,
    record: TranscriptionRecord,
    media_url: str,
) -> TranscribeOutcome:
    """Run the in-request part of a transcription.

    Returns:
        TranscribeOutcome. ``job`` is set when work remains to be scheduled.

    Raises:
        MediaTooLargeError: Media exceeds ``settings.max_media_bytes``.
        TranscriptionError: Fetch or speech API failed after retries.
    """
    if record.status is TranscriptionStatus.COMPLETED and record.transcription_text:
        return TranscribeOutcome(TranscriptionStatus.COMPLETED, record.transcription_text)

    pending = _pending_provider_job(record)
    if pending is not None:
        logger.info("Re-attaching %s to provider job %s", record.id, pending.provider_job_id)
        return TranscribeOutcome(TranscriptionStatus.PROCESSING, "", job=pending)

    resumed = _resumable_job(record, media_url)
    if resumed is not None:
        logger.info(
            "Resuming transcription %s at slice %d/%d",
            record.id,
            resumed.start_slice,
            resumed.total_slices,
        )
        update_record(client, record.id, status="partial", error=None)
        return TranscribeOutcome(
            TranscriptionStatus.PARTIAL, record.transcription_text or "", job=resumed
        )

    threshold = settings.transcription_size_threshold
    hint = frame_stream_hint(record.content_type, record.file_name or media_url)
    try:
        update_record(client, record.id, status="processing", error=None)
        if hint is False and record.file_size and record.file_size > threshold:
            if record.file_size > settings.max_media_bytes:
                raise MediaTooLargeError(record.file_size, settings.max_media_bytes)
            logger.info(
                "Media for %s is a %d-byte container; submitting by URL",
                record.id,
                record.file_size,
            )
            return _submit_to_provider(client, speech, record, media_url)

        data = retry_call(fetch_media, media_url)
        slice_bytes = settings.transcription_slice_bytes
        slices = split_slices(data, slice_bytes) if data else [b""]

        if len(data) <= threshold or len(slices) == 1:
            text = retry_call(speech.transcribe_bytes, data)
            update_record(
                client,
                record.id,
                status="completed",
                transcription_text=text,
                transcription_progress=None,
            )
            return TranscribeOutcome(TranscriptionStatus.COMPLETED, text)

        sliceable = hint if hint is not None else looks_like_frame_stream(data)
        if not sliceable:
            logger.info(
                "Media for %s is a %d-byte container; submitting by URL", record.id, len(data)
            )
            return _submit_to_provider(client, speech, record, media_url)

        logger.info(
            "Media for %s is %d bytes; transcribing first of %d slices now",
            record.id,
            len(data),
            len(slices),
        )
        head = retry_call(speech.transcribe_bytes, slices[0])
        update_record(
            client,
            record.id,
            status="partial",
            transcription_text=head,
            transcription_progress=_checkpoint(1, len(slices), slice_bytes),
        )
        job = TranscriptionJob(record.id, media_url, 1, len(slices), slice_bytes)
        return TranscribeOutcome(TranscriptionStatus.PARTIAL, head, job=job, media=data)
    except MediaTooLargeError as exc:
        mark_failed(client, record.id, "status", str(exc))
        raise
    except Exception as exc:
        logger.exception("Transcription failed for %s", record.id)
        mark_failed(client, record.id, "status", f"Transcription failed: {exc}")
        raise TranscriptionError(str(exc)) from exc


def continue_transcription(
    client: Client,
    speech: SpeechClient,
    job: TranscriptionJob,
    media: bytes | None = None,
) -> None:
    """Process the remaining slices of ``job``, checkpointing after each.

    Runs after the HTTP response has gone out, so failures end up on the
    record (``status=error`` plus the message) rather than being raised.
    """
    try:
        data = media if media is not None else retry_call(fetch_media, job.media_url)
        slices = split_slices(data, job.slice_bytes)
        if len(slices) != job.total_slices:
            raise TranscriptionError(
                f"Media has {len(slices)} slices but the checkpoint expects {job.total_slices}"
            )

        text = get_record(client, job.record_id).transcription_text or ""
        for index in range(job.start_slice, job.total_slices):
            piece = retry_call(speech.transcribe_bytes, slices[index])
            text = f"{text} {piece}".strip()
            done = index + 1
            finished = done == job.total_slices
            update_record(
                client,
                job.record_id,
                status="completed" if finished else "partial",
                transcription_text=text,
                transcription_progress=None
                if finished
                else _checkpoint(done, job.total_slices, job.slice_bytes),
            )
            logger.info("Transcription %s: slice %d/%d done", job.record_id, done, job.total_slices)
    except Exception as exc:
        logger.exception("Background transcription failed for %s", job.record_id)
        mark_failed(client, job.record_id, "status", f"Background transcription failed: {exc}")


def await_provider_transcript(client: Client, speech: SpeechClient, job: ProviderJob) -> None:
    """Wait for a provider-side transcription and store its text.

    Runs after the HTTP response has gone out; failures land on the record.
    """
    try:
        text = retry_call(speech.wait_for_transcript, job.provider_job_id)
        update_record(
            client,
            job.record_id,
            status="completed",
            transcription_text=text,
            transcription_progress=None,
        )
        logger.info(
            "Transcription %s completed by provider job %s", job.record_id, job.provider_job_id
        )
    except Exception as exc:
        logger.exception("Provider transcription failed for %s", job.record_id)
        mark_failed(client, job.record_id, "status", f"Background transcription failed: {exc}")
