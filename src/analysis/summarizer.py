"""LLM summaries of interview transcripts."""

from __future__ import annotations

import logging
from typing import Any

from supabase import Client

from src.analysis.llm import LLMClient
from src.analysis.parsing import format_summary, normalize_summary, parse_llm_json
from src.analysis.placeholders import is_processing_message, placeholder_summary
from src.config import settings
from src.storage.models import TranscriptionRecord
from src.storage.records import mark_failed, update_record

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful assistant that summarizes interview transcriptions "
    "accurately and concisely."
)

PROMPT_TEMPLATE = """\
Provide a concise summary of the following interview transcription.
Focus on the main topics discussed, key points, and any important conclusions.

Respond with a JSON object of the form:
{{"text": "<summary paragraph>", "key_points": ["<point>", "..."]}}

Transcription:
{transcript}"""


def summarize_text(text: str, llm: LLMClient) -> dict[str, Any]:
    """Summarize ``text``; filler or very short text gets the placeholder without an LLM call.

    Raises:
        LLMTimeoutError: The call exceeded ``settings.summary_timeout_seconds``.
        LLMError: The provider failed.
    """
    if is_processing_message(text):
        logger.info("Transcript looks like a processing message; returning placeholder summary")
        return placeholder_summary()

    reply = llm.complete(
        SYSTEM_PROMPT,
        [{"role": "user", "content": PROMPT_TEMPLATE.format(transcript=text)}],
        max_tokens=800,
        temperature=0.3,
        timeout=settings.summary_timeout_seconds,
    )
    return normalize_summary(parse_llm_json(reply))


def summarize_and_store(
    client: Client, llm: LLMClient, record: TranscriptionRecord
) -> dict[str, Any]:
    """Summarize a record's transcript and write ``summary_status``/``summary_text``.

    Placeholders are returned but not persisted, so a later call still
    produces a real summary once the transcript lands.
    """
    text = record.transcription_text or ""
    if is_processing_message(text):
        return placeholder_summary()

    update_record(client, record.id, summary_status="processing")
    # Any failure past this point must leave the step retryable
    try:
        summary = summarize_text(text, llm)
        store_summary(client, record.id, summary)
    except Exception as exc:
        logger.exception("Summary failed for %s", record.id)
        mark_failed(client, record.id, "summary_status", str(exc))
        raise

    logger.info("Stored summary for %s (%d chars)", record.id, len(summary["text"]))
    return summary


def store_summary(client: Client, record_id: str, summary: dict[str, Any]) -> dict[str, Any]:
    """Normalise and persist a summary, marking it completed."""
    normalized = normalize_summary(summary)
    update_record(
        client, record_id, summary_status="completed", summary_text=format_summary(normalized)
    )
    return normalized
