"""Sentiment and insight analysis of interview transcripts."""

from __future__ import annotations

import logging
from typing import Any

from supabase import Client

from src.analysis.llm import LLMClient
from src.analysis.parsing import normalize_analysis, parse_llm_json
from src.analysis.placeholders import is_processing_message, placeholder_analysis
from src.config import settings
from src.storage.models import TranscriptionRecord
from src.storage.records import mark_failed, update_record

logger = logging.getLogger(__name__)

HEAD_GAP_MARKER = "[...middle content omitted...]"
TAIL_GAP_MARKER = "[...more content omitted...]"

SYSTEM_PROMPT = """\
You are an expert at analyzing customer interviews and extracting valuable insights.
Analyze the transcript the user provides and respond with a JSON object of this shape:
{
  "sentiment": "positive|neutral|negative|mixed",
  "sentiment_explanation": "2-3 sentences on why",
  "pain_points": [{"issue": "...", "description": "...", "quotes": ["..."]}],
  "feature_requests": [{"feature": "...", "description": "...", "quotes": ["..."]}],
  "topics": ["..."],
  "key_insights": ["..."]
}
Focus on the content of the conversation, not the quality of the transcript.
Use an empty array for any category with nothing to report."""


def truncate_transcript(text: str, max_chars: int) -> str:
    """Keep a head/middle/tail sample of an over-long transcript.

    Head is half the budget, middle and tail a quarter each; the gaps are
    marked so the model knows content was dropped.
    """
    if len(text) <= max_chars:
        return text
    half, quarter = max_chars // 2, max_chars // 4
    centre = len(text) // 2
    head = text[:half]
    middle = text[centre - quarter // 2 : centre + quarter // 2]
    tail = text[len(text) - quarter :]
    return f"{head}\n\n{HEAD_GAP_MARKER}\n\n{middle}\n\n{TAIL_GAP_MARKER}\n\n{tail}"


def analyze_text(text: str, llm: LLMClient) -> dict[str, Any]:
    """Analyse ``text``; filler or very short text gets the placeholder without an LLM call.

    Raises:
        LLMTimeoutError: The call exceeded ``settings.analysis_timeout_seconds``.
        LLMError: The provider failed.
    """
    if is_processing_message(text):
        logger.info("Transcript looks like a processing message; returning placeholder analysis")
        return placeholder_analysis()

    sample = truncate_transcript(text, settings.analysis_max_chars)
    if len(sample) < len(text):
        logger.info("Transcript truncated from %d to %d chars for analysis", len(text), len(sample))

    reply = llm.complete(
        SYSTEM_PROMPT,
        [{"role": "user", "content": f"Please analyze the following transcript:\n\n{sample}"}],
        max_tokens=2000,
        temperature=0.2,
        timeout=settings.analysis_timeout_seconds,
    )
    return normalize_analysis(parse_llm_json(reply))


def analyze_and_store(
    client: Client, llm: LLMClient, record: TranscriptionRecord
) -> dict[str, Any]:
    """Analyse a record's transcript and write ``analysis_status``/``analysis_data``."""
    text = record.transcription_text or ""
    if is_processing_message(text):
        return placeholder_analysis()

    update_record(client, record.id, analysis_status="processing")
    try:
        analysis = analyze_text(text, llm)
        return store_analysis(client, record.id, analysis)
    except Exception as exc:
        logger.exception("Analysis failed for %s", record.id)
        mark_failed(client, record.id, "analysis_status", str(exc))
        raise


def store_analysis(client: Client, record_id: str, analysis: dict[str, Any]) -> dict[str, Any]:
    """Normalise and persist analysis data, marking it completed."""
    normalized = normalize_analysis(analysis)
    update_record(client, record_id, analysis_status="completed", analysis_data=normalized)
    return normalized
