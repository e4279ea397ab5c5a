"""Canned responses for transcripts that are still processing or too short to analyse."""

from __future__ import annotations

from typing import Any

MIN_CONTENT_CHARS = 50

PROCESSING_PHRASES = (
    "processing your audio",
    "processing audio file",
    "being processed",
    "may take several minutes",
    "transcription in progress",
)

PLACEHOLDER_TEXT = "This appears to be a processing message, not actual interview content."


def is_processing_message(text: str | None) -> bool:
    """True for status filler text or anything too short to be an interview."""
    stripped = (text or "").strip()
    if len(stripped) < MIN_CONTENT_CHARS:
        return True
    lowered = stripped.lower()
    return any(phrase in lowered for phrase in PROCESSING_PHRASES)


def placeholder_summary() -> dict[str, Any]:
    return {
        "text": f"{PLACEHOLDER_TEXT} A summary will be available once transcription completes.",
        "key_points": [],
        "placeholder": True,
    }


def placeholder_analysis() -> dict[str, Any]:
    return {
        "sentiment": "neutral",
        "sentiment_explanation": "This is a system message, not actual conversation content",
        "pain_points": [],
        "feature_requests": [],
        "topics": ["Processing"],
        "key_insights": ["Waiting for complete transcription"],
        "placeholder": True,
    }
