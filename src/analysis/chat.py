"""Chat assistant grounded in one interview's transcript, summary and analysis."""

from __future__ import annotations

import json
from typing import Any

from src.analysis.llm import LLMClient
from src.config import settings
from src.storage.models import TranscriptionRecord

CHAT_ROLES = {"user", "assistant"}


def _format_items(items: list[Any]) -> str:
    if not items:
        return "None identified"
    lines = []
    for item in items:
        lines.append(f"  - {json.dumps(item) if isinstance(item, dict) else item}")
    return "\n" + "\n".join(lines)


def build_system_message(record: TranscriptionRecord) -> str:
    """Embed transcript, summary and analysis verbatim in one system prompt.

    Analysis only counts once ``analysis_status`` is completed; otherwise the
    neutral default is shown.
    """
    analysis = record.trusted_analysis()
    return f"""\
You are an AI assistant for InsightAI that helps analyze interview transcripts.
You have access to the following information about one interview.

1. Full transcript:
\"\"\"{record.transcription_text or "Not available"}\"\"\"

2. AI summary:
\"\"\"{record.summary_text or "Not available"}\"\"\"

3. Sentiment analysis:
- Overall sentiment: {analysis["sentiment"]}
- Sentiment explanation: {analysis["sentiment_explanation"]}
- Pain points:{_format_items(analysis["pain_points"])}
- Feature requests:{_format_items(analysis["feature_requests"])}
- Topics:{_format_items(analysis["topics"])}

When asked about sentiment, pain points or feature requests, answer from section 3.
If a list there says "None identified", say that nothing was identified.
Be helpful, concise and grounded in the interview."""


def validate_messages(messages: list[dict[str, str]]) -> list[dict[str, str]]:
    """Keep only ``role``/``content``; reject empty histories and unknown roles."""
    if not messages:
        raise ValueError("No messages provided")
    cleaned: list[dict[str, str]] = []
    for message in messages:
        role = message.get("role")
        if role not in CHAT_ROLES:
            raise ValueError(f"Unsupported message role: {role!r}")
        cleaned.append({"role": role, "content": str(message.get("content") or "")})
    return cleaned


def chat_reply(
    llm: LLMClient, record: TranscriptionRecord, messages: list[dict[str, str]]
) -> str:
    """One LLM turn over the caller-supplied history. Nothing is stored server-side."""
    return llm.complete(
        build_system_message(record),
        validate_messages(messages),
        max_tokens=800,
        temperature=0.7,
        timeout=settings.chat_timeout_seconds,
    )
