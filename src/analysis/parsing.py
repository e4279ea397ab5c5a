"""Turn free-form LLM replies into structurally valid summary/analysis dicts."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

ANALYSIS_LIST_FIELDS = ("pain_points", "feature_requests", "topics", "key_insights")
SENTIMENTS = {"positive", "neutral", "negative", "mixed"}


def parse_llm_json(text: str) -> dict[str, Any]:
    """Parse an LLM reply as a JSON object. Never raises.

    Tries, in order: the whole reply as JSON, the outermost ``{...}`` span
    inside it, and finally wraps the raw reply as ``{"text": reply}``.
    """
    try:
        data = json.loads(text)
        if isinstance(data, dict):
            return data
    except (json.JSONDecodeError, TypeError):
        pass

    match = _JSON_OBJECT_RE.search(text or "")
    if match:
        try:
            data = json.loads(match.group(0))
            if isinstance(data, dict):
                logger.debug("Recovered JSON object embedded in LLM prose")
                return data
        except json.JSONDecodeError:
            pass

    logger.warning("LLM reply was not JSON; wrapping raw text")
    return {"text": (text or "").strip()}


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v).strip()]


def _list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list) else []


def normalize_summary(data: dict[str, Any]) -> dict[str, Any]:
    """Coerce parsed output into ``{"text": str, "key_points": [str]}``."""
    text = data.get("text") or data.get("summary") or ""
    if not isinstance(text, str):
        text = json.dumps(text)
    points = data.get("key_points") or data.get("keyPoints")
    return {"text": text.strip(), "key_points": _string_list(points)}


def normalize_analysis(data: dict[str, Any]) -> dict[str, Any]:
    """Back-fill every analysis field so the shape is always complete.

    Missing or mistyped lists become ``[]``; an unknown sentiment becomes
    ``"neutral"``. Extra keys the model returned are kept.
    """
    sentiment = str(data.get("sentiment") or "neutral").strip().lower()
    explanation = data.get("sentiment_explanation") or data.get("text") or ""
    normalized: dict[str, Any] = {
        k: v for k, v in data.items() if k not in ANALYSIS_LIST_FIELDS and k != "text"
    }
    normalized["sentiment"] = sentiment if sentiment in SENTIMENTS else "neutral"
    normalized["sentiment_explanation"] = (
        str(explanation).strip() or "No explanation provided"
    )
    for name in ANALYSIS_LIST_FIELDS:
        normalized[name] = _list(data.get(name))
    return normalized


def format_summary(summary: dict[str, Any]) -> str:
    """Render a summary dict as the text stored in ``summary_text``."""
    text = summary.get("text", "")
    points = summary.get("key_points") or []
    if not points:
        return text
    bullets = "\n".join(f"- {p}" for p in points)
    return f"{text}\n\nKey points:\n{bullets}"
