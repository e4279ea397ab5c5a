"""Data models for persisted transcription records."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from src.pipeline_config import StepStatus, TranscriptionStatus

_E = TypeVar("_E", bound=Enum)


def _coerce(enum_cls: type[_E], value: Any, default: _E) -> _E:
    # Legacy rows carry values such as "failed" or "in_progress"
    legacy = {"failed": "error", "in_progress": "processing"}
    if not value:
        return default
    try:
        return enum_cls(legacy.get(value, value))
    except ValueError:
        return default


def default_analysis() -> dict[str, Any]:
    """Neutral analysis used wherever stored analysis can't be trusted."""
    return {
        "sentiment": "neutral",
        "sentiment_explanation": "No sentiment analysis available",
        "pain_points": [],
        "feature_requests": [],
        "topics": [],
        "key_insights": [],
    }


@dataclass
class TranscriptionRecord:
    """One row of the ``transcriptions`` table.

    Transcription, summary and analysis each move through their own status
    field; nothing ties the three together, so a reader may see a completed
    transcript next to a stale or pending summary.
    """

    id: str
    user_id: str
    status: TranscriptionStatus = TranscriptionStatus.PENDING
    file_name: str | None = None
    media_path: str | None = None
    media_url: str | None = None
    content_type: str | None = None
    file_size: int | None = None
    transcription_text: str | None = None
    transcription_progress: dict[str, Any] | None = None
    summary_status: StepStatus = StepStatus.PENDING
    summary_text: str | None = None
    analysis_status: StepStatus = StepStatus.PENDING
    analysis_data: dict[str, Any] | None = None
    error: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> TranscriptionRecord:
        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        analysis = row.get("analysis_data")
        # Supabase occasionally hands jsonb back as a string
        if isinstance(analysis, str) and analysis:
            try:
                analysis = json.loads(analysis)
            except json.JSONDecodeError:
                analysis = None
        return cls(
            id=str(row["id"]),
            user_id=str(row.get("user_id") or ""),
            status=_coerce(TranscriptionStatus, row.get("status"), TranscriptionStatus.PENDING),
            file_name=row.get("file_name"),
            media_path=row.get("media_path"),
            media_url=row.get("media_url"),
            content_type=row.get("content_type"),
            file_size=row.get("file_size"),
            transcription_text=row.get("transcription_text"),
            transcription_progress=row.get("transcription_progress"),
            summary_status=_coerce(StepStatus, row.get("summary_status"), StepStatus.PENDING),
            summary_text=row.get("summary_text"),
            analysis_status=_coerce(StepStatus, row.get("analysis_status"), StepStatus.PENDING),
            analysis_data=analysis if isinstance(analysis, dict) else None,
            error=row.get("error"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            extra={k: v for k, v in row.items() if k not in known},
        )

    def trusted_analysis(self) -> dict[str, Any]:
        """Stored analysis when its status is completed, the neutral default otherwise."""
        if self.analysis_status is StepStatus.COMPLETED and self.analysis_data:
            return {**default_analysis(), **self.analysis_data}
        return default_analysis()
