"""Pydantic request/response schemas for the InsightAI API.

Fields are snake_case in Python and camelCase on the wire, matching the web
client.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class APIModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadChunkResponse(APIModel):
    """Response body for /api/upload-chunk."""

    success: bool = True
    message: str
    chunk_index: int
    total_chunks: int
    upload_id: str


class FinalizeUploadRequest(APIModel):
    """Request body for /api/finalize-upload."""

    upload_id: str
    total_chunks: int = Field(ge=1)
    file_name: str | None = None
    file_type: str | None = None
    transcription_id: str | None = None


class FinalizeUploadResponse(APIModel):
    success: bool = True
    message: str = "File upload completed successfully"
    transcription_id: str
    media_url: str
    media_path: str
    size: int


class CreateTranscriptionRequest(APIModel):
    """Request body for /api/transcription/create."""

    id: str | None = None
    user_id: str | None = None
    file_name: str
    media_path: str | None = None
    media_url: str | None = None
    file_size: int | None = None
    content_type: str | None = None


class TranscriptionView(APIModel):
    """Status view of a transcription record."""

    success: bool = True
    id: str
    file_name: str | None = None
    media_url: str | None = None
    status: str
    transcription_text: str | None = None
    transcription_progress: dict[str, Any] | None = None
    summary_status: str
    summary_text: str | None = None
    analysis_status: str
    analysis_data: dict[str, Any] | None = None
    error: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class TranscribeRequest(APIModel):
    """Request body for /api/transcribe."""

    transcription_id: str
    media_url: str | None = None


class TranscribeResponse(APIModel):
    success: bool = True
    message: str
    status: str
    transcription_text: str
    is_partial: bool


class SummarizeRequest(APIModel):
    transcription_id: str


class SummarizeResponse(APIModel):
    success: bool = True
    summary_status: str
    summary: str | None = None
    summary_data: dict[str, Any] | None = None


class AnalyzeRequest(APIModel):
    """Request body for /api/analyze-transcript.

    Either a stored record (``transcription_id``) or raw text is required.
    """

    transcription_id: str | None = None
    transcription_text: str | None = None


class AnalyzeResponse(APIModel):
    success: bool = True
    analysis: dict[str, Any]


class UpdateAnalysisRequest(APIModel):
    transcription_id: str
    analysis_data: dict[str, Any]


class UpdateSummaryRequest(APIModel):
    transcription_id: str
    summary_data: dict[str, Any]


class ChatMessage(APIModel):
    role: str
    content: str


class ChatRequest(APIModel):
    """Request body for /api/chat. The full history is resent every turn."""

    transcription_id: str
    messages: list[ChatMessage]


class ChatResponse(APIModel):
    success: bool = True
    response: str
