"""Pipeline configuration: backend/provider enums and processing status values."""

from __future__ import annotations

from enum import Enum


class ChunkBackend(str, Enum):
    """Where chunk fragments live between upload and finalize."""

    LOCAL = "local"
    SUPABASE = "supabase"


class LLMProvider(str, Enum):
    """Chat-completion providers the analysis pipeline can talk to."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class TranscriptionStatus(str, Enum):
    """Lifecycle of the ``status`` column of a transcription record."""

    PENDING = "pending"
    PROCESSING = "processing"
    PARTIAL = "partial"
    COMPLETED = "completed"
    ERROR = "error"


class StepStatus(str, Enum):
    """Lifecycle of ``summary_status`` and ``analysis_status``."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
