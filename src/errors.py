"""Domain exceptions raised by the service layer and translated by the API routes."""

from __future__ import annotations


class InsightError(Exception):
    """Base class for pipeline errors."""


class UploadNotFoundError(InsightError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Upload not found: {session_id}")
        self.session_id = session_id


class MissingChunksError(InsightError):
    """Finalize was requested before every chunk index was stored."""

    def __init__(self, session_id: str, missing: list[int]) -> None:
        listed = ", ".join(str(i) for i in missing)
        super().__init__(f"Missing chunks for upload {session_id}: {listed}")
        self.session_id = session_id
        self.missing = missing


class UploadOwnershipError(InsightError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Upload {session_id} belongs to another user")
        self.session_id = session_id


class StorageError(InsightError):
    """A write or read against chunk/media storage failed."""


class RecordNotFoundError(InsightError):
    def __init__(self, record_id: str) -> None:
        super().__init__(f"Transcription record not found: {record_id}")
        self.record_id = record_id


class RecordOwnershipError(InsightError):
    def __init__(self, record_id: str) -> None:
        super().__init__(f"Transcription {record_id} belongs to another user")
        self.record_id = record_id


class MediaTooLargeError(InsightError):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Media size ({size} bytes) exceeds maximum allowed size ({limit} bytes)")
        self.size = size
        self.limit = limit


class TranscriptionError(InsightError):
    """The speech API or the media fetch failed after retries."""


class LLMError(InsightError):
    """The LLM provider returned an error."""


class LLMTimeoutError(LLMError):
    """The LLM call exceeded its wall-clock budget."""
