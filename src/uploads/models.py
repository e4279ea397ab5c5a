"""Data models for chunked uploads."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class UploadSession:
    """Metadata for one chunked upload, persisted with its first chunk."""

    session_id: str
    total_chunks: int
    owner_id: str
    file_name: str | None = None
    mime_type: str | None = None
    file_size: int | None = None
    created_at: float = 0.0
    transcription_id: str | None = None
    received_chunk_indices: list[int] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        data = asdict(self)
        # Derived from the stored chunk set on read
        data.pop("received_chunk_indices")
        return data

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> UploadSession:
        return cls(
            session_id=str(data["session_id"]),
            total_chunks=int(data["total_chunks"]),
            owner_id=str(data["owner_id"]),
            file_name=data.get("file_name"),
            mime_type=data.get("mime_type"),
            file_size=data.get("file_size"),
            created_at=float(data.get("created_at") or 0.0),
            transcription_id=data.get("transcription_id"),
        )


@dataclass
class FinalizedUpload:
    """Result of reassembling a session into one media object."""

    session_id: str
    record_id: str
    media_path: str
    media_url: str
    size: int
