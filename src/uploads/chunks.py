"""Chunk storage for resumable uploads.

Both backends share one addressing scheme so nothing downstream has to search
for where a fragment landed:

    {session_id}/chunk-{index:06d}
    {session_id}/metadata.json

``LocalChunkStore`` keeps fragments on the server's filesystem and
``SupabaseChunkStore`` keeps them in a storage bucket. Which one is used is a
deployment decision (``settings.chunk_backend``).
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from supabase import Client

from src.errors import StorageError, UploadOwnershipError
from src.uploads.models import UploadSession

logger = logging.getLogger(__name__)

METADATA_NAME = "metadata.json"

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
_CHUNK_RE = re.compile(r"^chunk-(\d{6,})$")


def chunk_name(index: int) -> str:
    return f"chunk-{index:06d}"


def validate_session_id(session_id: str) -> str:
    """Reject ids that could escape the session namespace (``../``, slashes)."""
    if not _SESSION_ID_RE.match(session_id or ""):
        raise ValueError(f"Invalid upload id: {session_id!r}")
    return session_id


class ChunkStore(Protocol):
    """Storage interface shared by the receiver and the finalizer."""

    def write_chunk(self, session_id: str, index: int, data: bytes) -> None: ...

    def read_chunk(self, session_id: str, index: int) -> bytes: ...

    def chunk_sizes(self, session_id: str) -> dict[int, int]: ...

    def write_session(self, session: UploadSession) -> None: ...

    def read_session(self, session_id: str) -> UploadSession | None: ...

    def session_exists(self, session_id: str) -> bool: ...

    def delete_session(self, session_id: str) -> None: ...

    def list_sessions(self) -> list[str]: ...

    def last_modified(self, session_id: str) -> float: ...


class LocalChunkStore:
    """Chunk store rooted at a local directory."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def _dir(self, session_id: str) -> Path:
        return self.root / validate_session_id(session_id)

    def write_chunk(self, session_id: str, index: int, data: bytes) -> None:
        session_dir = self._dir(session_id)
        target = session_dir / chunk_name(index)
        try:
            session_dir.mkdir(parents=True, exist_ok=True)
            # Write-then-rename so a crashed write never looks like a complete chunk
            partial = target.with_name(target.name + ".part")
            partial.write_bytes(data)
            os.replace(partial, target)
        except OSError as exc:
            raise StorageError(f"Failed to store chunk {index} of {session_id}: {exc}") from exc

    def read_chunk(self, session_id: str, index: int) -> bytes:
        try:
            return (self._dir(session_id) / chunk_name(index)).read_bytes()
        except OSError as exc:
            raise StorageError(f"Failed to read chunk {index} of {session_id}: {exc}") from exc

    def chunk_sizes(self, session_id: str) -> dict[int, int]:
        session_dir = self._dir(session_id)
        if not session_dir.is_dir():
            return {}
        sizes: dict[int, int] = {}
        for path in session_dir.iterdir():
            match = _CHUNK_RE.match(path.name)
            if match:
                sizes[int(match.group(1))] = path.stat().st_size
        return sizes

    def write_session(self, session: UploadSession) -> None:
        session_dir = self._dir(session.session_id)
        try:
            session_dir.mkdir(parents=True, exist_ok=True)
            (session_dir / METADATA_NAME).write_text(
                json.dumps(session.to_json(), indent=2), encoding="utf-8"
            )
        except OSError as exc:
            raise StorageError(f"Failed to store metadata for {session.session_id}: {exc}") from exc

    def read_session(self, session_id: str) -> UploadSession | None:
        path = self._dir(session_id) / METADATA_NAME
        if not path.is_file():
            return None
        session = UploadSession.from_json(json.loads(path.read_text(encoding="utf-8")))
        session.received_chunk_indices = sorted(self.chunk_sizes(session_id))
        return session

    def session_exists(self, session_id: str) -> bool:
        return self._dir(session_id).is_dir()

    def delete_session(self, session_id: str) -> None:
        shutil.rmtree(self._dir(session_id))

    def list_sessions(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_dir())

    def last_modified(self, session_id: str) -> float:
        return self._dir(session_id).stat().st_mtime


class SupabaseChunkStore:
    """Chunk store backed by a Supabase Storage bucket."""

    def __init__(self, client: Client, bucket: str) -> None:
        self.client = client
        self.bucket = bucket

    def _bucket(self) -> Any:
        return self.client.storage.from_(self.bucket)

    def _list(self, session_id: str) -> list[dict[str, Any]]:
        return list(self._bucket().list(validate_session_id(session_id)) or [])

    def write_chunk(self, session_id: str, index: int, data: bytes) -> None:
        path = f"{validate_session_id(session_id)}/{chunk_name(index)}"
        try:
            self._bucket().upload(
                path, data, {"content-type": "application/octet-stream", "upsert": "true"}
            )
        except Exception as exc:
            raise StorageError(f"Failed to store chunk {index} of {session_id}: {exc}") from exc

    def read_chunk(self, session_id: str, index: int) -> bytes:
        path = f"{validate_session_id(session_id)}/{chunk_name(index)}"
        try:
            return bytes(self._bucket().download(path))
        except Exception as exc:
            raise StorageError(f"Failed to read chunk {index} of {session_id}: {exc}") from exc

    def chunk_sizes(self, session_id: str) -> dict[int, int]:
        sizes: dict[int, int] = {}
        for entry in self._list(session_id):
            match = _CHUNK_RE.match(entry.get("name", ""))
            if match:
                metadata = entry.get("metadata") or {}
                sizes[int(match.group(1))] = int(metadata.get("size") or 0)
        return sizes

    def write_session(self, session: UploadSession) -> None:
        path = f"{validate_session_id(session.session_id)}/{METADATA_NAME}"
        body = json.dumps(session.to_json()).encode("utf-8")
        try:
            self._bucket().upload(path, body, {"content-type": "application/json", "upsert": "true"})
        except Exception as exc:
            raise StorageError(f"Failed to store metadata for {session.session_id}: {exc}") from exc

    def read_session(self, session_id: str) -> UploadSession | None:
        names = {e.get("name") for e in self._list(session_id)}
        if METADATA_NAME not in names:
            return None
        raw = self._bucket().download(f"{session_id}/{METADATA_NAME}")
        session = UploadSession.from_json(json.loads(bytes(raw).decode("utf-8")))
        session.received_chunk_indices = sorted(self.chunk_sizes(session_id))
        return session

    def session_exists(self, session_id: str) -> bool:
        return bool(self._list(session_id))

    def delete_session(self, session_id: str) -> None:
        paths = [f"{session_id}/{e['name']}" for e in self._list(session_id) if e.get("name")]
        if paths:
            self._bucket().remove(paths)

    def list_sessions(self) -> list[str]:
        # Folders come back as entries without an object id
        entries = self._bucket().list("") or []
        return sorted(e["name"] for e in entries if e.get("name") and not e.get("id"))

    def last_modified(self, session_id: str) -> float:
        stamps = [
            datetime.fromisoformat(e["updated_at"]).timestamp()
            for e in self._list(session_id)
            if e.get("updated_at")
        ]
        # Unknown age counts as fresh
        return max(stamps) if stamps else time.time()


def receive_chunk(
    store: ChunkStore,
    *,
    session_id: str,
    chunk_index: int,
    total_chunks: int,
    data: bytes,
    owner_id: str,
    file_name: str | None = None,
    mime_type: str | None = None,
    file_size: int | None = None,
    transcription_id: str | None = None,
) -> None:
    """Store one fragment of an upload.

    Chunks may arrive in any order and a repeated index overwrites the earlier
    copy. The first chunk to arrive records the session owner; chunk 0 also
    persists the file metadata. A storage failure is reported for this chunk
    only; chunks already stored are left alone.

    Raises:
        ValueError: Bad id, index out of range, or empty chunk.
        UploadOwnershipError: The session was started by another user.
        StorageError: The write failed.
    """
    validate_session_id(session_id)
    if total_chunks < 1:
        raise ValueError("totalChunks must be at least 1")
    if not 0 <= chunk_index < total_chunks:
        raise ValueError(f"chunkIndex {chunk_index} is outside 0..{total_chunks - 1}")
    if not data:
        raise ValueError(f"Chunk {chunk_index} is empty")

    existing = store.read_session(session_id)
    if existing is not None and existing.owner_id != owner_id:
        raise UploadOwnershipError(session_id)

    # The first chunk of any index claims the session; chunk 0 refreshes the file details
    if existing is None or chunk_index == 0:
        store.write_session(
            UploadSession(
                session_id=session_id,
                total_chunks=total_chunks,
                owner_id=owner_id,
                file_name=file_name,
                mime_type=mime_type,
                file_size=file_size,
                created_at=existing.created_at if existing else time.time(),
                transcription_id=transcription_id
                or (existing.transcription_id if existing else None),
            )
        )

    store.write_chunk(session_id, chunk_index, data)
    logger.debug("Stored chunk %d/%d for upload %s", chunk_index + 1, total_chunks, session_id)


def purge_stale_sessions(
    store: ChunkStore, max_age_seconds: float, now: float | None = None
) -> list[str]:
    """Delete upload sessions older than ``max_age_seconds``.

    Age comes from the session metadata; sessions with missing or unreadable
    metadata fall back to the store's modification time. One bad session never
    stops the sweep.
    """
    now = time.time() if now is None else now
    purged: list[str] = []
    for session_id in store.list_sessions():
        try:
            session = store.read_session(session_id)
        except Exception as exc:
            logger.warning(
                "Unreadable metadata for upload %s, aging by modification time: %s",
                session_id,
                exc,
            )
            session = None
        try:
            started = session.created_at if session else store.last_modified(session_id)
            if now - started <= max_age_seconds:
                continue
            store.delete_session(session_id)
            purged.append(session_id)
        except Exception:
            logger.exception("Failed to purge stale upload %s", session_id)
    if purged:
        logger.info("Purged %d stale upload sessions", len(purged))
    return purged
