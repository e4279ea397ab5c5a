"""FastAPI dependencies: service handles and bearer-token auth.

Every external client is built once per process and injected into handlers,
so tests swap them through ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated, Any

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from supabase import Client

from src.analysis.llm import LLMClient, get_llm_client
from src.config import settings
from src.errors import RecordNotFoundError
from src.pipeline_config import ChunkBackend
from src.storage.models import TranscriptionRecord
from src.storage.records import get_record, get_supabase_client
from src.transcription.speech import SpeechClient, get_speech_client
from src.uploads.chunks import ChunkStore, LocalChunkStore, SupabaseChunkStore

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthUser:
    id: str
    email: str | None = None


def supabase_client() -> Client:
    return get_supabase_client()


@lru_cache(maxsize=1)
def _chunk_store() -> ChunkStore:
    if settings.chunk_backend is ChunkBackend.SUPABASE:
        return SupabaseChunkStore(get_supabase_client(), settings.chunk_bucket)
    return LocalChunkStore(settings.chunk_dir)


def chunk_store() -> ChunkStore:
    return _chunk_store()


def llm_client() -> LLMClient:
    return get_llm_client()


def speech_client() -> SpeechClient:
    return get_speech_client()


def current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    client: Annotated[Client, Depends(supabase_client)],
) -> AuthUser:
    """Verify the bearer token with Supabase Auth and return the caller."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        response: Any = client.auth.get_user(credentials.credentials)
    except Exception as exc:
        logger.warning("Token verification failed: %s", exc)
        raise HTTPException(
            status_code=401, detail="Authentication failed. Please sign in again."
        ) from exc
    user = getattr(response, "user", None)
    if user is None:
        raise HTTPException(status_code=401, detail="Authentication failed. Please sign in again.")
    return AuthUser(id=str(user.id), email=getattr(user, "email", None))


def require_uuid(value: str, field: str = "transcriptionId") -> str:
    """Validate id format before hitting Supabase (malformed ids cause a 500 from PostgREST)."""
    cleaned = (value or "").strip()
    try:
        uuid.UUID(cleaned)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid UUID format for {field}") from None
    return cleaned


def load_owned_record(client: Client, record_id: str, user: AuthUser) -> TranscriptionRecord:
    """Fetch a record the caller owns: 400 bad id, 404 missing, 403 someone else's."""
    record_id = require_uuid(record_id)
    try:
        record = get_record(client, record_id)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Transcription not found") from None
    if record.user_id != user.id:
        logger.warning("User %s denied access to transcription %s", user.id, record_id)
        raise HTTPException(
            status_code=403, detail="You do not have permission to access this transcription"
        )
    return record


SupabaseDep = Annotated[Client, Depends(supabase_client)]
ChunkStoreDep = Annotated[ChunkStore, Depends(chunk_store)]
LLMDep = Annotated[LLMClient, Depends(llm_client)]
SpeechDep = Annotated[SpeechClient, Depends(speech_client)]
UserDep = Annotated[AuthUser, Depends(current_user)]
