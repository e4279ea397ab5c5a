"""Supabase helpers for the ``transcriptions`` table."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, cast

from supabase import Client, create_client

from src.config import settings
from src.errors import RecordNotFoundError
from src.storage.models import TranscriptionRecord

logger = logging.getLogger(__name__)

TABLE = "transcriptions"


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    """Create the process-wide Supabase client from settings."""
    return create_client(settings.supabase_url, settings.supabase_key)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_record(client: Client, record_id: str) -> TranscriptionRecord:
    """Fetch one record by id or raise RecordNotFoundError."""
    result = client.table(TABLE).select("*").eq("id", record_id).execute()
    rows = cast(list[dict[str, Any]], result.data)
    if not rows:
        raise RecordNotFoundError(record_id)
    return TranscriptionRecord.from_row(rows[0])


def create_record(
    client: Client,
    user_id: str,
    *,
    record_id: str | None = None,
    file_name: str | None = None,
    media_path: str | None = None,
    media_url: str | None = None,
    content_type: str | None = None,
    file_size: int | None = None,
) -> TranscriptionRecord:
    """Insert a fresh pending record and return it."""
    row = {
        "id": record_id or str(uuid.uuid4()),
        "user_id": user_id,
        "file_name": file_name,
        "media_path": media_path,
        "media_url": media_url,
        "content_type": content_type,
        "file_size": file_size,
        "status": "pending",
        "summary_status": "pending",
        "analysis_status": "pending",
        "created_at": _now(),
    }
    result = client.table(TABLE).insert(row).execute()
    rows = cast(list[dict[str, Any]], result.data)
    return TranscriptionRecord.from_row(rows[0] if rows else row)


def update_record(client: Client, record_id: str, **fields: Any) -> None:
    """Patch columns on a record, stamping ``updated_at``."""
    fields["updated_at"] = _now()
    client.table(TABLE).update(fields).eq("id", record_id).execute()


def mark_failed(client: Client, record_id: str, status_field: str, message: str) -> None:
    """Best-effort error write; a failure here is logged, never raised."""
    try:
        update_record(client, record_id, **{status_field: "error", "error": message})
    except Exception:
        logger.exception("Could not record %s=error for %s", status_field, record_id)
