"""Media bucket helpers: durable upload and URL minting."""

from __future__ import annotations

import time
from pathlib import PurePosixPath
from typing import Any

from supabase import Client

from src.config import settings
from src.errors import StorageError


def media_object_path(owner_id: str, file_name: str) -> str:
    """Canonical media path: ``{owner_id}/{epoch_ms}_{basename}``."""
    base = PurePosixPath(file_name.replace("\\", "/")).name or "upload"
    return f"{owner_id}/{int(time.time() * 1000)}_{base}"


def upload_media(client: Client, path: str, data: bytes, content_type: str | None) -> str:
    """Upload assembled media and return its public URL."""
    bucket = client.storage.from_(settings.media_bucket)
    try:
        bucket.upload(
            path,
            data,
            {"content-type": content_type or "application/octet-stream", "upsert": "false"},
        )
    except Exception as exc:
        raise StorageError(f"Failed to upload media to {path}: {exc}") from exc
    return str(bucket.get_public_url(path))


def signed_media_url(client: Client, path: str) -> str:
    """Mint a short-lived signed URL so the speech API can read a private object."""
    try:
        result: Any = client.storage.from_(settings.media_bucket).create_signed_url(
            path, settings.signed_url_ttl_seconds
        )
    except Exception as exc:
        raise StorageError(f"Failed to sign media URL for {path}: {exc}") from exc
    # storage3 has returned both spellings across releases
    url = result.get("signedURL") or result.get("signedUrl")
    if not url:
        raise StorageError(f"Signed URL response for {path} had no URL")
    return str(url)
