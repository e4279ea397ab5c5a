"""Fetch assembled media by URL."""

from __future__ import annotations

import httpx

from src.config import settings
from src.errors import MediaTooLargeError


def fetch_media(url: str) -> bytes:
    """Download media bytes, refusing anything over ``settings.max_media_bytes``."""
    if not url.startswith(("http://", "https://")):
        raise ValueError(f"Invalid media URL: {url!r}. URL must start with http:// or https://")

    limit = settings.max_media_bytes
    with httpx.stream(
        "GET", url, timeout=settings.media_fetch_timeout_seconds, follow_redirects=True
    ) as response:
        response.raise_for_status()
        declared = int(response.headers.get("content-length") or 0)
        if declared > limit:
            raise MediaTooLargeError(declared, limit)
        buf = bytearray()
        for block in response.iter_bytes():
            buf.extend(block)
            if len(buf) > limit:
                raise MediaTooLargeError(len(buf), limit)
    return bytes(buf)
