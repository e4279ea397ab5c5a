from __future__ import annotations

import tempfile
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

from src.pipeline_config import ChunkBackend, LLMProvider


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # API Keys
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    assemblyai_api_key: str = ""

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    media_bucket: str = "media-files"
    chunk_bucket: str = "upload-chunks"

    # Chunked uploads
    chunk_backend: ChunkBackend = ChunkBackend.LOCAL
    chunk_dir: Path = Path(tempfile.gettempdir()) / "insight-ai-uploads"
    upload_session_ttl_seconds: int = 24 * 60 * 60

    # Transcription
    transcription_size_threshold: int = 10 * 1024 * 1024
    transcription_slice_bytes: int = 10 * 1024 * 1024
    max_media_bytes: int = 400 * 1024 * 1024
    media_fetch_timeout_seconds: float = 600.0
    signed_url_ttl_seconds: int = 3600

    # LLM
    llm_provider: LLMProvider = LLMProvider.ANTHROPIC
    llm_model: str = "claude-sonnet-4-20250514"
    openai_model: str = "gpt-4o"
    llm_fallback_model: str = ""  # used once after a rate-limit error; empty disables
    summary_timeout_seconds: float = 120.0
    analysis_timeout_seconds: float = 120.0
    chat_timeout_seconds: float = 120.0
    analysis_max_chars: int = 15000

    # Retry policy for network/API calls
    retry_attempts: int = 3
    retry_initial_delay: float = 1.0
    retry_backoff_factor: float = 2.0

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
