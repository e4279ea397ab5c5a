"""Speech-to-text via the AssemblyAI SDK."""

from __future__ import annotations

import logging
from functools import lru_cache

import assemblyai as aai  # type: ignore[import-untyped]

from src.config import settings
from src.errors import TranscriptionError

logger = logging.getLogger(__name__)


class SpeechClient:
    """Thin wrapper so routes and jobs depend on one handle, not SDK globals."""

    def __init__(self, api_key: str) -> None:
        self.api_key = api_key

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _configure(self) -> aai.TranscriptionConfig:
        if not self.api_key:
            raise TranscriptionError("Speech API key not configured (set ASSEMBLYAI_API_KEY)")
        aai.settings.api_key = self.api_key
        # speech_models (plural) is required by the current API; the SDK default is rejected.
        return aai.TranscriptionConfig(speech_models=["universal-3-pro"])

    def transcribe_bytes(self, data: bytes) -> str:
        """Transcribe raw media bytes and return plain text.

        Raises:
            TranscriptionError: No key configured or AssemblyAI rejected the audio.
        """
        config = self._configure()
        transcript = aai.Transcriber().transcribe(data, config=config)
        if transcript.status == aai.TranscriptStatus.error:
            raise TranscriptionError(f"Transcription failed: {transcript.error}")
        text = transcript.text or ""
        logger.info("Transcribed %d bytes into %d chars", len(data), len(text))
        return text

    def submit_url(self, url: str) -> str:
        """Queue a transcription of the media at ``url`` and return the provider job id.

        AssemblyAI downloads the media itself, so container formats arrive whole.
        """
        config = self._configure()
        transcript = aai.Transcriber().submit(url, config=config)
        if transcript.status == aai.TranscriptStatus.error:
            raise TranscriptionError(f"Transcription failed: {transcript.error}")
        if not transcript.id:
            raise TranscriptionError("Speech provider returned no job id")
        logger.info("Submitted media for transcription as job %s", transcript.id)
        return transcript.id

    def wait_for_transcript(self, job_id: str) -> str:
        """Block until provider job ``job_id`` finishes and return its text."""
        self._configure()
        transcript = aai.Transcript.get_by_id(job_id)
        if transcript.status == aai.TranscriptStatus.error:
            raise TranscriptionError(f"Transcription job {job_id} failed: {transcript.error}")
        text = transcript.text or ""
        logger.info("Transcription job %s finished with %d chars", job_id, len(text))
        return text


@lru_cache(maxsize=1)
def get_speech_client() -> SpeechClient:
    return SpeechClient(settings.assemblyai_api_key)
