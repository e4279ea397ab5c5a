"""Tests for the transcription pipeline: direct, sliced, resumed, failed, retried."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from src.config import settings
from src.errors import MediaTooLargeError, TranscriptionError
from src.pipeline_config import TranscriptionStatus
from src.storage.records import get_record
from src.transcription.media import fetch_media
from src.transcription.pipeline import (
    ProviderJob,
    TranscriptionJob,
    await_provider_transcript,
    continue_transcription,
    frame_stream_hint,
    looks_like_frame_stream,
    split_slices,
    start_transcription,
)
from src.transcription.retry import retry_call

RECORD_ID = "0b5b3c52-6a44-4d55-9d1c-2f9a2d0c7e11"
URL = "https://media.test/interview.mp3"


@pytest.fixture
def small_slices(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "transcription_size_threshold", 10)
    monkeypatch.setattr(settings, "transcription_slice_bytes", 10)


def _record(supabase):
    return get_record(supabase, RECORD_ID)


class TestSplitSlices:
    def test_even_and_remainder(self) -> None:
        assert split_slices(b"a" * 25, 10) == [b"a" * 10, b"a" * 10, b"a" * 5]

    def test_rejects_non_positive_size(self) -> None:
        with pytest.raises(ValueError):
            split_slices(b"abc", 0)


class TestDirectTranscription:
    def test_small_media_completes_in_one_call(self, supabase, add_record, speech) -> None:
        add_record(RECORD_ID)
        speech.transcribe_bytes.return_value = "hello world"
        with patch("src.transcription.pipeline.fetch_media", return_value=b"x" * 100):
            outcome = start_transcription(supabase, speech, _record(supabase), URL)

        assert outcome.status is TranscriptionStatus.COMPLETED
        assert outcome.text == "hello world"
        assert outcome.job is None
        row = supabase.row(RECORD_ID)
        assert row["status"] == "completed"
        assert row["transcription_text"] == "hello world"
        speech.transcribe_bytes.assert_called_once_with(b"x" * 100)

    def test_completed_record_short_circuits(self, supabase, add_record, speech) -> None:
        add_record(RECORD_ID, status="completed", transcription_text="done already")
        with patch("src.transcription.pipeline.fetch_media") as fetch:
            outcome = start_transcription(supabase, speech, _record(supabase), URL)
        assert outcome.text == "done already"
        fetch.assert_not_called()
        speech.transcribe_bytes.assert_not_called()


class TestSlicedTranscription:
    def test_first_slice_now_rest_as_job(self, supabase, add_record, speech, small_slices) -> None:
        add_record(RECORD_ID)
        speech.transcribe_bytes.side_effect = ["one", "two", "three"]
        media = b"a" * 10 + b"b" * 10 + b"c" * 5
        with patch("src.transcription.pipeline.fetch_media", return_value=media):
            outcome = start_transcription(supabase, speech, _record(supabase), URL)

        assert outcome.status is TranscriptionStatus.PARTIAL
        assert outcome.text == "one"
        assert outcome.job == TranscriptionJob(RECORD_ID, URL, 1, 3, 10)
        row = supabase.row(RECORD_ID)
        assert row["status"] == "partial"
        assert row["transcription_progress"] == {
            "completed_slices": 1,
            "total_slices": 3,
            "slice_bytes": 10,
        }

        continue_transcription(supabase, speech, outcome.job, outcome.media)

        row = supabase.row(RECORD_ID)
        assert row["status"] == "completed"
        assert row["transcription_text"] == "one two three"
        assert row["transcription_progress"] is None

    def test_resume_from_checkpoint(self, supabase, add_record, speech, small_slices) -> None:
        add_record(
            RECORD_ID,
            status="error",
            transcription_text="one two",
            transcription_progress={"completed_slices": 2, "total_slices": 3, "slice_bytes": 10},
        )
        outcome = start_transcription(supabase, speech, _record(supabase), URL)

        assert outcome.status is TranscriptionStatus.PARTIAL
        assert outcome.job.start_slice == 2
        speech.transcribe_bytes.assert_not_called()

        speech.transcribe_bytes.return_value = "three"
        media = b"a" * 10 + b"b" * 10 + b"c" * 5
        with patch("src.transcription.pipeline.fetch_media", return_value=media):
            continue_transcription(supabase, speech, outcome.job)

        speech.transcribe_bytes.assert_called_once_with(b"c" * 5)
        assert supabase.row(RECORD_ID)["transcription_text"] == "one two three"
        assert supabase.row(RECORD_ID)["status"] == "completed"

    def test_background_failure_marks_record(self, supabase, add_record, speech) -> None:
        add_record(RECORD_ID, status="partial", transcription_text="one")
        speech.transcribe_bytes.side_effect = RuntimeError("provider down")
        job = TranscriptionJob(RECORD_ID, URL, 1, 2, 10)

        continue_transcription(supabase, speech, job, b"a" * 15)

        row = supabase.row(RECORD_ID)
        assert row["status"] == "error"
        assert "provider down" in row["error"]
        assert speech.transcribe_bytes.call_count == 3

    def test_checkpoint_saved_after_each_slice(self, supabase, add_record, speech) -> None:
        add_record(RECORD_ID, status="partial", transcription_text="one")
        speech.transcribe_bytes.side_effect = ["two"] + [RuntimeError("x")] * 3
        job = TranscriptionJob(RECORD_ID, URL, 1, 3, 10)

        continue_transcription(supabase, speech, job, b"a" * 25)

        row = supabase.row(RECORD_ID)
        assert row["status"] == "error"
        assert row["transcription_text"] == "one two"
        assert row["transcription_progress"]["completed_slices"] == 2


class TestContainerMedia:
    """Formats that cannot be cut at arbitrary bytes go to the provider whole."""

    def test_large_mp4_submitted_by_url(self, supabase, add_record, speech, small_slices) -> None:
        add_record(
            RECORD_ID, file_name="interview.mp4", content_type="video/mp4", file_size=25
        )
        speech.submit_url.return_value = "job-1"
        with patch("src.transcription.pipeline.fetch_media") as fetch:
            outcome = start_transcription(supabase, speech, _record(supabase), URL)

        fetch.assert_not_called()
        speech.transcribe_bytes.assert_not_called()
        speech.submit_url.assert_called_once_with(URL)
        assert outcome.status is TranscriptionStatus.PROCESSING
        assert outcome.job == ProviderJob(RECORD_ID, "job-1")
        row = supabase.row(RECORD_ID)
        assert row["status"] == "processing"
        assert row["transcription_progress"] == {"provider_job_id": "job-1"}

        speech.wait_for_transcript.return_value = "the whole interview"
        await_provider_transcript(supabase, speech, outcome.job)

        row = supabase.row(RECORD_ID)
        assert row["status"] == "completed"
        assert row["transcription_text"] == "the whole interview"
        assert row["transcription_progress"] is None

    def test_container_of_unknown_size_is_never_sliced(
        self, supabase, add_record, speech, small_slices
    ) -> None:
        add_record(RECORD_ID, file_name="interview.m4a", content_type="audio/mp4")
        speech.submit_url.return_value = "job-2"
        media = b"\x00\x00\x00\x18ftyp" + b"x" * 20
        with patch("src.transcription.pipeline.fetch_media", return_value=media):
            outcome = start_transcription(supabase, speech, _record(supabase), URL)

        speech.transcribe_bytes.assert_not_called()
        assert outcome.job == ProviderJob(RECORD_ID, "job-2")

    def test_small_container_still_direct(self, supabase, add_record, speech) -> None:
        add_record(RECORD_ID, file_name="clip.wav", content_type="audio/wav", file_size=100)
        speech.transcribe_bytes.return_value = "short"
        with patch("src.transcription.pipeline.fetch_media", return_value=b"RIFF" + b"x" * 96):
            outcome = start_transcription(supabase, speech, _record(supabase), URL)
        assert outcome.status is TranscriptionStatus.COMPLETED
        speech.submit_url.assert_not_called()

    def test_untyped_media_is_sniffed(self, supabase, add_record, speech, small_slices) -> None:
        add_record(RECORD_ID, file_name=None, media_path=None)
        speech.transcribe_bytes.return_value = "one"
        media = b"ID3" + b"a" * 22
        with patch("src.transcription.pipeline.fetch_media", return_value=media):
            outcome = start_transcription(
                supabase, speech, _record(supabase), "https://media.test/stream"
            )
        assert outcome.status is TranscriptionStatus.PARTIAL
        speech.submit_url.assert_not_called()

    def test_reinvoke_reattaches_to_provider_job(self, supabase, add_record, speech) -> None:
        add_record(
            RECORD_ID, status="processing", transcription_progress={"provider_job_id": "job-3"}
        )
        outcome = start_transcription(supabase, speech, _record(supabase), URL)
        assert outcome.job == ProviderJob(RECORD_ID, "job-3")
        speech.submit_url.assert_not_called()

    def test_provider_failure_marks_record(self, supabase, add_record, speech) -> None:
        add_record(RECORD_ID, status="processing")
        speech.wait_for_transcript.side_effect = TranscriptionError("unsupported codec")

        await_provider_transcript(supabase, speech, ProviderJob(RECORD_ID, "job-4"))

        row = supabase.row(RECORD_ID)
        assert row["status"] == "error"
        assert "unsupported codec" in row["error"]


class TestFrameStreamDetection:
    def test_hint_from_content_type(self) -> None:
        assert frame_stream_hint("audio/mpeg", "x.mp4") is True
        assert frame_stream_hint("video/mp4; codecs=avc1", None) is False

    def test_hint_from_name(self) -> None:
        assert frame_stream_hint(None, "https://media.test/a/talk.MP3?token=t") is True
        assert frame_stream_hint(None, "talk.wav") is False
        assert frame_stream_hint(None, "https://media.test/stream") is None

    def test_sniffing(self) -> None:
        assert looks_like_frame_stream(b"ID3\x04rest")
        assert looks_like_frame_stream(b"\xff\xfb\x90\x00")
        assert not looks_like_frame_stream(b"\x00\x00\x00\x18ftypmp42")
        assert not looks_like_frame_stream(b"RIFF....WAVE")


class TestFailures:
    def test_speech_error_marks_record_and_raises(self, supabase, add_record, speech) -> None:
        add_record(RECORD_ID)
        speech.transcribe_bytes.side_effect = TranscriptionError("bad audio")
        with (
            patch("src.transcription.pipeline.fetch_media", return_value=b"x" * 5),
            pytest.raises(TranscriptionError),
        ):
            start_transcription(supabase, speech, _record(supabase), URL)
        row = supabase.row(RECORD_ID)
        assert row["status"] == "error"
        assert "bad audio" in row["error"]

    def test_too_large_media(self, supabase, add_record, speech) -> None:
        add_record(RECORD_ID)
        with (
            patch(
                "src.transcription.pipeline.fetch_media",
                side_effect=MediaTooLargeError(500, 400),
            ),
            pytest.raises(MediaTooLargeError),
        ):
            start_transcription(supabase, speech, _record(supabase), URL)
        assert supabase.row(RECORD_ID)["status"] == "error"


class TestRetry:
    def test_succeeds_on_third_attempt(self) -> None:
        fn = MagicMock(side_effect=[RuntimeError("a"), RuntimeError("b"), "ok"])
        assert retry_call(fn, 1, key="v") == "ok"
        assert fn.call_count == 3
        fn.assert_called_with(1, key="v")

    def test_gives_up_with_last_error(self) -> None:
        fn = MagicMock(side_effect=[RuntimeError("a"), RuntimeError("b"), RuntimeError("last")])
        with pytest.raises(RuntimeError, match="last"):
            retry_call(fn)
        assert fn.call_count == 3


class TestFetchMedia:
    def test_rejects_non_http_url(self) -> None:
        with pytest.raises(ValueError):
            fetch_media("ftp://media.test/file.mp3")

    def test_declared_length_over_limit(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "max_media_bytes", 10)
        response = MagicMock(headers={"content-length": "11"})
        with (
            patch("src.transcription.media.httpx.stream") as stream,
            pytest.raises(MediaTooLargeError),
        ):
            stream.return_value.__enter__.return_value = response
            fetch_media(URL)
        response.iter_bytes.assert_not_called()

    def test_streamed_bytes_over_limit(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "max_media_bytes", 10)
        response = MagicMock(headers={})
        response.iter_bytes.return_value = [b"x" * 6, b"x" * 6]
        with (
            patch("src.transcription.media.httpx.stream") as stream,
            pytest.raises(MediaTooLargeError),
        ):
            stream.return_value.__enter__.return_value = response
            fetch_media(URL)

    def test_returns_body(self) -> None:
        response = MagicMock(headers={"content-length": "5"})
        response.iter_bytes.return_value = [b"ab", b"cde"]
        with patch("src.transcription.media.httpx.stream") as stream:
            stream.return_value.__enter__.return_value = response
            assert fetch_media(URL) == b"abcde"
