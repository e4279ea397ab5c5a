"""Summary and analysis endpoints."""

from __future__ import annotations

import asyncio
import dataclasses
import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from src.analysis.analyzer import analyze_and_store, analyze_text, store_analysis
from src.analysis.parsing import format_summary
from src.analysis.summarizer import store_summary, summarize_and_store
from src.api.deps import LLMDep, SupabaseDep, UserDep, load_owned_record
from src.api.models import (
    AnalyzeRequest,
    AnalyzeResponse,
    SummarizeRequest,
    SummarizeResponse,
    UpdateAnalysisRequest,
    UpdateSummaryRequest,
)
from src.errors import LLMError, LLMTimeoutError
from src.pipeline_config import StepStatus, TranscriptionStatus
from src.storage.models import default_analysis

logger = logging.getLogger(__name__)

router = APIRouter()

ANALYSIS_RETRY_AFTER_SECONDS = 10


def _llm_http_error(exc: LLMError, what: str) -> HTTPException:
    if isinstance(exc, LLMTimeoutError):
        return HTTPException(status_code=504, detail=f"{what} timed out. Please try again.")
    return HTTPException(status_code=502, detail=f"{what} failed: {exc}")


@router.post("/api/summarize", response_model=SummarizeResponse)
async def summarize(
    request: SummarizeRequest, user: UserDep, client: SupabaseDep, llm: LLMDep
) -> SummarizeResponse | JSONResponse:
    """Summarize a completed transcript and store the result on the record.

    A summary that is already stored is returned as-is. A summary already
    being generated yields 202; the check is not atomic, so two concurrent
    calls may both run.
    """
    record = await asyncio.to_thread(load_owned_record, client, request.transcription_id, user)

    if record.summary_status is StepStatus.COMPLETED and record.summary_text:
        return SummarizeResponse(
            summary_status=record.summary_status.value, summary=record.summary_text
        )
    if record.summary_status is StepStatus.PROCESSING:
        return JSONResponse(
            status_code=202,
            content={
                "success": True,
                "summaryStatus": StepStatus.PROCESSING.value,
                "message": "Summary generation already in progress",
            },
        )
    if record.status is not TranscriptionStatus.COMPLETED or not record.transcription_text:
        raise HTTPException(
            status_code=400, detail="Transcription must be completed before summarizing"
        )

    try:
        summary = await asyncio.to_thread(summarize_and_store, client, llm, record)
    except LLMError as exc:
        raise _llm_http_error(exc, "Summary generation") from exc

    status = StepStatus.PENDING if summary.get("placeholder") else StepStatus.COMPLETED
    return SummarizeResponse(
        summary_status=status.value, summary=format_summary(summary), summary_data=summary
    )


@router.post("/api/analyze-transcript", response_model=AnalyzeResponse)
async def analyze_transcript(
    request: AnalyzeRequest, user: UserDep, client: SupabaseDep, llm: LLMDep
) -> AnalyzeResponse | JSONResponse:
    """Extract sentiment, pain points, feature requests and topics.

    With a ``transcriptionId`` the result is stored on that record; with only
    ``transcriptionText`` the analysis is returned without being stored.
    """
    if not request.transcription_id and not request.transcription_text:
        raise HTTPException(
            status_code=400, detail="Either transcriptionId or transcriptionText is required"
        )

    if not request.transcription_id:
        try:
            analysis = await asyncio.to_thread(analyze_text, request.transcription_text or "", llm)
        except LLMError as exc:
            raise _llm_http_error(exc, "Analysis") from exc
        return AnalyzeResponse(analysis=analysis)

    record = await asyncio.to_thread(load_owned_record, client, request.transcription_id, user)

    if record.status is not TranscriptionStatus.COMPLETED and not request.transcription_text:
        return JSONResponse(
            status_code=202,
            content={
                "success": False,
                "error": "Transcription is still being processed. Please try again later.",
                "status": record.status.value,
                "retryAfter": ANALYSIS_RETRY_AFTER_SECONDS,
                "isPartial": True,
            },
        )
    if (
        record.analysis_status is StepStatus.COMPLETED
        and record.analysis_data
        and not request.transcription_text
    ):
        return AnalyzeResponse(analysis=record.trusted_analysis())

    if request.transcription_text:
        record = dataclasses.replace(record, transcription_text=request.transcription_text)

    try:
        analysis = await asyncio.to_thread(analyze_and_store, client, llm, record)
    except LLMError as exc:
        raise _llm_http_error(exc, "Analysis") from exc
    return AnalyzeResponse(analysis=analysis)


@router.put("/api/transcription/update-analysis", response_model=AnalyzeResponse)
async def update_analysis(
    request: UpdateAnalysisRequest, user: UserDep, client: SupabaseDep
) -> AnalyzeResponse:
    """Store analysis edited on the client, back-filling any missing fields."""
    record = await asyncio.to_thread(load_owned_record, client, request.transcription_id, user)
    merged = {**default_analysis(), **request.analysis_data}
    analysis = await asyncio.to_thread(store_analysis, client, record.id, merged)
    logger.info("Analysis for %s updated by user %s", record.id, user.id)
    return AnalyzeResponse(analysis=analysis)


@router.put("/api/transcription/update-summary", response_model=SummarizeResponse)
async def update_summary(
    request: UpdateSummaryRequest, user: UserDep, client: SupabaseDep
) -> SummarizeResponse:
    """Store a summary edited on the client and mark the summary step completed."""
    record = await asyncio.to_thread(load_owned_record, client, request.transcription_id, user)
    if not str(request.summary_data.get("text") or "").strip():
        raise HTTPException(status_code=400, detail="Summary text is required")
    summary = await asyncio.to_thread(store_summary, client, record.id, request.summary_data)
    logger.info("Summary for %s updated by user %s", record.id, user.id)
    return SummarizeResponse(
        summary_status=StepStatus.COMPLETED.value,
        summary=format_summary(summary),
        summary_data=summary,
    )
