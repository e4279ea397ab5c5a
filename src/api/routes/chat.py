"""Chat endpoint: questions about one interview."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, HTTPException

from src.analysis.chat import chat_reply
from src.api.deps import LLMDep, SupabaseDep, UserDep, load_owned_record
from src.api.models import ChatRequest, ChatResponse
from src.errors import LLMError, LLMTimeoutError

router = APIRouter()


@router.post("/api/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest, user: UserDep, client: SupabaseDep, llm: LLMDep
) -> ChatResponse:
    """Answer the latest message using the interview's transcript, summary and analysis.

    The client sends the whole conversation each turn; nothing is kept here.
    """
    if not request.messages:
        raise HTTPException(status_code=400, detail="No messages provided")

    record = await asyncio.to_thread(load_owned_record, client, request.transcription_id, user)
    history = [m.model_dump() for m in request.messages]

    try:
        reply = await asyncio.to_thread(chat_reply, llm, record, history)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except LLMTimeoutError as exc:
        raise HTTPException(status_code=504, detail="Chat request timed out") from exc
    except LLMError as exc:
        raise HTTPException(status_code=502, detail=f"Chat failed: {exc}") from exc

    return ChatResponse(response=reply)
