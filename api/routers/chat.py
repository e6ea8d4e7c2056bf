"""Chat endpoints: blocking answers and Server-Sent Events streaming."""

from __future__ import annotations

import time
from typing import AsyncGenerator

import orjson
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from api.models import ChatRequest, ChatResponse, ErrorResponse
from api.orchestrators.query_orchestrator import AgentOrchestrator
from api.schemas.agent_state import StreamEvent
from libs.common.errors import AgentError, CircuitOpenError, OperationTimeoutError

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_orchestrator(request: Request) -> AgentOrchestrator:
    """FastAPI dependency returning the orchestrator built at startup."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error_code": "NOT_READY", "message": "The agent is still starting up."},
        )
    return orchestrator


def format_sse(event: StreamEvent) -> str:
    """Render one event as ``event: <type>`` plus a JSON ``data:`` line."""
    return f"event: {event.type}\ndata: {orjson.dumps(event.data).decode()}\n\n"


def _http_error(error: AgentError) -> HTTPException:
    if isinstance(error, OperationTimeoutError):
        status_code = status.HTTP_504_GATEWAY_TIMEOUT
    elif isinstance(error, CircuitOpenError):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=status_code, detail={"error_code": error.code, "message": error.message})


@router.post(
    "/v1/chat",
    response_model=ChatResponse,
    responses={500: {"model": ErrorResponse}, 503: {"model": ErrorResponse}, 504: {"model": ErrorResponse}},
    tags=["Chat"],
)
async def chat(
    request: ChatRequest,
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
) -> ChatResponse:
    """Answer one chat turn.

    Returns:
        ChatResponse: answer, citations and, when the question needed a
        human authority, the escalation record

    Raises:
        HTTPException: 504 when the run exceeds its deadline, 503 when a
            required dependency is unavailable, 500 for other failures
    """
    start_time = time.time()
    try:
        output = await orchestrator.invoke(
            request.to_langchain(),
            conversation_id=request.conversation_id,
            user_sport=request.user_sport,
        )
    except AgentError as e:
        logger.error("Chat request failed", error=str(e), error_code=e.code)
        raise _http_error(e) from e

    logger.info(
        "Chat request completed",
        conversation_id=request.conversation_id,
        escalated=output.escalation is not None,
        processing_time_ms=round((time.time() - start_time) * 1000, 2),
    )
    return ChatResponse(answer=output.answer, citations=output.citations, escalation=output.escalation)


@router.post("/v1/chat/stream", tags=["Chat"])
async def chat_stream(
    request: ChatRequest,
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    """Stream one chat turn as Server-Sent Events.

    Events:
        - status: progress label for the running stage
        - text-delta: answer text fragment
        - answer-reset: discard answer text received so far
        - citations: sources, once
        - escalation: referral record, once
        - discovered-urls: web pages consulted, once
        - error: ``{message, code}`` when the run fails
        - done: always last
    """

    async def generate_sse_stream() -> AsyncGenerator[str, None]:
        async for event in orchestrator.stream(
            request.to_langchain(),
            conversation_id=request.conversation_id,
            user_sport=request.user_sport,
        ):
            yield format_sse(event)

    return StreamingResponse(
        generate_sse_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
