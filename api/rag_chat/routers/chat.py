"""
Chat router — POST /chat streaming endpoint.

Receives a question (plus optional caller id and history) and streams the
answer as Server-Sent Events: `data` tokens, an optional `sources` frame,
then `result` and `end` (or a single `error`).
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response, StreamingResponse

from rag_chat.core.errors import ValidationError
from rag_chat.models.chat import ChatRequest
from rag_chat.models.events import ErrorEvent
from rag_chat.services.orchestrator import ChatOrchestrator
from rag_chat.services.sse import encode_event

router = APIRouter(tags=["chat"])
logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}

SSE_HEADERS = {
    **CORS_HEADERS,
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


def get_chat_orchestrator(request: Request) -> ChatOrchestrator:
    """
    Dependency injection for the chat orchestrator.
    Initialized once in the app lifespan and stored in app.state.
    """
    return request.app.state.chat_orchestrator


@router.options("/chat")
async def chat_preflight() -> Response:
    """Answer CORS preflight requests with an empty 200."""
    return Response(status_code=200, headers=CORS_HEADERS)


@router.post("/chat")
async def chat(
    request: ChatRequest,
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> Response:
    """
    Ask a question and stream the grounded answer.

    A request without a query is rejected with HTTP 400 and a single
    `error` frame before any upstream call is made.
    """
    try:
        session = await orchestrator.open_session(request)
    except ValidationError as exc:
        logger.info("Rejected chat request: %s", exc.message)
        return Response(
            content=encode_event(ErrorEvent(exc.message)),
            status_code=400,
            media_type="text/event-stream",
            headers=CORS_HEADERS,
        )

    logger.info(
        "Chat turn started (history=%d, query_len=%d)",
        len(request.history),
        len(request.query or ""),
    )
    return StreamingResponse(
        session.stream(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
