from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Request, status
from fastapi.responses import ORJSONResponse

from api.dependencies import get_orchestrator
from api.models import ChatRequest, ChatResponse, ClearedResponse, ErrorResponse
from api.orchestrators.conversation import ConversationOrchestrator
from libs.common.errors import QueryValidationError

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post(
    "/chat",
    response_model=ChatResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Chat"],
)
async def chat(
    request: Request,
    chat_request: Optional[ChatRequest] = Body(None),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    """Answer a news question using retrieval over the news index.

    Creates a session when ``sessionId`` is omitted and stores the turn in
    the session history.

    Args:
        request: FastAPI request object
        chat_request: Session id (optional) and query; a missing body is
            treated as a missing query

    Returns:
        ChatResponse, or an ErrorResponse body with status 400/500

    Example:
        ```bash
        curl -X POST http://localhost:8080/api/chat \\
          -H "Content-Type: application/json" \\
          -d '{"query": "What is happening in tech?"}'
        ```
    """
    request_id = getattr(request.state, "request_id", "unknown")
    chat_request = chat_request or ChatRequest()

    try:
        result = await orchestrator.handle_chat(chat_request.session_id, chat_request.query)
    except QueryValidationError as e:
        logger.warning("Invalid chat query", request_id=request_id, error=str(e))
        return ORJSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(error="Query is required").model_dump(exclude_none=True),
        )
    except Exception as e:
        logger.error("Chat processing failed", request_id=request_id, error=str(e), exc_info=True)
        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error="Server error", message=str(e)).model_dump(),
        )

    return ChatResponse(
        session_id=result.session_id,
        response=result.response,
        documents_found=result.documents_found,
    ).model_dump(by_alias=True)


@router.get("/history/{session_id}", tags=["History"])
async def get_history(
    session_id: str,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> Any:
    """Return a session's turns, oldest first (empty list for unknown sessions)."""
    try:
        turns = await orchestrator.load_history(session_id)
    except Exception as e:
        logger.error("Get history failed", session_id=session_id, error=str(e))
        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error="Failed to fetch history").model_dump(exclude_none=True),
        )

    history: List[Dict[str, Any]] = [turn.to_wire() for turn in turns]
    return history


@router.delete("/history/{session_id}", response_model=ClearedResponse, tags=["History"])
async def clear_history(
    session_id: str,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> Any:
    """Delete a session's history. Clearing an unknown session also succeeds."""
    try:
        await orchestrator.clear_session(session_id)
    except Exception as e:
        logger.error("Clear session failed", session_id=session_id, error=str(e))
        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error="Failed to clear session").model_dump(exclude_none=True),
        )
    return ClearedResponse(cleared=True)
