"""
WebSocket streaming chat endpoint.

Route: WS /ws?sessionId=...

Client sends:
    {"event": "userMessage", "data": {"content": "..."}}
    {"event": "clearSession"}

Server sends:
    {"event": "history", "data": [turn, ...]}      on connect and after clearSession
    {"event": "streamStart", "data": null}
    {"event": "token", "data": "..."}               one per generated chunk
    {"event": "responseEnd", "data": null}
    {"event": "error", "data": {"code": "...", "message": "..."}}   malformed frames only
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from api.dependencies import ChatServices, get_socket_services
from api.models import ClientEvent, ClientEventType, StreamEvent, StreamEventType
from api.orchestrators.conversation import ConversationOrchestrator

logger = structlog.get_logger(__name__)
router = APIRouter(tags=["Streaming"])


async def _send(websocket: WebSocket, event: StreamEvent) -> None:
    await websocket.send_json(event.to_dict())


async def _send_error(websocket: WebSocket, code: str, message: str) -> None:
    await _send(websocket, StreamEvent(event=StreamEventType.ERROR, data={"code": code, "message": message}))


async def _send_history(websocket: WebSocket, orchestrator: ConversationOrchestrator, session_id: str) -> None:
    try:
        turns = await orchestrator.load_history(session_id)
        history = [turn.to_wire() for turn in turns]
    except Exception as e:
        logger.error("Error loading history", session_id=session_id, error=str(e))
        history = []
    await _send(websocket, StreamEvent.history(history))
    logger.info("History sent", session_id=session_id, turns=len(history))


async def _stream_answer(websocket: WebSocket, orchestrator: ConversationOrchestrator, session_id: str, content: str) -> None:
    """Forward one streamed turn; closes generation if the client goes away."""
    events = orchestrator.stream_turn(session_id, content)
    try:
        async for event in events:
            await _send(websocket, event)
    finally:
        await events.aclose()


def _parse_frame(raw_data: str) -> Optional[ClientEvent]:
    try:
        payload: Dict[str, Any] = json.loads(raw_data)
        return ClientEvent.model_validate(payload)
    except (json.JSONDecodeError, ValidationError):
        return None


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    services: ChatServices = Depends(get_socket_services),
) -> None:
    """Persistent chat connection for one session."""
    session_id = websocket.query_params.get("sessionId")
    if not session_id:
        logger.warning("Socket rejected: no sessionId provided", client=str(websocket.client))
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    services.connections.opened()
    orchestrator = services.orchestrator
    logger.info("Client connected", session_id=session_id, client=str(websocket.client))

    try:
        await _send_history(websocket, orchestrator, session_id)

        while True:
            raw_data = await websocket.receive_text()
            frame = _parse_frame(raw_data)
            if frame is None:
                logger.warning("Failed to parse socket frame", session_id=session_id, raw_data_preview=raw_data[:50])
                await _send_error(websocket, "INVALID_FRAME", "Invalid JSON format")
                continue

            if frame.event == ClientEventType.USER_MESSAGE.value:
                content = (frame.data or {}).get("content")
                if not isinstance(content, str) or not content.strip():
                    logger.warning("Empty message received", session_id=session_id)
                    continue
                logger.info("Message received", session_id=session_id, content=content[:100])
                await _stream_answer(websocket, orchestrator, session_id, content)

            elif frame.event == ClientEventType.CLEAR_SESSION.value:
                try:
                    await orchestrator.clear_session(session_id)
                except Exception as e:
                    logger.error("Clear error", session_id=session_id, error=str(e))
                    continue
                await _send(websocket, StreamEvent.history([]))

            else:
                logger.warning("Unknown socket event", session_id=session_id, socket_event=frame.event)
                await _send_error(websocket, "UNKNOWN_EVENT", f"Unknown event: {frame.event}")

    except WebSocketDisconnect as e:
        logger.info("Client disconnected", session_id=session_id, code=e.code)
    except Exception as e:
        # Sending on a socket the client already closed surfaces here
        logger.warning("Socket closed unexpectedly", session_id=session_id, error=str(e), error_type=type(e).__name__)
    finally:
        services.connections.closed()
