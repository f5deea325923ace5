"""Chat search API endpoints.

Flow:
1. POST /v1/chat/start-search creates the session and returns its id
2. The browser opens GET /v1/chat/stream/{session_id}?token=... (SSE)
3. The detached producer publishes agent output onto the session channel
4. Session endpoints serve the durable record for reloads and polling
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Annotated
from uuid import UUID

import orjson
import structlog
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse

from learnhub.auth import ApiToken, StreamToken
from learnhub.config import get_settings
from learnhub.config.settings import Settings
from learnhub.core.context import set_session_id

from .dependencies import (
    ChatSearchServiceDep,
    ChatSessionServiceDep,
    RelayDep,
    handle_chat_error,
)
from .relay import RelayMessage, SessionRelay
from .schemas import (
    ChatHistoryEntry,
    ChatHistoryResponse,
    ChatMessageResponse,
    ChatSessionEnvelope,
    ChatSessionResponse,
    StartSearchRequest,
    StartSearchResponse,
    ToolResultsRequest,
    UpdateConversationRequest,
)
from .service import ChatSessionError, ChatSessionNotFoundError


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/v1/chat", tags=["chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
SSE_DONE_FRAME = "data: [DONE]\n\n"
SSE_KEEPALIVE_FRAME = ": keep-alive\n\n"


def sse_frame(payload: RelayMessage) -> str:
    return f"data: {orjson.dumps(payload).decode()}\n\n"


async def relay_event_stream(
    relay: SessionRelay,
    session_id: str,
    timeout: float,
    poll_interval: float,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncIterator[str]:
    """Forward one session channel as SSE frames.

    Ends after ``done`` or ``error``, on client disconnect, or once
    ``timeout`` seconds have passed. The subscription is removed on every
    exit path.
    """
    queue: asyncio.Queue[RelayMessage] = asyncio.Queue()
    unsubscribe = relay.subscribe(session_id, queue.put_nowait)
    deadline = time.monotonic() + timeout
    log = logger.bind(session_id=session_id)
    log.info("sse_connected")

    try:
        yield sse_frame({"type": "connected", "sessionId": session_id})

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                log.info("sse_timeout")
                return

            try:
                message = await asyncio.wait_for(
                    queue.get(), timeout=min(poll_interval, remaining)
                )
            except TimeoutError:
                if is_disconnected and await is_disconnected():
                    log.info("sse_client_disconnected")
                    return
                yield SSE_KEEPALIVE_FRAME
                continue

            message_type = message.get("type")
            if message_type == "done":
                yield SSE_DONE_FRAME
                return

            yield sse_frame(message)
            if message_type == "error":
                return
    finally:
        unsubscribe()
        log.info("sse_closed")


# ==============================================================================
# Search and Streaming
# ==============================================================================


@router.post(
    "/start-search",
    response_model=StartSearchResponse,
    summary="Start agent search",
)
async def start_search(
    _token: ApiToken,
    data: StartSearchRequest,
    search_service: ChatSearchServiceDep,
) -> StartSearchResponse:
    """Create a session and start the agent stream in the background."""
    try:
        chat_session = await search_service.start_search(
            user_id=data.user.id,
            user_email=data.user.email,
            user_name=data.user.name,
            query=data.query,
            attached_jd_id=data.jd_id,
            organization_id=data.organization_id,
        )
    except ChatSessionError as e:
        raise handle_chat_error(e) from e

    set_session_id(chat_session.id)
    logger.info("chat_search_accepted")
    return StartSearchResponse(session_id=chat_session.id)


@router.get("/stream/{session_id}", summary="Stream session events (SSE)")
async def stream_session(
    _token: StreamToken,
    session_id: str,
    request: Request,
    relay: RelayDep,
    settings: Annotated[Settings, Depends(get_settings)],
) -> StreamingResponse:
    set_session_id(session_id)
    return StreamingResponse(
        relay_event_stream(
            relay,
            session_id,
            timeout=settings.chat_stream_timeout_seconds,
            poll_interval=settings.chat_stream_poll_interval,
            is_disconnected=request.is_disconnected,
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# ==============================================================================
# Sessions
# ==============================================================================


@router.get(
    "/sessions/{session_id}",
    response_model=ChatSessionEnvelope,
    summary="Get session",
)
async def get_session(
    _token: ApiToken,
    session_id: UUID,
    session_service: ChatSessionServiceDep,
) -> ChatSessionEnvelope:
    chat_session = await session_service.get_session(session_id)
    if not chat_session:
        raise handle_chat_error(ChatSessionNotFoundError())
    return ChatSessionEnvelope(session=ChatSessionResponse.from_entity(chat_session))


@router.put(
    "/sessions/{session_id}",
    response_model=ChatMessageResponse,
    summary="Replace conversation history",
)
async def update_session(
    _token: ApiToken,
    session_id: UUID,
    data: UpdateConversationRequest,
    session_service: ChatSessionServiceDep,
) -> ChatMessageResponse:
    history = [turn.model_dump(mode="json") for turn in data.conversation_history]
    try:
        await session_service.update_conversation(session_id, history)
    except ChatSessionError as e:
        raise handle_chat_error(e) from e
    return ChatMessageResponse(message="Session updated successfully")


@router.put(
    "/sessions/{session_id}/tool-results",
    response_model=ChatMessageResponse,
    summary="Store agent tool results",
)
async def save_tool_results(
    _token: ApiToken,
    session_id: UUID,
    data: ToolResultsRequest,
    session_service: ChatSessionServiceDep,
) -> ChatMessageResponse:
    try:
        await session_service.save_tool_results(session_id, data.results)
    except ChatSessionError as e:
        raise handle_chat_error(e) from e
    return ChatMessageResponse(message="Tool results saved")


@router.delete(
    "/sessions/{session_id}",
    response_model=ChatMessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Delete session",
)
async def delete_session(
    _token: ApiToken,
    session_id: UUID,
    session_service: ChatSessionServiceDep,
) -> ChatMessageResponse:
    try:
        await session_service.delete_session(session_id)
    except ChatSessionError as e:
        raise handle_chat_error(e) from e
    return ChatMessageResponse(message="Session deleted successfully")


@router.get(
    "/history",
    response_model=ChatHistoryResponse,
    summary="List a user's sessions",
)
async def get_history(
    _token: ApiToken,
    session_service: ChatSessionServiceDep,
    user_id: str = Query(..., min_length=1),
    limit: int = Query(50, ge=1, le=200),
) -> ChatHistoryResponse:
    entries = await session_service.list_user_sessions(user_id, limit)
    return ChatHistoryResponse(sessions=[ChatHistoryEntry(**e) for e in entries])
