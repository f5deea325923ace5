"""FastAPI dependencies for chat sessions and the relay."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .relay import SessionRelay
from .service import ChatSearchService, ChatSessionError, ChatSessionService


async def get_relay(request: Request) -> SessionRelay:
    relay = getattr(request.app.state, "relay", None)
    if relay is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session relay not available",
        )
    return relay


async def get_chat_session_service(request: Request) -> ChatSessionService:
    """Get chat session service from app state."""
    service = getattr(request.app.state, "chat_session_service", None)
    if not service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Chat service not available",
        )
    return service


async def get_chat_search_service(request: Request) -> ChatSearchService:
    service = getattr(request.app.state, "chat_search_service", None)
    if not service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Chat search not available",
        )
    return service


RelayDep = Annotated[SessionRelay, Depends(get_relay)]
ChatSessionServiceDep = Annotated[ChatSessionService, Depends(get_chat_session_service)]
ChatSearchServiceDep = Annotated[ChatSearchService, Depends(get_chat_search_service)]


def handle_chat_error(error: ChatSessionError) -> HTTPException:
    """Convert chat errors to HTTP exceptions."""
    status_map = {
        "session_not_found": status.HTTP_404_NOT_FOUND,
        "agent_not_configured": status.HTTP_503_SERVICE_UNAVAILABLE,
    }

    return HTTPException(
        status_code=status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=error.message,
    )
