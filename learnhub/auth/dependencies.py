"""Integration-token authentication dependencies.

Chat, course-authoring and agent tool routes are called by trusted
integrations (the web app backend and agent tool callbacks) that share one
static token. Browsers opening an EventSource cannot set headers, so the SSE
route takes the same token as a ``token`` query parameter.
"""

import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Query, Request, status

from learnhub.config import get_settings
from learnhub.config.settings import Settings


BEARER_PREFIX = "Bearer "


def _check_token(candidate: str | None, settings: Settings) -> str:
    if not candidate:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API token required",
        )

    if not settings.api_auth_token:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="API token authentication not configured",
        )

    # Timing-safe comparison
    if not secrets.compare_digest(candidate, settings.api_auth_token):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API token",
        )

    return candidate


async def verify_api_token(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> str:
    """Verify ``Authorization: Bearer <token>`` against the integration token.

    Raises:
        HTTPException(401): If the header is missing or not a bearer token
        HTTPException(403): If the token is invalid
        HTTPException(503): If no token is configured
    """
    header = request.headers.get("Authorization", "")
    token = header[len(BEARER_PREFIX) :] if header.startswith(BEARER_PREFIX) else None
    return _check_token(token, settings)


async def verify_stream_token(
    settings: Annotated[Settings, Depends(get_settings)],
    token: str | None = Query(default=None, description="Integration token"),
) -> str:
    """Verify the ``token`` query parameter used by EventSource clients."""
    return _check_token(token, settings)


ApiToken = Annotated[str, Depends(verify_api_token)]
StreamToken = Annotated[str, Depends(verify_stream_token)]
