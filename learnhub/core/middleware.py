"""Request context middleware.

Binds the request, trace and chat-session ids for structlog and writes one
log line when a request starts and one when its response is ready.
"""

import re
import time
from collections.abc import Awaitable, Callable, Mapping

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from learnhub.core.context import (
    clear_context,
    set_request_id,
    set_session_id,
    set_trace_id,
)


logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
TRACE_ID_HEADER = "X-Trace-ID"
TRACEPARENT_HEADER = "traceparent"

# /v1/chat/stream/<id> and /v1/chat/sessions/<id>[/...]
_CHAT_SESSION_PATH = re.compile(r"^/v1/chat/(?:stream|sessions)/([^/]+)")


def trace_id_from_headers(headers: Mapping[str, str]) -> str | None:
    """``X-Trace-ID``, else the trace-id field of a W3C ``traceparent``."""
    trace_id = headers.get(TRACE_ID_HEADER)
    if trace_id:
        return trace_id

    # {version}-{trace-id}-{parent-id}-{flags}
    parts = (headers.get(TRACEPARENT_HEADER) or "").split("-")
    return parts[1] if len(parts) == 4 and parts[1] else None


def chat_session_id_from_path(path: str) -> str | None:
    match = _CHAT_SESSION_PATH.match(path)
    return match.group(1) if match else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Per-request logging context.

    ``X-Request-ID`` is reused when the caller sends one and is always echoed
    on the response. For SSE responses the completion line is written when
    the stream opens, so ``duration_ms`` measures time to first byte.
    """

    def __init__(
        self,
        app: ASGIApp,
        log_requests: bool = True,
        exclude_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.log_requests = log_requests
        self.exclude_paths = tuple(exclude_paths or ())

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        started = time.perf_counter()
        path = request.url.path

        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        set_trace_id(trace_id_from_headers(request.headers))
        session_id = chat_session_id_from_path(path)
        if session_id:
            set_session_id(session_id)

        should_log = self.log_requests and not path.startswith(self.exclude_paths)
        if should_log:
            logger.info("request_started", method=request.method, path=path)

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            if should_log:
                self._log_completed(request, response, started)
            return response
        except Exception as e:
            logger.exception(
                "request_failed",
                method=request.method,
                path=path,
                error_type=type(e).__name__,
                duration_ms=self._elapsed_ms(started),
            )
            raise
        finally:
            clear_context()

    def _log_completed(
        self, request: Request, response: Response, started: float
    ) -> None:
        log = logger.warning if response.status_code >= 400 else logger.info
        log(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            streaming=response.headers.get("content-type", "").startswith(
                "text/event-stream"
            ),
            duration_ms=self._elapsed_ms(started),
        )

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 2)
