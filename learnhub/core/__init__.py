# Core infrastructure
from learnhub.core.context import (
    clear_context,
    get_context,
    get_request_id,
    get_session_id,
    get_trace_id,
    get_user_id,
    set_request_id,
    set_session_id,
    set_trace_id,
    set_user_id,
)
from learnhub.core.logging import configure_structlog, get_logger
from learnhub.core.middleware import RequestContextMiddleware


__all__ = [
    "RequestContextMiddleware",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_logger",
    "get_request_id",
    "get_session_id",
    "get_trace_id",
    "get_user_id",
    "set_request_id",
    "set_session_id",
    "set_trace_id",
    "set_user_id",
]
