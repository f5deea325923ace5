"""LearnHub API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from learnhub.analytics.collector import AnalyticsCollector
from learnhub.analytics.emitter import AnalyticsEmitter
from learnhub.analytics.router import router as analytics_router
from learnhub.chat.relay import SessionRelay
from learnhub.chat.router import router as chat_router
from learnhub.chat.service import ChatSearchService, ChatSessionService
from learnhub.chat.stream import AgentStreamClient
from learnhub.config import get_settings
from learnhub.core.context import get_request_id
from learnhub.core.database import init_async_cassandra, shutdown_async_cassandra
from learnhub.core.logging import configure_structlog, get_logger
from learnhub.core.middleware import RequestContextMiddleware
from learnhub.core.redis import init_redis, shutdown_redis
from learnhub.courses.router import router as courses_router
from learnhub.courses.service import CourseService
from learnhub.health import router as health_router
from learnhub.progress.router import router as progress_router
from learnhub.progress.service import ProgressService


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


class AppState:
    """Services built at startup. Mirrored onto ``app.state`` for dependencies."""

    cassandra_session: Any = None
    redis: Any = None
    relay: SessionRelay | None = None
    analytics_emitter: AnalyticsEmitter | None = None
    analytics_collector: AnalyticsCollector | None = None
    course_service: CourseService | None = None
    progress_service: ProgressService | None = None
    chat_session_service: ChatSessionService | None = None
    chat_search_service: ChatSearchService | None = None
    agent_client: AgentStreamClient | None = None

    def bind(self, app: FastAPI) -> None:
        for name in (
            "redis",
            "relay",
            "analytics_emitter",
            "analytics_collector",
            "course_service",
            "progress_service",
            "chat_session_service",
            "chat_search_service",
        ):
            setattr(app.state, name, getattr(self, name))


app_state = AppState()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Redis is non-critical: it only backs the analytics counters
    try:
        app_state.redis = await init_redis()
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - analytics counters disabled",
        )

    app_state.relay = SessionRelay()
    app_state.analytics_emitter = AnalyticsEmitter(
        redis=app_state.redis,
        queue_size=settings.analytics_queue_size,
        batch_size=settings.analytics_batch_size,
        flush_interval=settings.analytics_flush_interval,
    )

    if settings.agent_api_configured:
        app_state.agent_client = AgentStreamClient(
            base_url=settings.agent_api_base_url,
            api_key=settings.agent_api_key,
            timeout=settings.agent_request_timeout,
        )
    else:
        logger.warning("agent_api_not_configured")

    try:
        session = await init_async_cassandra()
        app_state.cassandra_session = session
        keyspace = settings.cassandra_keyspace

        app_state.analytics_collector = AnalyticsCollector(session, keyspace)
        app_state.analytics_emitter.collector = app_state.analytics_collector

        app_state.course_service = CourseService(session=session, keyspace=keyspace)
        app_state.progress_service = ProgressService(
            session=session,
            keyspace=keyspace,
            course_service=app_state.course_service,
            analytics=app_state.analytics_emitter,
            max_update_attempts=settings.progress_max_update_attempts,
        )
        app_state.chat_session_service = ChatSessionService(
            session=session, keyspace=keyspace
        )
        app_state.chat_search_service = ChatSearchService(
            sessions=app_state.chat_session_service,
            relay=app_state.relay,
            agent_client=app_state.agent_client,
            agent_id=settings.sourcing_agent_id,
            start_delay=settings.chat_stream_start_delay,
            analytics=app_state.analytics_emitter,
        )
        logger.info("services_initialized")
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    await app_state.analytics_emitter.start()
    app_state.bind(app)

    yield

    # Shutdown
    logger.info("shutting_down_application")
    if app_state.chat_search_service:
        await app_state.chat_search_service.shutdown()
    await app_state.analytics_emitter.stop()
    if app_state.agent_client:
        await app_state.agent_client.aclose()
    await shutdown_redis()
    await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # debug stays off so Starlette never renders stack traces
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="LearnHub - learning progress and agent search API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _request_id(request: Request) -> str | None:
        return getattr(request.state, "request_id", None) or get_request_id()

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )
        return ORJSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "message": str(exc.detail)
                if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
                else "Internal server error",
                "status_code": exc.status_code,
                "request_id": _request_id(request),
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )
        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "message": "Validation error",
                "status_code": status.HTTP_422_UNPROCESSABLE_ENTITY,
                "request_id": _request_id(request),
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Log unhandled exceptions with stack trace; respond generically."""
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )
        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
                "request_id": _request_id(request),
            },
        )

    app.include_router(health_router)
    app.include_router(courses_router)
    app.include_router(progress_router)
    app.include_router(analytics_router)
    app.include_router(chat_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        return {
            "message": "LearnHub API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()
