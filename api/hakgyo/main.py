"""Hakgyo API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from hakgyo.config import get_settings
from hakgyo.core.context import get_request_id
from hakgyo.core.database import init_async_cassandra, shutdown_async_cassandra
from hakgyo.core.locks import KeyedLock
from hakgyo.core.logging import configure_structlog, get_logger
from hakgyo.core.middleware import RequestContextMiddleware
from hakgyo.core.redis import init_redis, shutdown_redis
from hakgyo.gamification.router import router as gamification_router
from hakgyo.gamification.service import GamificationService
from hakgyo.health import router as health_router
from hakgyo.kelas.router import materi_router
from hakgyo.kelas.router import router as kelas_router
from hakgyo.kelas.service import KelasService
from hakgyo.progress.router import kelas_progress_router, materi_progress_router
from hakgyo.progress.service import ProgressService


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


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

    # Initialize Redis (non-critical - app works without it)
    redis_client = None
    try:
        redis_client = await init_redis()
        logger.info("redis_initialized")
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - process-local locks, no leaderboard cache",
        )

    locks = KeyedLock(redis_client, timeout=settings.redis_lock_timeout_seconds)

    # Initialize Cassandra (async)
    try:
        session = await init_async_cassandra()
        app.state.cassandra_session = session
        logger.info("cassandra_initialized")

        app.state.gamification_service = GamificationService(
            session=session,
            keyspace=settings.cassandra_keyspace,
            redis=redis_client,
            locks=locks,
            window_hours=settings.streak_window_hours,
        )
        logger.info("gamification_service_initialized")

        app.state.kelas_service = KelasService(
            session=session,
            keyspace=settings.cassandra_keyspace,
            locks=locks,
            gamification=app.state.gamification_service,
            redis=redis_client,
        )
        logger.info("kelas_service_initialized")

        app.state.progress_service = ProgressService(
            session=session,
            keyspace=settings.cassandra_keyspace,
            kelas_service=app.state.kelas_service,
            gamification=app.state.gamification_service,
            redis=redis_client,
            default_passing_score=settings.assessment_default_passing_score,
            cache_ttl_seconds=settings.progress_cache_ttl_seconds,
        )
        logger.info(
            "progress_service_initialized", redis_enabled=redis_client is not None
        )
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    # Shutdown
    logger.info("shutting_down_application")
    await shutdown_redis()
    await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # debug stays False so Starlette never renders stack traces; the handlers
    # below log details and return safe messages
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Hakgyo - Korean learning platform API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
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

    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages.

        A dict detail carries extra fields (e.g. the price of a paid kelas);
        they are merged into the body next to ``message``.
        """
        request_id = _get_request_id_safe(request)

        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        extra: dict[str, Any] = {}
        message: Any = exc.detail
        if isinstance(exc.detail, dict):
            extra = dict(exc.detail)
            message = extra.pop("message", "")

        return ORJSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "message": str(message)
                if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
                else "Internal server error",
                "status_code": exc.status_code,
                "request_id": request_id,
                **extra,
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors with safe error messages."""
        request_id = _get_request_id_safe(request)

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
                "status_code": 422,
                "request_id": request_id,
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
        """Catch-all handler for unhandled exceptions.

        Details are logged; the response only carries a generic message.
        """
        request_id = _get_request_id_safe(request)

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
                "status_code": 500,
                "request_id": request_id,
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(kelas_router)
    app.include_router(kelas_progress_router)
    app.include_router(materi_router)
    app.include_router(materi_progress_router)
    app.include_router(gamification_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "Hakgyo API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()
