"""
================================================================================
FILE: pipelines_host/api/main.py
================================================================================

PURPOSE:
    FastAPI application factory. Creates and configures the app instance,
    registers routes (at the root and under /v1), installs middleware and
    exception handlers, and builds the ServiceContainer at startup.

WORKFLOW:
    1. Load Settings (.env + environment) unless one is passed in
    2. Configure logging (level + text/json format)
    3. Initialize FastAPI app instance with a lifespan:
       - startup: ServiceContainer(settings).initialize() → initial scan
       - shutdown: container.shutdown()
    4. CORS middleware, request-id middleware
    5. Exception handlers → {error: {message, type, code}}
    6. Register routes
    7. Return configured app

KEY FACTS:
    - Startup happens ONCE; pipelines are loaded lazily on first use
      unless PIPELINES_PRELOAD=true
    - Error at startup = server fails to start (catches config errors early)
    - Container and settings live on app.state (see api/dependencies.py)
    - Every response carries X-Request-ID; every log record carries it too
    - No stack traces reach clients

TESTING ENVIRONMENT:
    - app = create_app(Settings(PIPELINES_DIR=tmp_path))
    - with TestClient(app) as client: ... (runs the lifespan)
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pipelines_host.api import routes
from pipelines_host.config.constants import (
    API_DESCRIPTION,
    API_TITLE,
    API_VERSION,
    API_VERSION_PREFIX,
)
from pipelines_host.config.settings import Settings
from pipelines_host.container.service_container import ServiceContainer
from pipelines_host.core.exceptions import PipelineHostException
from pipelines_host.utils import (
    generate_request_id,
    reset_request_id,
    set_request_id,
    setup_logging,
)

logger = logging.getLogger(__name__)


def _error_response(status_code: int, message: str, error_type: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"message": message, "type": error_type, "code": code}},
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Pre-built settings (tests); loaded from the environment if None

    Returns:
        FastAPI: Configured application instance ready for startup.
    """
    settings = settings or Settings()
    setup_logging(settings.log_level, settings.log_format)

    # =========================================================================
    # STARTUP / SHUTDOWN
    # =========================================================================
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=" * 80)
        logger.info("APPLICATION STARTUP")
        logger.info("=" * 80)
        logger.info(
            "Settings loaded: "
            f"pipelines_dir={settings.resolved_pipelines_dir()} | "
            f"preload={settings.preload_pipelines} | "
            f"namespace={settings.module_namespace} | "
            f"log_level={settings.log_level}"
        )

        container = ServiceContainer(settings)
        try:
            await container.initialize()
        except Exception as e:
            logger.error(f"STARTUP FAILED: {str(e)}", exc_info=True)
            raise RuntimeError(f"Failed to initialize pipelines host: {str(e)}") from e

        app.state.settings = settings
        app.state.container = container
        logger.info("APPLICATION STARTUP COMPLETE")

        yield

        logger.info("APPLICATION SHUTDOWN")
        await container.shutdown()
        app.state.container = None

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = None

    # CORS middleware configuration.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # EXCEPTION HANDLERS
    # =========================================================================
    @app.exception_handler(PipelineHostException)
    async def pipeline_exception_handler(request: Request, exc: PipelineHostException):
        """Typed host errors → mapped status + uniform envelope."""
        request_id = getattr(request.state, "request_id", "unknown")
        log = logger.error if exc.http_status >= 500 else logger.warning
        log(
            f"{type(exc).__name__} [request_id={request_id}]: {exc.message}",
            extra={"error_code": exc.error_code},
        )
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Malformed request bodies are 400s, not FastAPI's default 422."""
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        )
        return _error_response(400, f"Invalid request: {problems}", "invalid_request_error", "invalid_request")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Router-level errors (unknown route, wrong method) in the same envelope."""
        return _error_response(
            exc.status_code,
            str(exc.detail),
            "invalid_request_error" if exc.status_code < 500 else "server_error",
            f"http_{exc.status_code}",
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        request_id = getattr(request.state, "request_id", "unknown")
        logger.error(
            f"Unexpected error [request_id={request_id}]: {str(exc)}",
            exc_info=True,
        )
        return _error_response(
            500,
            f"An unexpected error occurred (request_id={request_id})",
            "server_error",
            "internal_error",
        )

    # =========================================================================
    # MIDDLEWARE
    # =========================================================================
    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next):
        """Add unique request ID for correlation tracking."""
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        request.state.request_id = request_id
        token = set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)
        response.headers["X-Request-ID"] = request_id
        return response

    # =========================================================================
    # ROUTES
    # =========================================================================
    for prefix in ("", API_VERSION_PREFIX):
        app.include_router(routes.router, prefix=prefix)
        app.include_router(routes.admin_router, prefix=prefix)
    app.add_api_route(API_VERSION_PREFIX, routes.health, methods=["GET"], include_in_schema=False)

    return app
