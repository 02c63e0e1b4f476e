"""
Application factory - creates and configures the FastAPI application.
This isolates all initialization logic from main.py.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tinytask import __version__
from tinytask.api.routes.health import router as health_router
from tinytask.api.routes.mcp import router as mcp_router
from tinytask.dependencies.services import get_services
from tinytask.exceptions import ServiceError, to_http_exception
from tinytask.logging_setup import setup_logging
from tinytask.monitoring import MetricsMiddleware, get_request_id
from tinytask.tracing import setup_tracing, instrument_fastapi


@asynccontextmanager
async def lifespan(app):
    """Manage application lifespan."""
    logger = logging.getLogger(__name__)
    logger.info("Application starting up...")

    # Opens the store and creates the schema on first use
    get_services()
    logger.info("Services initialized")

    try:
        setup_tracing()
        instrument_fastapi(app)
        logger.info("Distributed tracing enabled")
    except Exception:
        logger.warning("Failed to initialize tracing, continuing without it", exc_info=True)

    yield

    logger.info("Shutdown complete")


def _with_request_id(response: JSONResponse, request_id: str) -> JSONResponse:
    if request_id != '-':
        response.headers["X-Request-ID"] = request_id
    return response


def setup_exception_handlers(app: FastAPI):
    """Register handlers that give every error the same JSON shape."""
    logger = logging.getLogger(__name__)

    @app.exception_handler(ServiceError)
    async def service_exception_handler(request: Request, exc: ServiceError):
        request_id = get_request_id() or '-'
        if not exc.request_id and request_id != '-':
            exc.request_id = request_id
        http_exc = to_http_exception(exc)
        if http_exc.status_code >= 500:
            logger.error(f"{type(exc).__name__} in {request.method} {request.url.path}: {exc.message}")
        else:
            logger.warning(f"{type(exc).__name__} in {request.method} {request.url.path}: {exc.message}")
        return _with_request_id(
            JSONResponse(status_code=http_exc.status_code, content=http_exc.detail),
            request_id
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors with clear messages."""
        request_id = get_request_id() or '-'
        errors = []
        for error in exc.errors():
            field = " -> ".join(str(loc) for loc in error["loc"])
            errors.append(f"{field}: {error['msg']}")

        logger.warning(f"Validation error in {request.method} {request.url.path}: {', '.join(errors)}")
        return _with_request_id(
            JSONResponse(
                status_code=422,
                content={
                    "error": "Validation error",
                    "detail": "One or more fields failed validation",
                    "errors": errors,
                    "path": request.url.path,
                    "request_id": request_id
                }
            ),
            request_id
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions with consistent error format."""
        request_id = get_request_id() or '-'
        logger.error(
            f"Unhandled exception in {request.method} {request.url.path}: {str(exc)}",
            exc_info=True
        )
        return _with_request_id(
            JSONResponse(
                status_code=500,
                content={
                    "error": "Internal server error",
                    "detail": "An unexpected error occurred. Please check the logs for details.",
                    "path": request.url.path,
                    "request_id": request_id
                }
            ),
            request_id
        )


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance ready to run.
    """
    setup_logging()
    logger = logging.getLogger(__name__)

    app = FastAPI(
        title="TinyTask",
        description="Task graph and queueing engine for AI agents",
        version=__version__,
        lifespan=lifespan
    )
    app.add_middleware(MetricsMiddleware)
    setup_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(mcp_router)

    logger.info("FastAPI app created and configured")
    return app
