"""FastAPI application initialization."""

from contextlib import asynccontextmanager
from pathlib import Path
from uuid import uuid4

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vidtube.api.health import router as health_router
from vidtube.api.middleware import CORRELATION_HEADER, CorrelationIdMiddleware
from vidtube.api.users import router as users_router
from vidtube.config import get_settings
from vidtube.exceptions import ApiError, InternalError, UnauthorizedError
from vidtube.models.response import ErrorResponse
from vidtube.services.logging_service import configure_logging, get_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("main")

    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)

    try:
        from vidtube.database import init_database, run_migrations

        await init_database()
        await run_migrations()
        logger.info("database_initialized")
    except Exception as e:
        logger.warning(
            "database_initialization_failed",
            error=str(e),
            note="Continuing without database - account endpoints will fail until it is reachable",
        )

    logger.info("application_started", log_level=settings.log_level)

    yield

    from vidtube.database import close_database

    await close_database()
    logger.info("application_shutdown")


app = FastAPI(
    title="VidTube - Accounts API",
    description="Registration, token sessions and channel views for VidTube users",
    version="0.1.0",
    lifespan=lifespan,
)


def _error_response(
    request: Request, status_code: int, error: str, detail: str, headers: dict | None = None
) -> JSONResponse:
    """Build the error body shared by every handler.

    Three-part format: what happened (error), why (detail), and the
    correlation ID to quote when reporting it.
    """
    correlation_id = getattr(request.state, "correlation_id", None) or str(uuid4())
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=error, detail=detail, correlation_id=correlation_id
        ).model_dump(),
        headers={CORRELATION_HEADER: correlation_id, **(headers or {})},
    )


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Render a service-level failure with its own status code."""
    structlog.get_logger().info(
        "request_failed",
        error=exc.error,
        detail=exc.message,
        status_code=exc.status_code,
    )
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    return _error_response(request, exc.status_code, exc.error, exc.message, headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors as 400 Bad Request."""
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]))
        message = first_error.get("msg", "Validation failed")
        detail = f"Field '{field}': {message}"
    else:
        detail = "Request validation failed"

    structlog.get_logger().warning("validation_error", detail=detail)
    return _error_response(
        request, status.HTTP_400_BAD_REQUEST, "Validation error", detail
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Report anything unexpected as a generic 500 without internal details."""
    structlog.get_logger().error(
        "unhandled_exception",
        exc_type=type(exc).__name__,
        error=str(exc),
    )
    return _error_response(
        request,
        InternalError.status_code,
        InternalError.error,
        "Something went wrong while processing the request",
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Correlation ID middleware for request tracking and observability
app.add_middleware(CorrelationIdMiddleware)

app.include_router(health_router)
app.include_router(users_router)
