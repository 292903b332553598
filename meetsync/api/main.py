"""
meetsync API - FastAPI Application

Exposes the two user flows: finding a meeting time across calendars, and
managing who may read your calendar.

Usage:
    uvicorn meetsync.api.main:app --host 127.0.0.1 --port 8080 --reload

    Or through the CLI:
    meetsync serve
"""

import uuid
from contextlib import asynccontextmanager

# Load .env file before anything else
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from meetsync import get_connection
from meetsync.api.models import ErrorResponse, HealthCheck
from meetsync.api.routes import api_router
from meetsync.errors import (
    CalendarError,
    MeetSyncError,
    NotAuthorized,
    NotFound,
    ParticipantsNotFound,
    RequestNotActionable,
    ValidationError,
)
from meetsync.logging_config import (
    bind_request_context,
    clear_request_context,
    get_logger,
    setup_logging,
)


setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("api_starting")
    get_connection().close()
    logger.info("database_ready")
    yield
    logger.info("api_stopped")


app = FastAPI(
    title="meetsync API",
    description="Mutual availability search across permissioned calendars",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)


# =============================================================================
# Middleware
# =============================================================================


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """Tag every log event of a request with its id and acting user."""
    request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
    bind_request_context(request_id, request.headers.get("X-User-Id"))
    try:
        response = await call_next(request)
    finally:
        clear_request_context()
    response.headers["X-Request-Id"] = request_id
    return response


# =============================================================================
# Error Handlers
# =============================================================================


def _status_for(exc: MeetSyncError) -> int:
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, NotAuthorized):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, NotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, RequestNotActionable):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, CalendarError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(MeetSyncError)
async def meetsync_exception_handler(request: Request, exc: MeetSyncError):
    """Map domain errors to HTTP statuses."""
    code = _status_for(exc)
    details = None
    if isinstance(exc, ParticipantsNotFound):
        details = {"missing_emails": exc.missing_emails}
    if code >= 500:
        logger.error("request_failed", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=code,
        content=ErrorResponse(error=str(exc), code=type(exc).__name__, details=details).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(
            error="Invalid input",
            code="INVALID_INPUT",
            details={"errors": jsonable_errors(exc)},
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail), code=f"HTTP_{exc.status_code}").model_dump(),
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in exc.errors()
    ]


# =============================================================================
# Routes
# =============================================================================


@app.get("/api/health", response_model=HealthCheck)
async def health_check():
    return HealthCheck()


app.include_router(api_router)
