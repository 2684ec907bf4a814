# This project was developed with assistance from AI tools.
"""FastAPI application entry point."""

import logging
import uuid
from contextlib import asynccontextmanager

from db import SessionLocal, get_db_service
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import settings
from .routes import health, processing
from .schemas.error import ErrorResponse
from .services.circuit_breaker import CircuitBreakerRegistry
from .services.errors import ProcessingError
from .services.orchestrator import init_orchestrator
from .services.stage_engine import init_stage_engine

logger = logging.getLogger(__name__)


def init_services(session_factory=SessionLocal) -> None:
    """Wire the breaker registry, stage engine and orchestrator singletons."""
    breakers = CircuitBreakerRegistry(
        failure_threshold=settings.BREAKER_FAILURE_THRESHOLD,
        cooldown_seconds=settings.BREAKER_COOLDOWN_SECONDS,
    )
    engine = init_stage_engine(
        session_factory,
        breakers,
        credit_summary_max_retries=settings.CREDIT_SUMMARY_MAX_RETRIES,
    )
    init_orchestrator(session_factory, engine, breakers, settings)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Application startup/shutdown lifecycle."""
    init_services()
    yield
    await get_db_service().close()


app = FastAPI(
    title=settings.APP_NAME,
    description="Processing stage engine and job orchestration for loan applications",
    version="0.1.0",
    debug=settings.DEBUG,
    lifespan=lifespan,
)

_HTTP_STATUS_TITLES: dict[int, str] = {
    400: "Bad Request",
    403: "Forbidden",
    404: "Not Found",
    409: "Conflict",
    422: "Unprocessable Entity",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


def _build_error(
    status_code: int,
    detail: str,
    request_id: str,
    problem_type: str = "about:blank",
) -> ErrorResponse:
    return ErrorResponse(
        type=problem_type,
        title=_HTTP_STATUS_TITLES.get(status_code, "Error"),
        status=status_code,
        detail=detail,
        request_id=request_id,
    )


def _request_id(request: Request) -> str:
    return request.headers.get("x-request-id", str(uuid.uuid4()))


@app.exception_handler(ProcessingError)
async def processing_exception_handler(request: Request, exc: ProcessingError):
    """Render processing errors as RFC 7807 Problem Details keyed by error code."""
    request_id = _request_id(request)
    if exc.status_code >= 500:
        logger.warning("Processing unavailable (request_id=%s): %s", request_id, exc.message)
    body = _build_error(exc.status_code, exc.message, request_id, problem_type=exc.code)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Convert HTTPException to RFC 7807 Problem Details."""
    body = _build_error(exc.status_code, str(exc.detail), _request_id(request))
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Convert Pydantic validation errors to RFC 7807 Problem Details."""
    body = _build_error(422, str(exc.errors()), _request_id(request))
    return JSONResponse(status_code=422, content=body.model_dump())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all for unhandled exceptions -- log and return 500."""
    request_id = _request_id(request)
    logger.exception("Unhandled exception (request_id=%s)", request_id)
    body = _build_error(500, "An unexpected error occurred.", request_id)
    return JSONResponse(status_code=500, content=body.model_dump())


app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(processing.router, prefix="/api/internal/processing", tags=["processing"])
