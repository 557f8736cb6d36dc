"""FastAPI service for weighbatch."""

from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError
from starlette.middleware.base import BaseHTTPMiddleware

from weighbatch.core.logging import configure_logging
from weighbatch.db.connection import close_db, get_session
from weighbatch.exceptions import (
    ConsistencyViolationError,
    ExternalFailureError,
    InvalidMutationError,
    NotFoundError,
    StateConflictError,
    WeighbatchError,
)
from weighbatch.startup_validation import run_all_validations
from weighbatch.web.routes import batches, health, items, reconcile

# Initialize structured logging
configure_logging()
logger = structlog.get_logger()

# Most specific first
ERROR_STATUS: list[tuple[type[WeighbatchError], int]] = [
    (NotFoundError, 404),
    (StateConflictError, 409),
    (ConsistencyViolationError, 409),
    (InvalidMutationError, 422),
    (ExternalFailureError, 502),
]


def status_for(exc: WeighbatchError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def weighbatch_error_handler(request: Request, exc: WeighbatchError):
    status_code = status_for(exc)
    logger.warning(
        "request_rejected",
        path=request.url.path,
        code=exc.code,
        status_code=status_code,
        error=exc.message,
    )
    content = {"detail": exc.message, "code": exc.code}
    current_status = getattr(exc, "current_status", None)
    if current_status is not None:
        content["current_status"] = current_status
    return JSONResponse(status_code=status_code, content=content)


async def stale_data_handler(request: Request, exc: StaleDataError):
    return JSONResponse(
        status_code=409,
        content={"detail": "Record was modified concurrently", "code": "STATE_CONFLICT"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WeighbatchError, weighbatch_error_handler)
    app.add_exception_handler(StaleDataError, stale_data_handler)


# Request Logging Middleware
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        structlog.contextvars.clear_contextvars()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            logger.info(
                "request_completed",
                status_code=response.status_code,
            )
            return response

        except Exception as exc:
            logger.error("request_failed", error=str(exc))
            raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with get_session() as session:
        await run_all_validations(session)
    yield
    await close_db()


app = FastAPI(
    title="weighbatch",
    description="Weight summary batching of scale results for SAP goods receipt",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
register_exception_handlers(app)

# Include Routers
app.include_router(health.router)
app.include_router(reconcile.router)
app.include_router(batches.router)
app.include_router(items.router)
