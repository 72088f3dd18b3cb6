"""groupmail Backend - Main FastAPI Application

Email-driven discussion groups: inbound email becomes posts, threads and
notifications.

This module creates and configures the FastAPI application, including:
- Routers (inbound webhook, action links, observability)
- Middleware (request ID correlation)
- Exception handlers mapping the pipeline errors to HTTP responses
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError

from .config import get_settings
from .database import init_db
from .errors import ActionTokenError, InvalidPayload, NotFound, PersistenceError
from .observability.logging_config import configure_logging
from .observability.middleware import RequestIDMiddleware
from .observability.router import router as observability_router
from .actions.router import router as actions_router
from .webhooks.router import router as webhooks_router

settings = get_settings()

configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("groupmail API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Mail domain: {settings.group_email_domain}")
    init_db()

    yield

    logger.info("groupmail API shutting down...")


app = FastAPI(
    title="groupmail API",
    description="Mailing-list style discussion groups driven by email",
    version="0.1.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url=None,
    openapi_url="/openapi.json" if settings.ENVIRONMENT != "production" else None,
    lifespan=lifespan,
)


# =============================================================================
# MIDDLEWARE CONFIGURATION
# =============================================================================

app.add_middleware(RequestIDMiddleware)


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

@app.exception_handler(InvalidPayload)
async def invalid_payload_handler(request: Request, exc: InvalidPayload) -> JSONResponse:
    """Malformed or incomplete inbound data; nothing was written."""
    logger.warning(f"Invalid payload on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "invalid_payload", "message": str(exc)},
    )


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound) -> PlainTextResponse:
    """Explain to the user why nothing happened."""
    logger.info(f"Target not found on {request.method} {request.url.path}: {exc}")
    return PlainTextResponse(str(exc), status_code=status.HTTP_200_OK)


@app.exception_handler(ActionTokenError)
async def action_token_handler(request: Request, exc: ActionTokenError) -> PlainTextResponse:
    return PlainTextResponse(str(exc), status_code=status.HTTP_400_BAD_REQUEST)


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    """Storage rejected a write; the relay should retry later."""
    logger.error(f"Persistence error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "persistence_error", "message": "The message could not be stored. Please retry later."},
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle database errors.

    Logs the full error but returns a generic message to prevent
    information leakage.
    """
    logger.error(f"Database error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "error": "database_error",
            "message": "A database error occurred. Please try again later.",
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions.

    Full details are logged but not exposed to the client.
    """
    logger.error(f"Unhandled exception on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(observability_router)
app.include_router(webhooks_router)
app.include_router(actions_router)


@app.get("/", include_in_schema=False)
async def root() -> dict[str, Any]:
    return {
        "name": "groupmail",
        "version": "0.1.0",
        "mail_domain": settings.group_email_domain,
    }
