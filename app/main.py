"""
FastAPI application factory.
"""

import os
import sys
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.router import api_router
from app.config import settings
from app.errors import (
    ConcurrentModification,
    EntityNotFound,
    InvalidArgument,
    OracleFailure,
    OracleTimeout,
    PartialBatchFailure,
    QuoteEngineError,
    ReferenceNotFound,
)
from app.models.database import close_db
from app.observability.logging import setup_logging

logger = structlog.get_logger(__name__)

# Startup print - visible in platform logs immediately
print(f"[STARTUP] Translation Quote Engine v{settings.APP_VERSION}", flush=True)
print(f"[STARTUP] PORT={os.environ.get('PORT', 'NOT SET')}", flush=True)
print(f"[STARTUP] DATABASE_URL={'SET' if settings.DATABASE_URL else 'NOT SET'}", flush=True)
print(f"[STARTUP] Python {sys.version}", flush=True)

ERROR_STATUS = [
    (PartialBatchFailure, status.HTTP_207_MULTI_STATUS),
    (EntityNotFound, status.HTTP_404_NOT_FOUND),
    (ReferenceNotFound, status.HTTP_404_NOT_FOUND),
    (InvalidArgument, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ConcurrentModification, status.HTTP_409_CONFLICT),
    (OracleFailure, status.HTTP_502_BAD_GATEWAY),
    (OracleTimeout, status.HTTP_504_GATEWAY_TIMEOUT),
]


def status_for(error: QuoteEngineError) -> int:
    for error_cls, code in ERROR_STATUS:
        if isinstance(error, error_cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def quote_engine_error_handler(request: Request, exc: QuoteEngineError) -> JSONResponse:
    body = exc.to_dict()
    if isinstance(exc, PartialBatchFailure) and exc.pricing is not None:
        body["pricing"] = exc.pricing.model_dump(mode="json")
    code = status_for(exc)
    log = logger.warning if code < 500 else logger.error
    log(
        "request_failed",
        path=request.url.path,
        error_code=exc.error_code,
        target_type=exc.target_type,
        target_id=exc.target_id,
        status_code=code,
    )
    return JSONResponse(status_code=code, content=body)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    # Startup
    setup_logging()

    # Sentry init if configured
    if settings.SENTRY_DSN:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            integrations=[FastApiIntegration()],
            traces_sample_rate=0.1,
        )

    yield

    # Shutdown
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Translation Quote Engine",
        description="Pricing and document-analysis reconciliation for staff-created translation quotes.",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Prometheus metrics endpoint
    if settings.PROMETHEUS_ENABLED:
        from prometheus_client import make_asgi_app
        metrics_app = make_asgi_app()
        app.mount("/metrics", metrics_app)

    app.add_exception_handler(QuoteEngineError, quote_engine_error_handler)

    # Include all API routes
    app.include_router(api_router)

    return app


# Application instance
app = create_app()
