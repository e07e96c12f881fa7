"""Adapt billing service: FastAPI application entry point."""

import signal
import uuid
from contextlib import asynccontextmanager

# configure_structlog must run before other app imports: structlog caches the
# processor chain on first use.
from app.core.logging import configure_structlog
from app.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import api_router
from app.core.config import get_settings
from app.core.exceptions import (
    BillingError,
    WebhookClaimError,
    WebhookNotConfiguredError,
    WebhookPayloadError,
    WebhookProcessingError,
    WebhookSignatureError,
)
from app.db import close_db, init_db
from app.db.seed import configured_price_ids, seed_plans
from app.middleware.correlation import (
    setup_correlation_middleware,
    get_correlation_id,
)

logger = structlog.get_logger(__name__)

# Domain error -> (status, public detail). A None detail exposes str(exc);
# server-side failures get a fixed message so store errors never leak.
BILLING_ERROR_RESPONSES: dict[type[BillingError], tuple[int, str | None]] = {
    WebhookNotConfiguredError: (503, None),
    WebhookSignatureError: (401, None),
    WebhookPayloadError: (400, None),
    WebhookClaimError: (500, "Failed to track webhook event"),
    WebhookProcessingError: (500, "Webhook processing failed"),
}


def validate_price_map() -> None:
    """Fail fast if billing is enabled but a paid plan has no Paddle price ID."""
    settings = get_settings()
    if settings.debug or not settings.billing_enabled:
        return
    missing = [plan_id for plan_id, price_id in configured_price_ids().items() if not price_id]
    if missing:
        raise RuntimeError(f"Missing Paddle price IDs at startup: {missing}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: price map check, database, plan catalog. Shutdown: dispose the engine."""
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        # Health check answers 503 from here on so the ALB drains webhook traffic
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)

    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    validate_price_map()
    await init_db()
    await seed_plans()
    logger.info(
        "startup_complete",
        billing_enabled=settings.billing_enabled,
        webhook_secret_configured=bool(settings.paddle_webhook_secret.strip()),
    )
    if not settings.paddle_webhook_secret.strip():
        logger.warning("paddle_webhook_secret_missing", effect="webhook_endpoint_returns_503")

    yield

    await close_db()
    logger.info("shutdown_complete")


def _error_response(request: Request, status_code: int, detail, log_event: str, **context) -> JSONResponse:
    """Log server-side with a fresh debug_id and return the sanitized body."""
    debug_id = str(uuid.uuid4())
    logger.error(
        log_event,
        status_code=status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        organisation_id=getattr(request.state, "organisation_id", None),
        **context,
    )
    return JSONResponse(status_code=status_code, content={"detail": detail, "debug_id": debug_id})


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(request, exc.status_code, exc.detail, "http_exception")


async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    """Map domain errors raised by the webhook pipeline onto HTTP answers.

    Any non-2xx tells Paddle to redeliver later.
    """
    for error_type in type(exc).__mro__:
        if error_type in BILLING_ERROR_RESPONSES:
            status_code, detail = BILLING_ERROR_RESPONSES[error_type]
            break
    else:
        status_code, detail = 500, "Internal server error"

    return _error_response(
        request,
        status_code,
        detail if detail is not None else str(exc),
        "billing_error",
        error=str(exc),
        error_type=type(exc).__name__,
        event_id=getattr(exc, "event_id", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unhandled errors: full traceback in the log, generic 500 to the client."""
    return _error_response(
        request,
        500,
        "Internal server error",
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(BillingError)(billing_error_handler)
    app.exception_handler(Exception)(generic_exception_handler)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Paddle billing: webhook ingestion, invoices, checkout and portal sessions",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_correlation_middleware(app)
    register_exception_handlers(app)

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
