import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import func, select

from app.core.config import get_settings
from app.db.base import get_session_factory
from app.db.models.paddle_webhook_event import PaddleWebhookEvent

logger = structlog.get_logger(__name__)

router = APIRouter()

SERVICE_NAME = "billing-webhooks"


@router.get("/health")
async def health_check(request: Request):
    """Liveness for the load balancer; 503 once SIGTERM starts draining webhook traffic."""
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(status_code=503, content={"status": "shutting_down", "service": SERVICE_NAME})
    return {"status": "healthy", "service": SERVICE_NAME}


@router.get("/ready")
async def readiness_check():
    """Ready when the ledger store answers and deliveries can be verified.

    ``failed_webhook_events`` counts parked claims; it is reported for
    operators and never affects readiness.
    """
    checks = {"database": False, "webhook_secret": bool(get_settings().paddle_webhook_secret.strip())}
    failed_events = None

    try:
        async with get_session_factory()() as session:
            failed_events = await session.scalar(
                select(func.count()).select_from(PaddleWebhookEvent).where(PaddleWebhookEvent.status == "failed")
            )
        checks["database"] = True
    except Exception as e:
        logger.error("database_readiness_check_failed", error=str(e), error_type=type(e).__name__)

    ready = all(checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ready" if ready else "degraded",
            "checks": checks,
            "failed_webhook_events": failed_events,
        },
    )
