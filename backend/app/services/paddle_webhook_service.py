"""PaddleWebhookService: request lifecycle for inbound Paddle webhooks.

received -> signature-verified -> event-decoded -> claimed -> resolved
-> reconciled -> finalized

Nothing durable is written before the claim. Once claimed, the event is
always finalized (processed or failed) before the caller sees the result.
"""

import json
import time
from dataclasses import dataclass
from enum import StrEnum

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings
from app.core.exceptions import (
    WebhookClaimError,
    WebhookNotConfiguredError,
    WebhookPayloadError,
    WebhookProcessingError,
    WebhookSignatureError,
)
from app.core.webhook_signature import verify_paddle_signature
from app.domain.paddle_payloads import as_text
from app.metrics.cloudwatch import emit_business_event, emit_webhook_outcome
from app.services.billing_reconciler import BillingReconciler, ReconcileAction
from app.services.organisation_resolver import OrganisationResolver
from app.services.webhook_ledger import ClaimStatus, WebhookEventLedger

logger = structlog.get_logger(__name__)


class WebhookOutcome(StrEnum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    NO_TENANT = "no_tenant"


@dataclass(frozen=True)
class PaddleEvent:
    event_id: str
    event_type: str
    data: object
    meta: object


@dataclass(frozen=True)
class WebhookResult:
    event_id: str
    event_type: str
    outcome: WebhookOutcome
    organisation_id: str = ""
    action: ReconcileAction | None = None


def decode_event(raw_body: bytes) -> PaddleEvent:
    """Decode the webhook envelope.

    Raises:
        WebhookPayloadError: body is not a JSON object, or event_id /
            event_type is missing or blank
    """
    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, ValueError) as exc:
        raise WebhookPayloadError("Invalid webhook payload") from exc
    if not isinstance(payload, dict):
        raise WebhookPayloadError("Invalid webhook payload")

    event_id = as_text(payload.get("event_id"))
    event_type = as_text(payload.get("event_type"))
    if not event_id or not event_type:
        raise WebhookPayloadError("Webhook payload missing event metadata")

    return PaddleEvent(
        event_id=event_id,
        event_type=event_type,
        data=payload.get("data"),
        meta=payload.get("meta"),
    )


class PaddleWebhookService:
    """Composes verifier, ledger, resolver and reconciler for one delivery."""

    def __init__(self, settings: Settings, session_factory: async_sessionmaker[AsyncSession]):
        self.settings = settings
        self.ledger = WebhookEventLedger(session_factory)
        self.resolver = OrganisationResolver(session_factory)
        self.reconciler = BillingReconciler(session_factory)

    async def handle(self, raw_body: bytes, signature_header: str | None) -> WebhookResult:
        """Run one delivery through the pipeline.

        Returns:
            WebhookResult for every 2xx outcome (processed, duplicate, no tenant)

        Raises:
            WebhookNotConfiguredError: no webhook secret configured
            WebhookSignatureError: missing, stale or mismatched signature
            WebhookPayloadError: malformed body or missing event metadata
            WebhookClaimError: the claim could not be written
            WebhookProcessingError: reconciliation failed (event finalized as failed)
        """
        started = time.monotonic()

        secret = self.settings.paddle_webhook_secret.strip()
        if not secret:
            raise WebhookNotConfiguredError("Paddle webhook secret is not configured")

        if not verify_paddle_signature(
            signature_header,
            raw_body,
            secret,
            tolerance_seconds=self.settings.paddle_signature_tolerance_seconds,
        ):
            logger.warning("paddle_webhook_signature_invalid", signature_present=bool(signature_header))
            raise WebhookSignatureError("Invalid webhook signature")

        event = decode_event(raw_body)
        log = logger.bind(event_id=event.event_id, event_type=event.event_type)
        log.info("paddle_webhook_received")

        try:
            claimed = await self.ledger.claim(
                event.event_id,
                event.event_type,
                reclaim_failed=self.settings.paddle_webhook_reclaim_failed,
            )
        except SQLAlchemyError as exc:
            log.error("paddle_webhook_claim_failed", error=str(exc), error_type=type(exc).__name__)
            raise WebhookClaimError(event.event_id, exc) from exc

        if not claimed:
            log.debug("paddle_webhook_already_processed")
            await emit_webhook_outcome(event.event_type, WebhookOutcome.DUPLICATE, _elapsed_ms(started))
            return WebhookResult(event.event_id, event.event_type, WebhookOutcome.DUPLICATE)

        try:
            result = await self._reconcile(event)
        except Exception as exc:
            await self.ledger.finalize(event.event_id, ClaimStatus.FAILED, str(exc) or type(exc).__name__)
            duration_ms = _elapsed_ms(started)
            log.error(
                "paddle_webhook_processing_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                duration_ms=duration_ms,
                exc_info=True,
            )
            await emit_webhook_outcome(event.event_type, "failed", duration_ms)
            raise WebhookProcessingError(event.event_id, event.event_type, exc) from exc

        await self.ledger.finalize(event.event_id, ClaimStatus.PROCESSED)
        duration_ms = _elapsed_ms(started)
        log.info(
            "paddle_webhook_processed",
            outcome=result.outcome.value,
            action=result.action.value if result.action else None,
            organisation_id=result.organisation_id or None,
            duration_ms=duration_ms,
        )
        await emit_webhook_outcome(event.event_type, result.outcome, duration_ms)
        if result.action is ReconcileAction.SUBSCRIPTION_MERGED:
            await emit_business_event("subscription_synced")
        return result

    async def _reconcile(self, event: PaddleEvent) -> WebhookResult:
        data = event.data
        if data is None or data == {}:
            return WebhookResult(event.event_id, event.event_type, WebhookOutcome.PROCESSED)
        if not isinstance(data, dict):
            raise WebhookPayloadError("Webhook event data is not an object")

        resolution = await self.resolver.resolve(event.event_type, data)
        if not resolution.found:
            logger.info(
                "paddle_webhook_no_organisation",
                event_id=event.event_id,
                event_type=event.event_type,
                customer_id=resolution.customer_id or None,
                subscription_id=resolution.subscription_id or None,
            )
            return WebhookResult(event.event_id, event.event_type, WebhookOutcome.NO_TENANT)

        action = await self.reconciler.apply(event.event_type, data, resolution)
        return WebhookResult(
            event.event_id,
            event.event_type,
            WebhookOutcome.PROCESSED,
            organisation_id=resolution.organisation_id,
            action=action,
        )


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 2)
