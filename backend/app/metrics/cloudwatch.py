"""CloudWatch custom metrics for webhook outcomes and billing business events.

All functions are fire-and-forget: they catch exceptions internally and log
warnings via structlog. They NEVER raise or block the caller.

boto3 is synchronous, so calls are dispatched to a ThreadPoolExecutor to
keep the event loop free.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import boto3
import structlog

from app.core.config import get_settings

logger = structlog.get_logger(__name__)

NAMESPACE_WEBHOOKS = "Adapt/BillingWebhooks"
NAMESPACE_BUSINESS = "Adapt/Business"

_cw_client = None
_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="cw-metrics")


def _get_client():
    global _cw_client
    if _cw_client is None:
        _cw_client = boto3.client("cloudwatch", region_name=get_settings().cloudwatch_region)
    return _cw_client


def _put_webhook_outcome(event_type: str, outcome: str, duration_ms: float) -> None:
    """Synchronous put_metric_data for one webhook delivery. Runs in thread pool."""
    dimensions = [
        {"Name": "EventType", "Value": event_type or "unknown"},
        {"Name": "Outcome", "Value": outcome},
    ]
    now = datetime.now(timezone.utc)
    try:
        _get_client().put_metric_data(
            Namespace=NAMESPACE_WEBHOOKS,
            MetricData=[
                {
                    "MetricName": "Deliveries",
                    "Dimensions": dimensions,
                    "Value": 1.0,
                    "Unit": "Count",
                    "Timestamp": now,
                },
                {
                    "MetricName": "Latency",
                    "Dimensions": dimensions,
                    "Value": duration_ms,
                    "Unit": "Milliseconds",
                    "Timestamp": now,
                },
            ],
        )
    except Exception as e:
        logger.warning("webhook_metric_emit_failed", error=str(e), event_type=event_type, outcome=outcome)


def _put_business_event(event_name: str) -> None:
    """Synchronous put_metric_data for business events. Runs in thread pool.

    Dimensioned by event only: a per-organisation dimension would open one
    metric stream per tenant. Tenant detail belongs in the logs.
    """
    dimensions = [{"Name": "Event", "Value": event_name}]
    try:
        _get_client().put_metric_data(
            Namespace=NAMESPACE_BUSINESS,
            MetricData=[{
                "MetricName": "EventCount",
                "Dimensions": dimensions,
                "Value": 1.0,
                "Unit": "Count",
                "Timestamp": datetime.now(timezone.utc),
            }],
        )
    except Exception as e:
        logger.warning("business_event_emit_failed", error=str(e), event=event_name)


def _dispatch(func, *args) -> None:
    if not get_settings().cloudwatch_metrics_enabled:
        return
    loop = asyncio.get_running_loop()
    loop.run_in_executor(_executor, func, *args)


async def emit_webhook_outcome(event_type: str, outcome: str, duration_ms: float) -> None:
    """Emit delivery count + latency for a webhook. Non-blocking, fire-and-forget."""
    _dispatch(_put_webhook_outcome, event_type, outcome, duration_ms)


async def emit_business_event(event_name: str) -> None:
    """Emit business event metric. Non-blocking, fire-and-forget."""
    _dispatch(_put_business_event, event_name)
