"""Structured logging for the billing service, bridged to stdlib for CloudWatch Insights.

Configures structlog with:
- JSON output for production, ConsoleRenderer when DEBUG is on
- Stdlib bridge so uvicorn, SQLAlchemy and httpx records share the same format
- Correlation ID injection from the asgi-correlation-id context var
- Redaction of secrets and signature material before rendering
"""

import logging
import logging.config

import structlog
from asgi_correlation_id.context import correlation_id

REDACTED_KEYS = frozenset({
    "authorization",
    "paddle_signature",
    "signature",
    "secret",
    "webhook_secret",
    "api_key",
    "raw_body",
})


def add_correlation_id(logger, method, event_dict):
    """Inject correlation_id from asgi-correlation-id context into every log entry."""
    cid = correlation_id.get(None)
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def redact_sensitive(logger, method, event_dict):
    """Replace values of keys that may carry secrets or raw webhook payloads."""
    for key in event_dict.keys() & REDACTED_KEYS:
        event_dict[key] = "[redacted]"
    return event_dict


def configure_structlog(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Configure structlog and the stdlib root logger.

    Must run before the first ``structlog.get_logger`` call is bound, since
    ``cache_logger_on_first_use`` freezes the processor chain.

    Args:
        log_level: Root log level ("DEBUG", "INFO", "WARNING", "ERROR")
        json_logs: True for JSON output (production), False for ConsoleRenderer (dev)
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_correlation_id,
        redact_sensitive,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.format_exc_info,
                    renderer,
                ],
                "foreign_pre_chain": shared_processors,
            },
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "formatter": "structured",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"handlers": ["stdout"], "level": log_level},
        "loggers": {
            "uvicorn.access": {"level": "WARNING"},
            "httpx": {"level": "WARNING"},
            "sqlalchemy.engine": {"level": "WARNING"},
        },
    })

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
