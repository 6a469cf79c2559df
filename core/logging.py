from __future__ import annotations

import logging
import os
import sys

import structlog


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


def get_log_renderer():
    """JSON for production and test runs, coloured console output otherwise."""
    log_format = os.getenv("LOG_FORMAT", "").strip().lower()
    if not log_format:
        env = os.getenv("ENV", "development").lower()
        log_format = "json" if env in {"test", "production"} else "console"
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty(), sort_keys=False)


def configure_logging() -> None:
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            get_log_renderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(get_log_level())

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)


class BusinessEvents:
    """Standard names for business event logs."""

    API_ENTRY = "api.request"
    CART_CREATED = "cart.created"
    CART_LINE_ITEMS_PRICED = "cart.line_items_priced"
    CART_LINE_ITEMS_ADDED = "cart.line_items_added"
    PAYMENT_PROVIDER_REGISTERED = "payment.provider_registered"
    PAYMENT_INITIATE = "payment.initiate"
    PAYMENT_AUTHORIZE = "payment.authorize"
    PAYMENT_CAPTURE = "payment.capture"
    PAYMENT_REFUND = "payment.refund"
    PAYMENT_CANCEL = "payment.cancel"
    PAYMENT_PROVIDER_ERROR = "payment.provider_error"
    PAYMENT_WEBHOOK_RECEIVED = "payment.webhook_received"
    PAYMENT_WEBHOOK_REJECTED = "payment.webhook_rejected"
