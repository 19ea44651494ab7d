"""
Sentry Error Tracking
=====================

Centralized error tracking for the API and the arq worker.

Related files:
- channelproof/main.py: Initializes Sentry on app startup
- channelproof/workers/arq_worker.py: Initializes Sentry on worker startup
- channelproof/services/attribution/*.py: Soft failures reported via capture_exception

Environment Variables:
- SENTRY_DSN: Sentry project DSN (Sentry stays disabled without it)
- ENVIRONMENT: Environment name (production, staging, development)
- RELEASE_VERSION: Release identifier set by CI/CD
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = logging.getLogger(__name__)


def get_sentry_dsn() -> Optional[str]:
    return os.environ.get("SENTRY_DSN")


def init_sentry() -> bool:
    """
    Initialize the Sentry SDK.

    Returns:
        True if Sentry was initialized, False when no DSN is configured
        or initialization failed.
    """
    dsn = get_sentry_dsn()
    if not dsn:
        logger.info("[SENTRY] SENTRY_DSN not set - error tracking disabled")
        return False

    environment = os.environ.get("ENVIRONMENT", "development")

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                RedisIntegration(),
                LoggingIntegration(
                    level=logging.INFO,         # breadcrumbs
                    event_level=logging.ERROR,  # events
                ),
            ],
            traces_sample_rate=0.1,
            send_default_pii=False,  # transaction emails stay out of Sentry
            release=os.environ.get("RELEASE_VERSION"),
        )
        logger.info("[SENTRY] Initialized for %s environment", environment)
        return True

    except Exception as e:
        logger.error("[SENTRY] Failed to initialize: %s", e)
        return False


def capture_exception(exception: Exception, extra: Optional[dict] = None) -> None:
    """
    Capture a handled exception.

    Use for soft failures that are logged and replaced with a default but
    should still show up in monitoring.

    Args:
        exception: The exception to capture
        extra: Additional context to attach to the event
    """
    if not sentry_sdk.is_initialized():
        logger.debug("[SENTRY] Exception not sent (Sentry disabled): %s", exception)
        return

    try:
        with sentry_sdk.new_scope() as scope:
            for key, value in (extra or {}).items():
                scope.set_extra(key, value)
            sentry_sdk.capture_exception(exception)
    except Exception as e:
        logger.error("[SENTRY] Failed to capture exception: %s", e)


def capture_message(message: str, level: str = "info", extra: Optional[dict] = None) -> None:
    """
    Capture a message that is not an exception (e.g. a batch with failures).

    Args:
        message: The message to capture
        level: Severity level (debug, info, warning, error, fatal)
        extra: Additional context to attach
    """
    if not sentry_sdk.is_initialized():
        logger.log(
            logging.getLevelName(level.upper()),
            "[SENTRY] Message (Sentry disabled): %s",
            message,
        )
        return

    try:
        with sentry_sdk.new_scope() as scope:
            for key, value in (extra or {}).items():
                scope.set_extra(key, value)
            sentry_sdk.capture_message(message, level=level)
    except Exception as e:
        logger.error("[SENTRY] Failed to capture message: %s", e)
