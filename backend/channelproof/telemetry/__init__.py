"""
Telemetry Module
================

Error tracking for channelproof.

Usage:
    from channelproof.telemetry import init_sentry, capture_exception

    init_sentry()  # once, on API or worker startup

    try:
        feed.list_daily_channel_stats(...)
    except Exception as e:
        capture_exception(e, extra={"user_id": str(user_id)})
"""

from channelproof.telemetry.sentry import (
    init_sentry,
    capture_exception,
    capture_message,
)

__all__ = [
    "init_sentry",
    "capture_exception",
    "capture_message",
]
