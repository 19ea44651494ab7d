"""ARQ worker for attribution jobs.

WHAT:
    - process_batch_attribution_job: batch-attribute one user's date range
    - scheduled_daily_attribution: cron that enqueues yesterday's batch for
      every user with payments

WHY:
    Batch attribution is sync SQLAlchemy code with its own thread pool. The
    worker runs it through asyncio.to_thread so the event loop keeps serving
    other jobs, and arq tracks each run's completion and result.

USAGE:
    arq channelproof.workers.arq_worker.WorkerSettings

    # Or use the start script
    python -m channelproof.workers.start_arq_worker

REFERENCES:
    - https://arq-docs.helpmanual.io/
    - channelproof/services/attribution/batch.py
    - channelproof/workers/arq_enqueue.py
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from arq import cron

from ..database import SessionLocal, get_session_context
from ..services.attribution.types import BatchConfig
from ..services.factory import build_batch_processor, default_batch_config
from ..services.stores import SqlUserDirectory
from ..telemetry import capture_exception, init_sentry
from ..utils.dates import parse_timestamp, yesterday_range
from .arq_enqueue import QUEUE_NAME, enqueue_batch_attribution_job, get_redis_settings

logger = logging.getLogger(__name__)


# =============================================================================
# BATCH ATTRIBUTION JOB
# =============================================================================

def _run_batch(user_id: UUID, start: datetime, end: datetime, config: BatchConfig) -> Dict[str, Any]:
    """Run a batch on a dedicated session (called in a worker thread)."""
    with get_session_context() as db:
        SqlUserDirectory(db).require(user_id)
        processor = build_batch_processor(db, SessionLocal)
        return processor.run_batch(user_id, start, end, config).to_dict()


async def process_batch_attribution_job(
    ctx: Dict,
    user_id: str,
    start: str,
    end: str,
    config: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Attribute all unattributed transactions of a user in [start, end].

    Args:
        ctx: ARQ context
        user_id: User UUID string
        start, end: ISO timestamps
        config: BatchConfig overrides (batch_size, max_concurrent, ...)

    Returns:
        BatchResult as a dict (success, progress, errors, conversions)
    """
    logger.info("[ARQ] Starting batch attribution for user %s (%s -> %s)", user_id, start, end)

    batch_config = BatchConfig.from_dict({**default_batch_config().to_dict(), **(config or {})})
    try:
        result = await asyncio.to_thread(
            _run_batch, UUID(user_id), parse_timestamp(start), parse_timestamp(end), batch_config
        )
    except Exception as e:
        logger.exception("[ARQ] Batch attribution failed for user %s", user_id)
        capture_exception(e, extra={"job": "process_batch_attribution_job", "user_id": user_id})
        raise

    progress = result["progress"]
    logger.info(
        "[ARQ] Batch attribution for user %s done: %d/%d successful, %d failed",
        user_id, progress["successful"], progress["total"], progress["failed"],
    )
    return result


# =============================================================================
# DAILY CRON
# =============================================================================

def _users_with_payments(start: datetime, end: datetime):
    with get_session_context() as db:
        return SqlUserDirectory(db).list_users_with_payments(start, end)


async def scheduled_daily_attribution(ctx: Dict) -> Dict[str, Any]:
    """Enqueue a batch job per user for yesterday's payments.

    Already-attributed transactions are skipped inside each batch, so
    re-running the cron is harmless.
    """
    start, end = yesterday_range(datetime.now(timezone.utc))
    user_ids = await asyncio.to_thread(_users_with_payments, start, end)
    logger.info("[ARQ] Daily attribution: %d users with payments on %s", len(user_ids), start.date())

    job_ids = []
    for user_id in user_ids:
        job = await enqueue_batch_attribution_job(user_id, start, end, pool=ctx["redis"])
        if job["job_id"]:
            job_ids.append(job["job_id"])

    return {"users": len(user_ids), "jobs": job_ids}


# =============================================================================
# LIFECYCLE
# =============================================================================

async def startup(ctx: Dict) -> None:
    init_sentry()
    logger.info("[ARQ] Worker starting up (queue=%s)", QUEUE_NAME)
    ctx["startup_time"] = datetime.now(timezone.utc)
    ctx["jobs_processed"] = 0


async def shutdown(ctx: Dict) -> None:
    uptime = datetime.now(timezone.utc) - ctx.get("startup_time", datetime.now(timezone.utc))
    logger.info("[ARQ] Worker shutting down: %d jobs, uptime %s", ctx.get("jobs_processed", 0), uptime)


async def on_job_end(ctx: Dict) -> None:
    ctx["jobs_processed"] = ctx.get("jobs_processed", 0) + 1


# =============================================================================
# WORKER SETTINGS
# =============================================================================

class WorkerSettings:
    """ARQ worker configuration.

    - max_jobs=4: each batch already runs its own thread pool
    - job_timeout=3600: large backfills take a while
    - daily attribution at 02:00 UTC
    """

    functions = [
        process_batch_attribution_job,
        scheduled_daily_attribution,
    ]

    cron_jobs = [
        cron(scheduled_daily_attribution, hour=2, minute=0, run_at_startup=False),
    ]

    on_startup = startup
    on_shutdown = shutdown
    after_job_end = on_job_end

    redis_settings = get_redis_settings()
    queue_name = QUEUE_NAME

    max_jobs = 4
    job_timeout = 3600
    keep_result = 86400  # job status/results stay readable for a day
    max_tries = 1
