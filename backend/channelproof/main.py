"""FastAPI application entrypoint.

Configures CORS, includes routers, exposes a healthcheck endpoint and closes
the shared arq pool on shutdown.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from .deps import get_settings  # noqa: E402
from .routers import analytics as analytics_router  # noqa: E402
from .routers import attribution as attribution_router  # noqa: E402
from .telemetry import init_sentry  # noqa: E402
from .workers.arq_enqueue import reset_arq_pool  # noqa: E402


def create_app() -> FastAPI:
    init_sentry()

    app = FastAPI(
        title="channelproof API",
        description="""
        channelproof verifies which marketing channel produced each sale.

        This API provides endpoints for:
        - Attributing payment transactions to pixel sessions with a confidence score
        - Batch attribution jobs with tracked status
        - Conversion journeys, channel performance, synergy, patterns and roles
        - Rule-based channel recommendations and insights
        """,
        version="0.1.0",
    )

    settings = get_settings()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.BACKEND_CORS_ORIGINS.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(attribution_router.router)
    app.include_router(analytics_router.router)

    @app.on_event("shutdown")
    async def close_job_queue():
        await reset_arq_pool()

    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "ok"}

    return app


app = create_app()
