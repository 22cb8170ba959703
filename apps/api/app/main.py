from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes.cron import router as cron_router
from .core.config import get_settings
from .core.logging import configure_logging
from .db import dispose_engine, init_db
from .domain.rate_limits import RateLimitPolicy, default_policy
from .telemetry import configure_tracing, setup_prometheus

logger = structlog.get_logger(__name__)


def create_app(
    *,
    rate_limit_policy: RateLimitPolicy | None = None,
    create_tables: bool = True,
) -> FastAPI:
    settings = get_settings()
    configure_logging()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if create_tables and settings.database_url:
            await init_db()
        logger.info("api.startup", environment=settings.environment)
        yield
        await dispose_engine()

    app = FastAPI(title=settings.project_name, version="0.1.0", lifespan=lifespan)
    app.state.rate_limit_policy = rate_limit_policy or default_policy()

    allow_origins = settings.cors_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in allow_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
    )

    @app.get("/healthz")
    def healthz() -> dict[str, str | bool]:
        return {"ok": True, "service": "api"}

    app.include_router(cron_router, prefix=settings.api_v1_prefix)

    if settings.enable_prometheus_metrics:
        setup_prometheus(app, settings)
    configure_tracing(app, settings)

    return app


app = create_app()
