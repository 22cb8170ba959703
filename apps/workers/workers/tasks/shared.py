"""Utilities shared across Celery tasks."""

from __future__ import annotations

import asyncio
import time
from typing import Any

import structlog

from apps.api.app.core.logging import configure_logging
from apps.api.app.db import dispose_engine
from apps.api.app.jobs import run_job

from ..telemetry import record_job_run

logger = structlog.get_logger(__name__)


def run_registered_job(name: str) -> dict[str, Any]:
    """Run a scheduled job on a fresh event loop and return its JSON result."""

    configure_logging()
    return asyncio.run(_run(name))


async def _run(name: str) -> dict[str, Any]:
    started = time.perf_counter()
    logger.info("worker.job.start", job=name)
    try:
        result = await run_job(name)
    finally:
        # Pooled connections are bound to the loop that asyncio.run closes.
        await dispose_engine()
    duration = time.perf_counter() - started
    record_job_run(name, result, duration)
    logger.info(
        "worker.job.finish",
        job=name,
        supported=result.supported,
        errors=len(result.errors),
        duration_ms=round(duration * 1000, 2),
    )
    return result.model_dump(mode="json")
