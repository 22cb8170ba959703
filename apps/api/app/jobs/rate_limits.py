"""Hourly purge of expired rate limit counters."""

from __future__ import annotations

from datetime import datetime

import structlog

from ..core.config import get_settings
from ..domain.jobs import RateLimitCleanupResult
from ..domain.rate_limits import default_policy
from ..repositories.rate_limits import SqlAlchemyRateLimitRepository
from ..services.rate_limiter import RateLimiter
from .base import SessionFactory, job_session, never_raises

logger = structlog.get_logger(__name__)


@never_raises("rate_limit_cleanup", RateLimitCleanupResult)
async def run_rate_limit_cleanup(
    *,
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
) -> RateLimitCleanupResult:
    settings = get_settings()
    now = now or datetime.utcnow()

    async with job_session(session_factory) as session:
        limiter = RateLimiter(
            default_policy(),
            SqlAlchemyRateLimitRepository(session),
            clock=lambda: now,
            top_keys=settings.rate_limit_top_keys,
        )
        before = await limiter.get_stats()
        deleted = await limiter.cleanup_expired_entries()
        after = await limiter.get_stats()

    logger.info(
        "jobs.rate_limit_cleanup.summary",
        deleted=deleted,
        entries_before=before.total_entries,
        entries_after=after.total_entries,
    )
    return RateLimitCleanupResult(
        expired_entries=deleted,
        entries_before=before.total_entries,
        entries_after=after.total_entries,
        top_keys=after.top_keys,
    )
