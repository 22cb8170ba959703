"""Midnight reset of streaks broken by a missed check-in."""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog

from ..domain.jobs import StreakResetResult
from ..repositories.wellness import SqlAlchemyWellnessRepository
from .base import SessionFactory, job_session, never_raises, rollback_quietly

logger = structlog.get_logger(__name__)


@never_raises("streak_reset", StreakResetResult)
async def run_streak_reset(
    *,
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
) -> StreakResetResult:
    """Zero the streak of every patient without a check-in yesterday."""

    now = now or datetime.utcnow()
    yesterday = (now - timedelta(days=1)).date()
    result = StreakResetResult()

    async with job_session(session_factory) as session:
        wellness = SqlAlchemyWellnessRepository(session)
        try:
            holders = await wellness.list_streak_holders()
        except Exception as exc:
            logger.warning("jobs.streak_reset.query_failed", error=str(exc))
            result.errors.append(f"Failed to load streak holders: {exc}")
            return result

        result.total_processed = len(holders)
        for user_id in holders:
            try:
                if await wellness.has_check_in(user_id, yesterday):
                    continue
                await wellness.reset_streak(user_id)
            except Exception as exc:
                await rollback_quietly(session)
                logger.warning("jobs.streak_reset.failed", user_id=str(user_id), error=str(exc))
                result.errors.append(f"Failed to reset streak for user {user_id}: {exc}")
                continue
            result.users_reset += 1
    return result
