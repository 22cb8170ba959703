"""Evening nudge for users about to lose their mood logging streak."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable

import structlog

from ..core.config import get_settings
from ..domain.jobs import StreakRiskResult
from ..repositories.users import SqlAlchemyUsersRepository
from ..repositories.wellness import SqlAlchemyWellnessRepository
from ..services.emails import EmailProvider
from .base import (
    SessionFactory,
    build_notification_service,
    job_session,
    never_raises,
    optional_email_provider,
    rollback_quietly,
)

logger = structlog.get_logger(__name__)

ONE_DAY = timedelta(days=1)


def count_streak(log_times: Iterable[datetime], start: datetime) -> int:
    """Count consecutive logs, newest first, walking back from ``start``.

    A log extends the streak while it is at most one whole day older than
    the previous one; the first larger gap ends the walk.
    """

    streak = 0
    previous = start
    for logged_at in log_times:
        if (previous - logged_at) // ONE_DAY > 1:
            break
        streak += 1
        previous = logged_at
    return streak


@never_raises("streak_risk", StreakRiskResult)
async def run_streak_risk_check(
    *,
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
    email_provider: EmailProvider | None = None,
) -> StreakRiskResult:
    settings = get_settings()
    now = now or datetime.utcnow()
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    lookback = settings.streak_risk_lookback_days
    provider = email_provider or optional_email_provider()
    result = StreakRiskResult()

    async with job_session(session_factory) as session:
        users = SqlAlchemyUsersRepository(session)
        wellness = SqlAlchemyWellnessRepository(session)
        notifier = build_notification_service(session, now=now, email_provider=provider)

        try:
            candidates = await users.list_streak_risk_candidates(
                active_since=now - timedelta(days=lookback), today_start=today_start
            )
        except Exception as exc:
            logger.warning("jobs.streak_risk.query_failed", error=str(exc))
            result.errors.append(f"Failed to load streak candidates: {exc}")
            return result

        for user in candidates:
            try:
                log_times = await wellness.recent_mood_log_times(user.id, limit=lookback)
                if count_streak(log_times, now) < settings.streak_risk_min_streak:
                    continue
                await notifier.notify_streak_risk(user.id)
            except Exception as exc:
                await rollback_quietly(session)
                logger.warning("jobs.streak_risk.failed", user_id=str(user.id), error=str(exc))
                result.errors.append(f"Failed to notify user {user.id}: {exc}")
                continue
            result.notified += 1
    return result
