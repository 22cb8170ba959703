"""Sunday email summarising each user's week."""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog

from ..core.config import get_settings
from ..domain.emails import WeeklySummary
from ..domain.jobs import WeeklySummaryResult
from ..repositories.sessions import SqlAlchemyGroupSessionsRepository
from ..repositories.users import SqlAlchemyUsersRepository
from ..repositories.wellness import SqlAlchemyWellnessRepository
from ..services.email_templates import render_weekly_summary
from ..services.emails import EmailProvider
from .base import (
    SessionFactory,
    build_email_service,
    job_session,
    never_raises,
    optional_email_provider,
    rollback_quietly,
    rounded_mean,
)

logger = structlog.get_logger(__name__)


@never_raises("weekly_summary", WeeklySummaryResult)
async def run_weekly_summary(
    *,
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
    email_provider: EmailProvider | None = None,
) -> WeeklySummaryResult:
    """Email opted-in, recently active users a digest of the past seven days.

    Users with no mood logs, sessions or badges this week are skipped.
    """

    settings = get_settings()
    now = now or datetime.utcnow()
    week_start = now - timedelta(days=7)
    result = WeeklySummaryResult()

    provider = email_provider or optional_email_provider()
    if provider is None:
        result.errors.append("Email provider is not configured; no summaries sent")
        return result

    async with job_session(session_factory) as session:
        users = SqlAlchemyUsersRepository(session)
        wellness = SqlAlchemyWellnessRepository(session)
        sessions = SqlAlchemyGroupSessionsRepository(session)
        emails = build_email_service(session, provider, now=now)

        try:
            recipients = await users.list_weekly_summary_recipients(
                active_since=now - timedelta(days=settings.weekly_summary_activity_days)
            )
        except Exception as exc:
            logger.warning("jobs.weekly_summary.query_failed", error=str(exc))
            result.errors.append(f"Failed to load summary recipients: {exc}")
            return result

        for user in recipients:
            try:
                scores = await wellness.mood_scores_since(user.id, week_start)
                summary = WeeklySummary(
                    user_name=user.display_name,
                    week_start=week_start,
                    week_end=now,
                    mood_check_ins=len(scores),
                    avg_mood_score=rounded_mean(scores),
                    sessions_attended=await sessions.count_joined_since(user.id, week_start),
                    new_badges=await wellness.badges_earned_since(user.id, week_start),
                    streak_days=len(scores),
                )
                if not summary.has_activity:
                    result.skipped += 1
                    continue
                sent = await emails.send_email(
                    render_weekly_summary(summary, to=user.email, user_id=user.id)
                )
            except Exception as exc:
                await rollback_quietly(session)
                logger.warning("jobs.weekly_summary.failed", user_id=str(user.id), error=str(exc))
                result.errors.append(f"Failed to send summary to {user.email}: {exc}")
                continue
            if sent.success:
                result.sent += 1
            else:
                result.errors.append(f"Failed to send summary to {user.email}: {sent.error}")
    return result
