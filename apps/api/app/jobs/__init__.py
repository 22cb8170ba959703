"""Registry of scheduled jobs shared by the cron endpoints and Celery beat."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

from ..domain.jobs import JobResult
from .cleanup import run_cleanup, run_session_cleanup
from .notification_digest import run_daily_notification_digest, run_weekly_notification_digest
from .rate_limits import run_rate_limit_cleanup
from .session_reminders import run_session_reminders
from .session_status import run_session_status_check
from .stats import run_update_therapist_stats, run_update_user_engagement
from .streak_reset import run_streak_reset
from .streak_risk import run_streak_risk_check
from .weekly_summary import run_weekly_summary

JobRunner = Callable[..., Awaitable[JobResult]]


@dataclass(frozen=True)
class JobSpec:
    """A job plus the crontab fields (UTC) it is scheduled with."""

    name: str
    runner: JobRunner
    schedule: Mapping[str, str] = field(default_factory=dict)
    supported: bool = True
    description: str = ""


JOBS: tuple[JobSpec, ...] = (
    JobSpec(
        "session-reminders",
        run_session_reminders,
        {"minute": "*/5"},
        description="Hour-before and starting-soon session notifications",
    ),
    JobSpec(
        "check-session-status",
        run_session_status_check,
        {"minute": "*/5"},
        description="Advance session statuses",
    ),
    JobSpec(
        "streak-risk",
        run_streak_risk_check,
        {"minute": "0", "hour": "20"},
        description="Warn users about to lose their streak",
    ),
    JobSpec(
        "streak-reset",
        run_streak_reset,
        {"minute": "5", "hour": "0"},
        description="Reset streaks broken yesterday",
    ),
    JobSpec(
        "cleanup-notifications",
        run_cleanup,
        {"minute": "0", "hour": "3"},
        description="Retention sweep for notifications, email and audit logs",
    ),
    JobSpec(
        "session-cleanup",
        run_session_cleanup,
        {"minute": "30", "hour": "3"},
        description="Cancel sessions that never started",
    ),
    JobSpec(
        "cleanup-rate-limits",
        run_rate_limit_cleanup,
        {"minute": "0"},
        description="Delete expired rate limit counters",
    ),
    JobSpec(
        "update-therapist-stats",
        run_update_therapist_stats,
        {"minute": "0", "hour": "4"},
        description="Recompute therapist aggregates",
    ),
    JobSpec(
        "update-user-engagement",
        run_update_user_engagement,
        supported=False,
        description="Engagement scoring (not available)",
    ),
    JobSpec(
        "weekly-summary",
        run_weekly_summary,
        {"minute": "0", "hour": "10", "day_of_week": "sun"},
        description="Weekly summary email",
    ),
    JobSpec(
        "notification-digest-daily",
        run_daily_notification_digest,
        {"minute": "0", "hour": "8"},
        description="Daily email digest of unread notifications",
    ),
    JobSpec(
        "notification-digest-weekly",
        run_weekly_notification_digest,
        {"minute": "0", "hour": "9", "day_of_week": "mon"},
        description="Weekly email digest of unread notifications",
    ),
)

_BY_NAME = {spec.name: spec for spec in JOBS}


def get_job(name: str) -> JobSpec:
    try:
        return _BY_NAME[name]
    except KeyError:
        raise KeyError(f"Unknown job {name!r}") from None


async def run_job(name: str, **kwargs: Any) -> JobResult:
    """Run a registered job by name; keyword arguments go to the runner."""

    return await get_job(name).runner(**kwargs)


__all__ = [
    "JOBS",
    "JobRunner",
    "JobSpec",
    "get_job",
    "run_job",
    "run_cleanup",
    "run_daily_notification_digest",
    "run_rate_limit_cleanup",
    "run_session_cleanup",
    "run_session_reminders",
    "run_session_status_check",
    "run_streak_reset",
    "run_streak_risk_check",
    "run_update_therapist_stats",
    "run_update_user_engagement",
    "run_weekly_notification_digest",
    "run_weekly_summary",
]
