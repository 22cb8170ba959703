"""Structured results returned by the scheduled jobs."""

from __future__ import annotations

from pydantic import BaseModel, Field

from .rate_limits import RateLimitKeyCount


class JobResult(BaseModel):
    """Common shape of every job outcome.

    ``errors`` collects one message per failed item; a job with errors still
    completed. ``supported`` is false for jobs that cannot run against the
    current data model, so schedulers can tell "nothing to do" apart from
    "cannot run".
    """

    supported: bool = True
    errors: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.supported and not self.errors


class SessionRemindersResult(JobResult):
    reminders: int = 0
    starting: int = 0


class StreakRiskResult(JobResult):
    notified: int = 0


class CleanupResult(JobResult):
    read_notifications: int = 0
    unread_notifications: int = 0
    email_logs: int = 0
    audit_logs: int = 0


class SessionCleanupResult(JobResult):
    # Sessions moved to CANCELLED; the name is kept for dashboards that read it.
    completed_sessions: int = 0


class SessionStatusResult(JobResult):
    started: int = 0
    no_show: int = 0
    completed: int = 0
    cancelled: int = 0


class TherapistStatsResult(JobResult):
    updated: int = 0
    created: int = 0


class UserEngagementResult(JobResult):
    supported: bool = False
    updated: int = 0
    reason: str | None = None


class WeeklySummaryResult(JobResult):
    sent: int = 0
    skipped: int = 0


class StreakResetResult(JobResult):
    users_reset: int = 0
    total_processed: int = 0


class RateLimitCleanupResult(JobResult):
    expired_entries: int = 0
    entries_before: int = 0
    entries_after: int = 0
    top_keys: list[RateLimitKeyCount] = Field(default_factory=list)


class NotificationDigestResult(JobResult):
    digest_type: str | None = None
    total_users: int = 0
    sent: int = 0
    skipped: int = 0
