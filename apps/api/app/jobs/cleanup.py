"""Retention sweeps for notifications, logs and abandoned sessions."""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog

from ..core.config import get_settings
from ..domain.jobs import CleanupResult, SessionCleanupResult
from ..repositories.audit import SqlAlchemyAuditLogsRepository
from ..repositories.email_logs import SqlAlchemyEmailLogsRepository
from ..repositories.notifications import SqlAlchemyNotificationsRepository
from ..repositories.sessions import SqlAlchemyGroupSessionsRepository
from .base import SessionFactory, job_session, never_raises, rollback_quietly

logger = structlog.get_logger(__name__)


@never_raises("cleanup", CleanupResult)
async def run_cleanup(
    *,
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
) -> CleanupResult:
    """Delete rows past their retention period.

    Each category is deleted on its own; a failure is recorded under that
    category's label and the remaining categories still run.
    """

    settings = get_settings()
    now = now or datetime.utcnow()
    result = CleanupResult()

    async with job_session(session_factory) as session:
        notifications = SqlAlchemyNotificationsRepository(session)
        email_logs = SqlAlchemyEmailLogsRepository(session)
        audit_logs = SqlAlchemyAuditLogsRepository(session)

        sweeps = (
            (
                "read_notifications",
                "read notifications",
                lambda: notifications.delete_older_than(
                    now - timedelta(days=settings.retention_read_notifications_days), read=True
                ),
            ),
            (
                "unread_notifications",
                "unread notifications",
                lambda: notifications.delete_older_than(
                    now - timedelta(days=settings.retention_unread_notifications_days), read=False
                ),
            ),
            (
                "email_logs",
                "email logs",
                lambda: email_logs.delete_older_than(
                    now - timedelta(days=settings.retention_email_logs_days)
                ),
            ),
            (
                "audit_logs",
                "audit logs",
                lambda: audit_logs.delete_older_than(
                    now - timedelta(days=settings.retention_audit_logs_days)
                ),
            ),
        )
        for field, label, sweep in sweeps:
            try:
                deleted = await sweep()
            except Exception as exc:
                await rollback_quietly(session)
                logger.warning("jobs.cleanup.failed", category=field, error=str(exc))
                result.errors.append(f"Failed to delete {label}: {exc}")
                continue
            setattr(result, field, deleted)
            logger.info("jobs.cleanup.deleted", category=field, deleted=deleted)
    return result


@never_raises("session_cleanup", SessionCleanupResult)
async def run_session_cleanup(
    *,
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
) -> SessionCleanupResult:
    """Cancel SCHEDULED sessions that never started well after their start time."""

    settings = get_settings()
    now = now or datetime.utcnow()
    cutoff = now - timedelta(hours=settings.session_cleanup_grace_hours)
    result = SessionCleanupResult()

    async with job_session(session_factory) as session:
        sessions = SqlAlchemyGroupSessionsRepository(session)
        try:
            result.completed_sessions = await sessions.cancel_scheduled_before(cutoff)
        except Exception as exc:
            await rollback_quietly(session)
            logger.warning("jobs.session_cleanup.failed", error=str(exc))
            result.errors.append(f"Failed to update past sessions: {exc}")
    return result
