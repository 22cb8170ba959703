"""Hour-before and starting-soon notifications for group sessions."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Awaitable, Callable
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..domain.jobs import SessionRemindersResult
from ..domain.sessions import SessionGuard
from ..repositories.sessions import SqlAlchemyGroupSessionsRepository
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


@never_raises("session_reminders", SessionRemindersResult)
async def run_session_reminders(
    *,
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
    email_provider: EmailProvider | None = None,
) -> SessionRemindersResult:
    """Notify participants of sessions starting in about an hour or five minutes.

    A session is due when it starts within the tolerance band around each
    target instant and its guard flag is still unset. The flag is set right
    after the notification succeeds, so repeated runs inside the same band
    notify each session once.
    """

    settings = get_settings()
    now = now or datetime.utcnow()
    provider = email_provider or optional_email_provider()
    result = SessionRemindersResult()

    async with job_session(session_factory) as session:
        sessions = SqlAlchemyGroupSessionsRepository(session)
        notifier = build_notification_service(session, now=now, email_provider=provider)

        result.reminders = await _notify_due(
            session,
            sessions,
            target=now + timedelta(minutes=settings.session_reminder_lead_minutes),
            tolerance=timedelta(seconds=settings.session_reminder_tolerance_seconds),
            guard=SessionGuard.REMINDER,
            notify=notifier.notify_session_reminder,
            label="reminder",
            errors=result.errors,
        )
        result.starting = await _notify_due(
            session,
            sessions,
            target=now + timedelta(minutes=settings.session_starting_lead_minutes),
            tolerance=timedelta(seconds=settings.session_starting_tolerance_seconds),
            guard=SessionGuard.STARTING,
            notify=notifier.notify_session_starting,
            label="starting notification",
            errors=result.errors,
        )
    return result


async def _notify_due(
    session: AsyncSession,
    sessions: SqlAlchemyGroupSessionsRepository,
    *,
    target: datetime,
    tolerance: timedelta,
    guard: SessionGuard,
    notify: Callable[[UUID], Awaitable[object]],
    label: str,
    errors: list[str],
) -> int:
    try:
        due = await sessions.list_due(start=target - tolerance, end=target + tolerance, guard=guard)
    except Exception as exc:
        await rollback_quietly(session)
        logger.warning("jobs.session_reminders.query_failed", guard=guard.value, error=str(exc))
        errors.append(f"Failed to load sessions for {label}: {exc}")
        return 0

    sent = 0
    for group_session in due:
        try:
            await notify(group_session.id)
            await sessions.mark_sent(group_session.id, guard)
        except Exception as exc:
            await rollback_quietly(session)
            logger.warning(
                "jobs.session_reminders.failed",
                session_id=str(group_session.id),
                guard=guard.value,
                error=str(exc),
            )
            errors.append(f"Failed to send {label} for session {group_session.id}: {exc}")
            continue
        sent += 1
    return sent
