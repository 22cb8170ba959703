"""Moves group sessions through LIVE, NO_SHOW, COMPLETED and CANCELLED."""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog

from ..core.config import get_settings
from ..domain.jobs import SessionStatusResult
from ..domain.sessions import SessionStatus
from ..repositories.sessions import SqlAlchemyGroupSessionsRepository
from .base import SessionFactory, job_session, never_raises, rollback_quietly

logger = structlog.get_logger(__name__)

# SCHEDULED sessions this far past their start are cancelled outright.
STALE_SCHEDULED_AFTER = timedelta(hours=24)


@never_raises("session_status", SessionStatusResult)
async def run_session_status_check(
    *,
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
) -> SessionStatusResult:
    """Advance session statuses from the clock and participant counts.

    - SCHEDULED, started within the start window, with participants: LIVE
    - SCHEDULED, past the no-show threshold, without participants: NO_SHOW
    - LIVE, past duration plus buffer: COMPLETED, ``ended_at`` = planned end
    - SCHEDULED more than a day past start: CANCELLED
    """

    settings = get_settings()
    now = now or datetime.utcnow()
    result = SessionStatusResult()

    async with job_session(session_factory) as session:
        sessions = SqlAlchemyGroupSessionsRepository(session)

        try:
            starting = await sessions.list_by_status(
                SessionStatus.SCHEDULED,
                scheduled_from=now - timedelta(minutes=settings.session_start_window_minutes),
                scheduled_until=now,
            )
        except Exception as exc:
            await rollback_quietly(session)
            result.errors.append(f"Starting sessions: {exc}")
            starting = []
        for group_session in starting:
            try:
                if await sessions.count_participants(group_session.id) == 0:
                    continue
                await sessions.set_status(group_session.id, SessionStatus.LIVE)
            except Exception as exc:
                await rollback_quietly(session)
                result.errors.append(f"Starting session {group_session.id}: {exc}")
                continue
            result.started += 1

        try:
            overdue = await sessions.list_by_status(
                SessionStatus.SCHEDULED,
                scheduled_until=now - timedelta(minutes=settings.session_no_show_minutes),
            )
        except Exception as exc:
            await rollback_quietly(session)
            result.errors.append(f"No-show check: {exc}")
            overdue = []
        for group_session in overdue:
            try:
                if await sessions.count_participants(group_session.id) > 0:
                    continue
                await sessions.set_status(group_session.id, SessionStatus.NO_SHOW)
            except Exception as exc:
                await rollback_quietly(session)
                result.errors.append(f"No-show check for session {group_session.id}: {exc}")
                continue
            result.no_show += 1

        buffer = timedelta(minutes=settings.session_completion_buffer_minutes)
        try:
            live = await sessions.list_by_status(SessionStatus.LIVE)
        except Exception as exc:
            await rollback_quietly(session)
            result.errors.append(f"Completing sessions: {exc}")
            live = []
        for group_session in live:
            if now <= group_session.planned_end + buffer:
                continue
            try:
                await sessions.set_status(
                    group_session.id, SessionStatus.COMPLETED, ended_at=group_session.planned_end
                )
            except Exception as exc:
                await rollback_quietly(session)
                result.errors.append(f"Completing session {group_session.id}: {exc}")
                continue
            result.completed += 1

        try:
            result.cancelled = await sessions.cancel_scheduled_before(now - STALE_SCHEDULED_AFTER)
        except Exception as exc:
            await rollback_quietly(session)
            result.errors.append(f"Cleanup old sessions: {exc}")

    if result.errors:
        logger.warning("jobs.session_status.errors", errors=result.errors)
    return result
