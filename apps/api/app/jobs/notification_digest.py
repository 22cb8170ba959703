"""Daily and weekly email digests of unread notifications."""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog

from ..domain.jobs import NotificationDigestResult
from ..domain.users import NotificationDigest
from ..repositories.notifications import SqlAlchemyNotificationsRepository
from ..repositories.users import SqlAlchemyUsersRepository
from ..services.email_templates import render_notification_digest
from ..services.emails import EmailProvider
from .base import (
    SessionFactory,
    build_email_service,
    job_session,
    never_raises,
    optional_email_provider,
    rollback_quietly,
)

logger = structlog.get_logger(__name__)

DIGEST_PERIODS = {
    NotificationDigest.DAILY: timedelta(hours=24),
    NotificationDigest.WEEKLY: timedelta(days=7),
}


async def run_notification_digest(
    digest: NotificationDigest,
    *,
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
    email_provider: EmailProvider | None = None,
) -> NotificationDigestResult:
    """Email each ACTIVE user on ``digest`` their unread notifications of the period.

    Users without unread notifications in the period are skipped.
    """

    if digest not in DIGEST_PERIODS:
        raise ValueError(f"No digest is sent for {digest.value} users")
    now = now or datetime.utcnow()
    period_start = now - DIGEST_PERIODS[digest]
    result = NotificationDigestResult(digest_type=digest.value.lower())

    provider = email_provider or optional_email_provider()
    if provider is None:
        result.errors.append("Email provider is not configured; no digests sent")
        return result

    async with job_session(session_factory) as session:
        users = SqlAlchemyUsersRepository(session)
        notifications = SqlAlchemyNotificationsRepository(session)
        emails = build_email_service(session, provider, now=now)

        try:
            recipients = await users.list_digest_recipients(digest)
        except Exception as exc:
            logger.warning("jobs.notification_digest.query_failed", digest=digest.value, error=str(exc))
            result.errors.append(f"Failed to load digest recipients: {exc}")
            return result
        result.total_users = len(recipients)

        for user in recipients:
            try:
                unread = await notifications.list_unread_since(user.id, period_start)
                if not unread:
                    result.skipped += 1
                    continue
                sent = await emails.send_email(
                    render_notification_digest(
                        unread,
                        digest=digest,
                        to=user.email,
                        user_name=user.display_name,
                        period_start=period_start,
                        period_end=now,
                        user_id=user.id,
                    )
                )
            except Exception as exc:
                await rollback_quietly(session)
                logger.warning(
                    "jobs.notification_digest.failed", user_id=str(user.id), error=str(exc)
                )
                result.errors.append(f"User {user.id}: {exc}")
                continue
            if sent.success:
                result.sent += 1
            else:
                result.errors.append(f"User {user.id}: {sent.error}")
    return result


@never_raises("notification_digest_daily", NotificationDigestResult)
async def run_daily_notification_digest(**kwargs) -> NotificationDigestResult:
    return await run_notification_digest(NotificationDigest.DAILY, **kwargs)


@never_raises("notification_digest_weekly", NotificationDigestResult)
async def run_weekly_notification_digest(**kwargs) -> NotificationDigestResult:
    return await run_notification_digest(NotificationDigest.WEEKLY, **kwargs)
