"""Plumbing shared by the scheduled jobs."""

from __future__ import annotations

import functools
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import AsyncIterator, Awaitable, Callable, Sequence, TypeVar

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db.session import get_sessionmaker
from ..domain.jobs import JobResult
from ..repositories.email_logs import SqlAlchemyEmailLogsRepository
from ..repositories.notifications import SqlAlchemyNotificationsRepository
from ..repositories.sessions import SqlAlchemyGroupSessionsRepository
from ..repositories.users import SqlAlchemyUsersRepository
from ..services.emails import (
    EmailConfigurationError,
    EmailProvider,
    EmailService,
    build_email_provider,
)
from ..services.notifications import NotificationService

logger = structlog.get_logger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]
R = TypeVar("R", bound=JobResult)


@asynccontextmanager
async def job_session(session_factory: SessionFactory | None) -> AsyncIterator[AsyncSession]:
    factory = session_factory or get_sessionmaker()
    async with factory() as session:
        yield session


def optional_email_provider() -> EmailProvider | None:
    """Configured provider, or ``None`` so jobs can still send in-app notifications."""

    try:
        return build_email_provider()
    except EmailConfigurationError:
        logger.debug("jobs.email_provider.unconfigured")
        return None


def build_email_service(
    session: AsyncSession, provider: EmailProvider | None, *, now: datetime
) -> EmailService | None:
    if provider is None:
        return None
    return EmailService(provider, SqlAlchemyEmailLogsRepository(session), clock=lambda: now)


def build_notification_service(
    session: AsyncSession, *, now: datetime, email_provider: EmailProvider | None = None
) -> NotificationService:
    return NotificationService(
        SqlAlchemyNotificationsRepository(session),
        SqlAlchemyUsersRepository(session),
        SqlAlchemyGroupSessionsRepository(session),
        emails=build_email_service(session, email_provider, now=now),
        clock=lambda: now,
    )


async def rollback_quietly(session: AsyncSession) -> None:
    """Reset a session after a failed item so the next item can use it."""

    try:
        await session.rollback()
    except Exception:
        logger.warning("jobs.rollback_failed", exc_info=True)


def never_raises(
    name: str, result_type: type[R]
) -> Callable[[Callable[..., Awaitable[R]]], Callable[..., Awaitable[R]]]:
    """Turn an error escaping a job into a result carrying that error.

    Per-item failures are handled inside each job; this catches the rest
    (no database configured, connection refused while opening the session).
    """

    def decorator(func: Callable[..., Awaitable[R]]) -> Callable[..., Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> R:
            log = logger.bind(job=name)
            log.info("jobs.started")
            try:
                result = await func(*args, **kwargs)
            except Exception as exc:
                log.exception("jobs.aborted")
                return result_type(errors=[f"Job {name} aborted: {exc}"])
            log.info("jobs.finished", errors=len(result.errors), supported=result.supported)
            return result

        return wrapper

    return decorator


def rounded_mean(values: Sequence[int]) -> float | None:
    """Arithmetic mean rounded half-up to one decimal, or ``None`` when empty."""

    if not values:
        return None
    mean = Decimal(sum(values)) / Decimal(len(values))
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
