from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.emails import EmailLog, EmailMessage, EmailStatus
from ..models.notification import EmailLogModel


class EmailLogsRepository(Protocol):
    async def create_pending(self, message: EmailMessage) -> EmailLog: ...

    async def mark_sent(self, log_id: UUID, *, provider_id: str | None, sent_at: datetime) -> None: ...

    async def mark_failed(self, log_id: UUID, *, error: str) -> None: ...

    async def delete_older_than(self, cutoff: datetime) -> int: ...


class SqlAlchemyEmailLogsRepository(EmailLogsRepository):
    """Delivery log stored in ``email_logs``."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_pending(self, message: EmailMessage) -> EmailLog:
        model = EmailLogModel(
            user_id=message.user_id,
            type=message.type,
            to=message.to,
            subject=message.subject,
            status=EmailStatus.PENDING.value,
        )
        self._session.add(model)
        await self._session.flush()
        await self._session.commit()
        return EmailLog.model_validate(model)

    async def mark_sent(self, log_id: UUID, *, provider_id: str | None, sent_at: datetime) -> None:
        await self._session.execute(
            update(EmailLogModel)
            .where(EmailLogModel.id == log_id)
            .values(status=EmailStatus.SENT.value, provider_id=provider_id, sent_at=sent_at)
        )
        await self._session.commit()

    async def mark_failed(self, log_id: UUID, *, error: str) -> None:
        await self._session.execute(
            update(EmailLogModel)
            .where(EmailLogModel.id == log_id)
            .values(status=EmailStatus.FAILED.value, error=error[:2000])
        )
        await self._session.commit()

    async def delete_older_than(self, cutoff: datetime) -> int:
        result = await self._session.execute(
            delete(EmailLogModel).where(EmailLogModel.created_at < cutoff)
        )
        await self._session.commit()
        return result.rowcount or 0
