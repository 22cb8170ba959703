from __future__ import annotations

from datetime import datetime
from typing import Protocol

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.audit import AuditLogModel


class AuditLogsRepository(Protocol):
    async def delete_older_than(self, cutoff: datetime) -> int: ...


class SqlAlchemyAuditLogsRepository(AuditLogsRepository):
    """Retention access to ``audit_logs``; entries are written by the admin tooling."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def delete_older_than(self, cutoff: datetime) -> int:
        result = await self._session.execute(
            delete(AuditLogModel).where(AuditLogModel.created_at < cutoff)
        )
        await self._session.commit()
        return result.rowcount or 0
