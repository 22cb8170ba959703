from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.notifications import (
    Notification,
    NotificationCreate,
    NotificationPreference,
    NotificationType,
)
from ..models.notification import NotificationModel, NotificationPreferenceModel


class NotificationsRepository(Protocol):
    async def create(self, payload: NotificationCreate) -> Notification: ...

    async def get_preference(
        self, user_id: UUID, notification_type: NotificationType
    ) -> NotificationPreference | None: ...

    async def list_unread_since(self, user_id: UUID, since: datetime) -> list[Notification]: ...

    async def delete_older_than(self, cutoff: datetime, *, read: bool) -> int: ...


class SqlAlchemyNotificationsRepository(NotificationsRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, payload: NotificationCreate) -> Notification:
        model = NotificationModel(
            user_id=payload.user_id,
            type=payload.type.value,
            title=payload.title,
            message=payload.message,
            data=payload.data,
        )
        self._session.add(model)
        await self._session.flush()
        await self._session.commit()
        return Notification.model_validate(model)

    async def get_preference(
        self, user_id: UUID, notification_type: NotificationType
    ) -> NotificationPreference | None:
        result = await self._session.execute(
            select(NotificationPreferenceModel).where(
                NotificationPreferenceModel.user_id == user_id,
                NotificationPreferenceModel.type == notification_type.value,
            )
        )
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return NotificationPreference.model_validate(model)

    async def list_unread_since(self, user_id: UUID, since: datetime) -> list[Notification]:
        """Unread notifications created at or after ``since``, newest first."""

        result = await self._session.execute(
            select(NotificationModel)
            .where(
                NotificationModel.user_id == user_id,
                NotificationModel.read.is_(False),
                NotificationModel.created_at >= since,
            )
            .order_by(NotificationModel.created_at.desc())
        )
        return [Notification.model_validate(row) for row in result.scalars().all()]

    async def delete_older_than(self, cutoff: datetime, *, read: bool) -> int:
        """Delete notifications with the given read state created before ``cutoff``."""

        result = await self._session.execute(
            delete(NotificationModel).where(
                NotificationModel.read.is_(read),
                NotificationModel.created_at < cutoff,
            )
        )
        await self._session.commit()
        return result.rowcount or 0
