from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.sessions import GroupSession, SessionGuard, SessionStatus
from ..models.group_session import GroupSessionModel, SessionParticipantModel
from ..models.therapist import TherapistProfileModel
from ..models.user import UserModel


class GroupSessionsRepository(Protocol):
    """Persistence interface used by the session jobs and notifications."""

    async def get(self, session_id: UUID) -> GroupSession | None: ...

    async def list_due(
        self, *, start: datetime, end: datetime, guard: SessionGuard
    ) -> list[GroupSession]: ...

    async def mark_sent(self, session_id: UUID, guard: SessionGuard) -> None: ...

    async def participant_ids(self, session_id: UUID) -> list[UUID]: ...

    async def count_participants(self, session_id: UUID) -> int: ...

    async def count_joined_since(self, user_id: UUID, since: datetime) -> int: ...

    async def therapist_name(self, session_id: UUID) -> str | None: ...

    async def list_by_status(
        self,
        status: SessionStatus,
        *,
        scheduled_from: datetime | None = None,
        scheduled_until: datetime | None = None,
    ) -> list[GroupSession]: ...

    async def set_status(
        self, session_id: UUID, status: SessionStatus, *, ended_at: datetime | None = None
    ) -> None: ...

    async def cancel_scheduled_before(self, cutoff: datetime) -> int: ...


class SqlAlchemyGroupSessionsRepository(GroupSessionsRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, session_id: UUID) -> GroupSession | None:
        model = await self._session.get(GroupSessionModel, session_id)
        if model is None:
            return None
        return GroupSession.model_validate(model)

    async def list_due(
        self, *, start: datetime, end: datetime, guard: SessionGuard
    ) -> list[GroupSession]:
        """SCHEDULED sessions starting in ``[start, end)`` whose ``guard`` flag is unset."""

        flag = getattr(GroupSessionModel, guard.value)
        result = await self._session.execute(
            select(GroupSessionModel)
            .where(
                GroupSessionModel.scheduled_at >= start,
                GroupSessionModel.scheduled_at < end,
                GroupSessionModel.status == SessionStatus.SCHEDULED.value,
                flag.is_(False),
            )
            .order_by(GroupSessionModel.scheduled_at)
        )
        return [GroupSession.model_validate(row) for row in result.scalars().all()]

    async def mark_sent(self, session_id: UUID, guard: SessionGuard) -> None:
        await self._session.execute(
            update(GroupSessionModel)
            .where(GroupSessionModel.id == session_id)
            .values({guard.value: True})
        )
        await self._session.commit()

    async def participant_ids(self, session_id: UUID) -> list[UUID]:
        result = await self._session.execute(
            select(SessionParticipantModel.user_id)
            .where(SessionParticipantModel.session_id == session_id)
            .order_by(SessionParticipantModel.joined_at)
        )
        return list(result.scalars().all())

    async def count_participants(self, session_id: UUID) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(SessionParticipantModel)
            .where(SessionParticipantModel.session_id == session_id)
        )
        return int(result.scalar_one())

    async def count_joined_since(self, user_id: UUID, since: datetime) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(SessionParticipantModel)
            .where(
                SessionParticipantModel.user_id == user_id,
                SessionParticipantModel.joined_at >= since,
            )
        )
        return int(result.scalar_one())

    async def therapist_name(self, session_id: UUID) -> str | None:
        result = await self._session.execute(
            select(UserModel.name)
            .join(TherapistProfileModel, TherapistProfileModel.user_id == UserModel.id)
            .join(GroupSessionModel, GroupSessionModel.therapist_id == TherapistProfileModel.id)
            .where(GroupSessionModel.id == session_id)
        )
        return result.scalar_one_or_none()

    async def list_by_status(
        self,
        status: SessionStatus,
        *,
        scheduled_from: datetime | None = None,
        scheduled_until: datetime | None = None,
    ) -> list[GroupSession]:
        """Sessions in ``status``, optionally bounded by start time (both ends inclusive)."""

        query = select(GroupSessionModel).where(GroupSessionModel.status == status.value)
        if scheduled_from is not None:
            query = query.where(GroupSessionModel.scheduled_at >= scheduled_from)
        if scheduled_until is not None:
            query = query.where(GroupSessionModel.scheduled_at <= scheduled_until)
        result = await self._session.execute(query.order_by(GroupSessionModel.scheduled_at))
        return [GroupSession.model_validate(row) for row in result.scalars().all()]

    async def set_status(
        self, session_id: UUID, status: SessionStatus, *, ended_at: datetime | None = None
    ) -> None:
        values: dict[str, object] = {"status": status.value}
        if ended_at is not None:
            values["ended_at"] = ended_at
        await self._session.execute(
            update(GroupSessionModel)
            .where(GroupSessionModel.id == session_id)
            .values(values)
        )
        await self._session.commit()

    async def cancel_scheduled_before(self, cutoff: datetime) -> int:
        """Cancel SCHEDULED sessions that should have started before ``cutoff``."""

        result = await self._session.execute(
            update(GroupSessionModel)
            .where(
                GroupSessionModel.status == SessionStatus.SCHEDULED.value,
                GroupSessionModel.scheduled_at < cutoff,
            )
            .values(status=SessionStatus.CANCELLED.value)
        )
        await self._session.commit()
        return result.rowcount or 0
