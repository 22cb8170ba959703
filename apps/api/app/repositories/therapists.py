from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Protocol
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.sessions import SessionStatus
from ..models.group_session import GroupSessionModel, SessionParticipantModel
from ..models.therapist import TherapistProfileModel, TherapistReviewModel, TherapistStatsModel


@dataclass(frozen=True)
class TherapistRef:
    id: UUID
    user_id: UUID


@dataclass(frozen=True)
class TherapistStatsSnapshot:
    total_sessions: int
    conducted_sessions: int
    total_patients: int
    avg_rating: float | None


class TherapistsRepository(Protocol):
    async def list_profiles(self) -> list[TherapistRef]: ...

    async def count_sessions(self, therapist_id: UUID, statuses: Iterable[SessionStatus]) -> int: ...

    async def distinct_patient_ids(self, therapist_id: UUID) -> list[UUID]: ...

    async def ratings(self, therapist_user_id: UUID) -> list[int]: ...

    async def upsert_stats(
        self, therapist_id: UUID, stats: TherapistStatsSnapshot, *, calculated_at: datetime
    ) -> bool: ...


class SqlAlchemyTherapistsRepository(TherapistsRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_profiles(self) -> list[TherapistRef]:
        result = await self._session.execute(
            select(TherapistProfileModel.id, TherapistProfileModel.user_id).order_by(
                TherapistProfileModel.created_at
            )
        )
        return [TherapistRef(id=row_id, user_id=user_id) for row_id, user_id in result.all()]

    async def count_sessions(self, therapist_id: UUID, statuses: Iterable[SessionStatus]) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(GroupSessionModel)
            .where(
                GroupSessionModel.therapist_id == therapist_id,
                GroupSessionModel.status.in_([status.value for status in statuses]),
            )
        )
        return int(result.scalar_one())

    async def distinct_patient_ids(self, therapist_id: UUID) -> list[UUID]:
        """Participants of the therapist's completed sessions."""

        result = await self._session.execute(
            select(SessionParticipantModel.user_id)
            .join(GroupSessionModel, GroupSessionModel.id == SessionParticipantModel.session_id)
            .where(
                GroupSessionModel.therapist_id == therapist_id,
                GroupSessionModel.status == SessionStatus.COMPLETED.value,
            )
            .distinct()
        )
        return list(result.scalars().all())

    async def ratings(self, therapist_user_id: UUID) -> list[int]:
        result = await self._session.execute(
            select(TherapistReviewModel.rating).where(
                TherapistReviewModel.therapist_user_id == therapist_user_id
            )
        )
        return list(result.scalars().all())

    async def upsert_stats(
        self, therapist_id: UUID, stats: TherapistStatsSnapshot, *, calculated_at: datetime
    ) -> bool:
        """Write the stats row; returns ``True`` when it had to be created."""

        result = await self._session.execute(
            select(TherapistStatsModel).where(TherapistStatsModel.therapist_id == therapist_id)
        )
        model = result.scalar_one_or_none()
        created = model is None
        if model is None:
            model = TherapistStatsModel(therapist_id=therapist_id)
            self._session.add(model)
        model.total_sessions = stats.total_sessions
        model.conducted_sessions = stats.conducted_sessions
        model.total_patients = stats.total_patients
        model.avg_rating = stats.avg_rating
        model.last_calculated_at = calculated_at
        await self._session.commit()
        return created
