"""Mood logs, daily check-ins, streaks and badges."""

from __future__ import annotations

from datetime import date, datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.emails import BadgeSummary
from ..models.gamification import DailyCheckInModel, PatientProfileModel, UserBadgeModel
from ..models.mood import MoodLogModel


class WellnessRepository(Protocol):
    async def recent_mood_log_times(self, user_id: UUID, *, limit: int) -> list[datetime]: ...

    async def mood_scores_since(self, user_id: UUID, since: datetime) -> list[int]: ...

    async def badges_earned_since(self, user_id: UUID, since: datetime) -> list[BadgeSummary]: ...

    async def list_streak_holders(self) -> list[UUID]: ...

    async def has_check_in(self, user_id: UUID, day: date) -> bool: ...

    async def reset_streak(self, user_id: UUID) -> None: ...


class SqlAlchemyWellnessRepository(WellnessRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def recent_mood_log_times(self, user_id: UUID, *, limit: int) -> list[datetime]:
        """Newest first."""

        result = await self._session.execute(
            select(MoodLogModel.created_at)
            .where(MoodLogModel.user_id == user_id)
            .order_by(MoodLogModel.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def mood_scores_since(self, user_id: UUID, since: datetime) -> list[int]:
        result = await self._session.execute(
            select(MoodLogModel.mood_score).where(
                MoodLogModel.user_id == user_id,
                MoodLogModel.created_at >= since,
            )
        )
        return list(result.scalars().all())

    async def badges_earned_since(self, user_id: UUID, since: datetime) -> list[BadgeSummary]:
        result = await self._session.execute(
            select(UserBadgeModel.name, UserBadgeModel.icon)
            .where(
                UserBadgeModel.user_id == user_id,
                UserBadgeModel.earned_at >= since,
            )
            .order_by(UserBadgeModel.earned_at)
        )
        badges: list[BadgeSummary] = []
        for name, icon in result.all():
            if icon:
                badges.append(BadgeSummary(name=name, icon=icon))
            else:
                badges.append(BadgeSummary(name=name))
        return badges

    async def list_streak_holders(self) -> list[UUID]:
        """Users whose current streak is above zero."""

        result = await self._session.execute(
            select(PatientProfileModel.user_id).where(PatientProfileModel.streak > 0)
        )
        return list(result.scalars().all())

    async def has_check_in(self, user_id: UUID, day: date) -> bool:
        result = await self._session.execute(
            select(DailyCheckInModel.id)
            .where(
                DailyCheckInModel.user_id == user_id,
                DailyCheckInModel.date == day,
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def reset_streak(self, user_id: UUID) -> None:
        await self._session.execute(
            update(PatientProfileModel)
            .where(PatientProfileModel.user_id == user_id)
            .values(streak=0)
        )
        await self._session.commit()
