from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import and_, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.notifications import NotificationType
from ..domain.users import NotificationDigest, User, UserStatus
from ..models.group_session import SessionParticipantModel
from ..models.mood import MoodLogModel
from ..models.notification import NotificationPreferenceModel
from ..models.user import UserModel


class UsersRepository(Protocol):
    """Read access to accounts for notifications and scheduled jobs."""

    async def get(self, user_id: UUID) -> User | None: ...

    async def list_streak_risk_candidates(
        self, *, active_since: datetime, today_start: datetime
    ) -> list[User]: ...

    async def list_weekly_summary_recipients(self, *, active_since: datetime) -> list[User]: ...

    async def list_digest_recipients(self, digest: NotificationDigest) -> list[User]: ...


class SqlAlchemyUsersRepository(UsersRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: UUID) -> User | None:
        model = await self._session.get(UserModel, user_id)
        if model is None:
            return None
        return User.model_validate(model)

    async def list_streak_risk_candidates(
        self, *, active_since: datetime, today_start: datetime
    ) -> list[User]:
        """Active users who logged a mood recently but not since ``today_start``."""

        logged_recently = exists().where(
            MoodLogModel.user_id == UserModel.id,
            MoodLogModel.created_at >= active_since,
        )
        logged_today = exists().where(
            MoodLogModel.user_id == UserModel.id,
            MoodLogModel.created_at >= today_start,
        )
        result = await self._session.execute(
            select(UserModel)
            .where(
                UserModel.status == UserStatus.ACTIVE.value,
                logged_recently,
                ~logged_today,
            )
            .order_by(UserModel.created_at)
        )
        return [User.model_validate(row) for row in result.scalars().all()]

    async def list_weekly_summary_recipients(self, *, active_since: datetime) -> list[User]:
        """Active users with recent activity who opted into the summary email."""

        mood_activity = exists().where(
            MoodLogModel.user_id == UserModel.id,
            MoodLogModel.created_at >= active_since,
        )
        session_activity = exists().where(
            SessionParticipantModel.user_id == UserModel.id,
            SessionParticipantModel.joined_at >= active_since,
        )
        opted_in = exists().where(
            and_(
                NotificationPreferenceModel.user_id == UserModel.id,
                NotificationPreferenceModel.type == NotificationType.WEEKLY_SUMMARY.value,
                NotificationPreferenceModel.email.is_(True),
            )
        )
        result = await self._session.execute(
            select(UserModel)
            .where(
                UserModel.status == UserStatus.ACTIVE.value,
                or_(mood_activity, session_activity),
                opted_in,
            )
            .order_by(UserModel.created_at)
        )
        return [User.model_validate(row) for row in result.scalars().all()]

    async def list_digest_recipients(self, digest: NotificationDigest) -> list[User]:
        result = await self._session.execute(
            select(UserModel)
            .where(
                UserModel.status == UserStatus.ACTIVE.value,
                UserModel.notification_digest == digest.value,
            )
            .order_by(UserModel.created_at)
        )
        return [User.model_validate(row) for row in result.scalars().all()]
