"""Builders for ORM rows used across the job tests."""

from datetime import date, datetime
from uuid import uuid4

from apps.api.app.models import (
    DailyCheckInModel,
    EmailLogModel,
    GroupSessionModel,
    MoodLogModel,
    NotificationModel,
    NotificationPreferenceModel,
    PatientProfileModel,
    SessionParticipantModel,
    TherapistProfileModel,
    TherapistReviewModel,
    UserBadgeModel,
    UserModel,
)


def user(name: str = "Ana", status: str = "ACTIVE", **kwargs) -> UserModel:
    return UserModel(
        id=uuid4(),
        email=kwargs.pop("email", f"{name.lower()}-{uuid4().hex[:6]}@example.com"),
        name=name,
        status=status,
        created_at=kwargs.pop("created_at", datetime(2024, 1, 1)),
        **kwargs,
    )


def therapist(owner: UserModel) -> TherapistProfileModel:
    return TherapistProfileModel(id=uuid4(), user_id=owner.id, created_at=datetime(2024, 1, 1))


def group_session(
    profile: TherapistProfileModel,
    scheduled_at: datetime,
    status: str = "SCHEDULED",
    **kwargs,
) -> GroupSessionModel:
    return GroupSessionModel(
        id=uuid4(),
        therapist_id=profile.id,
        title=kwargs.pop("title", "Ansiedade no trabalho"),
        scheduled_at=scheduled_at,
        duration=kwargs.pop("duration", 60),
        status=status,
        **kwargs,
    )


def participant(session: GroupSessionModel, member: UserModel, joined_at: datetime) -> SessionParticipantModel:
    return SessionParticipantModel(
        id=uuid4(), session_id=session.id, user_id=member.id, joined_at=joined_at
    )


def mood_log(member: UserModel, created_at: datetime, score: int = 7) -> MoodLogModel:
    return MoodLogModel(id=uuid4(), user_id=member.id, mood_score=score, created_at=created_at)


def notification(member: UserModel, created_at: datetime, read: bool, **kwargs) -> NotificationModel:
    return NotificationModel(
        id=uuid4(),
        user_id=member.id,
        type=kwargs.pop("type", "SYSTEM_ANNOUNCEMENT"),
        title=kwargs.pop("title", "Aviso"),
        message=kwargs.pop("message", "Mensagem"),
        read=read,
        created_at=created_at,
        **kwargs,
    )


def preference(member: UserModel, type: str, in_app: bool = True, email: bool = False):
    return NotificationPreferenceModel(
        id=uuid4(), user_id=member.id, type=type, in_app=in_app, email=email
    )


def email_log(created_at: datetime) -> EmailLogModel:
    return EmailLogModel(
        id=uuid4(), to="x@example.com", subject="Oi", status="SENT", created_at=created_at
    )


def profile(member: UserModel, streak: int) -> PatientProfileModel:
    return PatientProfileModel(id=uuid4(), user_id=member.id, streak=streak, longest_streak=streak)


def check_in(member: UserModel, day: date) -> DailyCheckInModel:
    return DailyCheckInModel(id=uuid4(), user_id=member.id, date=day)


def review(profile_owner: UserModel, author: UserModel, rating: int) -> TherapistReviewModel:
    return TherapistReviewModel(
        id=uuid4(), therapist_user_id=profile_owner.id, author_id=author.id, rating=rating
    )


def badge(member: UserModel, earned_at: datetime, name: str = "Primeiro passo", icon: str | None = None):
    return UserBadgeModel(id=uuid4(), user_id=member.id, name=name, icon=icon, earned_at=earned_at)
