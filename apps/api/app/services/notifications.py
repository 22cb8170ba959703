"""In-app notifications and the triggers used by the scheduled jobs."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Iterable
from uuid import UUID

import structlog

from ..domain.notifications import (
    EMAIL_NOTIFICATION_TYPES,
    NotificationCreate,
    NotificationDelivery,
    NotificationType,
)
from ..repositories.notifications import NotificationsRepository
from ..repositories.sessions import GroupSessionsRepository
from ..repositories.users import UsersRepository
from .email_templates import render_notification_email
from .emails import EmailService

logger = structlog.get_logger(__name__)


class NotificationTargetNotFound(LookupError):
    """Raised when a trigger refers to a session or user that does not exist."""


class NotificationService:
    """Creates notifications honouring each user's per-type preferences.

    Without a stored preference a notification is shown in-app and, for the
    types in ``EMAIL_NOTIFICATION_TYPES``, mirrored by email when an
    ``EmailService`` is available. Storage errors propagate to the caller.
    """

    def __init__(
        self,
        notifications: NotificationsRepository,
        users: UsersRepository,
        sessions: GroupSessionsRepository,
        *,
        emails: EmailService | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self._notifications = notifications
        self._users = users
        self._sessions = sessions
        self._emails = emails
        self._clock = clock

    async def create_notification(self, payload: NotificationCreate) -> NotificationDelivery:
        preference = await self._notifications.get_preference(payload.user_id, payload.type)
        delivery = NotificationDelivery()

        if preference is None or preference.in_app:
            await self._notifications.create(payload)
            delivery.in_app = True

        wants_email = preference is None or preference.email
        if self._emails is not None and wants_email and payload.type in EMAIL_NOTIFICATION_TYPES:
            user = await self._users.get(payload.user_id)
            if user is None:
                logger.warning("notifications.email_skipped", user_id=str(payload.user_id))
            else:
                message = render_notification_email(
                    payload, to=user.email, user_name=user.display_name
                )
                result = await self._emails.send_email(message)
                delivery.email = result.success

        logger.debug(
            "notifications.created",
            user_id=str(payload.user_id),
            type=payload.type.value,
            in_app=delivery.in_app,
            email=delivery.email,
        )
        return delivery

    async def broadcast(
        self,
        user_ids: Iterable[UUID],
        *,
        type: NotificationType,
        title: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> list[NotificationDelivery]:
        deliveries: list[NotificationDelivery] = []
        for user_id in user_ids:
            payload = NotificationCreate(
                user_id=user_id, type=type, title=title, message=message, data=data
            )
            deliveries.append(await self.create_notification(payload))
        return deliveries

    async def notify_session_reminder(self, session_id: UUID) -> int:
        """Tell every participant the session starts in about an hour."""

        session = await self._sessions.get(session_id)
        if session is None:
            raise NotificationTargetNotFound(f"Session {session_id} not found")
        therapist = await self._sessions.therapist_name(session_id) or "Terapeuta"
        participants = await self._sessions.participant_ids(session_id)

        seconds_until = (session.scheduled_at - self._clock()).total_seconds()
        hours = max(round(seconds_until / 3600), 1)
        unit = "hora" if hours == 1 else "horas"
        deliveries = await self.broadcast(
            participants,
            type=NotificationType.SESSION_REMINDER,
            title="Lembrete de Sessão",
            message=f'Sua sessão "{session.title}" com {therapist} começa em {hours} {unit}.',
            data={
                "link": f"/sessions/{session_id}",
                "sessionId": str(session_id),
                "therapistName": therapist,
            },
        )
        return len(deliveries)

    async def notify_session_starting(self, session_id: UUID) -> int:
        session = await self._sessions.get(session_id)
        if session is None:
            raise NotificationTargetNotFound(f"Session {session_id} not found")
        therapist = await self._sessions.therapist_name(session_id) or "Terapeuta"
        participants = await self._sessions.participant_ids(session_id)
        deliveries = await self.broadcast(
            participants,
            type=NotificationType.SESSION_STARTING,
            title="Sessão Começando Agora",
            message=f'Sua sessão "{session.title}" com {therapist} está prestes a começar.',
            data={"link": f"/sessions/{session_id}", "sessionId": str(session_id)},
        )
        return len(deliveries)

    async def notify_streak_risk(self, user_id: UUID) -> NotificationDelivery:
        user = await self._users.get(user_id)
        if user is None:
            raise NotificationTargetNotFound(f"User {user_id} not found")
        return await self.create_notification(
            NotificationCreate(
                user_id=user_id,
                type=NotificationType.STREAK_RISK,
                title="🔥 Sua sequência está em risco!",
                message="Você não fez check-in hoje. Mantenha sua sequência ativa!",
                data={"link": "/wellness/daily-checkin", "urgent": True},
            )
        )
