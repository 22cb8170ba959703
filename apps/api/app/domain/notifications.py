from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    """Categories users can toggle individually in their preferences."""

    SESSION_REMINDER = "SESSION_REMINDER"
    SESSION_STARTING = "SESSION_STARTING"
    SESSION_CANCELLED = "SESSION_CANCELLED"
    STREAK_RISK = "STREAK_RISK"
    STREAK_ACHIEVED = "STREAK_ACHIEVED"
    WEEKLY_SUMMARY = "WEEKLY_SUMMARY"
    SYSTEM_ANNOUNCEMENT = "SYSTEM_ANNOUNCEMENT"


# Types that are mirrored to email unless the user opted out.
EMAIL_NOTIFICATION_TYPES = frozenset(
    {
        NotificationType.SESSION_REMINDER,
        NotificationType.SESSION_CANCELLED,
        NotificationType.SYSTEM_ANNOUNCEMENT,
        NotificationType.WEEKLY_SUMMARY,
    }
)


class NotificationCreate(BaseModel):
    """Payload for a notification addressed to a single user."""

    user_id: UUID
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    data: dict[str, Any] | None = Field(
        default=None,
        description="Structured context such as a deep link or the related session id",
    )


class Notification(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] | None = None
    read: bool = False
    read_at: datetime | None = None
    created_at: datetime


class NotificationPreference(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    type: NotificationType
    in_app: bool = True
    email: bool = False


class NotificationDelivery(BaseModel):
    """Channels a notification actually went out on."""

    in_app: bool = False
    email: bool = False
