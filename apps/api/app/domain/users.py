from __future__ import annotations

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Platform roles, ordered from least to most privileged."""

    PATIENT = "PATIENT"
    THERAPIST = "THERAPIST"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class UserStatus(str, Enum):
    """Account lifecycle states."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    BANNED = "BANNED"


class NotificationDigest(str, Enum):
    """How often a user wants unread notifications bundled into one email."""

    IMMEDIATE = "IMMEDIATE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"


class Identity(BaseModel):
    """Authenticated caller as seen by the rate limiter and route handlers."""

    model_config = ConfigDict(frozen=True)

    user_id: UUID = Field(description="Identifier of the authenticated user")
    role: Role | None = Field(default=None, description="Role claim carried by the access token")


class User(BaseModel):
    """Account fields the background jobs read."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    name: str | None = None
    role: Role = Role.PATIENT
    status: UserStatus = UserStatus.ACTIVE
    notification_digest: NotificationDigest = NotificationDigest.IMMEDIATE

    @property
    def display_name(self) -> str:
        return self.name or "Usuário"
