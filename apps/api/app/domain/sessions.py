from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SessionStatus(str, Enum):
    """Lifecycle of a group session."""

    SCHEDULED = "SCHEDULED"
    LIVE = "LIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


CONDUCTED_STATUSES = (SessionStatus.COMPLETED, SessionStatus.LIVE)


class GroupSession(BaseModel):
    """Read model for a scheduled group session."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    therapist_id: UUID
    title: str
    scheduled_at: datetime
    duration: int = Field(description="Planned length in minutes", ge=0)
    status: SessionStatus
    reminder_sent: bool = False
    starting_sent: bool = False
    ended_at: datetime | None = None

    @property
    def planned_end(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration)


class SessionGuard(str, Enum):
    """Flags recording which reminders a session already received."""

    REMINDER = "reminder_sent"
    STARTING = "starting_sent"
