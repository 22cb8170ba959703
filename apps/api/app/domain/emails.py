from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class EmailStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class EmailMessage(BaseModel):
    """Rendered email ready to hand to a provider."""

    to: str = Field(..., min_length=3, max_length=255)
    subject: str = Field(..., min_length=1, max_length=255)
    html: str
    text: str | None = None
    user_id: UUID | None = Field(default=None, description="Recipient account, if any")
    type: str = Field(default="general", description="Category recorded in the delivery log")


class EmailSendResult(BaseModel):
    success: bool
    id: str | None = Field(default=None, description="Provider message id when accepted")
    error: str | None = None


class EmailLog(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID | None = None
    type: str
    to: str
    subject: str
    status: EmailStatus
    provider_id: str | None = None
    error: str | None = None
    sent_at: datetime | None = None
    created_at: datetime


class BadgeSummary(BaseModel):
    name: str
    icon: str = "🏆"


class WeeklySummary(BaseModel):
    """Figures rendered into the weekly summary email."""

    user_name: str
    week_start: datetime
    week_end: datetime
    mood_check_ins: int = Field(ge=0)
    avg_mood_score: float | None = None
    sessions_attended: int = Field(ge=0)
    new_badges: list[BadgeSummary] = Field(default_factory=list)
    streak_days: int = Field(default=0, ge=0)

    @property
    def has_activity(self) -> bool:
        return bool(self.mood_check_ins or self.sessions_attended or self.new_badges)
