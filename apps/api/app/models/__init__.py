"""SQLAlchemy ORM models used by the API layer."""

from .user import UserModel
from .gamification import DailyCheckInModel, PatientProfileModel, UserBadgeModel
from .mood import MoodLogModel
from .therapist import TherapistProfileModel, TherapistReviewModel, TherapistStatsModel
from .group_session import GroupSessionModel, SessionParticipantModel
from .notification import EmailLogModel, NotificationModel, NotificationPreferenceModel
from .audit import AuditLogModel
from .rate_limit import RateLimitEntryModel

__all__ = [
    "UserModel",
    "PatientProfileModel",
    "DailyCheckInModel",
    "UserBadgeModel",
    "MoodLogModel",
    "TherapistProfileModel",
    "TherapistReviewModel",
    "TherapistStatsModel",
    "GroupSessionModel",
    "SessionParticipantModel",
    "NotificationModel",
    "NotificationPreferenceModel",
    "EmailLogModel",
    "AuditLogModel",
    "RateLimitEntryModel",
]
