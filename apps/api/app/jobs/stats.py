"""Derived statistics: therapist aggregates and user engagement."""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

import structlog

from ..domain.jobs import TherapistStatsResult, UserEngagementResult
from ..domain.sessions import CONDUCTED_STATUSES, SessionStatus
from ..repositories.therapists import SqlAlchemyTherapistsRepository, TherapistStatsSnapshot
from .base import SessionFactory, job_session, never_raises, rollback_quietly, rounded_mean

logger = structlog.get_logger(__name__)

ENGAGEMENT_UNSUPPORTED_REASON = (
    "Engagement scoring needs per-user post, comment and points relations "
    "that the data model does not have."
)


def average_rating(ratings: Sequence[int]) -> float | None:
    return rounded_mean(ratings)


@never_raises("therapist_stats", TherapistStatsResult)
async def run_update_therapist_stats(
    *,
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
) -> TherapistStatsResult:
    """Recompute session, patient and rating aggregates for every therapist."""

    now = now or datetime.utcnow()
    result = TherapistStatsResult()

    async with job_session(session_factory) as session:
        therapists = SqlAlchemyTherapistsRepository(session)
        try:
            profiles = await therapists.list_profiles()
        except Exception as exc:
            logger.warning("jobs.therapist_stats.query_failed", error=str(exc))
            result.errors.append(f"Failed to load therapist profiles: {exc}")
            return result

        for profile in profiles:
            try:
                # Sequential on purpose: an AsyncSession runs one statement at a time.
                conducted = await therapists.count_sessions(profile.id, CONDUCTED_STATUSES)
                patients = await therapists.distinct_patient_ids(profile.id)
                ratings = await therapists.ratings(profile.user_id)
                completed = await therapists.count_sessions(profile.id, (SessionStatus.COMPLETED,))
                snapshot = TherapistStatsSnapshot(
                    total_sessions=completed,
                    conducted_sessions=conducted,
                    total_patients=len(patients),
                    avg_rating=average_rating(ratings),
                )
                created = await therapists.upsert_stats(profile.id, snapshot, calculated_at=now)
            except Exception as exc:
                await rollback_quietly(session)
                logger.warning(
                    "jobs.therapist_stats.failed", therapist_id=str(profile.id), error=str(exc)
                )
                result.errors.append(f"Failed to update stats for therapist {profile.id}: {exc}")
                continue
            if created:
                result.created += 1
            else:
                result.updated += 1
    return result


async def run_update_user_engagement(
    *,
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
) -> UserEngagementResult:
    """Not supported yet; reports that instead of pretending nothing needed updating."""

    logger.info("jobs.user_engagement.unsupported")
    return UserEngagementResult(supported=False, reason=ENGAGEMENT_UNSUPPORTED_REASON)
