"""
Streak risk job: candidate selection and the consecutive-day walk.
"""

from datetime import datetime, timedelta

from hypothesis import given, settings, strategies as st
from sqlalchemy import select

from apps.api.app.jobs import run_streak_risk_check
from apps.api.app.jobs.streak_risk import count_streak
from apps.api.app.models import NotificationModel

import factories


def test_count_streak_stops_at_first_gap():
    now = datetime(2024, 5, 10, 20)
    logs = [now - timedelta(days=1), now - timedelta(days=2), now - timedelta(days=3, hours=1), now - timedelta(days=6)]
    assert count_streak(logs, now) == 3
    assert count_streak([now - timedelta(days=5)], now) == 0
    assert count_streak([], now) == 0


def test_count_streak_allows_just_under_two_days():
    now = datetime(2024, 5, 10, 20)
    assert count_streak([now - timedelta(days=1, hours=23, minutes=59)], now) == 1
    assert count_streak([now - timedelta(days=2)], now) == 0


@settings(max_examples=100)
@given(st.lists(st.integers(min_value=0, max_value=60 * 24 * 10), max_size=7))
def test_count_streak_is_bounded_by_log_count(offsets):
    now = datetime(2024, 5, 10, 20)
    logs = sorted((now - timedelta(minutes=offset) for offset in offsets), reverse=True)
    assert 0 <= count_streak(logs, now) <= len(logs)


async def test_streak_risk_scenario(session_factory, seed, now):
    at_risk = factories.user("Ana")
    stale = factories.user("Bia")
    logged_today = factories.user("Caio")
    short = factories.user("Duda")
    suspended = factories.user("Eva", status="SUSPENDED")
    await seed(at_risk, stale, logged_today, short, suspended)

    yesterday = now.replace(hour=19) - timedelta(days=1)
    await seed(
        factories.mood_log(at_risk, yesterday),
        factories.mood_log(at_risk, yesterday - timedelta(days=1)),
        factories.mood_log(at_risk, yesterday - timedelta(days=2)),
        factories.mood_log(stale, yesterday - timedelta(days=5)),
        factories.mood_log(logged_today, now.replace(hour=8)),
        factories.mood_log(logged_today, yesterday),
        factories.mood_log(logged_today, yesterday - timedelta(days=1)),
        factories.mood_log(logged_today, yesterday - timedelta(days=2)),
        factories.mood_log(short, yesterday),
        factories.mood_log(short, yesterday - timedelta(days=1)),
        factories.mood_log(suspended, yesterday),
        factories.mood_log(suspended, yesterday - timedelta(days=1)),
        factories.mood_log(suspended, yesterday - timedelta(days=2)),
    )

    result = await run_streak_risk_check(session_factory=session_factory, now=now)
    assert result.errors == []
    assert result.notified == 1

    async with session_factory() as session:
        notifications = (await session.execute(select(NotificationModel))).scalars().all()
    assert [(n.user_id, n.type) for n in notifications] == [(at_risk.id, "STREAK_RISK")]
    assert notifications[0].data == {"link": "/wellness/daily-checkin", "urgent": True}


async def test_disabled_in_app_preference_suppresses_notification(session_factory, seed, now):
    member = factories.user("Ana")
    await seed(member)
    yesterday = now - timedelta(days=1)
    await seed(
        factories.preference(member, "STREAK_RISK", in_app=False),
        *(factories.mood_log(member, yesterday - timedelta(days=offset)) for offset in range(3)),
    )

    result = await run_streak_risk_check(session_factory=session_factory, now=now)
    assert result.notified == 1

    async with session_factory() as session:
        assert (await session.execute(select(NotificationModel))).first() is None
