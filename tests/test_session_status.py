"""
Session status transitions driven by the clock and participant counts.
"""

from datetime import timedelta

from sqlalchemy import select

from apps.api.app.jobs import run_session_status_check
from apps.api.app.models import GroupSessionModel

import factories


async def test_status_transitions(session_factory, seed, now):
    host = factories.user("Dra. Paula")
    profile = factories.therapist(host)
    member = factories.user("Ana")
    starting = factories.group_session(profile, now - timedelta(minutes=2))
    starting_empty = factories.group_session(profile, now - timedelta(minutes=3))
    no_show = factories.group_session(profile, now - timedelta(minutes=40))
    late_with_people = factories.group_session(profile, now - timedelta(minutes=40))
    finished = factories.group_session(profile, now - timedelta(minutes=90), status="LIVE")
    running = factories.group_session(profile, now - timedelta(minutes=50), status="LIVE")
    ancient = factories.group_session(profile, now - timedelta(hours=30))
    await seed(
        host, profile, member,
        starting, starting_empty, no_show, late_with_people, finished, running, ancient,
    )
    await seed(
        factories.participant(starting, member, now - timedelta(days=1)),
        factories.participant(late_with_people, member, now - timedelta(days=1)),
        factories.participant(ancient, member, now - timedelta(days=2)),
    )

    result = await run_session_status_check(session_factory=session_factory, now=now)
    assert result.errors == []
    assert (result.started, result.no_show, result.completed, result.cancelled) == (1, 1, 1, 1)

    async with session_factory() as session:
        rows = {
            row.id: row
            for row in (await session.execute(select(GroupSessionModel))).scalars().all()
        }
    assert rows[starting.id].status == "LIVE"
    assert rows[starting_empty.id].status == "SCHEDULED"
    assert rows[no_show.id].status == "NO_SHOW"
    assert rows[late_with_people.id].status == "SCHEDULED"
    assert rows[finished.id].status == "COMPLETED"
    assert rows[finished.id].ended_at == now - timedelta(minutes=30)
    assert rows[running.id].status == "LIVE"
    assert rows[ancient.id].status == "CANCELLED"


async def test_second_run_changes_nothing(session_factory, seed, now):
    host = factories.user("Dra. Paula")
    profile = factories.therapist(host)
    empty = factories.group_session(profile, now - timedelta(minutes=45))
    await seed(host, profile, empty)

    first = await run_session_status_check(session_factory=session_factory, now=now)
    assert first.no_show == 1
    second = await run_session_status_check(session_factory=session_factory, now=now)
    assert (second.started, second.no_show, second.completed, second.cancelled) == (0, 0, 0, 0)
