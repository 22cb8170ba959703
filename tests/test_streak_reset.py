"""
Midnight streak reset.
"""

from datetime import datetime

from sqlalchemy import select

from apps.api.app.jobs import run_streak_reset
from apps.api.app.models import PatientProfileModel

import factories


async def test_streaks_without_yesterdays_check_in_are_reset(session_factory, seed):
    now = datetime(2024, 5, 10, 0, 5)
    kept, broken, idle = factories.user("Ana"), factories.user("Bia"), factories.user("Caio")
    await seed(kept, broken, idle)
    await seed(
        factories.profile(kept, streak=4),
        factories.profile(broken, streak=2),
        factories.profile(idle, streak=0),
        factories.check_in(kept, datetime(2024, 5, 9).date()),
        factories.check_in(broken, datetime(2024, 5, 10).date()),
    )

    result = await run_streak_reset(session_factory=session_factory, now=now)
    assert result.errors == []
    assert (result.users_reset, result.total_processed) == (1, 2)

    async with session_factory() as session:
        streaks = dict(
            (await session.execute(select(PatientProfileModel.user_id, PatientProfileModel.streak))).all()
        )
    assert streaks == {kept.id: 4, broken.id: 0, idle.id: 0}
