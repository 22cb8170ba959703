"""
SQL-backed rate limit counters: atomic primitives and limiter integration.
"""

from datetime import datetime, timedelta

from apps.api.app.domain.rate_limits import default_policy
from apps.api.app.jobs import run_rate_limit_cleanup
from apps.api.app.repositories.rate_limits import SqlAlchemyRateLimitRepository
from apps.api.app.services.rate_limiter import RateLimiter

from helpers import START, Clock, make_request

WINDOW = timedelta(minutes=15)


async def test_create_is_rejected_for_existing_key(db_session):
    repository = SqlAlchemyRateLimitRepository(db_session)
    first = await repository.create("ip:1.2.3.4:/p", window_start=START, expires_at=START + WINDOW)
    assert first is not None
    assert first.count == 1

    second = await repository.create("ip:1.2.3.4:/p", window_start=START, expires_at=START + WINDOW)
    assert second is None
    assert (await repository.get("ip:1.2.3.4:/p")).count == 1


async def test_increment_stops_at_limit(db_session):
    repository = SqlAlchemyRateLimitRepository(db_session)
    await repository.create("k", window_start=START, expires_at=START + WINDOW)

    assert await repository.increment("k", limit=3) == 2
    assert await repository.increment("k", limit=3) == 3
    assert await repository.increment("k", limit=3) is None
    assert (await repository.get("k")).count == 3
    assert await repository.increment("missing", limit=3) is None


async def test_reset_only_restarts_stale_windows(db_session):
    repository = SqlAlchemyRateLimitRepository(db_session)
    await repository.create("k", window_start=START, expires_at=START + WINDOW)
    await repository.increment("k", limit=10)

    assert (
        await repository.reset(
            "k", stale_before=START, window_start=START, expires_at=START + WINDOW
        )
        is None
    )

    later = START + WINDOW + timedelta(seconds=1)
    restarted = await repository.reset(
        "k", stale_before=later - WINDOW, window_start=later, expires_at=later + WINDOW
    )
    assert restarted is not None
    entry = await repository.get("k")
    assert entry.count == 1
    assert entry.window_start == later


async def test_expired_entries_are_counted_and_deleted(db_session):
    repository = SqlAlchemyRateLimitRepository(db_session)
    await repository.create("old", window_start=START - WINDOW * 2, expires_at=START - WINDOW)
    await repository.create("live", window_start=START, expires_at=START + WINDOW)
    await repository.increment("live", limit=5)

    assert await repository.count() == 2
    assert await repository.count_expired(START) == 1
    top = await repository.top_keys(5)
    assert [(item.key, item.count) for item in top] == [("live", 2), ("old", 1)]

    assert await repository.delete_expired(START) == 1
    assert await repository.get("old") is None
    assert await repository.count() == 1


async def test_limiter_against_database(db_session):
    clock = Clock()
    limiter = RateLimiter(default_policy(), SqlAlchemyRateLimitRepository(db_session), clock=clock)
    request = make_request("/api/auth/register")

    remaining = [(await limiter.check(request)).remaining for _ in range(3)]
    assert remaining == [2, 1, 0]
    assert not (await limiter.check(request)).allowed

    clock.advance(hours=1, seconds=1)
    assert (await limiter.check(request)).remaining == 2


async def test_created_entry_survives_in_new_session(session_factory):
    async with session_factory() as session:
        await SqlAlchemyRateLimitRepository(session).create(
            "k", window_start=START, expires_at=START + WINDOW
        )
    async with session_factory() as session:
        entry = await SqlAlchemyRateLimitRepository(session).get("k")
    assert entry is not None
    assert entry.expires_at == datetime(2024, 5, 1, 12, 15)


async def test_rate_limit_cleanup_job_reports_before_and_after(session_factory):
    async with session_factory() as session:
        repository = SqlAlchemyRateLimitRepository(session)
        await repository.create("stale", window_start=START - WINDOW * 2, expires_at=START - WINDOW)
        await repository.create("fresh", window_start=START, expires_at=START + WINDOW)

    result = await run_rate_limit_cleanup(session_factory=session_factory, now=START)

    assert result.errors == []
    assert result.expired_entries == 1
    assert (result.entries_before, result.entries_after) == (2, 1)
    assert [item.key for item in result.top_keys] == ["fresh"]
