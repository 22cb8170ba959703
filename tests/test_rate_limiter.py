"""
Decision logic of the fixed-window rate limiter over the in-memory store.
"""

import asyncio
from datetime import timedelta
from uuid import uuid4

from hypothesis import given, settings, strategies as st

from apps.api.app.domain.rate_limits import (
    MINUTE,
    RateLimitConfig,
    RateLimitIdentifier,
    RateLimitOptions,
    RateLimitOverride,
    RateLimitPolicy,
    RateLimitRule,
    default_policy,
)
from apps.api.app.domain.users import Role
from apps.api.app.repositories.rate_limits import InMemoryRateLimitRepository
from apps.api.app.services.rate_limiter import RateLimiter, generate_rate_limit_key, get_client_ip

from helpers import START, Clock, make_request


def make_limiter(clock=None, repository=None, policy=None, **kwargs) -> RateLimiter:
    return RateLimiter(
        policy or default_policy(),
        repository or InMemoryRateLimitRepository(),
        clock=clock or Clock(),
        **kwargs,
    )


class FailingRepository(InMemoryRateLimitRepository):
    async def get(self, key):
        raise RuntimeError("database unavailable")


async def test_basic_limiting_scenario():
    limiter = make_limiter()
    request = make_request("/api/auth/login")

    remaining = []
    for _ in range(5):
        result = await limiter.check(request)
        assert result.allowed
        assert result.limit == 5
        remaining.append(result.remaining)
    assert remaining == [4, 3, 2, 1, 0]

    denied = await limiter.check(request)
    assert not denied.allowed
    assert denied.remaining == 0
    assert denied.message == "Muitas tentativas de login. Tente novamente em 15 minutos."
    assert denied.reset_at == START + timedelta(minutes=15)
    assert denied.retry_after_seconds(START) == 900


async def test_denied_until_window_expires_then_resets():
    clock = Clock()
    limiter = make_limiter(clock)
    request = make_request("/api/auth/login")
    for _ in range(6):
        await limiter.check(request)

    clock.advance(minutes=15)
    boundary = await limiter.check(request)
    assert not boundary.allowed
    assert boundary.retry_after_seconds(clock.value) == 1

    clock.advance(seconds=1)
    result = await limiter.check(request)
    assert result.allowed
    assert result.remaining == 4
    assert result.reset_at == clock.value + timedelta(minutes=15)


async def test_reset_at_stays_on_first_request_window():
    clock = Clock()
    limiter = make_limiter(clock)
    request = make_request("/api/auth/login")
    first = await limiter.check(request)
    clock.advance(minutes=5)
    second = await limiter.check(request)
    assert second.reset_at == first.reset_at


async def test_keys_are_isolated_per_ip_and_path():
    limiter = make_limiter()
    for _ in range(5):
        await limiter.check(make_request("/api/auth/login", ip="1.2.3.4"))

    assert not (await limiter.check(make_request("/api/auth/login", ip="1.2.3.4"))).allowed
    assert (await limiter.check(make_request("/api/auth/login", ip="5.6.7.8"))).allowed
    assert (await limiter.check(make_request("/api/auth/register", ip="1.2.3.4"))).allowed


async def test_role_multiplier_scenario():
    limiter = make_limiter()

    admin = RateLimitOptions(role=Role.ADMIN)
    admin_request = make_request("/api/feed", ip="10.0.0.1")
    results = [await limiter.check(admin_request, admin) for _ in range(150)]
    assert all(result.allowed for result in results)
    assert results[0].limit == 200

    patient = RateLimitOptions(role=Role.PATIENT)
    patient_request = make_request("/api/feed", ip="10.0.0.2")
    outcomes = [(await limiter.check(patient_request, patient)).allowed for _ in range(101)]
    assert outcomes[:100] == [True] * 100
    assert outcomes[100] is False


async def test_user_identifier_keys_by_user_across_ips():
    limiter = make_limiter()
    user_id = uuid4()
    options = RateLimitOptions(user_id=user_id, role=Role.PATIENT)
    for index in range(20):
        result = await limiter.check(make_request("/api/posts", ip=f"10.0.0.{index}"), options)
        assert result.allowed
    denied = await limiter.check(make_request("/api/posts", ip="10.0.1.1"), options)
    assert not denied.allowed
    assert denied.message == "Limite de posts atingido. Tente novamente em 1 hora."


async def test_config_override_applies():
    limiter = make_limiter()
    options = RateLimitOptions(config=RateLimitOverride(limit=2, message="devagar"))
    request = make_request("/api/feed")
    assert (await limiter.check(request, options)).remaining == 1
    assert (await limiter.check(request, options)).remaining == 0
    denied = await limiter.check(request, options)
    assert not denied.allowed
    assert denied.message == "devagar"


async def test_default_message_when_config_has_none():
    policy = RateLimitPolicy(
        rules=(),
        default=RateLimitConfig(limit=1, window_ms=MINUTE),
    )
    limiter = make_limiter(policy=policy)
    request = make_request("/anything")
    await limiter.check(request)
    denied = await limiter.check(request)
    assert denied.message == "Muitas requisições. Tente novamente mais tarde."


async def test_store_failure_fails_open():
    limiter = make_limiter(repository=FailingRepository())
    result = await limiter.check(make_request("/api/auth/login"))
    assert result.allowed
    assert result.remaining == result.limit == 5


async def test_missing_store_fails_open():
    limiter = RateLimiter(default_policy(), None, clock=Clock())
    result = await limiter.check(make_request("/api/posts"))
    assert result.allowed
    assert result.remaining == result.limit == 20


async def test_disabled_limiter_never_counts():
    repository = InMemoryRateLimitRepository()
    limiter = make_limiter(repository=repository, enabled=False)
    for _ in range(10):
        assert (await limiter.check(make_request("/api/auth/login"))).allowed
    assert await repository.count() == 0


async def test_concurrent_checks_never_exceed_limit():
    limiter = make_limiter()
    request = make_request("/api/auth/login")
    results = await asyncio.gather(*(limiter.check(request) for _ in range(20)))
    assert sum(result.allowed for result in results) == 5


async def test_cleanup_and_stats():
    clock = Clock()
    repository = InMemoryRateLimitRepository()
    limiter = make_limiter(clock, repository, top_keys=1)
    for _ in range(3):
        await limiter.check(make_request("/api/auth/login", ip="1.1.1.1"))
    await limiter.check(make_request("/api/feed", ip="2.2.2.2"))

    clock.advance(minutes=2)
    stats = await limiter.get_stats()
    assert stats.total_entries == 2
    assert stats.expired_entries == 1
    assert [item.key for item in stats.top_keys] == ["ip:1.1.1.1:/api/auth/login"]

    assert await limiter.cleanup_expired_entries() == 1
    assert (await limiter.get_stats()).total_entries == 1


def test_client_ip_resolution_order():
    assert get_client_ip(make_request("/", ip="9.9.9.9, 8.8.8.8")) == "9.9.9.9"
    assert get_client_ip(make_request("/", ip=None, headers={"X-Real-IP": " 7.7.7.7 "})) == "7.7.7.7"
    assert get_client_ip(make_request("/", ip=None)) == "unknown"


def test_key_formats():
    request = make_request("/p", ip="1.2.3.4")
    user_id = uuid4()
    assert generate_rate_limit_key(request, "/p", RateLimitIdentifier.IP, user_id) == "ip:1.2.3.4:/p"
    assert generate_rate_limit_key(request, "/p", RateLimitIdentifier.USER, user_id) == f"user:{user_id}:/p"
    assert (
        generate_rate_limit_key(request, "/p", RateLimitIdentifier.BOTH, user_id)
        == f"user:{user_id}:ip:1.2.3.4:/p"
    )
    assert generate_rate_limit_key(request, "/p", RateLimitIdentifier.USER) == "ip:1.2.3.4:/p"


@settings(max_examples=50, deadline=None)
@given(
    limit=st.integers(min_value=1, max_value=10),
    steps=st.lists(st.integers(min_value=0, max_value=90), min_size=1, max_size=40),
)
def test_decisions_respect_limit_within_each_window(limit, steps):
    """
    Property: inside one window at most ``limit`` requests are allowed, each
    allowed result reports ``limit - count`` remaining, and once the quota is
    spent every check is denied until the window restarts.
    """
    policy = RateLimitPolicy(
        rules=(RateLimitRule("/p", RateLimitConfig(limit=limit, window_ms=MINUTE)),),
        default=RateLimitConfig(limit=100, window_ms=MINUTE),
    )
    clock = Clock()
    limiter = make_limiter(clock, policy=policy)
    request = make_request("/p")

    async def scenario():
        window_start = None
        count = 0
        for seconds in steps:
            clock.advance(seconds=seconds)
            if window_start is None or window_start < clock.value - timedelta(minutes=1):
                window_start = clock.value
                count = 0
            result = await limiter.check(request)
            if count < limit:
                count += 1
                assert result.allowed
                assert result.remaining == limit - count
            else:
                assert not result.allowed
                assert result.remaining == 0
            assert result.remaining >= 0

    asyncio.run(scenario())
