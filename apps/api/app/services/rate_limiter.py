"""Fixed-window request limiter backed by a rate limit repository."""

from __future__ import annotations

from datetime import datetime
from typing import Callable
from uuid import UUID

import structlog
from prometheus_client import Counter
from starlette.requests import HTTPConnection

from ..domain.rate_limits import (
    DEFAULT_DENIAL_MESSAGE,
    RateLimitConfig,
    RateLimitIdentifier,
    RateLimitOptions,
    RateLimitPolicy,
    RateLimitResult,
    RateLimitStats,
)
from ..repositories.rate_limits import RateLimitRepository

logger = structlog.get_logger(__name__)

RATE_LIMIT_DECISIONS = Counter(
    "moodz_rate_limit_decisions_total",
    "Rate limit decisions grouped by outcome",
    labelnames=("outcome",),
)

# Retries when a concurrent request changes the entry between read and write.
_MAX_ATTEMPTS = 3


class RateLimitStoreConflict(RuntimeError):
    """Raised when an entry keeps changing under the limiter."""


class RateLimitStoreUnavailable(RuntimeError):
    """No counter store is configured for this process."""


def get_client_ip(request: HTTPConnection) -> str:
    """Best-effort client address from proxy headers."""

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return "unknown"


def generate_rate_limit_key(
    request: HTTPConnection,
    path: str,
    identifier: RateLimitIdentifier,
    user_id: UUID | str | None = None,
) -> str:
    ip = get_client_ip(request)
    if identifier is RateLimitIdentifier.IP or not user_id:
        return f"ip:{ip}:{path}"
    if identifier is RateLimitIdentifier.USER:
        return f"user:{user_id}:{path}"
    return f"user:{user_id}:ip:{ip}:{path}"


class RateLimiter:
    """Counts requests per key and decides whether each one may proceed.

    A key's window starts on its first request and is restarted by the first
    request seen after ``window`` has elapsed, so this is a fixed window per
    key rather than a sliding one. Store failures never block traffic: the
    request is allowed and the error is logged.
    """

    def __init__(
        self,
        policy: RateLimitPolicy,
        repository: RateLimitRepository | None,
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
        enabled: bool = True,
        top_keys: int = 10,
    ) -> None:
        self._policy = policy
        self._repository = repository
        self._clock = clock
        self._enabled = enabled
        self._top_keys = top_keys

    @property
    def policy(self) -> RateLimitPolicy:
        return self._policy

    def now(self) -> datetime:
        return self._clock()

    def _store(self) -> RateLimitRepository:
        if self._repository is None:
            raise RateLimitStoreUnavailable("Rate limit store is not configured")
        return self._repository

    async def check(
        self, request: HTTPConnection, options: RateLimitOptions | None = None
    ) -> RateLimitResult:
        options = options or RateLimitOptions()
        path = request.url.path
        config = self._policy.resolve(path).merged(options.config)
        limit = self._policy.apply_role_multiplier(config.limit, options.role)
        now = self._clock()
        window_start = now - config.window
        expires_at = now + config.window

        if not self._enabled:
            return RateLimitResult(allowed=True, limit=limit, remaining=limit, reset_at=expires_at)

        key = generate_rate_limit_key(request, path, config.identifier, options.user_id)
        try:
            result = await self._decide(
                key,
                limit=limit,
                config=config,
                now=now,
                window_start=window_start,
                expires_at=expires_at,
            )
        except Exception:
            logger.exception("rate_limit.check_failed", key=key, path=path)
            RATE_LIMIT_DECISIONS.labels(outcome="failed_open").inc()
            return RateLimitResult(allowed=True, limit=limit, remaining=limit, reset_at=expires_at)

        if result.allowed:
            RATE_LIMIT_DECISIONS.labels(outcome="allowed").inc()
        else:
            RATE_LIMIT_DECISIONS.labels(outcome="denied").inc()
            logger.info(
                "rate_limit.denied",
                key=key,
                path=path,
                limit=limit,
                reset_at=result.reset_at.isoformat(),
            )
        return result

    async def _decide(
        self,
        key: str,
        *,
        limit: int,
        config: RateLimitConfig,
        now: datetime,
        window_start: datetime,
        expires_at: datetime,
    ) -> RateLimitResult:
        for _ in range(_MAX_ATTEMPTS):
            entry = await self._store().get(key)
            if entry is None:
                created = await self._store().create(
                    key, window_start=now, expires_at=expires_at
                )
                if created is not None:
                    return _allowed(limit, limit - 1, expires_at)
                continue

            if entry.window_start < window_start:
                restarted = await self._store().reset(
                    key,
                    stale_before=window_start,
                    window_start=now,
                    expires_at=expires_at,
                )
                if restarted is not None:
                    return _allowed(limit, limit - 1, expires_at)
                continue

            if entry.count >= limit:
                return RateLimitResult(
                    allowed=False,
                    limit=limit,
                    remaining=0,
                    reset_at=entry.expires_at,
                    message=config.message or DEFAULT_DENIAL_MESSAGE,
                )

            new_count = await self._store().increment(key, limit=limit)
            if new_count is not None:
                return _allowed(limit, limit - new_count, entry.expires_at)
        raise RateLimitStoreConflict(f"Rate limit entry {key!r} changed on every attempt")

    async def cleanup_expired_entries(self) -> int:
        """Delete counters whose window has ended."""

        deleted = await self._store().delete_expired(self._clock())
        logger.info("rate_limit.cleanup", deleted=deleted)
        return deleted

    async def get_stats(self) -> RateLimitStats:
        # One AsyncSession cannot run statements concurrently, so these run in turn.
        now = self._clock()
        total = await self._store().count()
        expired = await self._store().count_expired(now)
        top_keys = await self._store().top_keys(self._top_keys)
        return RateLimitStats(total_entries=total, expired_entries=expired, top_keys=top_keys)


def _allowed(limit: int, remaining: int, reset_at: datetime) -> RateLimitResult:
    return RateLimitResult(
        allowed=True,
        limit=limit,
        remaining=max(remaining, 0),
        reset_at=reset_at,
    )
